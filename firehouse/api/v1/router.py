"""API v1 router aggregator."""

from fastapi import APIRouter

from firehouse.api.v1 import admin, auth, bulletins, files, messages, users

router = APIRouter(prefix="/api/v1")
router.include_router(auth.router)
router.include_router(users.router)
router.include_router(bulletins.router)
router.include_router(messages.router)
router.include_router(messages.read_status_router)
router.include_router(files.router)
router.include_router(admin.router)
