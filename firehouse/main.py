"""
Firehouse Portal: FastAPI application factory.

Application lifecycle:
  startup  → configure logging, run DB migrations, seed the super user,
             start the retention sweeper
  shutdown → stop the sweeper, dispose DB engine pool
"""

from __future__ import annotations

import asyncio
import contextlib
from pathlib import Path

import sqlalchemy as sa
import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from sqlalchemy.exc import SQLAlchemyError

from firehouse.api.deps import get_attachment_storage
from firehouse.api.v1.router import router as v1_router
from firehouse.config.logging_config import configure_logging
from firehouse.config.settings import Settings, get_settings
from firehouse.core.errors import AppError
from firehouse.core.middleware import (
    CorrelationIDMiddleware,
    SecurityHeadersMiddleware,
    app_error_handler,
    request_validation_handler,
    storage_error_handler,
    unhandled_exception_handler,
)
from firehouse.db.session import create_engine, dispose_engine, get_session_factory
from firehouse.services.retention.sweeper import RetentionSweeper

_log = structlog.get_logger(__name__)

_ALEMBIC_INI = Path(__file__).resolve().parent.parent / "alembic.ini"


def _create_limiter(settings: Settings) -> Limiter:
    return Limiter(
        key_func=get_remote_address,
        default_limits=[settings.rate_limit_default],
    )


async def _run_migrations(settings: Settings) -> None:
    """Apply Alembic migrations over the application's own async engine."""
    from alembic import command
    from alembic.config import Config

    alembic_cfg = Config(str(_ALEMBIC_INI))
    alembic_cfg.set_main_option("script_location", str(_ALEMBIC_INI.parent / "alembic"))

    def _upgrade(connection: sa.Connection) -> None:
        alembic_cfg.attributes["connection"] = connection
        command.upgrade(alembic_cfg, "head")

    async with create_engine(settings).begin() as conn:
        await conn.run_sync(_upgrade)
    _log.info("migrations_applied")


async def _seed_super_user(settings: Settings) -> None:
    """Create the bootstrap super user when no admin or super user exists."""
    from firehouse.core.security import hash_password
    from firehouse.db.models.user import User, UserRole, UserStatus
    from firehouse.db.session import atomic
    from firehouse.services.access.ranking import OVERRIDE_ROLES, Role

    factory = get_session_factory(settings)
    async with factory() as db:
        existing = await db.execute(
            sa.select(UserRole.id).where(UserRole.role.in_(OVERRIDE_ROLES)).limit(1)
        )
        if existing.scalar_one_or_none() is not None:
            return

        async with atomic(db):
            db.add(
                User(
                    email=settings.admin_email.lower(),
                    name="Super User",
                    username=settings.admin_username,
                    password_hash=hash_password(settings.admin_password.get_secret_value()),
                    status=UserStatus.ACTIVE,
                    must_change_password=True,
                    primary_role=Role.SUPER_USER.value,
                    role_links=[UserRole(role=Role.SUPER_USER.value)],
                )
            )
        _log.info("super_user_bootstrapped", username=settings.admin_username)


async def _startup(app: FastAPI, settings: Settings) -> None:
    configure_logging(log_level=settings.log_level.value, json_logs=settings.log_json)
    _log.info(
        "firehouse_starting",
        version=settings.app_version,
        environment=settings.environment.value,
    )

    if settings.run_migrations_on_startup:
        await _run_migrations(settings)
    await _seed_super_user(settings)

    if settings.retention_enabled:
        sweeper = RetentionSweeper(
            get_session_factory(settings), settings, get_attachment_storage()
        )
        app.state.retention_task = asyncio.create_task(sweeper.run_forever())

    _log.info("firehouse_ready", host=settings.host, port=settings.port)


async def _shutdown(app: FastAPI) -> None:
    task: asyncio.Task[None] | None = getattr(app.state, "retention_task", None)
    if task is not None:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
    await dispose_engine()
    _log.info("firehouse_shutdown")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Application factory. Returns a configured FastAPI instance."""
    settings = settings or get_settings()
    docs_enabled = settings.environment.value != "production"

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Fire department bulletins, internal messaging and file library.",
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )

    # ── Startup / Shutdown ────────────────────────────────────────────── #
    @app.on_event("startup")
    async def on_startup() -> None:
        await _startup(app, settings)

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await _shutdown(app)

    # ── Rate Limiting ─────────────────────────────────────────────────── #
    app.state.limiter = _create_limiter(settings)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]
    app.add_middleware(SlowAPIMiddleware)

    # ── CORS ──────────────────────────────────────────────────────────── #
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-ID"],
    )

    # ── Custom Middleware (applied in reverse order) ───────────────────── #
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(CorrelationIDMiddleware)

    # ── Exception Handlers ────────────────────────────────────────────── #
    app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, storage_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # ── Routes ────────────────────────────────────────────────────────── #
    app.include_router(v1_router)

    # ── Health ────────────────────────────────────────────────────────── #
    @app.get("/health", tags=["health"], summary="Health check")
    async def health() -> dict[str, object]:
        """Returns service health including database reachability."""
        db_ok = False
        try:
            async with get_session_factory(settings)() as db:
                await db.execute(sa.text("SELECT 1"))
            db_ok = True
        except SQLAlchemyError as exc:
            _log.warning("health_database_unavailable", error=str(exc))

        return {
            "status": "healthy" if db_ok else "degraded",
            "database": "ok" if db_ok else "unavailable",
            "version": settings.app_version,
        }

    # ── Metrics (Prometheus) ──────────────────────────────────────────── #
    @app.get("/metrics", tags=["observability"], summary="Prometheus metrics")
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


# Entry point for uvicorn
app = create_app()


def run() -> None:
    """Serve the app with the configured bind address and worker count."""
    settings = get_settings()
    uvicorn.run(
        "firehouse.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        workers=settings.workers,
        log_config=None,
    )
