"""
Shared pytest fixtures for Firehouse Portal tests.

Provides:
  - a file-backed SQLite database per test (foreign keys enforced)
  - an async session for driving the stores directly
  - user factory plus bearer-token helper
  - an httpx client bound to the ASGI app with the DB dependency overridden
"""
from __future__ import annotations

import io
import os
import tempfile
from collections.abc import AsyncGenerator, Awaitable, Callable, Iterable

# Settings are read from the environment at import time; configure them first.
_STORAGE_ROOT = tempfile.mkdtemp(prefix="firehouse-tests-")
os.environ.update(
    {
        "ENVIRONMENT": "testing",
        "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
        "JWT_SECRET_KEY": "test-secret-key-not-for-production-at-all",
        "ADMIN_PASSWORD": "TestSuper@2024!",
        "UPLOAD_DIR": os.path.join(_STORAGE_ROOT, "uploads"),
        "LIBRARY_DIR": os.path.join(_STORAGE_ROOT, "library"),
        "RUN_MIGRATIONS_ON_STARTUP": "false",
        "RETENTION_ENABLED": "false",
        "RATE_LIMIT_DEFAULT": "100000/minute",
        "LOG_JSON": "false",
    }
)

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi import UploadFile  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from starlette.datastructures import Headers  # noqa: E402

from firehouse.config.settings import get_settings  # noqa: E402

get_settings.cache_clear()

from firehouse.api.deps import get_attachment_storage, get_library_storage  # noqa: E402
from firehouse.core.security import create_access_token, hash_password  # noqa: E402
from firehouse.db.base import Base  # noqa: E402
from firehouse.db.models import User, UserRole, UserStatus  # noqa: E402
from firehouse.db.session import enable_sqlite_foreign_keys, get_db  # noqa: E402
from firehouse.main import create_app  # noqa: E402
from firehouse.services.access.ranking import highest_role  # noqa: E402
from firehouse.services.files.storage import FileStorage  # noqa: E402

DEFAULT_PASSWORD = "Passw0rd!"

UserFactory = Callable[..., Awaitable[User]]


# ─── Database ─────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """A fresh SQLite database file per test function."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    enable_sqlite_foreign_keys(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ─── File storage ─────────────────────────────────────────────────────────────

@pytest.fixture
def storage(tmp_path) -> FileStorage:
    return FileStorage(tmp_path / "uploads", max_file_bytes=1024 * 1024, max_files=5)


@pytest.fixture
def library_storage(tmp_path) -> FileStorage:
    return FileStorage(tmp_path / "library", max_file_bytes=1024 * 1024, max_files=1)


@pytest.fixture
def make_upload() -> Callable[..., UploadFile]:
    """Build an in-memory UploadFile as FastAPI would hand it to a route."""

    def _make(
        filename: str = "notes.txt",
        content: bytes = b"hello",
        content_type: str = "text/plain",
    ) -> UploadFile:
        return UploadFile(
            file=io.BytesIO(content),
            filename=filename,
            headers=Headers({"content-type": content_type}),
        )

    return _make


# ─── Users ────────────────────────────────────────────────────────────────────

@pytest.fixture
def make_user(db_session: AsyncSession) -> UserFactory:
    """Insert a user directly, bypassing the approval workflow."""

    async def _make(
        username: str,
        roles: Iterable[str] = ("firefighter",),
        *,
        status: UserStatus = UserStatus.ACTIVE,
        password: str = DEFAULT_PASSWORD,
        name: str | None = None,
    ) -> User:
        roles = list(roles)
        user = User(
            email=f"{username.lower()}@firehouse.test",
            name=name or username.title(),
            username=username,
            password_hash=hash_password(password),
            status=status,
            primary_role=highest_role(roles) if roles else "firefighter",
            role_links=[UserRole(role=role) for role in roles],
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make


def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token(subject=user.id, roles=user.roles)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth() -> Callable[[User], dict[str, str]]:
    return auth_headers


# ─── App & HTTP client ────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def app(session_factory, storage, library_storage):
    """FastAPI test app with the DB and storage dependencies overridden."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app_ = create_app(settings=get_settings())
    app_.dependency_overrides[get_db] = override_get_db
    app_.dependency_overrides[get_attachment_storage] = lambda: storage
    app_.dependency_overrides[get_library_storage] = lambda: library_storage
    return app_


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated async HTTP client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c
