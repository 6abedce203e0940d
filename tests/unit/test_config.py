"""Unit tests for firehouse.config.settings and the server entry point."""
import pytest
from pydantic import ValidationError

import firehouse.main as main_module
from firehouse.config.settings import Settings


def test_database_url_accepts_sqlite_and_postgresql():
    assert Settings(database_url="sqlite+aiosqlite:///./x.db").database_url.startswith("sqlite")
    pg = Settings(database_url="postgresql+asyncpg://fire:pw@db/portal")
    assert pg.database_url.startswith("postgresql")


def test_database_url_rejects_other_dialects():
    with pytest.raises(ValidationError):
        Settings(database_url="mysql+aiomysql://fire:pw@db/portal")


def test_run_passes_server_settings_to_uvicorn(monkeypatch):
    calls = []
    monkeypatch.setattr(
        main_module, "get_settings", lambda: Settings(host="127.0.0.1", port=8080, workers=3)
    )
    monkeypatch.setattr(main_module.uvicorn, "run", lambda *a, **kw: calls.append((a, kw)))

    main_module.run()

    [(args, kwargs)] = calls
    assert args == ("firehouse.main:app",)
    assert kwargs["host"] == "127.0.0.1"
    assert kwargs["port"] == 8080
    assert kwargs["workers"] == 3
    assert kwargs["reload"] is False
