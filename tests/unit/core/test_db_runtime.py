import pytest
from types import SimpleNamespace

from hostpanel.shared.db.session import (
    _build_pool_config,
    _resolve_effective_url,
    get_db,
    get_session_maker,
    reset_db_runtime,
)


def test_testing_mode_never_points_at_a_real_database():
    settings = SimpleNamespace(DATABASE_URL="postgresql://prod/hostpanel", TESTING=True)
    assert _resolve_effective_url(settings) == "sqlite+aiosqlite:///:memory:"


def test_postgres_urls_use_asyncpg():
    settings = SimpleNamespace(DATABASE_URL="postgresql://db/hostpanel", TESTING=False)
    assert _resolve_effective_url(settings) == "postgresql+asyncpg://db/hostpanel"


def test_pool_config_for_postgres():
    settings = SimpleNamespace(DB_ECHO=False, DB_POOL_SIZE=5, DB_MAX_OVERFLOW=2)
    config = _build_pool_config(settings, "postgresql+asyncpg://db/hostpanel")
    assert config["pool_size"] == 5
    assert config["max_overflow"] == 2
    assert "poolclass" not in config


@pytest.mark.asyncio
async def test_get_db_yields_session():
    reset_db_runtime()
    try:
        async for db in get_db():
            assert db is not None
            assert hasattr(db, "execute")
            break
        assert get_session_maker() is get_session_maker()
    finally:
        reset_db_runtime()
