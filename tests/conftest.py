"""
Global pytest fixtures for the HostPanel test suite.

Provides:
- File-backed async SQLite engine, session and session factory
- Account / server / template factories
- Recording doubles for the notification gateway and provider client
"""
import os
from decimal import Decimal
from typing import Any, AsyncGenerator, Callable
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
import pytest_asyncio

# Set test environment BEFORE any hostpanel imports
os.environ["TESTING"] = "true"
os.environ["ENVIRONMENT"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["PTERODACTYL_URL"] = "https://panel.test"
os.environ["PTERODACTYL_API_KEY"] = "ptla_test_key"
os.environ["MAIL_ENABLED"] = "true"
os.environ["BILLING_SCHEDULER_ENABLED"] = "false"

from hostpanel.shared.core.config import get_settings  # noqa: E402

get_settings.cache_clear()

import hostpanel.models  # noqa: E402, F401  (register mappings)
from hostpanel.models.account import User  # noqa: E402
from hostpanel.models.notification_template import (  # noqa: E402
    SERVERS_SUSPENDED,
    WELCOME_MESSAGE,
    NotificationTemplate,
)
from hostpanel.models.server import Server  # noqa: E402
from tests.utils import RecordingGateway, provider_server_payload  # noqa: E402


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def provider_client() -> AsyncMock:
    client = AsyncMock()
    client.create_server = AsyncMock(return_value=provider_server_payload())
    client.delete_server = AsyncMock(return_value=None)
    client.fetch_server = AsyncMock(return_value=provider_server_payload())
    return client


# ============================================================================
# Async Database Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def async_engine(tmp_path):
    """Async SQLite engine on a temporary file (shared by concurrent sessions)."""
    from sqlalchemy.ext.asyncio import create_async_engine
    from hostpanel.shared.db.base import Base

    db_url = f"sqlite+aiosqlite:///{tmp_path / f'test_{uuid4().hex}.sqlite'}"
    engine = create_async_engine(db_url, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(async_engine):
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator:
    async with session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


@pytest_asyncio.fixture
async def db(db_session):
    """Alias for db_session."""
    return db_session


# ============================================================================
# Data factories
# ============================================================================

@pytest.fixture
def make_user(db) -> Callable[..., Any]:
    async def _make_user(credits: str | Decimal = "0", email: str | None = None) -> User:
        user = User(
            name="Steve",
            email=email or f"steve-{uuid4().hex[:8]}@example.com",
            credits=Decimal(str(credits)),
        )
        db.add(user)
        await db.commit()
        return user

    return _make_user


@pytest.fixture
def make_server(db) -> Callable[..., Any]:
    counter = {"next": 100}

    async def _make_server(
        user: User, price: str | Decimal = "720.00", suspended: bool = False
    ) -> Server:
        counter["next"] += 1
        server = Server(
            pterodactyl_id=counter["next"],
            identifier=f"id{counter['next']}",
            user_id=user.id,
            name=f"server-{counter['next']}",
            suspended=suspended,
            node_id=1,
            allocation_id=counter["next"],
            nest_id=1,
            egg_id=1,
            price=Decimal(str(price)),
        )
        db.add(server)
        await db.commit()
        return server

    return _make_server


@pytest_asyncio.fixture
async def templates(db) -> dict[str, NotificationTemplate]:
    welcome = NotificationTemplate(
        name=WELCOME_MESSAGE,
        subject="Welcome, ${user_name}",
        content="Hi ${user_name}, your balance is ${user_credits} credits.",
        disabled=False,
    )
    suspended = NotificationTemplate(
        name=SERVERS_SUSPENDED,
        subject="Your servers were suspended",
        content="Hi ${user_name}, top up your credits to restart your servers.",
        disabled=False,
    )
    db.add_all([welcome, suspended])
    await db.commit()
    return {WELCOME_MESSAGE: welcome, SERVERS_SUSPENDED: suspended}
