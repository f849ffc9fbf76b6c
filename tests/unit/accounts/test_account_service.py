"""
Tests for AccountService - sign-up welcome message and credit top-ups.
"""
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from hostpanel.models.account import User
from hostpanel.models.notification_template import WELCOME_MESSAGE
from hostpanel.modules.accounts.domain.account_service import AccountService
from hostpanel.modules.notifications.domain.gateway import TemplateNotificationGateway
from hostpanel.shared.core.exceptions import BillingError, ResourceNotFoundError


@pytest.mark.asyncio
async def test_create_account_sends_welcome_message(db, gateway):
    user = await AccountService(db, gateway).create_account(
        "Alex", "alex@example.com", credits="5"
    )

    assert user.credits == Decimal("5")
    assert gateway.calls == [(user.id, WELCOME_MESSAGE, {"user": user})]


@pytest.mark.asyncio
async def test_missing_welcome_template_fails_but_keeps_account(db, session_maker):
    service = AccountService(db, TemplateNotificationGateway(session_maker))

    with pytest.raises(ResourceNotFoundError):
        await service.create_account("Alex", "alex@example.com")

    async with session_maker() as session:
        stored = (
            await session.execute(select(User).where(User.email == "alex@example.com"))
        ).scalar_one_or_none()
    assert stored is not None


@pytest.mark.asyncio
async def test_negative_opening_balance_is_rejected(db, gateway):
    with pytest.raises(BillingError):
        await AccountService(db, gateway).create_account("Alex", "alex@example.com", "-1")
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_add_credits_returns_new_balance(db, gateway, make_user):
    user = await make_user(credits="0.50")

    balance = await AccountService(db, gateway).add_credits(user.id, "10")

    assert balance == Decimal("10.50")
    await db.refresh(user)
    assert user.credits == Decimal("10.50")


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["0", "-5"])
async def test_add_credits_requires_positive_amount(db, gateway, make_user, amount):
    user = await make_user(credits="1")

    with pytest.raises(BillingError):
        await AccountService(db, gateway).add_credits(user.id, amount)


@pytest.mark.asyncio
async def test_add_credits_to_unknown_account(db, gateway):
    with pytest.raises(ResourceNotFoundError):
        await AccountService(db, gateway).add_credits(uuid4(), "10")
