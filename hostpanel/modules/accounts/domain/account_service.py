from decimal import Decimal
from uuid import UUID

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from hostpanel.models.account import User
from hostpanel.models.notification_template import WELCOME_MESSAGE
from hostpanel.modules.notifications.domain.gateway import NotificationGateway
from hostpanel.shared.core.exceptions import BillingError, ResourceNotFoundError
from hostpanel.shared.core.pricing import Amount, to_decimal

logger = structlog.get_logger()


class AccountService:
    """Account creation and credit top-ups."""

    def __init__(self, db: AsyncSession, gateway: NotificationGateway):
        self.db = db
        self.gateway = gateway

    async def create_account(self, name: str, email: str, credits: Amount = 0) -> User:
        """
        Persist a new account, then send the welcome message.

        The account is committed before notifying; a missing "welcome-message"
        template raises ResourceNotFoundError but leaves the account in place.
        """
        opening_balance = to_decimal(credits)
        if opening_balance < 0:
            raise BillingError("Opening balance cannot be negative")

        user = User(name=name, email=email, credits=opening_balance)
        self.db.add(user)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        logger.info("account_created", user_id=str(user.id))

        await self.send_welcome_message(user)
        return user

    async def send_welcome_message(self, user: User) -> bool:
        return await self.gateway.notify(user, WELCOME_MESSAGE, {"user": user})

    async def add_credits(self, user_id: UUID, amount: Amount) -> Decimal:
        """Atomically credit an account; returns the new balance."""
        value = to_decimal(amount)
        if value <= 0:
            raise BillingError(
                "Credit amount must be positive", details={"amount": str(amount)}
            )

        try:
            result = await self.db.execute(
                update(User)
                .where(User.id == user_id)
                .values(credits=User.credits + value)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise ResourceNotFoundError(f"User {user_id} not found.")
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        user = await self.db.get(User, user_id, populate_existing=True)
        balance = to_decimal(user.credits) if user is not None else value
        logger.info(
            "account_credited",
            user_id=str(user_id),
            amount=str(value),
            balance=str(balance),
        )
        return balance
