"""
Credit Billing Engine - hourly charges for running servers.

Charge flow per server and billing period:
1. Suspended servers are never charged.
2. A period the server was already charged for is reported as paid (re-runs are safe).
3. Claim the period on the server row and debit the owner in one transaction;
   both are conditional UPDATEs, so concurrent ticks cannot double-charge or
   overdraw the same account.
4. If the owner cannot cover the hourly price, roll back and suspend.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy import or_, update
from sqlalchemy.ext.asyncio import AsyncSession

from hostpanel.models.account import User
from hostpanel.models.server import Server
from hostpanel.modules.billing.domain.suspension import (
    SuspensionBatch,
    SuspensionController,
)
from hostpanel.shared.core.pricing import hourly_price

logger = structlog.get_logger()


def billing_period_start(now: Optional[datetime] = None) -> datetime:
    """Truncate to the hour in UTC; one tick bills one hour."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc).replace(minute=0, second=0, microsecond=0)


@dataclass(frozen=True, slots=True)
class ChargeResult:
    server_id: UUID
    charged: bool
    amount: Decimal
    suspended: bool
    already_billed: bool = False


class BillingEngine:
    def __init__(self, db: AsyncSession, suspension: SuspensionController):
        self.db = db
        self.suspension = suspension

    async def charge_tick(
        self,
        server: Server,
        period_start: Optional[datetime] = None,
        batch: Optional[SuspensionBatch] = None,
    ) -> ChargeResult:
        """
        Charge the owner for one hour of `server`.

        Returns charged=True when the period is paid (now or by an earlier
        run), charged=False when the server is or has just been suspended.
        """
        server_id = server.id
        user_id = server.user_id
        hourly = hourly_price(server.price)
        period = billing_period_start(period_start)

        if server.suspended:
            logger.debug("billing_skipped_suspended", server_id=str(server_id))
            return ChargeResult(server_id, charged=False, amount=Decimal("0"), suspended=True)

        last_billed = server.last_billed_at_utc()
        if last_billed is not None and last_billed >= period:
            return self._already_billed(server_id, period)

        try:
            claimed = await self.db.execute(
                update(Server)
                .where(
                    Server.id == server_id,
                    Server.suspended.is_(False),
                    or_(Server.last_billed_at.is_(None), Server.last_billed_at < period),
                )
                .values(last_billed_at=period)
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount == 0:
                # Another sweep got here first, or the server was suspended meanwhile.
                await self.db.rollback()
                await self.db.refresh(server)
                if server.suspended:
                    return ChargeResult(
                        server_id, charged=False, amount=Decimal("0"), suspended=True
                    )
                return self._already_billed(server_id, period)

            debited = await self.db.execute(
                update(User)
                .where(User.id == user_id, User.credits >= hourly)
                .values(credits=User.credits - hourly)
                .execution_options(synchronize_session=False)
            )
            if debited.rowcount == 1:
                await self.db.commit()
                await self.db.refresh(server, attribute_names=["last_billed_at"])
                logger.info(
                    "billing_charge_succeeded",
                    server_id=str(server_id),
                    user_id=str(user_id),
                    amount=str(hourly),
                    period_start=period.isoformat(),
                )
                return ChargeResult(server_id, charged=True, amount=hourly, suspended=False)

            # Insufficient credits: release the period claim.
            await self.db.rollback()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(server)
        logger.warning(
            "billing_insufficient_credits",
            server_id=str(server_id),
            user_id=str(user_id),
            amount=str(hourly),
            period_start=period.isoformat(),
        )
        await self.suspension.suspend(server, notify=True, batch=batch)
        return ChargeResult(server_id, charged=False, amount=Decimal("0"), suspended=True)

    @staticmethod
    def _already_billed(server_id: UUID, period: datetime) -> ChargeResult:
        logger.info(
            "billing_period_already_charged",
            server_id=str(server_id),
            period_start=period.isoformat(),
        )
        return ChargeResult(
            server_id,
            charged=True,
            amount=Decimal("0"),
            suspended=False,
            already_billed=True,
        )
