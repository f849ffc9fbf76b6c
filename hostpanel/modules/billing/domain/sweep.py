"""
Billing sweep - one scheduled pass over every active server.

Accounts are processed concurrently, each in its own session; the servers of
one account are charged one after another so a single writer touches each
balance. One SuspensionBatch spans the whole sweep and is discarded afterwards.
"""

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
from uuid import UUID

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hostpanel.models.server import Server
from hostpanel.modules.billing.domain.billing_engine import (
    BillingEngine,
    ChargeResult,
    billing_period_start,
)
from hostpanel.modules.billing.domain.suspension import (
    SuspensionBatch,
    SuspensionController,
)
from hostpanel.modules.notifications.domain.gateway import NotificationGateway
from hostpanel.shared.core.config import get_settings

logger = structlog.get_logger()

EngineFactory = Callable[[AsyncSession], BillingEngine]


@dataclass
class SweepReport:
    period_start: datetime
    charged: int = 0
    already_billed: int = 0
    suspended: int = 0
    failed: int = 0
    notified_accounts: int = 0
    failed_server_ids: list[UUID] = field(default_factory=list)

    def record(self, result: ChargeResult) -> None:
        if result.already_billed:
            self.already_billed += 1
        elif result.charged:
            self.charged += 1
        elif result.suspended:
            self.suspended += 1


class BillingSweep:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        gateway: NotificationGateway,
        *,
        max_concurrency: Optional[int] = None,
        engine_factory: Optional[EngineFactory] = None,
    ):
        self.session_maker = session_maker
        self.max_concurrency = max_concurrency or get_settings().BILLING_MAX_CONCURRENCY
        self.engine_factory = engine_factory or (
            lambda db: BillingEngine(db, SuspensionController(db, gateway))
        )

    async def _active_servers_by_account(self) -> Dict[UUID, list[UUID]]:
        async with self.session_maker() as session:
            rows = await session.execute(
                select(Server.id, Server.user_id)
                .where(Server.suspended.is_(False))
                .order_by(Server.user_id, Server.created_at)
            )
            grouped: Dict[UUID, list[UUID]] = defaultdict(list)
            for server_id, user_id in rows.all():
                grouped[user_id].append(server_id)
        return grouped

    async def _charge_account(
        self,
        user_id: UUID,
        server_ids: list[UUID],
        period: datetime,
        batch: SuspensionBatch,
        semaphore: asyncio.Semaphore,
    ) -> list[ChargeResult | UUID]:
        """Returns one ChargeResult per server, or the server id when charging it failed."""
        outcomes: list[ChargeResult | UUID] = []
        async with semaphore:
            async with self.session_maker() as session:
                engine = self.engine_factory(session)
                for server_id in server_ids:
                    try:
                        server = await session.get(Server, server_id)
                        if server is None:
                            # Deleted since the sweep started.
                            continue
                        outcomes.append(await engine.charge_tick(server, period, batch))
                    except Exception as exc:
                        logger.error(
                            "billing_sweep_server_failed",
                            server_id=str(server_id),
                            user_id=str(user_id),
                            error=str(exc),
                            error_type=type(exc).__name__,
                        )
                        await session.rollback()
                        outcomes.append(server_id)
        return outcomes

    async def run(self, now: Optional[datetime] = None) -> SweepReport:
        period = billing_period_start(now)
        batch = SuspensionBatch()
        report = SweepReport(period_start=period)

        grouped = await self._active_servers_by_account()
        logger.info(
            "billing_sweep_started",
            period_start=period.isoformat(),
            accounts=len(grouped),
            servers=sum(len(ids) for ids in grouped.values()),
        )

        semaphore = asyncio.Semaphore(self.max_concurrency)
        account_ids = list(grouped)
        results = await asyncio.gather(
            *(
                self._charge_account(user_id, grouped[user_id], period, batch, semaphore)
                for user_id in account_ids
            ),
            return_exceptions=True,
        )

        for user_id, account_result in zip(account_ids, results):
            if isinstance(account_result, BaseException):
                logger.error(
                    "billing_sweep_account_failed",
                    user_id=str(user_id),
                    error=str(account_result),
                )
                report.failed += len(grouped[user_id])
                report.failed_server_ids.extend(grouped[user_id])
                continue
            for outcome in account_result:
                if isinstance(outcome, ChargeResult):
                    report.record(outcome)
                else:
                    report.failed += 1
                    report.failed_server_ids.append(outcome)

        report.notified_accounts = len(batch)
        logger.info(
            "billing_sweep_completed",
            period_start=period.isoformat(),
            charged=report.charged,
            already_billed=report.already_billed,
            suspended=report.suspended,
            failed=report.failed,
            notified_accounts=report.notified_accounts,
        )
        return report


class BillingScheduler:
    """Runs the billing sweep on an APScheduler interval."""

    JOB_ID = "credit_billing_sweep"

    def __init__(self, sweep: BillingSweep, interval_minutes: Optional[int] = None):
        self.sweep = sweep
        self.interval_minutes = interval_minutes or get_settings().BILLING_INTERVAL_MINUTES
        self.scheduler = AsyncIOScheduler(timezone="UTC")
        self._last_run_success: bool | None = None
        self._last_run_time: str | None = None

    async def billing_sweep_job(self) -> None:
        try:
            await self.sweep.run()
            self._last_run_success = True
        except Exception as exc:
            logger.error("billing_sweep_job_failed", error=str(exc))
            self._last_run_success = False
        self._last_run_time = datetime.now(timezone.utc).isoformat()

    def start(self) -> None:
        self.scheduler.add_job(
            self.billing_sweep_job,
            trigger=IntervalTrigger(minutes=self.interval_minutes, timezone="UTC"),
            id=self.JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info("billing_scheduler_started", interval_minutes=self.interval_minutes)

    def stop(self) -> None:
        if not self.scheduler.running:
            logger.debug("billing_scheduler_stop_skipped_not_running")
            return
        self.scheduler.shutdown(wait=False)

    def get_status(self) -> Dict[str, Any]:
        return {
            "running": self.scheduler.running,
            "last_run_success": self._last_run_success,
            "last_run_time": self._last_run_time,
            "jobs": [str(job.id) for job in self.scheduler.get_jobs()],
        }
