"""
Server suspension state machine.

States are `active` and `suspended`. Suspending notifies the owner with the
"servers-suspended" template, at most once per account per SuspensionBatch:
the batch is created by whoever starts a suspension run (one billing sweep,
one admin action) and threaded through every suspend call of that run.
"""

from __future__ import annotations

from threading import Lock
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from hostpanel.models.account import User
from hostpanel.models.notification_template import SERVERS_SUSPENDED
from hostpanel.models.server import Server
from hostpanel.modules.notifications.domain.gateway import NotificationGateway

logger = structlog.get_logger()


class SuspensionBatch:
    """Accounts already notified within one suspension run."""

    def __init__(self) -> None:
        self._notified: set[UUID] = set()
        self._lock = Lock()

    def claim(self, user_id: UUID) -> bool:
        """Atomic check-and-set: True only for the first caller per account."""
        with self._lock:
            if user_id in self._notified:
                return False
            self._notified.add(user_id)
            return True

    def __contains__(self, user_id: object) -> bool:
        with self._lock:
            return user_id in self._notified

    def __len__(self) -> int:
        with self._lock:
            return len(self._notified)

    @property
    def notified_accounts(self) -> frozenset[UUID]:
        with self._lock:
            return frozenset(self._notified)


class SuspensionController:
    def __init__(self, db: AsyncSession, gateway: NotificationGateway):
        self.db = db
        self.gateway = gateway

    async def _persist(self, server: Server) -> None:
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def suspend(
        self,
        server: Server,
        notify: bool = True,
        batch: SuspensionBatch | None = None,
    ) -> Server:
        """
        Mark the server suspended and persist. Suspending an already-suspended
        server is a state no-op that still persists.
        """
        was_suspended = server.suspended
        server.suspended = True
        await self._persist(server)

        logger.info(
            "server_suspended",
            server_id=str(server.id),
            user_id=str(server.user_id),
            already_suspended=was_suspended,
        )

        if notify:
            await self._notify_owner(server, batch if batch is not None else SuspensionBatch())
        return server

    async def unsuspend(self, server: Server) -> Server:
        server.suspended = False
        await self._persist(server)
        logger.info(
            "server_unsuspended",
            server_id=str(server.id),
            user_id=str(server.user_id),
        )
        return server

    async def _notify_owner(self, server: Server, batch: SuspensionBatch) -> None:
        if not batch.claim(server.user_id):
            logger.debug(
                "server_suspension_notification_deduplicated",
                server_id=str(server.id),
                user_id=str(server.user_id),
            )
            return

        user = await self.db.get(User, server.user_id)
        if user is None:
            logger.warning("server_suspension_owner_missing", user_id=str(server.user_id))
            return

        # Delivery failures never undo the suspension itself.
        try:
            await self.gateway.notify(user, SERVERS_SUSPENDED, {"user": user})
        except Exception as exc:
            logger.error(
                "server_suspension_notification_failed",
                user_id=str(user.id),
                server_id=str(server.id),
                error=str(exc),
            )
