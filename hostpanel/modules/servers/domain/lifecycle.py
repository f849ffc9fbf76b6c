"""
Server deletion reconciliation.

Deleting a server is two explicit phases: remote teardown, then local delete.
The local row is only removed once the panel confirms the server is gone
(deleted now, or already absent with a 404).
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from hostpanel.models.server import Server
from hostpanel.modules.servers.domain.provider_client import ProviderClient
from hostpanel.shared.core.exceptions import ProviderRequestError

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class DeleteOutcome:
    server_id: UUID
    pterodactyl_id: int
    remote_already_absent: bool


def is_benign_delete_error(exc: ProviderRequestError) -> bool:
    """A 404 on delete means the remote side already matches the goal state."""
    return exc.is_not_found


class LifecycleReconciler:
    def __init__(self, db: AsyncSession, client: ProviderClient):
        self.db = db
        self.client = client

    async def delete_remote(self, server: Server) -> bool:
        """
        Phase 1. Returns True when the panel reported the server already absent.
        Any other provider error propagates unchanged.
        """
        try:
            await self.client.delete_server(server.pterodactyl_id)
        except ProviderRequestError as exc:
            if not is_benign_delete_error(exc):
                logger.error(
                    "server_remote_delete_failed",
                    server_id=str(server.id),
                    pterodactyl_id=server.pterodactyl_id,
                    provider_status=exc.provider_status,
                )
                raise
            logger.info(
                "server_remote_already_absent",
                server_id=str(server.id),
                pterodactyl_id=server.pterodactyl_id,
            )
            return True
        return False

    async def delete_local(self, server: Server) -> None:
        """Phase 2. Persistence failures roll back and propagate."""
        try:
            await self.db.delete(server)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def reconcile_delete(self, server: Server) -> DeleteOutcome:
        server_id = server.id
        pterodactyl_id = server.pterodactyl_id

        already_absent = await self.delete_remote(server)
        await self.delete_local(server)

        logger.info(
            "server_deleted",
            server_id=str(server_id),
            pterodactyl_id=pterodactyl_id,
            remote_already_absent=already_absent,
        )
        return DeleteOutcome(
            server_id=server_id,
            pterodactyl_id=pterodactyl_id,
            remote_already_absent=already_absent,
        )
