"""
Server provisioning.

A local Server row exists only for a server the panel has already created.
`create_from_provider_response` maps the panel's `attributes` envelope onto the
flat column set; `ServerProvisioner` sequences remote create and local persist.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from hostpanel.models.account import User
from hostpanel.models.server import Server
from hostpanel.modules.servers.domain.provider_client import ProviderClient
from hostpanel.shared.core.exceptions import (
    BillingError,
    ProviderRequestError,
    ProviderResponseError,
)
from hostpanel.shared.core.pricing import Amount, to_decimal

logger = structlog.get_logger()


def map_provider_attributes(response: Mapping[str, Any]) -> dict[str, Any]:
    """
    Flatten a Pterodactyl server document into Server column values.

    Raises ProviderResponseError when a required key is missing, so a
    malformed payload never reaches the database.
    """
    try:
        attributes = response["attributes"]
        limits = attributes["limits"]
        feature_limits = attributes["feature_limits"]
        return {
            "pterodactyl_id": int(attributes["id"]),
            "identifier": attributes["identifier"],
            "name": attributes["name"],
            "description": attributes.get("description"),
            "status": attributes.get("status"),
            "suspended": bool(attributes.get("suspended", False)),
            "memory": int(limits["memory"]),
            "cpu": int(limits["cpu"]),
            "swap": int(limits["swap"]),
            "disk": int(limits["disk"]),
            "io": int(limits["io"]),
            "threads": limits.get("threads"),
            "oom_disabled": bool(limits.get("oom_disabled", True)),
            "databases": int(feature_limits["databases"]),
            "backups": int(feature_limits["backups"]),
            "allocations": int(feature_limits["allocations"]),
            "node_id": int(attributes["node"]),
            "allocation_id": int(attributes["allocation"]),
            "nest_id": int(attributes["nest"]),
            "egg_id": int(attributes["egg"]),
        }
    except (KeyError, TypeError, ValueError) as exc:
        raise ProviderResponseError(
            "Unexpected Pterodactyl server payload",
            details={"error": str(exc)},
        ) from exc


async def create_from_provider_response(
    db: AsyncSession,
    response: Mapping[str, Any],
    user: User,
    price: Amount,
) -> Server:
    """Create and commit a Server from a provider create/fetch response."""
    monthly_price = to_decimal(price)
    if monthly_price < Decimal("0"):
        raise BillingError("Server price cannot be negative", details={"price": str(price)})

    server = Server(
        user_id=user.id,
        price=monthly_price,
        **map_provider_attributes(response),
    )
    db.add(server)
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info(
        "server_record_created",
        server_id=str(server.id),
        pterodactyl_id=server.pterodactyl_id,
        user_id=str(user.id),
        price=str(monthly_price),
    )
    return server


class ServerProvisioner:
    """Creates a server on the panel, then records it locally."""

    def __init__(self, db: AsyncSession, client: ProviderClient):
        self.db = db
        self.client = client

    async def provision(
        self, user: User, payload: dict[str, Any], price: Amount
    ) -> Server:
        # Remote failure propagates before anything is written locally.
        response = await self.client.create_server(payload)

        try:
            return await create_from_provider_response(self.db, response, user, price)
        except Exception as exc:
            await self._compensate(response, exc)
            raise

    async def _compensate(self, response: Mapping[str, Any], cause: Exception) -> None:
        """Remove the remote server we could not record, so it is not left running unbilled."""
        attributes = response.get("attributes")
        raw_id = attributes.get("id") if isinstance(attributes, Mapping) else None
        try:
            remote_id = int(raw_id)
        except (TypeError, ValueError):
            logger.error(
                "server_provision_orphan_unresolvable",
                pterodactyl_id=repr(raw_id),
                error=str(cause),
            )
            return

        try:
            await self.client.delete_server(remote_id)
        except ProviderRequestError as delete_exc:
            if delete_exc.is_not_found:
                return
            logger.error(
                "server_provision_compensation_failed",
                pterodactyl_id=remote_id,
                error=str(delete_exc),
                cause=str(cause),
            )
            return

        logger.warning(
            "server_provision_compensated",
            pterodactyl_id=remote_id,
            cause=str(cause),
        )
