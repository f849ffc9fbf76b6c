from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession

from hostpanel.models.server import Server
from hostpanel.modules.billing.domain.suspension import SuspensionController
from hostpanel.modules.notifications.domain.gateway import (
    NotificationGateway,
    TemplateNotificationGateway,
)
from hostpanel.modules.servers.domain.lifecycle import LifecycleReconciler
from hostpanel.modules.servers.domain.provider_client import (
    ProviderClient,
    build_pterodactyl_client,
)
from hostpanel.shared.core.exceptions import ResourceNotFoundError
from hostpanel.shared.core.logging import audit_log
from hostpanel.shared.db.session import get_db, get_session_maker

logger = structlog.get_logger()
router = APIRouter(tags=["Servers"])


class ServerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    pterodactyl_id: int
    identifier: str
    user_id: UUID
    name: str
    description: Optional[str]
    status: Optional[str]
    suspended: bool
    memory: int
    cpu: int
    swap: int
    disk: int
    io: int
    threads: Optional[str]
    oom_disabled: bool
    databases: int
    backups: int
    allocations: int
    node_id: int
    allocation_id: int
    nest_id: int
    egg_id: int
    price: Decimal
    price_per_hour: Decimal
    price_per_day: Decimal
    client_url: str
    admin_url: str


class ServerDeleteResponse(BaseModel):
    server_id: UUID
    pterodactyl_id: int
    remote_already_absent: bool


def get_provider_client() -> ProviderClient:
    return build_pterodactyl_client()


def get_notification_gateway() -> NotificationGateway:
    return TemplateNotificationGateway(get_session_maker())


async def _load_server(db: AsyncSession, server_id: UUID) -> Server:
    server = await db.get(Server, server_id)
    if server is None:
        raise ResourceNotFoundError(f"Server {server_id} not found.")
    return server


@router.get("/{server_id}", response_model=ServerResponse)
async def get_server(
    server_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> Server:
    return await _load_server(db, server_id)


@router.post("/{server_id}/suspend", response_model=ServerResponse)
async def suspend_server(
    server_id: UUID,
    db: AsyncSession = Depends(get_db),
    gateway: NotificationGateway = Depends(get_notification_gateway),
) -> Server:
    server = await _load_server(db, server_id)
    await SuspensionController(db, gateway).suspend(server, notify=True)
    audit_log("server_suspended_by_admin", actor_id=None, details={"server_id": str(server_id)})
    return server


@router.post("/{server_id}/unsuspend", response_model=ServerResponse)
async def unsuspend_server(
    server_id: UUID,
    db: AsyncSession = Depends(get_db),
    gateway: NotificationGateway = Depends(get_notification_gateway),
) -> Server:
    server = await _load_server(db, server_id)
    await SuspensionController(db, gateway).unsuspend(server)
    audit_log("server_unsuspended_by_admin", actor_id=None, details={"server_id": str(server_id)})
    return server


@router.delete("/{server_id}", response_model=ServerDeleteResponse)
async def delete_server(
    server_id: UUID,
    db: AsyncSession = Depends(get_db),
    client: ProviderClient = Depends(get_provider_client),
) -> ServerDeleteResponse:
    """
    Remote teardown first; a provider failure other than 404 surfaces as 502
    and the server stays listed.
    """
    server = await _load_server(db, server_id)
    outcome = await LifecycleReconciler(db, client).reconcile_delete(server)
    audit_log(
        "server_deleted_by_admin",
        actor_id=None,
        details={
            "server_id": str(outcome.server_id),
            "pterodactyl_id": outcome.pterodactyl_id,
            "remote_already_absent": outcome.remote_already_absent,
        },
    )
    return ServerDeleteResponse(
        server_id=outcome.server_id,
        pterodactyl_id=outcome.pterodactyl_id,
        remote_already_absent=outcome.remote_already_absent,
    )
