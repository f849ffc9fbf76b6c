"""
Tests for create_from_provider_response and ServerProvisioner.
"""
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from hostpanel.models.server import Server
from hostpanel.modules.servers.domain.provisioning import (
    ServerProvisioner,
    create_from_provider_response,
    map_provider_attributes,
)
from hostpanel.shared.core.exceptions import (
    BillingError,
    ProviderRequestError,
    ProviderResponseError,
)
from tests.utils import provider_server_payload


async def _server_count(db) -> int:
    return (await db.execute(select(func.count()).select_from(Server))).scalar_one()


@pytest.mark.asyncio
async def test_record_mirrors_provider_attributes_plus_price(db, make_user):
    user = await make_user()
    payload = provider_server_payload(42)

    server = await create_from_provider_response(db, payload, user, Decimal("720.00"))

    attrs = payload["attributes"]
    assert server.pterodactyl_id == attrs["id"]
    assert server.identifier == attrs["identifier"]
    assert server.user_id == user.id
    assert server.name == attrs["name"]
    assert server.description == attrs["description"]
    assert server.status == attrs["status"]
    assert server.suspended is False
    assert (server.memory, server.cpu, server.swap, server.disk, server.io) == (
        2048, 200, 0, 10240, 500,
    )
    assert server.threads is None
    assert server.oom_disabled is True
    assert (server.databases, server.backups, server.allocations) == (2, 3, 1)
    assert (server.node_id, server.allocation_id, server.nest_id, server.egg_id) == (
        3, 11, 1, 5,
    )
    assert server.price == Decimal("720.00")
    assert server.price_per_hour == Decimal("1.00")
    assert server.price_per_day == Decimal("24.00")

    stored = await db.get(Server, server.id, populate_existing=True)
    assert stored is not None and stored.pterodactyl_id == 42


@pytest.mark.asyncio
async def test_panel_urls_are_derived_from_settings(db, make_user):
    user = await make_user()
    server = await create_from_provider_response(db, provider_server_payload(42), user, "10")

    assert server.client_url == "https://panel.test/server/srv00042"
    assert server.admin_url == "https://panel.test/admin/servers/view/42"


@pytest.mark.asyncio
async def test_malformed_payload_persists_nothing(db, make_user):
    user = await make_user()
    payload = provider_server_payload(42)
    del payload["attributes"]["feature_limits"]

    with pytest.raises(ProviderResponseError):
        await create_from_provider_response(db, payload, user, "10")

    assert await _server_count(db) == 0


@pytest.mark.asyncio
async def test_negative_price_is_rejected(db, make_user):
    user = await make_user()
    with pytest.raises(BillingError):
        await create_from_provider_response(db, provider_server_payload(42), user, "-1")
    assert await _server_count(db) == 0


@pytest.mark.asyncio
async def test_one_record_per_remote_server(db, make_user):
    user = await make_user()
    await create_from_provider_response(db, provider_server_payload(42), user, "10")

    with pytest.raises(IntegrityError):
        await create_from_provider_response(db, provider_server_payload(42), user, "10")

    assert await _server_count(db) == 1


def test_remote_identifier_is_immutable():
    server = Server(pterodactyl_id=42)
    server.pterodactyl_id = 42
    with pytest.raises(ValueError, match="immutable"):
        server.pterodactyl_id = 43


def test_mapping_tolerates_missing_optional_fields():
    payload = provider_server_payload(7)
    for optional in ("description", "status"):
        del payload["attributes"][optional]

    mapped = map_provider_attributes(payload)

    assert mapped["description"] is None
    assert mapped["status"] is None


@pytest.mark.asyncio
async def test_provision_creates_remote_then_local(db, make_user, provider_client):
    user = await make_user()
    provisioner = ServerProvisioner(db, provider_client)

    server = await provisioner.provision(user, {"name": "Survival SMP"}, "720")

    provider_client.create_server.assert_awaited_once_with({"name": "Survival SMP"})
    provider_client.delete_server.assert_not_awaited()
    assert server.pterodactyl_id == 42
    assert await _server_count(db) == 1


@pytest.mark.asyncio
async def test_failed_remote_create_leaves_no_local_record(db, make_user, provider_client):
    user = await make_user()
    provider_client.create_server.side_effect = ProviderRequestError(
        "no allocation", provider_status=422
    )

    with pytest.raises(ProviderRequestError):
        await ServerProvisioner(db, provider_client).provision(user, {}, "720")

    assert await _server_count(db) == 0


@pytest.mark.asyncio
async def test_failed_local_persist_tears_down_remote(db, make_user, provider_client):
    user = await make_user()

    with patch.object(db, "commit", AsyncMock(side_effect=RuntimeError("db down"))):
        with pytest.raises(RuntimeError, match="db down"):
            await ServerProvisioner(db, provider_client).provision(user, {}, "720")

    provider_client.delete_server.assert_awaited_once_with(42)
    assert await _server_count(db) == 0


@pytest.mark.asyncio
async def test_compensation_failure_still_reports_original_error(db, make_user, provider_client):
    user = await make_user()
    provider_client.create_server.return_value = {"attributes": {"id": 42}}
    provider_client.delete_server.side_effect = ProviderRequestError("down", provider_status=503)

    with pytest.raises(ProviderResponseError):
        await ServerProvisioner(db, provider_client).provision(user, {}, "720")

    provider_client.delete_server.assert_awaited_once_with(42)


@pytest.mark.asyncio
@pytest.mark.parametrize("bad_id", ["not-a-number", None, ["42"]])
async def test_unusable_remote_id_skips_compensation(db, make_user, provider_client, bad_id):
    user = await make_user()
    provider_client.create_server.return_value = provider_server_payload(id=bad_id)

    with pytest.raises(ProviderResponseError):
        await ServerProvisioner(db, provider_client).provision(user, {}, "720")

    provider_client.delete_server.assert_not_awaited()
    assert await _server_count(db) == 0
