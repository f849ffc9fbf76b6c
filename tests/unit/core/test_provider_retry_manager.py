"""
Tests for the pluggable RetryManager used around provider calls.
"""
import pytest
from unittest.mock import AsyncMock
from tenacity import wait_none

from hostpanel.shared.core.exceptions import ProviderRequestError
from hostpanel.shared.core.retry import RetryManager


def _manager(attempts: int = 3) -> RetryManager:
    return RetryManager("provider_api", max_attempts=attempts, wait=wait_none())


@pytest.mark.asyncio
async def test_retries_transient_provider_errors_until_success():
    call = AsyncMock(
        side_effect=[
            ProviderRequestError("unavailable", provider_status=503),
            ProviderRequestError("timeout", provider_status=None),
            {"ok": True},
        ]
    )

    result = await _manager().execute_with_retry(call, "servers")

    assert result == {"ok": True}
    assert call.await_count == 3
    call.assert_awaited_with("servers")


@pytest.mark.asyncio
async def test_not_found_is_never_retried():
    call = AsyncMock(side_effect=ProviderRequestError("gone", provider_status=404))

    with pytest.raises(ProviderRequestError) as exc_info:
        await _manager().execute_with_retry(call)

    assert exc_info.value.is_not_found
    assert call.await_count == 1


@pytest.mark.asyncio
async def test_client_errors_are_not_retried():
    call = AsyncMock(side_effect=ProviderRequestError("bad egg", provider_status=422))

    with pytest.raises(ProviderRequestError):
        await _manager().execute_with_retry(call)

    assert call.await_count == 1


@pytest.mark.asyncio
async def test_exhausted_attempts_reraise_last_error():
    call = AsyncMock(side_effect=ProviderRequestError("down", provider_status=502))

    with pytest.raises(ProviderRequestError) as exc_info:
        await _manager(attempts=2).execute_with_retry(call)

    assert exc_info.value.provider_status == 502
    assert call.await_count == 2


@pytest.mark.asyncio
async def test_unrelated_exceptions_propagate_immediately():
    call = AsyncMock(side_effect=KeyError("attributes"))

    with pytest.raises(KeyError):
        await _manager().execute_with_retry(call)

    assert call.await_count == 1


def test_overrides_do_not_leak_into_the_shared_profile():
    assert _manager(attempts=7).max_attempts == 7
    assert RetryManager().max_attempts == 3
