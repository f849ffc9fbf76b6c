"""Pterodactyl application API client."""

from __future__ import annotations

from typing import Any, Optional, Protocol

import httpx
import structlog

from hostpanel.shared.core.config import get_settings
from hostpanel.shared.core.exceptions import (
    ConfigurationError,
    ProviderRequestError,
    ProviderResponseError,
)
from hostpanel.shared.core.http import get_http_client
from hostpanel.shared.core.retry import RetryManager

logger = structlog.get_logger()


class ProviderClient(Protocol):
    """The provider operations the billing/lifecycle core depends on."""

    async def create_server(self, payload: dict[str, Any]) -> dict[str, Any]: ...

    async def delete_server(self, pterodactyl_id: int) -> None: ...

    async def fetch_server(self, pterodactyl_id: int) -> dict[str, Any]: ...


class PterodactylClient:
    """Async wrapper for Pterodactyl application API operations."""

    API_PREFIX = "api/application"

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        *,
        retry: Optional[RetryManager] = None,
        timeout: Optional[float] = None,
    ) -> None:
        settings = get_settings()
        base_url = base_url or settings.PTERODACTYL_URL
        api_key = api_key or settings.PTERODACTYL_API_KEY
        if not base_url:
            raise ConfigurationError("PTERODACTYL_URL not configured")
        if not api_key:
            raise ConfigurationError("PTERODACTYL_API_KEY not configured")

        self.base_url = f"{base_url.rstrip('/')}/{self.API_PREFIX}"
        self.headers: dict[str, str] = {
            "Authorization": f"Bearer {api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        self.timeout = timeout or settings.PTERODACTYL_TIMEOUT_SECONDS
        self.retry = retry

    async def _request(
        self,
        method: str,
        endpoint: str,
        data: dict[str, Any] | None = None,
        *,
        idempotent: bool = True,
    ) -> dict[str, Any] | None:
        # A replayed create can leave a second, untracked server on the panel.
        if self.retry is None or not idempotent:
            return await self._send(method, endpoint, data)
        return await self.retry.execute_with_retry(self._send, method, endpoint, data)

    async def _send(
        self,
        method: str,
        endpoint: str,
        data: dict[str, Any] | None,
    ) -> dict[str, Any] | None:
        client = get_http_client()
        try:
            response = await client.request(
                method,
                f"{self.base_url}/{endpoint}",
                headers=self.headers,
                json=data,
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            logger.error(
                "pterodactyl_transport_error",
                method=method,
                endpoint=endpoint,
                error=str(exc),
            )
            raise ProviderRequestError(
                f"Pterodactyl request failed: {exc}", provider_status=None
            ) from exc

        if response.is_error:
            errors = _extract_errors(response)
            logger.error(
                "pterodactyl_api_error",
                method=method,
                endpoint=endpoint,
                status_code=response.status_code,
                errors=errors,
            )
            raise ProviderRequestError(
                f"Pterodactyl returned HTTP {response.status_code} for {method} {endpoint}",
                provider_status=response.status_code,
                details={"errors": errors},
            )

        if response.status_code == 204 or not response.content:
            return None

        payload = response.json()
        if not isinstance(payload, dict):
            raise ProviderResponseError("Invalid Pterodactyl response payload type")
        return payload

    async def create_server(self, payload: dict[str, Any]) -> dict[str, Any]:
        """
        Create a server; returns the `{"object": "server", "attributes": {...}}` document.
        Sent exactly once, even when a retry policy is configured.
        """
        result = await self._request("POST", "servers", payload, idempotent=False)
        if result is None:
            raise ProviderResponseError("Pterodactyl returned an empty create response")
        return result

    async def delete_server(self, pterodactyl_id: int) -> None:
        """Delete a server. A 404 surfaces as ProviderRequestError; callers decide."""
        await self._request("DELETE", f"servers/{pterodactyl_id}")

    async def fetch_server(self, pterodactyl_id: int) -> dict[str, Any]:
        """Fetch server details for status reconciliation."""
        result = await self._request("GET", f"servers/{pterodactyl_id}")
        if result is None:
            raise ProviderResponseError("Pterodactyl returned an empty server document")
        return result


def _extract_errors(response: httpx.Response) -> list[Any]:
    try:
        body = response.json()
    except ValueError:
        return []
    if isinstance(body, dict) and isinstance(body.get("errors"), list):
        return body["errors"]
    return []


def build_pterodactyl_client() -> PterodactylClient:
    """Client wired with the configured provider retry policy."""
    settings = get_settings()
    retry = None
    if settings.PROVIDER_RETRY_ATTEMPTS > 1:
        retry = RetryManager("provider_api", max_attempts=settings.PROVIDER_RETRY_ATTEMPTS)
    return PterodactylClient(retry=retry)
