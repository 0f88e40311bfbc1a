"""Shared httpx plumbing for the provider REST clients."""

from typing import Any

import httpx

from app.clients.gateway import ThrottledFetchGateway
from core.errors import ProviderError


class BaseRestClient:
    """Lazily created httpx.AsyncClient plus a gateway-aware request helper.

    Subclasses set PROVIDER and pass base URL / headers / default params.
    """

    PROVIDER = ""

    def __init__(
        self,
        base_url: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        gateway: ThrottledFetchGateway | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url
        self.gateway = gateway or ThrottledFetchGateway()
        self._headers = headers or {}
        self._params = params or {}
        self._timeout = timeout
        self._client = client

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers,
                params=self._params,
                timeout=self._timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
    ) -> Any:
        """Make a single HTTP request, mapping failures to ProviderError."""
        client = await self._get_client()
        try:
            response = await client.request(method, endpoint, params=params, data=data)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                self.PROVIDER,
                f"{method} {endpoint} returned {e.response.status_code}",
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(self.PROVIDER, f"{method} {endpoint} failed: {e}") from e
        except ValueError as e:
            raise ProviderError(self.PROVIDER, f"{method} {endpoint}: invalid JSON") from e

    async def _call(self, operation, cache_key: str | None = None, ttl: float = 0.0) -> Any:
        """Route an operation through the shared gateway."""
        return await self.gateway.execute(self.PROVIDER, operation, cache_key, ttl)
