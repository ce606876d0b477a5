"""Shared httpx plumbing for REST quote providers."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .errors import (
    ProviderMalformed,
    ProviderRateLimited,
    ProviderTimeout,
    ProviderUnauthorized,
    ProviderUnavailable,
)
from .interface import DEFAULT_TIMEOUT, ProviderClient

logger = logging.getLogger(__name__)

_USER_AGENT = "goldfeed/1.0"


class HttpProviderClient(ProviderClient):
    """ProviderClient that talks JSON over HTTP with a single pooled AsyncClient.

    Parameters
    ----------
    api_key : str
        Provider credential. An empty key fails fast as unauthorized.
    timeout : float
        Per-call timeout in seconds, applied both by httpx and by the base
        class ``asyncio.timeout`` bound.
    base_url : str | None
        Override base URL (useful for testing).
    """

    base_url: str = ""

    def __init__(
        self,
        api_key: str,
        timeout: float = DEFAULT_TIMEOUT,
        base_url: str | None = None,
    ) -> None:
        super().__init__(timeout=timeout)
        self._api_key = api_key
        self._base_url = base_url or self.base_url
        self._client: httpx.AsyncClient | None = None

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers={"User-Agent": _USER_AGENT},
            )
        return self._client

    async def _get_json(self, path: str, params: dict[str, str]) -> Any:
        """GET a JSON document, classifying HTTP and transport failures."""
        if not self._api_key:
            raise ProviderUnauthorized(self.name, "API key not configured")

        try:
            resp = await self._http().get(path, params=params)
        except httpx.TimeoutException as e:
            raise ProviderTimeout(self.name, f"timed out: {e}") from e
        except httpx.RequestError as e:
            raise ProviderUnavailable(self.name, f"request error: {e}") from e

        status = resp.status_code
        if status in (401, 403):
            raise ProviderUnauthorized(self.name, f"HTTP {status}", {"status": status})
        if status == 429:
            raise ProviderRateLimited(self.name, "HTTP 429", {"status": status})
        if status >= 400:
            logger.warning("%s HTTP %d: %s", self.name, status, resp.text[:200])
            raise ProviderUnavailable(self.name, f"HTTP {status}", {"status": status})

        try:
            return resp.json()
        except ValueError as e:
            raise ProviderMalformed(self.name, "response is not JSON") from e


def to_float(provider: str, value: Any, field: str) -> float:
    """Coerce an upstream numeric field (often a string) or raise ProviderMalformed."""
    try:
        return float(str(value).rstrip("%"))
    except (TypeError, ValueError):
        raise ProviderMalformed(provider, f"bad numeric field {field!r}: {value!r}") from None
