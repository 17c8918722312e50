"""Remote API access for queued writes and full pulls."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import httpx

from floatplan.config.schema import RemoteConfig
from floatplan.exceptions import RemoteError
from floatplan.models.sync import PendingMutation

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], str | None]


class RemoteWriteApi(ABC):
    """Delivers one queued mutation."""

    @abstractmethod
    async def send(self, mutation: PendingMutation) -> bool:
        """True on success; False (never an exception) on any failure."""
        ...


class RemoteReadApi(ABC):
    """Reads a whole user-data collection from the backend."""

    @abstractmethod
    async def fetch_collection(self, endpoint: str) -> list[dict[str, Any]]:
        """Return the collection or raise; callers skip the cache update."""
        ...


class HttpRemoteApi(RemoteWriteApi, RemoteReadApi):
    """JSON-over-HTTP backend client."""

    def __init__(
        self,
        config: RemoteConfig,
        token_provider: TokenProvider | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._token_provider = token_provider
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url, timeout=config.timeout_seconds,
        )

    def _headers(self) -> dict[str, str]:
        token = self._token_provider() if self._token_provider else None
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def send(self, mutation: PendingMutation) -> bool:
        try:
            resp = await self._client.request(
                mutation.method.value,
                mutation.endpoint,
                json=mutation.body,
                headers=self._headers(),
            )
        except Exception as e:
            logger.warning(
                "Remote %s %s failed: %s", mutation.method.value, mutation.endpoint, e,
            )
            return False
        if not resp.is_success:
            logger.warning(
                "Remote %s %s returned HTTP %d",
                mutation.method.value, mutation.endpoint, resp.status_code,
            )
            return False
        return True

    async def fetch_collection(self, endpoint: str) -> list[dict[str, Any]]:
        try:
            resp = await self._client.get(endpoint, headers=self._headers())
        except httpx.HTTPError as e:
            raise RemoteError(f"GET {endpoint} failed: {e}", endpoint=endpoint) from e
        if not resp.is_success:
            raise RemoteError(
                f"GET {endpoint} returned HTTP {resp.status_code}",
                status_code=resp.status_code,
                endpoint=endpoint,
            )
        data = resp.json()
        if isinstance(data, dict):
            # Some endpoints wrap the list: {"data": [...]}
            data = data.get("data", [])
        if not isinstance(data, list):
            raise RemoteError(f"GET {endpoint} returned no list", endpoint=endpoint)
        return data

    async def close(self) -> None:
        await self._client.aclose()
