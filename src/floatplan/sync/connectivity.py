"""Online/offline signal.

The platform pushes state through ``set_online``; when a probe URL is
configured the monitor can also poll it. Listeners hear only transitions.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

import httpx

from floatplan.config.schema import ConnectivityConfig

logger = logging.getLogger(__name__)

ConnectivityListener = Callable[[bool], None]


class ConnectivityMonitor:
    def __init__(
        self,
        config: ConnectivityConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config or ConnectivityConfig()
        self._online = self._config.assume_online
        self._listeners: list[ConnectivityListener] = []
        self._client = client

    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        logger.info("Connectivity changed: %s", "online" if online else "offline")
        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception:
                logger.exception("Connectivity listener failed")

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def probe(self) -> bool:
        """Check the probe URL once and record the result."""
        if not self._config.probe_url:
            return self._online
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._config.probe_timeout_seconds)
        try:
            resp = await self._client.head(self._config.probe_url)
            online = resp.status_code < 500
        except httpx.HTTPError as e:
            logger.debug("Connectivity probe failed: %s", e)
            online = False
        self.set_online(online)
        return online

    async def run(self, stop_event: asyncio.Event) -> None:
        """Probe periodically until ``stop_event`` is set."""
        if not self._config.probe_url:
            return
        interval = self._config.probe_interval_seconds
        while not stop_event.is_set():
            await self.probe()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
                break
            except asyncio.TimeoutError:
                pass

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
