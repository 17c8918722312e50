"""floatplan engine entry point and lifecycle orchestrator.

Startup sequence:
  config → logging → SQLite key-value store → state hydrate →
  retention sweep → connectivity → sync service → marine refresh loop
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
import sys
from datetime import timedelta
from pathlib import Path

import aiosqlite

from floatplan import __version__
from floatplan.cache.validity import CacheTtls
from floatplan.config.manager import ConfigManager
from floatplan.config.schema import AppConfig
from floatplan.history.sensors import SensorHistory
from floatplan.logging.structured import setup_logging
from floatplan.marine.hazards import Dispatcher, HazardMonitor
from floatplan.marine.refresh import MarineRefresher
from floatplan.marine.sources import MarineDataSource, NoaaMarineSource
from floatplan.persistence.engine import close_db, init_db
from floatplan.persistence.kv import KeyValueStore, SqliteKeyValueStore
from floatplan.resilience.health import HealthTracker
from floatplan.retention.cleanup import sweep
from floatplan.settings import load_settings
from floatplan.store.store import Clock, StateStore
from floatplan.sync.connectivity import ConnectivityMonitor
from floatplan.sync.service import SyncService
from floatplan.sync.transport import HttpRemoteApi, RemoteReadApi, RemoteWriteApi
from floatplan.timeutil import utcnow

logger = logging.getLogger(__name__)


class Application:
    """Wires the engine together and manages startup/shutdown ordering.

    Collaborators can be injected (tests, embedding hosts); anything left
    as ``None`` is built from config.
    """

    def __init__(
        self,
        config: AppConfig,
        config_manager: ConfigManager | None = None,
        *,
        kv: KeyValueStore | None = None,
        remote: RemoteWriteApi | None = None,
        source: MarineDataSource | None = None,
        connectivity: ConnectivityMonitor | None = None,
        dispatcher: Dispatcher | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.config = config
        self.config_manager = config_manager
        self._kv = kv
        self._remote = remote
        self._source = source
        self._dispatcher = dispatcher
        self._clock = clock
        self._running = False
        self._tasks: list[asyncio.Task] = []
        self._stop_event = asyncio.Event()
        self._db: aiosqlite.Connection | None = None
        self._owned: list = []  # clients built here, closed on stop

        self.health = HealthTracker()
        self.connectivity = connectivity or ConnectivityMonitor(config.connectivity)
        self.store: StateStore | None = None
        self.sync: SyncService | None = None
        self.refresher: MarineRefresher | None = None
        self.hazards: HazardMonitor | None = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start all components in dependency order."""
        logger.info("Starting floatplan v%s", __version__)
        self._running = True
        self._stop_event.clear()
        cfg = self.config

        # ── 1. Durable storage ─────────────────────────────
        if self._kv is None:
            self._db = await init_db(cfg.persistence.path)
            self._kv = SqliteKeyValueStore(self._db)

        # ── 2. State ───────────────────────────────────────
        store = StateStore(
            self._kv,
            cfg.persistence.snapshot_key,
            clock=self._clock,
            history_window=timedelta(hours=cfg.history.window_hours),
        )
        await store.hydrate()
        self.store = store

        # ── 3. Retention ───────────────────────────────────
        if cfg.retention.sweep_on_start:
            sweep(store, cfg.retention.days)

        # ── 4. Connectivity ────────────────────────────────
        await self.connectivity.probe()

        # ── 5. Sync ────────────────────────────────────────
        if self._remote is None:
            if not cfg.remote.base_url:
                logger.warning("No remote base_url configured; writes will stay queued")
            http = HttpRemoteApi(cfg.remote, token_provider=self._access_token)
            self._owned.append(http)
            self._remote = http
        reader = self._remote if isinstance(self._remote, RemoteReadApi) else None
        self.sync = SyncService(
            store, self._remote, self.connectivity, cfg.sync, reader=reader, health=self.health,
        )
        await self.sync.start()

        # ── 6. Marine data and hazards ─────────────────────
        if self._source is None:
            noaa = NoaaMarineSource(cfg.sources)
            self._owned.append(noaa)
            self._source = noaa
        history = SensorHistory(store, cfg.history, cfg.alerts)
        self.refresher = MarineRefresher(
            store,
            self._source,
            connectivity=self.connectivity,
            history=history,
            ttls=CacheTtls.from_config(cfg.cache),
            fetch_timeout=cfg.refresh.fetch_timeout_seconds,
            health=self.health,
        )
        self.hazards = HazardMonitor(store, history, self._dispatcher)

        # ── 7. Background loops ────────────────────────────
        self._tasks.append(asyncio.create_task(
            self.connectivity.run(self._stop_event), name="connectivity",
        ))
        self._tasks.append(asyncio.create_task(self._refresh_loop(), name="marine-refresh"))

        logger.info("floatplan started")

    async def wait_stopped(self) -> None:
        await self._stop_event.wait()

    async def stop(self) -> None:
        """Stop components in reverse order and flush state to disk."""
        if not self._running:
            return

        logger.info("Shutting down floatplan")
        self._running = False
        self._stop_event.set()

        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        if self.sync is not None:
            await self.sync.stop()

        if self.store is not None:
            try:
                await self.store.flush()
            except Exception:
                logger.exception("Final state flush failed")

        for client in self._owned:
            try:
                await client.close()
            except Exception:
                logger.exception("Error closing %s", type(client).__name__)
        self._owned.clear()
        await self.connectivity.close()

        if self._db is not None:
            await close_db(self._db)
            self._db = None
        logger.info("Shutdown complete")

    def _access_token(self) -> str | None:
        if self.store is None:
            return None
        user = self.store.read().user
        return user.access_token if user and user.access_token else None

    async def _refresh_loop(self) -> None:
        """Refresh marine data and evaluate hazards on a fixed interval."""
        interval = self.config.refresh.interval_seconds
        while not self._stop_event.is_set():
            try:
                await self.refresher.refresh_all()
                await self.hazards.update()
            except Exception:
                logger.exception("Error in marine refresh iteration")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                break
            except asyncio.TimeoutError:
                pass


def main() -> None:
    """Entry point for the application."""
    config, config_manager = load_settings(Path("config.defaults.yaml"), Path("config.yaml"))

    setup_logging(
        level=config.logging.level,
        fmt=config.logging.format,
        log_file=config.logging.file,
        quiet=config.logging.quiet,
    )

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    app = Application(config, config_manager)
    stop_requested = False
    signal_count = 0

    async def _run() -> None:
        try:
            await app.start()
            await app.wait_stopped()
        finally:
            if app.running:
                with contextlib.suppress(Exception):
                    await app.stop()

    def _request_stop() -> None:
        nonlocal stop_requested, signal_count
        signal_count += 1
        if signal_count >= 2:
            os._exit(130)
        if stop_requested or loop.is_closed():
            return
        stop_requested = True
        loop.call_soon_threadsafe(lambda: asyncio.create_task(app.stop()))

    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _request_stop)
    else:
        signal.signal(signal.SIGINT, lambda *_: _request_stop())

    try:
        loop.run_until_complete(_run())
    except KeyboardInterrupt:
        _request_stop()
        with contextlib.suppress(Exception):
            loop.run_until_complete(app.stop())
    finally:
        pending = [task for task in asyncio.all_tasks(loop) if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            with contextlib.suppress(Exception):
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        loop.close()


if __name__ == "__main__":
    main()
