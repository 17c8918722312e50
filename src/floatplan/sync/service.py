"""Sync service: the single consumer that moves local writes to the backend.

Producers never touch the network directly. ``submit`` calls, queue
growth in the store and connectivity changes all become messages on an
``asyncio.Queue``; one consumer task turns them into drain passes. A lock
shared by the consumer and ``submit`` keeps delivery strictly FIFO.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from typing import Any

from pydantic import BaseModel, ValidationError

from floatplan.config.schema import SyncConfig
from floatplan.models.entities import Boat, Contact, FloatPlan, InventoryItem, Task
from floatplan.models.snapshot import Snapshot
from floatplan.models.sync import MutationIntent, PendingMutation
from floatplan.resilience.health import HealthTracker
from floatplan.store.store import StateStore, new_id
from floatplan.sync.connectivity import ConnectivityMonitor
from floatplan.sync.drain import DrainResult, drain
from floatplan.sync.queue import MutationQueue
from floatplan.sync.transport import RemoteReadApi, RemoteWriteApi

logger = logging.getLogger(__name__)

BACKEND = "backend"

# endpoint, record model, store setter name
COLLECTIONS: tuple[tuple[str, type[BaseModel], str], ...] = (
    ("/float-plans", FloatPlan, "set_float_plans"),
    ("/boats", Boat, "set_boats"),
    ("/contacts", Contact, "set_contacts"),
    ("/inventory", InventoryItem, "set_inventory"),
    ("/tasks", Task, "set_tasks"),
)


class SyncMessage(str, Enum):
    DRAIN = "drain"
    STOP = "stop"


def backoff_delay(retry_count: int, base: float = 1.0, maximum: float = 30.0) -> float:
    """Exponential delay before retrying a mutation that has failed ``retry_count`` times."""
    return min(base * 2 ** retry_count, maximum)


class SyncService:
    def __init__(
        self,
        store: StateStore,
        remote: RemoteWriteApi,
        connectivity: ConnectivityMonitor,
        config: SyncConfig | None = None,
        reader: RemoteReadApi | None = None,
        health: HealthTracker | None = None,
    ) -> None:
        self._store = store
        self._reader = reader
        self._connectivity = connectivity
        self._config = config or SyncConfig()
        self._health = health or HealthTracker()
        self._writer = _TrackedWriter(remote, self._health)
        self._queue = MutationQueue(store)
        self._inbox: asyncio.Queue[SyncMessage] = asyncio.Queue()
        self._lock = asyncio.Lock()
        self._consumer: asyncio.Task | None = None
        self._retry_handle: asyncio.TimerHandle | None = None
        self._unsubscribers: list = []
        self._active = 0
        self._seen_depth = 0
        self.last_result: DrainResult | None = None

    @property
    def queue(self) -> MutationQueue:
        return self._queue

    @property
    def health(self) -> HealthTracker:
        return self._health

    @property
    def retry_scheduled(self) -> bool:
        return self._retry_handle is not None

    # ── Lifecycle ─────────────────────────────────────────

    async def start(self) -> None:
        if self._consumer is not None:
            return
        self._seen_depth = len(self._queue)
        self._consumer = asyncio.create_task(self._consume(), name="sync-consumer")
        self._unsubscribers.append(self._connectivity.subscribe(self._on_connectivity))
        self._unsubscribers.append(self._store.subscribe(self._on_state))
        logger.info("Sync service started (%d pending mutations)", self._seen_depth)
        if self._config.drain_on_start and self._seen_depth:
            self.request_drain()

    async def stop(self, timeout: float = 5.0) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self._cancel_retry()
        if self._consumer is None:
            return
        self._inbox.put_nowait(SyncMessage.STOP)
        try:
            await asyncio.wait_for(self._consumer, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Sync consumer did not stop within %.0fs, cancelling", timeout)
            self._consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._consumer
        self._consumer = None

    # ── Producers ─────────────────────────────────────────

    def request_drain(self) -> None:
        self._inbox.put_nowait(SyncMessage.DRAIN)

    async def submit(self, intent: MutationIntent) -> bool:
        """Deliver a write that has already been applied locally.

        Sends directly when online with nothing queued ahead of it;
        otherwise, or when the direct call fails, the intent is queued.
        Returns True when it was delivered immediately.
        """
        async with self._lock:
            if self._connectivity.is_online() and len(self._queue) == 0:
                mutation = PendingMutation(
                    id=new_id(),
                    type=intent.type,
                    endpoint=intent.endpoint,
                    method=intent.method,
                    body=intent.body,
                    created_at=self._store.now(),
                )
                if await self._writer.send(mutation):
                    return True
                logger.info("Direct %s %s failed, queueing", intent.method.value, intent.endpoint)
                self._schedule_retry_in(self._config.backoff_base_seconds)
            mutation_id = self._queue.enqueue(intent)
            logger.debug("Queued %s %s as %s", intent.method.value, intent.endpoint, mutation_id)
        return False

    def _on_connectivity(self, online: bool) -> None:
        if online:
            self._cancel_retry()
            self.request_drain()

    def _on_state(self, snapshot: Snapshot) -> None:
        depth = len(snapshot.pending_sync)
        grew = depth > self._seen_depth
        self._seen_depth = depth
        if grew and self._retry_handle is None:
            self.request_drain()

    # ── Consumer ──────────────────────────────────────────

    async def _consume(self) -> None:
        while True:
            message = await self._inbox.get()
            # Collapse a burst of wake-ups into one pass.
            while message is SyncMessage.DRAIN and not self._inbox.empty():
                message = self._inbox.get_nowait()
            if message is SyncMessage.STOP:
                return
            if self._retry_handle is not None:
                continue  # backing off; the timer or a reconnect wakes us
            try:
                await self.drain_now()
            except Exception:
                logger.exception("Drain pass failed")

    async def drain_now(self) -> DrainResult:
        """Run one drain pass and schedule a backoff retry if it blocked."""
        async with self._lock:
            self._begin()
            try:
                result = await drain(
                    self._queue, self._writer, self._connectivity.is_online,
                    max_retries=self._config.max_retries,
                )
            finally:
                self._end()

        self.last_result = result
        if result.attempted and not result.blocked:
            self._store.set_last_sync_at()
        if result.blocked:
            self._schedule_retry()
        return result

    def _schedule_retry(self) -> None:
        head = self._queue.head()
        if head is None:
            return
        # retry_count already includes the attempt that just failed
        self._schedule_retry_in(backoff_delay(
            max(head.retry_count - 1, 0),
            self._config.backoff_base_seconds,
            self._config.backoff_max_seconds,
        ))

    def _schedule_retry_in(self, delay: float) -> None:
        self._cancel_retry()
        self._retry_handle = asyncio.get_running_loop().call_later(delay, self._retry_due)
        logger.info("Next sync attempt in %.1fs", delay)

    def _retry_due(self) -> None:
        self._retry_handle = None
        self.request_drain()

    def _cancel_retry(self) -> None:
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None

    def _begin(self) -> None:
        self._active += 1
        if self._active == 1:
            self._store.set_is_syncing(True)

    def _end(self) -> None:
        self._active -= 1
        if self._active == 0:
            self._store.set_is_syncing(False)

    # ── Full pull ─────────────────────────────────────────

    async def sync_all(self) -> dict[str, bool]:
        """Replace each user collection with the server's copy.

        A collection whose fetch fails keeps its local contents. Returns
        per-endpoint success; empty when offline or without a reader.
        """
        if self._reader is None or not self._connectivity.is_online():
            return {}

        self._begin()
        try:
            fetched = await asyncio.gather(
                *(self._fetch(endpoint, model) for endpoint, model, _ in COLLECTIONS),
            )
            outcome: dict[str, bool] = {}
            for (endpoint, _, setter), records in zip(COLLECTIONS, fetched):
                outcome[endpoint] = records is not None
                if records is not None:
                    getattr(self._store, setter)(records)
            if any(outcome.values()):
                self._store.set_last_sync_at()
            logger.info(
                "Full sync: %d/%d collections refreshed",
                sum(outcome.values()), len(outcome),
            )
            return outcome
        finally:
            self._end()

    async def _fetch(self, endpoint: str, model: type[BaseModel]) -> list[Any] | None:
        assert self._reader is not None
        try:
            rows = await self._reader.fetch_collection(endpoint)
        except Exception as e:
            logger.warning("Fetching %s failed: %s", endpoint, e)
            self._health.record_failure(BACKEND, str(e))
            return None
        self._health.record_success(BACKEND)

        records = []
        for row in rows:
            try:
                records.append(model.model_validate(row))
            except ValidationError as e:
                logger.warning("Skipping malformed %s record: %s", endpoint, e.error_count())
        return records


class _TrackedWriter(RemoteWriteApi):
    """Wraps the backend writer with health accounting."""

    def __init__(self, remote: RemoteWriteApi, health: HealthTracker) -> None:
        self._remote = remote
        self._health = health

    async def send(self, mutation: PendingMutation) -> bool:
        try:
            delivered = await self._remote.send(mutation)
        except Exception as e:
            logger.exception("Remote send raised for %s", mutation.endpoint)
            self._health.record_failure(BACKEND, str(e))
            return False
        if delivered:
            self._health.record_success(BACKEND)
        else:
            self._health.record_failure(BACKEND, f"{mutation.method.value} {mutation.endpoint}")
        return delivered
