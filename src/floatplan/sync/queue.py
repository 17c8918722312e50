"""Offline mutation queue: an ordered view over ``Snapshot.pending_sync``.

The queue lives inside the snapshot so it is persisted with everything
else and survives restarts. It performs no network I/O; see
:mod:`floatplan.sync.drain` for delivery.
"""

from __future__ import annotations

from floatplan.models.sync import MutationIntent, PendingMutation
from floatplan.store.store import StateStore


class MutationQueue:
    def __init__(self, store: StateStore) -> None:
        self._store = store

    def enqueue(self, intent: MutationIntent) -> str:
        """Append at the tail with ``retry_count = 0``; returns the new id."""
        return self._store.enqueue_mutation(intent)

    def remove(self, mutation_id: str) -> None:
        self._store.remove_mutation(mutation_id)

    def increment_retry(self, mutation_id: str) -> None:
        self._store.increment_retry(mutation_id)

    def pending(self) -> tuple[PendingMutation, ...]:
        return self._store.read().pending_sync

    def head(self) -> PendingMutation | None:
        pending = self.pending()
        return pending[0] if pending else None

    def get(self, mutation_id: str) -> PendingMutation | None:
        return next((m for m in self.pending() if m.id == mutation_id), None)

    def __len__(self) -> int:
        return len(self.pending())
