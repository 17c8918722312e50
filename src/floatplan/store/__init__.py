"""In-memory state snapshot with durable, coalesced persistence."""

from floatplan.store.store import DEFAULT_SNAPSHOT_KEY, StateStore

__all__ = ["DEFAULT_SNAPSHOT_KEY", "StateStore"]
