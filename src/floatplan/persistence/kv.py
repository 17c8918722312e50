"""Durable key-value persistence: the engine's only durability boundary."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable

import aiosqlite

from floatplan.exceptions import PersistenceError

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """Async byte-string store. Each call is atomic on its own key."""

    async def get(self, key: str) -> bytes | None: ...

    async def set(self, key: str, value: bytes) -> None: ...

    async def remove(self, key: str) -> None: ...


class SqliteKeyValueStore:
    """KeyValueStore backed by the ``kv_store`` table."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self.db = db

    async def get(self, key: str) -> bytes | None:
        try:
            async with self.db.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ) as cursor:
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise PersistenceError(f"read of {key!r} failed: {e}") from e
        if row is None:
            return None
        value = row[0]
        return value.encode() if isinstance(value, str) else bytes(value)

    async def set(self, key: str, value: bytes) -> None:
        now = datetime.now(timezone.utc).isoformat()
        try:
            await self.db.execute(
                """INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                   ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                                  updated_at = excluded.updated_at""",
                (key, value, now),
            )
            await self.db.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"write of {key!r} failed: {e}") from e
        logger.debug("Persisted %s (%d bytes)", key, len(value))

    async def remove(self, key: str) -> None:
        try:
            await self.db.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            await self.db.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"delete of {key!r} failed: {e}") from e

    async def keys(self) -> list[str]:
        """Stored keys, sorted. Not part of the store protocol; for inspection and tests."""
        async with self.db.execute("SELECT key FROM kv_store ORDER BY key") as cursor:
            rows = await cursor.fetchall()
        return [r[0] for r in rows]
