"""SQLite connection setup for the durable key-value store."""

from __future__ import annotations

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from floatplan.persistence.migrations import run_migrations

logger = logging.getLogger(__name__)


async def _check_integrity(db: aiosqlite.Connection) -> bool:
    """Run PRAGMA integrity_check and return True if the database is healthy."""
    try:
        async with db.execute("PRAGMA integrity_check") as cursor:
            rows = await cursor.fetchall()
        # A healthy DB returns a single row: ("ok",)
        if len(rows) == 1 and str(rows[0][0]).lower() == "ok":
            return True
        problems = [str(r[0]) for r in rows[:10]]
        logger.error("Key-value store integrity check failed: %s", "; ".join(problems))
        return False
    except Exception:
        logger.error("Key-value store integrity check raised an exception", exc_info=True)
        return False


def _quarantine(db_path: Path) -> Path:
    """Move a corrupt database (and its WAL/SHM) aside; return the backup path."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
    backup = db_path.with_suffix(f".corrupt-{stamp}.db")
    for suffix in ("", "-wal", "-shm"):
        src = db_path.parent / (db_path.name + suffix)
        if src.exists():
            shutil.move(str(src), str(db_path.parent / (backup.name + suffix)))
    return backup


async def init_db(db_path: str | Path) -> aiosqlite.Connection:
    """Open the key-value database with WAL mode and run migrations.

    A corrupt file is moved aside and a fresh database is created: the
    snapshot it held is a cache plus an outbound queue, and starting empty
    beats refusing to start.
    """
    if str(db_path) != ":memory:":
        db_path = Path(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)

        if db_path.exists():
            try:
                probe = await aiosqlite.connect(str(db_path))
                healthy = await _check_integrity(probe)
                await probe.close()
            except Exception:
                healthy = False

            if not healthy:
                backup = _quarantine(db_path)
                logger.warning(
                    "Key-value store corrupt, moved to %s; starting with an empty store",
                    backup,
                )

    db = await aiosqlite.connect(str(db_path))
    await db.execute("PRAGMA journal_mode=WAL")
    await db.execute("PRAGMA synchronous=FULL")
    await db.execute("PRAGMA busy_timeout=5000")
    db.row_factory = aiosqlite.Row

    await run_migrations(db)
    logger.info("Key-value store initialised at %s (WAL mode, synchronous=FULL)", db_path)
    return db


async def close_db(db: aiosqlite.Connection) -> None:
    """Checkpoint the WAL and close the connection."""
    try:
        await db.execute("PRAGMA wal_checkpoint(TRUNCATE)")
    except aiosqlite.Error:
        logger.debug("WAL checkpoint skipped on close", exc_info=True)
    await db.close()
    logger.info("Key-value store closed")
