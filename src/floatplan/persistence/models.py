"""SQL table definitions for the durable key-value store."""

SCHEMA_VERSION = 1

TABLES = [
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        id      INTEGER PRIMARY KEY CHECK (id = 1),
        version INTEGER NOT NULL
    )
    """,
    # One row per persisted blob; the engine only ever writes whole values.
    """
    CREATE TABLE IF NOT EXISTS kv_store (
        key         TEXT PRIMARY KEY,
        value       BLOB NOT NULL,
        updated_at  TEXT NOT NULL
    )
    """,
]
