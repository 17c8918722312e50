"""Durable key-value persistence for the state store."""

from floatplan.persistence.engine import close_db, init_db
from floatplan.persistence.kv import KeyValueStore, SqliteKeyValueStore

__all__ = ["KeyValueStore", "SqliteKeyValueStore", "close_db", "init_db"]
