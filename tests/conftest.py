"""Shared test fixtures for floatplan."""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import AsyncGenerator, Callable

import aiosqlite
import pytest
import pytest_asyncio

from floatplan.config.manager import ConfigManager
from floatplan.config.schema import AppConfig
from floatplan.models.sync import PendingMutation
from floatplan.persistence.engine import init_db
from floatplan.persistence.kv import SqliteKeyValueStore
from floatplan.store.store import StateStore
from floatplan.sync.transport import RemoteWriteApi

T0 = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock for StateStore."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class MemoryKeyValueStore:
    """In-memory KeyValueStore that records writes and can be told to fail."""

    def __init__(self) -> None:
        self.data: dict[str, bytes] = {}
        self.writes: list[bytes] = []
        self.fail_writes = False

    async def get(self, key: str) -> bytes | None:
        return self.data.get(key)

    async def set(self, key: str, value: bytes) -> None:
        if self.fail_writes:
            raise OSError("disk full")
        self.writes.append(value)
        self.data[key] = value

    async def remove(self, key: str) -> None:
        self.data.pop(key, None)


class ScriptedRemote(RemoteWriteApi):
    """Remote write API that answers from a script and records what it saw."""

    def __init__(self, outcomes: list[bool] | None = None, default: bool = True) -> None:
        self.outcomes = list(outcomes or [])
        self.default = default
        self.sent: list[PendingMutation] = []

    async def send(self, mutation: PendingMutation) -> bool:
        self.sent.append(mutation)
        if self.outcomes:
            return self.outcomes.pop(0)
        return self.default


def sequential_ids(prefix: str = "m") -> Callable[[], str]:
    counter = itertools.count(1)
    return lambda: f"{prefix}{next(counter)}"


@pytest.fixture
def config() -> AppConfig:
    """Provide a default test configuration."""
    return AppConfig()


@pytest.fixture
def config_manager(tmp_path: Path) -> ConfigManager:
    """Provide a config manager with test paths."""
    defaults = tmp_path / "config.defaults.yaml"
    defaults.write_text("persistence:\n  path: ':memory:'\n")
    user = tmp_path / "config.yaml"
    mgr = ConfigManager(defaults_path=defaults, user_path=user)
    mgr.load()
    return mgr


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def store(kv: MemoryKeyValueStore, clock: FakeClock) -> StateStore:
    return StateStore(kv, clock=clock, id_factory=sequential_ids())


@pytest.fixture
def remote() -> ScriptedRemote:
    return ScriptedRemote()


@pytest_asyncio.fixture
async def db(tmp_path: Path) -> AsyncGenerator[aiosqlite.Connection, None]:
    """Provide a fresh on-disk database for each test."""
    conn = await init_db(tmp_path / "test.db")
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def sqlite_kv(db: aiosqlite.Connection) -> SqliteKeyValueStore:
    return SqliteKeyValueStore(db)
