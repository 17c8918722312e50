"""Tests for the mutation queue, drain passes and the sync service."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from conftest import T0, ScriptedRemote
from floatplan.config.schema import ConnectivityConfig, RemoteConfig, SyncConfig
from floatplan.exceptions import RemoteError
from floatplan.models.entities import Boat, FloatPlan
from floatplan.models.sync import HttpMethod, MutationIntent, MutationType, PendingMutation
from floatplan.store.store import StateStore
from floatplan.sync.connectivity import ConnectivityMonitor
from floatplan.sync.drain import drain
from floatplan.sync.queue import MutationQueue
from floatplan.sync.service import SyncService, backoff_delay
from floatplan.sync.transport import HttpRemoteApi, RemoteReadApi


def _intent(endpoint: str) -> MutationIntent:
    return MutationIntent(
        type=MutationType.UPDATE, endpoint=endpoint, method=HttpMethod.PUT, body={"endpoint": endpoint},
    )


def _online(online: bool = True) -> ConnectivityMonitor:
    return ConnectivityMonitor(ConnectivityConfig(assume_online=online))


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


class RaisingRemote(ScriptedRemote):
    async def send(self, mutation: PendingMutation) -> bool:
        self.sent.append(mutation)
        raise ConnectionResetError("socket closed")


class FakeReader(RemoteReadApi):
    def __init__(self, collections: dict[str, Any]) -> None:
        self.collections = collections

    async def fetch_collection(self, endpoint: str) -> list[dict[str, Any]]:
        value = self.collections.get(endpoint, [])
        if isinstance(value, Exception):
            raise value
        return value


class TestMutationQueue:
    def test_enqueue_appends_in_order(self, store: StateStore) -> None:
        queue = MutationQueue(store)
        first = queue.enqueue(_intent("/a"))
        second = queue.enqueue(_intent("/b"))
        assert first != second
        assert [m.endpoint for m in queue.pending()] == ["/a", "/b"]
        assert queue.head().id == first
        assert len(queue) == 2

    def test_enqueued_mutation_fields(self, store: StateStore) -> None:
        queue = MutationQueue(store)
        mutation_id = queue.enqueue(_intent("/boats/b1"))
        mutation = queue.get(mutation_id)
        assert mutation is not None
        assert mutation.retry_count == 0
        assert mutation.created_at == T0
        assert mutation.method is HttpMethod.PUT

    def test_increment_and_remove(self, store: StateStore) -> None:
        queue = MutationQueue(store)
        mutation_id = queue.enqueue(_intent("/a"))
        queue.increment_retry(mutation_id)
        assert queue.get(mutation_id).retry_count == 1
        queue.remove(mutation_id)
        assert queue.get(mutation_id) is None
        assert queue.head() is None


@pytest.mark.asyncio
class TestDrain:
    async def test_delivers_all_in_order(self, store: StateStore, remote: ScriptedRemote) -> None:
        queue = MutationQueue(store)
        for endpoint in ("/a", "/b", "/c"):
            queue.enqueue(_intent(endpoint))

        result = await drain(queue, remote, lambda: True)

        assert [m.endpoint for m in remote.sent] == ["/a", "/b", "/c"]
        assert result.succeeded == 3
        assert result.blocked is False
        assert len(queue) == 0

    async def test_failure_blocks_the_rest(self, store: StateStore) -> None:
        queue = MutationQueue(store)
        ids = [queue.enqueue(_intent(e)) for e in ("/a", "/b", "/c")]
        remote = ScriptedRemote([True, False])

        result = await drain(queue, remote, lambda: True)

        assert [m.endpoint for m in remote.sent] == ["/a", "/b"]
        assert result.blocked_on == ids[1]
        assert [m.id for m in queue.pending()] == ids[1:]
        assert queue.get(ids[1]).retry_count == 1
        assert queue.get(ids[2]).retry_count == 0

    async def test_offline_makes_no_attempt(self, store: StateStore, remote: ScriptedRemote) -> None:
        queue = MutationQueue(store)
        queue.enqueue(_intent("/a"))

        result = await drain(queue, remote, lambda: False)

        assert result.offline is True
        assert remote.sent == []
        assert queue.head().retry_count == 0

    async def test_raising_remote_counts_as_failure(self, store: StateStore) -> None:
        queue = MutationQueue(store)
        queue.enqueue(_intent("/a"))

        result = await drain(queue, RaisingRemote(), lambda: True)

        assert result.failed == 1
        assert queue.head().retry_count == 1

    async def test_abandoned_after_max_retries(self, store: StateStore) -> None:
        queue = MutationQueue(store)
        queue.enqueue(_intent("/a"))
        queue.enqueue(_intent("/b"))
        remote = ScriptedRemote([False] * 5)

        for _ in range(5):
            await drain(queue, remote, lambda: True, max_retries=5)
        assert queue.head().retry_count == 5

        result = await drain(queue, remote, lambda: True, max_retries=5)

        assert [m.endpoint for m in result.abandoned] == ["/a"]
        assert [m.endpoint for m in remote.sent] == ["/a"] * 5 + ["/b"]
        assert len(queue) == 0


class TestBackoff:
    def test_exponential_with_cap(self) -> None:
        assert backoff_delay(0) == 1.0
        assert backoff_delay(1) == 2.0
        assert backoff_delay(3) == 8.0
        assert backoff_delay(10) == 30.0

    def test_custom_base(self) -> None:
        assert backoff_delay(2, base=0.5, maximum=10.0) == 2.0


@pytest.mark.asyncio
class TestSyncService:
    async def test_submit_online_sends_directly(self, store: StateStore, remote: ScriptedRemote) -> None:
        service = SyncService(store, remote, _online())
        assert await service.submit(_intent("/a")) is True
        assert len(remote.sent) == 1
        assert len(service.queue) == 0

    async def test_submit_offline_queues(self, store: StateStore, remote: ScriptedRemote) -> None:
        service = SyncService(store, remote, _online(False))
        assert await service.submit(_intent("/a")) is False
        assert remote.sent == []
        assert [m.endpoint for m in service.queue.pending()] == ["/a"]

    async def test_submit_behind_queue_keeps_order(self, store: StateStore, remote: ScriptedRemote) -> None:
        service = SyncService(store, remote, _online())
        service.queue.enqueue(_intent("/first"))
        assert await service.submit(_intent("/second")) is False
        assert remote.sent == []
        assert [m.endpoint for m in service.queue.pending()] == ["/first", "/second"]

    async def test_failed_direct_send_queues_and_backs_off(self, store: StateStore) -> None:
        remote = ScriptedRemote(default=False)
        service = SyncService(store, remote, _online())
        try:
            assert await service.submit(_intent("/a")) is False
            assert len(service.queue) == 1
            assert service.retry_scheduled is True
            assert service.health.get("backend").consecutive_failures == 1
        finally:
            await service.stop()
        assert service.retry_scheduled is False

    async def test_drain_now_marks_sync_time(self, store: StateStore, remote: ScriptedRemote) -> None:
        service = SyncService(store, remote, _online())
        service.queue.enqueue(_intent("/a"))
        syncing = []
        store.subscribe(lambda s: syncing.append(s.is_syncing))

        result = await service.drain_now()

        assert result.succeeded == 1
        assert store.read().last_sync_at == T0
        assert store.read().is_syncing is False
        assert True in syncing

    async def test_blocked_drain_schedules_retry(self, store: StateStore) -> None:
        service = SyncService(store, ScriptedRemote(default=False), _online())
        service.queue.enqueue(_intent("/a"))
        try:
            result = await service.drain_now()
            assert result.blocked is True
            assert service.retry_scheduled is True
            assert store.read().last_sync_at is None
        finally:
            await service.stop()

    async def test_reconnect_triggers_drain(self, store: StateStore, remote: ScriptedRemote) -> None:
        connectivity = _online(False)
        service = SyncService(store, remote, connectivity)
        service.queue.enqueue(_intent("/a"))
        await service.start()
        try:
            await asyncio.sleep(0.02)
            assert remote.sent == []

            connectivity.set_online(True)
            await _wait_until(lambda: len(service.queue) == 0)
            assert [m.endpoint for m in remote.sent] == ["/a"]
        finally:
            await service.stop()

    async def test_enqueue_while_online_drains(self, store: StateStore, remote: ScriptedRemote) -> None:
        service = SyncService(store, remote, _online())
        await service.start()
        try:
            service.queue.enqueue(_intent("/a"))
            service.queue.enqueue(_intent("/b"))
            await _wait_until(lambda: len(service.queue) == 0)
            assert [m.endpoint for m in remote.sent] == ["/a", "/b"]
        finally:
            await service.stop()

    async def test_backoff_retry_delivers(self, store: StateStore) -> None:
        remote = ScriptedRemote([False])
        config = SyncConfig(backoff_base_seconds=0.01, backoff_max_seconds=0.05)
        service = SyncService(store, remote, _online(), config)
        service.queue.enqueue(_intent("/a"))
        await service.start()
        try:
            await _wait_until(lambda: len(service.queue) == 0)
            assert len(remote.sent) == 2
        finally:
            await service.stop()

    async def test_sync_all_replaces_fetched_collections(
        self, store: StateStore, remote: ScriptedRemote,
    ) -> None:
        store.set_boats([Boat(id="local", name="Local Boat")])
        reader = FakeReader({
            "/float-plans": [{"id": "p1", "status": "active"}, {"status": "draft"}],
            "/boats": RemoteError("HTTP 503", status_code=503),
            "/contacts": [{"id": "c1", "name": "Coast Guard"}],
        })
        service = SyncService(store, remote, _online(), reader=reader)

        outcome = await service.sync_all()

        assert outcome["/float-plans"] is True
        assert outcome["/boats"] is False
        snapshot = store.read()
        assert list(snapshot.float_plans) == ["p1"]
        assert isinstance(snapshot.float_plans["p1"], FloatPlan)
        assert [b.id for b in snapshot.boats] == ["local"]
        assert snapshot.contacts[0].name == "Coast Guard"
        assert snapshot.last_sync_at == T0

    async def test_sync_all_offline_does_nothing(self, store: StateStore, remote: ScriptedRemote) -> None:
        service = SyncService(store, remote, _online(False), reader=FakeReader({}))
        assert await service.sync_all() == {}


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://api.test")


def _mutation(method: HttpMethod = HttpMethod.POST) -> PendingMutation:
    return PendingMutation(
        id="m1", type=MutationType.CREATE, endpoint="/boats", method=method,
        body={"id": "b1", "name": "Kestrel"}, created_at=T0,
    )


@pytest.mark.asyncio
class TestHttpRemoteApi:
    async def test_send_success_with_token(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"ok": True})

        api = HttpRemoteApi(RemoteConfig(), token_provider=lambda: "tok", client=_client(handler))
        assert await api.send(_mutation()) is True
        assert seen[0].method == "POST"
        assert seen[0].url.path == "/boats"
        assert seen[0].headers["authorization"] == "Bearer tok"
        assert json.loads(seen[0].content) == {"id": "b1", "name": "Kestrel"}
        await api.close()

    async def test_send_server_error_is_false(self) -> None:
        api = HttpRemoteApi(RemoteConfig(), client=_client(lambda r: httpx.Response(500)))
        assert await api.send(_mutation()) is False
        await api.close()

    async def test_send_network_error_is_false(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        api = HttpRemoteApi(RemoteConfig(), client=_client(handler))
        assert await api.send(_mutation()) is False
        await api.close()

    async def test_no_token_no_auth_header(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        api = HttpRemoteApi(RemoteConfig(), token_provider=lambda: None, client=_client(handler))
        assert await api.send(_mutation(HttpMethod.DELETE)) is True
        assert "authorization" not in seen[0].headers
        await api.close()

    async def test_fetch_collection_unwraps_data(self) -> None:
        api = HttpRemoteApi(
            RemoteConfig(),
            client=_client(lambda r: httpx.Response(200, json={"data": [{"id": "b1", "name": "K"}]})),
        )
        assert await api.fetch_collection("/boats") == [{"id": "b1", "name": "K"}]
        await api.close()

    async def test_fetch_collection_error_raises(self) -> None:
        api = HttpRemoteApi(RemoteConfig(), client=_client(lambda r: httpx.Response(503)))
        with pytest.raises(RemoteError) as exc_info:
            await api.fetch_collection("/boats")
        assert exc_info.value.status_code == 503
        await api.close()


@pytest.mark.asyncio
class TestConnectivityMonitor:
    async def test_listeners_hear_transitions_only(self) -> None:
        monitor = _online(False)
        heard: list[bool] = []
        unsubscribe = monitor.subscribe(heard.append)

        monitor.set_online(False)
        monitor.set_online(True)
        monitor.set_online(True)
        monitor.set_online(False)
        unsubscribe()
        monitor.set_online(True)

        assert heard == [True, False]
        assert monitor.is_online() is True

    async def test_probe_without_url_keeps_state(self) -> None:
        monitor = _online(True)
        assert await monitor.probe() is True

    async def test_probe_reachable(self) -> None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(204)))
        monitor = ConnectivityMonitor(ConnectivityConfig(probe_url="https://probe.test/"), client=client)
        assert await monitor.probe() is True
        assert monitor.is_online() is True
        await monitor.close()

    async def test_probe_unreachable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("timed out", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        config = ConnectivityConfig(probe_url="https://probe.test/", assume_online=True)
        monitor = ConnectivityMonitor(config, client=client)
        assert await monitor.probe() is False
        assert monitor.is_online() is False
        await monitor.close()
