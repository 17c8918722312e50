"""StateStore: the one owner of the current snapshot.

Mutators are synchronous. Each one swaps in a new snapshot, notifies
listeners, and schedules a background persist. Persists coalesce: while
a write is in flight, further mutations only mark the store dirty and the
running writer picks up the newest snapshot when it finishes, so the last
snapshot always wins.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timedelta

from floatplan.exceptions import PersistenceError
from floatplan.history.window import DEFAULT_WINDOW
from floatplan.models.entities import (
    Boat,
    BoatDevice,
    BoatDevicePatch,
    BoatDocument,
    BoatDocumentPatch,
    BoatPatch,
    Contact,
    ContactPatch,
    FloatPlan,
    FloatPlanPatch,
    Household,
    HouseholdInvite,
    HouseholdMember,
    InventoryItem,
    InventoryItemPatch,
    TankLogEntry,
    Task,
    TaskPatch,
    UserProfile,
)
from floatplan.models.marine import (
    MarineAlert,
    MarineForecast,
    NDBCObservation,
    NDBCStation,
    PressureReading,
    PressureUnit,
    SubscribedZone,
    TideObservation,
    TideStation,
    WeatherAlertSettings,
    WindReading,
)
from floatplan.models.snapshot import Snapshot, empty_snapshot
from floatplan.models.sync import MutationIntent
from floatplan.persistence.kv import KeyValueStore
from floatplan.store import mutators as m
from floatplan.store.codec import decode, encode
from floatplan.timeutil import utcnow

logger = logging.getLogger(__name__)

DEFAULT_SNAPSHOT_KEY = "float-plan-app-storage"

Clock = Callable[[], datetime]
IdFactory = Callable[[], str]
Listener = Callable[[Snapshot], None]


def new_id() -> str:
    return str(uuid.uuid4())


class StateStore:
    """Holds the current snapshot and mirrors it to a key-value store."""

    def __init__(
        self,
        kv: KeyValueStore,
        key: str = DEFAULT_SNAPSHOT_KEY,
        *,
        clock: Clock = utcnow,
        id_factory: IdFactory = new_id,
        history_window: timedelta = DEFAULT_WINDOW,
    ) -> None:
        self._kv = kv
        self._key = key
        self._clock = clock
        self._id_factory = id_factory
        self._history_window = history_window
        self._snapshot = empty_snapshot()
        self._listeners: list[Listener] = []
        self._persist_task: asyncio.Task[bool] | None = None
        self._dirty = False

    # ── Reading ───────────────────────────────────────────

    def read(self) -> Snapshot:
        return self._snapshot

    def now(self) -> datetime:
        return self._clock()

    @property
    def dirty(self) -> bool:
        """True while the latest snapshot has not been written."""
        return self._dirty

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(snapshot)`` after every replacement."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ── Lifecycle ─────────────────────────────────────────

    async def hydrate(self) -> Snapshot:
        """Load the persisted snapshot, falling back to an empty one."""
        try:
            blob = await self._kv.get(self._key)
        except Exception:
            logger.exception("Reading persisted state failed, starting empty")
            blob = None

        snapshot = empty_snapshot()
        if blob is not None:
            try:
                snapshot = decode(blob)
            except PersistenceError as e:
                logger.error("Discarding persisted state: %s", e)

        self._snapshot = snapshot
        self._dirty = False
        logger.info(
            "State hydrated: %d plans, %d pending mutations",
            len(snapshot.float_plans), len(snapshot.pending_sync),
        )
        self._notify()
        return snapshot

    async def flush(self) -> None:
        """Wait until the current snapshot is durably written."""
        while True:
            task = self._persist_task
            if task is None or task.done():
                if not self._dirty:
                    return
                task = self._persist_task = asyncio.get_running_loop().create_task(
                    self._persist_loop(),
                )
            if not await task:
                raise PersistenceError(f"could not persist {self._key!r}")

    # ── Internals ─────────────────────────────────────────

    def _commit(self, new: Snapshot, *, persist: bool = True) -> None:
        if new is self._snapshot:
            return
        self._snapshot = new
        if persist:
            self._schedule_persist()
        self._notify()

    def _notify(self) -> None:
        snapshot = self._snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("State listener failed")

    def _schedule_persist(self) -> None:
        self._dirty = True
        if self._persist_task is not None and not self._persist_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet; the next flush() or mutation under a loop writes it.
            return
        self._persist_task = loop.create_task(self._persist_loop())

    async def _persist_loop(self) -> bool:
        while self._dirty:
            self._dirty = False
            try:
                await self._kv.set(self._key, encode(self._snapshot))
            except Exception:
                logger.exception("Persisting state failed")
                self._dirty = True
                return False
        return True

    # ── Auth ──────────────────────────────────────────────

    def set_user(self, user: UserProfile | None) -> None:
        self._commit(m.set_user(self._snapshot, user))

    def set_remember_me(self, remember: bool) -> None:
        self._commit(m.set_remember_me(self._snapshot, remember))

    def logout(self) -> None:
        self._commit(m.logout(self._snapshot))
        logger.info("Logged out, user data cleared")

    # ── Household ─────────────────────────────────────────

    def set_household(self, household: Household | None) -> None:
        self._commit(m.set_household(self._snapshot, household))

    def set_household_members(self, members: Iterable[HouseholdMember]) -> None:
        self._commit(m.set_household_members(self._snapshot, members))

    def add_household_member(self, member: HouseholdMember) -> None:
        self._commit(m.add_household_member(self._snapshot, member))

    def remove_household_member(self, member_id: str) -> None:
        self._commit(m.remove_household_member(self._snapshot, member_id))

    def set_pending_invites(self, invites: Iterable[HouseholdInvite]) -> None:
        self._commit(m.set_pending_invites(self._snapshot, invites))

    def remove_invite(self, invite_id: str) -> None:
        self._commit(m.remove_invite(self._snapshot, invite_id))

    # ── Float plans ───────────────────────────────────────

    def set_float_plans(self, plans: Iterable[FloatPlan]) -> None:
        self._commit(m.set_float_plans(self._snapshot, plans))

    def add_float_plan(self, plan: FloatPlan) -> None:
        self._commit(m.add_float_plan(self._snapshot, plan, self._clock()))

    def update_float_plan(self, plan_id: str, patch: FloatPlanPatch) -> None:
        self._commit(m.update_float_plan(self._snapshot, plan_id, patch, self._clock()))

    def check_in_float_plan(self, plan_id: str) -> None:
        self._commit(m.check_in_float_plan(self._snapshot, plan_id, self._clock()))

    def delete_float_plan(self, plan_id: str) -> None:
        self._commit(m.delete_float_plan(self._snapshot, plan_id))

    def cleanup_expired_plans(self, retention_days: int) -> int:
        """Drop stale plans; returns how many were removed."""
        before = len(self._snapshot.float_plans)
        self._commit(m.cleanup_expired_plans(self._snapshot, self._clock(), retention_days))
        return before - len(self._snapshot.float_plans)

    # ── Boats, devices, documents ─────────────────────────

    def set_boats(self, boats: Iterable[Boat]) -> None:
        self._commit(m.set_boats(self._snapshot, boats))

    def add_boat(self, boat: Boat) -> None:
        self._commit(m.add_boat(self._snapshot, boat, self._clock()))

    def update_boat(self, boat_id: str, patch: BoatPatch) -> None:
        self._commit(m.update_boat(self._snapshot, boat_id, patch, self._clock()))

    def update_boat_photo(self, boat_id: str, photo_uri: str, photo_url: str) -> None:
        self._commit(m.update_boat_photo(self._snapshot, boat_id, photo_uri, photo_url, self._clock()))

    def delete_boat(self, boat_id: str) -> None:
        self._commit(m.delete_boat(self._snapshot, boat_id))

    def set_boat_devices(self, devices: Iterable[BoatDevice]) -> None:
        self._commit(m.set_boat_devices(self._snapshot, devices))

    def add_boat_device(self, device: BoatDevice) -> None:
        self._commit(m.add_boat_device(self._snapshot, device, self._clock()))

    def update_boat_device(self, device_id: str, patch: BoatDevicePatch) -> None:
        self._commit(m.update_boat_device(self._snapshot, device_id, patch, self._clock()))

    def delete_boat_device(self, device_id: str) -> None:
        self._commit(m.delete_boat_device(self._snapshot, device_id))

    def set_boat_documents(self, documents: Iterable[BoatDocument]) -> None:
        self._commit(m.set_boat_documents(self._snapshot, documents))

    def add_boat_document(self, document: BoatDocument) -> None:
        self._commit(m.add_boat_document(self._snapshot, document, self._clock()))

    def update_boat_document(self, document_id: str, patch: BoatDocumentPatch) -> None:
        self._commit(m.update_boat_document(self._snapshot, document_id, patch, self._clock()))

    def delete_boat_document(self, document_id: str) -> None:
        self._commit(m.delete_boat_document(self._snapshot, document_id))

    # ── Contacts, inventory, tasks, tank logs ─────────────

    def set_contacts(self, contacts: Iterable[Contact]) -> None:
        self._commit(m.set_contacts(self._snapshot, contacts))

    def add_contact(self, contact: Contact) -> None:
        self._commit(m.add_contact(self._snapshot, contact, self._clock()))

    def update_contact(self, contact_id: str, patch: ContactPatch) -> None:
        self._commit(m.update_contact(self._snapshot, contact_id, patch, self._clock()))

    def delete_contact(self, contact_id: str) -> None:
        self._commit(m.delete_contact(self._snapshot, contact_id))

    def set_inventory(self, items: Iterable[InventoryItem]) -> None:
        self._commit(m.set_inventory(self._snapshot, items))

    def add_inventory_item(self, item: InventoryItem) -> None:
        self._commit(m.add_inventory_item(self._snapshot, item, self._clock()))

    def update_inventory_item(self, item_id: str, patch: InventoryItemPatch) -> None:
        self._commit(m.update_inventory_item(self._snapshot, item_id, patch, self._clock()))

    def delete_inventory_item(self, item_id: str) -> None:
        self._commit(m.delete_inventory_item(self._snapshot, item_id))

    def set_tasks(self, tasks: Iterable[Task]) -> None:
        self._commit(m.set_tasks(self._snapshot, tasks))

    def add_task(self, task: Task) -> None:
        self._commit(m.add_task(self._snapshot, task, self._clock()))

    def update_task(self, task_id: str, patch: TaskPatch) -> None:
        self._commit(m.update_task(self._snapshot, task_id, patch, self._clock()))

    def delete_task(self, task_id: str) -> None:
        self._commit(m.delete_task(self._snapshot, task_id))

    def add_tank_log(self, entry: TankLogEntry) -> None:
        self._commit(m.add_tank_log(self._snapshot, entry))

    # ── Mutation queue ────────────────────────────────────

    def enqueue_mutation(self, intent: MutationIntent) -> str:
        mutation_id = self._id_factory()
        self._commit(m.enqueue_mutation(self._snapshot, intent, mutation_id, self._clock()))
        return mutation_id

    def remove_mutation(self, mutation_id: str) -> None:
        self._commit(m.remove_mutation(self._snapshot, mutation_id))

    def increment_retry(self, mutation_id: str) -> None:
        self._commit(m.increment_retry(self._snapshot, mutation_id))

    def set_is_syncing(self, syncing: bool) -> None:
        self._commit(m.set_is_syncing(self._snapshot, syncing), persist=False)

    def set_last_sync_at(self, timestamp: datetime | None = None) -> None:
        self._commit(m.set_last_sync_at(self._snapshot, timestamp or self._clock()))

    # ── Notifications ─────────────────────────────────────

    def set_notification_ids(self, plan_id: str, ids: Iterable[str]) -> None:
        self._commit(m.set_notification_ids(self._snapshot, plan_id, ids))

    def clear_notification_ids(self, plan_id: str) -> None:
        self._commit(m.clear_notification_ids(self._snapshot, plan_id))

    # ── Cached marine data ────────────────────────────────

    def set_ndbc_stations(self, stations: Iterable[NDBCStation]) -> None:
        self._commit(m.set_ndbc_stations(self._snapshot, stations, self._clock()))

    def set_ndbc_observation(self, station_id: str, observation: NDBCObservation) -> None:
        self._commit(m.set_ndbc_observation(self._snapshot, station_id, observation, self._clock()))

    def set_ndbc_observations(self, observations: Mapping[str, NDBCObservation]) -> None:
        self._commit(m.set_ndbc_observations(self._snapshot, observations, self._clock()))

    def set_tide_stations(self, stations: Iterable[TideStation]) -> None:
        self._commit(m.set_tide_stations(self._snapshot, stations, self._clock()))

    def set_tide_observation(self, station_id: str, observation: TideObservation) -> None:
        self._commit(m.set_tide_observation(self._snapshot, station_id, observation, self._clock()))

    def set_cached_alerts(self, alerts: Iterable[MarineAlert]) -> None:
        self._commit(m.set_cached_alerts(self._snapshot, alerts, self._clock()))

    def set_cached_forecast(self, zone_id: str, forecast: MarineForecast) -> None:
        self._commit(m.set_cached_forecast(self._snapshot, zone_id, forecast, self._clock()))

    # ── Marine settings ───────────────────────────────────

    def set_subscribed_zones(self, zones: Iterable[SubscribedZone]) -> None:
        self._commit(m.set_subscribed_zones(self._snapshot, zones))

    def add_subscribed_zone(self, zone: SubscribedZone) -> None:
        self._commit(m.add_subscribed_zone(self._snapshot, zone))

    def remove_subscribed_zone(self, zone_id: str) -> None:
        self._commit(m.remove_subscribed_zone(self._snapshot, zone_id))

    def set_weather_alert_settings(self, settings: WeatherAlertSettings) -> None:
        self._commit(m.set_weather_alert_settings(self._snapshot, settings))

    def set_monitored_buoy_id(self, buoy_id: str | None) -> None:
        self._commit(m.set_monitored_buoy_id(self._snapshot, buoy_id))

    def set_is_great_lakes_user(self, is_great_lakes: bool) -> None:
        self._commit(m.set_is_great_lakes_user(self._snapshot, is_great_lakes))

    def set_pressure_unit(self, unit: PressureUnit) -> None:
        self._commit(m.set_pressure_unit(self._snapshot, unit))

    # ── Sensor history ────────────────────────────────────

    def add_pressure_reading(self, station_id: str, reading: PressureReading) -> None:
        self._commit(m.add_pressure_reading(
            self._snapshot, station_id, reading, self._clock(), self._history_window,
        ))

    def add_wind_reading(self, station_id: str, reading: WindReading) -> None:
        self._commit(m.add_wind_reading(
            self._snapshot, station_id, reading, self._clock(), self._history_window,
        ))

