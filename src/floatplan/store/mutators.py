"""Pure snapshot transitions: ``(old_snapshot, args, now) -> new_snapshot``.

Nothing here performs I/O or reads a clock; the store passes ``now`` and
generated ids in, which keeps replaying a call sequence deterministic.
Updating or deleting an unknown id returns the snapshot unchanged.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta
from typing import Any, TypeVar

from floatplan.history.window import DEFAULT_WINDOW, insert_reading, is_usable_value
from floatplan.models._base import Patch, Record
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
    PlanStatus,
    TankLogEntry,
    Task,
    TaskPatch,
    UserProfile,
    apply_patch,
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
from floatplan.models.snapshot import USER_SCOPED_FIELDS, Snapshot
from floatplan.models.sync import MutationIntent, PendingMutation

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=Record)


def _replace(s: Snapshot, **changes: Any) -> Snapshot:
    return s.model_copy(update=changes)


def _stamp_new(record: R, now: datetime) -> R:
    return record.model_copy(update={"created_at": now, "updated_at": now})


def _patch_in(items: tuple[R, ...], item_id: str, patch: Patch, now: datetime) -> tuple[R, ...] | None:
    """Patch the matching item; ``None`` when no item has that id."""
    found = False
    out = []
    for item in items:
        if item.id == item_id:  # type: ignore[attr-defined]
            found = True
            out.append(apply_patch(item, patch, now))
        else:
            out.append(item)
    return tuple(out) if found else None


def _without(items: tuple[R, ...], item_id: str) -> tuple[R, ...]:
    return tuple(i for i in items if i.id != item_id)  # type: ignore[attr-defined]


def _reset_value(name: str) -> Any:
    return Snapshot.model_fields[name].get_default(call_default_factory=True)


# ── Auth ────────────────────────────────────────────────


def set_user(s: Snapshot, user: UserProfile | None) -> Snapshot:
    return _replace(s, user=user, is_authenticated=user is not None)


def set_remember_me(s: Snapshot, remember: bool) -> Snapshot:
    return _replace(s, remember_me=remember)


def logout(s: Snapshot) -> Snapshot:
    """Reset user-scoped state; device-scoped caches and settings survive."""
    return _replace(s, **{name: _reset_value(name) for name in USER_SCOPED_FIELDS})


# ── Household ───────────────────────────────────────────


def set_household(s: Snapshot, household: Household | None) -> Snapshot:
    return _replace(s, household=household)


def set_household_members(s: Snapshot, members: Iterable[HouseholdMember]) -> Snapshot:
    return _replace(s, household_members=tuple(members))


def add_household_member(s: Snapshot, member: HouseholdMember) -> Snapshot:
    return _replace(s, household_members=(*s.household_members, member))


def remove_household_member(s: Snapshot, member_id: str) -> Snapshot:
    return _replace(s, household_members=_without(s.household_members, member_id))


def set_pending_invites(s: Snapshot, invites: Iterable[HouseholdInvite]) -> Snapshot:
    return _replace(s, pending_invites=tuple(invites))


def remove_invite(s: Snapshot, invite_id: str) -> Snapshot:
    return _replace(s, pending_invites=_without(s.pending_invites, invite_id))


# ── Float plans ─────────────────────────────────────────


def set_float_plans(s: Snapshot, plans: Iterable[FloatPlan]) -> Snapshot:
    return _replace(s, float_plans={p.id: p for p in plans})


def add_float_plan(s: Snapshot, plan: FloatPlan, now: datetime) -> Snapshot:
    return _replace(s, float_plans={**s.float_plans, plan.id: _stamp_new(plan, now)})


def update_float_plan(s: Snapshot, plan_id: str, patch: FloatPlanPatch, now: datetime) -> Snapshot:
    existing = s.float_plans.get(plan_id)
    if existing is None:
        return s
    return _replace(s, float_plans={**s.float_plans, plan_id: apply_patch(existing, patch, now)})


def check_in_float_plan(s: Snapshot, plan_id: str, now: datetime) -> Snapshot:
    existing = s.float_plans.get(plan_id)
    if existing is None:
        return s
    checked_in = existing.model_copy(
        update={"status": PlanStatus.CHECKED_IN, "last_check_in": now, "updated_at": now},
    )
    return _replace(s, float_plans={**s.float_plans, plan_id: checked_in})


def delete_float_plan(s: Snapshot, plan_id: str) -> Snapshot:
    if plan_id not in s.float_plans:
        return s
    plans = {k: v for k, v in s.float_plans.items() if k != plan_id}
    return _replace(s, float_plans=plans)


def cleanup_expired_plans(s: Snapshot, now: datetime, retention_days: int) -> Snapshot:
    """Keep a plan iff it is active or was updated within the horizon.

    A missing or malformed ``updated_at`` counts as "not recent", so a
    corrupt record can never pin itself in storage.
    """
    cutoff = now - timedelta(days=retention_days)
    kept = {
        plan_id: plan
        for plan_id, plan in s.float_plans.items()
        if plan.status == PlanStatus.ACTIVE
        or (plan.updated_at is not None and plan.updated_at >= cutoff)
    }
    if len(kept) == len(s.float_plans):
        return s
    return _replace(s, float_plans=kept)


# ── Boats, devices, documents ───────────────────────────


def set_boats(s: Snapshot, boats: Iterable[Boat]) -> Snapshot:
    return _replace(s, boats=tuple(boats))


def add_boat(s: Snapshot, boat: Boat, now: datetime) -> Snapshot:
    return _replace(s, boats=(*s.boats, _stamp_new(boat, now)))


def update_boat(s: Snapshot, boat_id: str, patch: BoatPatch, now: datetime) -> Snapshot:
    boats = _patch_in(s.boats, boat_id, patch, now)
    return s if boats is None else _replace(s, boats=boats)


def update_boat_photo(s: Snapshot, boat_id: str, photo_uri: str, photo_url: str, now: datetime) -> Snapshot:
    return update_boat(s, boat_id, BoatPatch(photo_uri=photo_uri, photo_url=photo_url), now)


def delete_boat(s: Snapshot, boat_id: str) -> Snapshot:
    return _replace(s, boats=_without(s.boats, boat_id))


def set_boat_devices(s: Snapshot, devices: Iterable[BoatDevice]) -> Snapshot:
    return _replace(s, boat_devices=tuple(devices))


def add_boat_device(s: Snapshot, device: BoatDevice, now: datetime) -> Snapshot:
    return _replace(s, boat_devices=(*s.boat_devices, _stamp_new(device, now)))


def update_boat_device(s: Snapshot, device_id: str, patch: BoatDevicePatch, now: datetime) -> Snapshot:
    devices = _patch_in(s.boat_devices, device_id, patch, now)
    return s if devices is None else _replace(s, boat_devices=devices)


def delete_boat_device(s: Snapshot, device_id: str) -> Snapshot:
    return _replace(s, boat_devices=_without(s.boat_devices, device_id))


def set_boat_documents(s: Snapshot, documents: Iterable[BoatDocument]) -> Snapshot:
    return _replace(s, boat_documents=tuple(documents))


def add_boat_document(s: Snapshot, document: BoatDocument, now: datetime) -> Snapshot:
    return _replace(s, boat_documents=(*s.boat_documents, _stamp_new(document, now)))


def update_boat_document(s: Snapshot, document_id: str, patch: BoatDocumentPatch, now: datetime) -> Snapshot:
    documents = _patch_in(s.boat_documents, document_id, patch, now)
    return s if documents is None else _replace(s, boat_documents=documents)


def delete_boat_document(s: Snapshot, document_id: str) -> Snapshot:
    return _replace(s, boat_documents=_without(s.boat_documents, document_id))


# ── Contacts, inventory, tasks ──────────────────────────


def set_contacts(s: Snapshot, contacts: Iterable[Contact]) -> Snapshot:
    return _replace(s, contacts=tuple(contacts))


def add_contact(s: Snapshot, contact: Contact, now: datetime) -> Snapshot:
    return _replace(s, contacts=(*s.contacts, _stamp_new(contact, now)))


def update_contact(s: Snapshot, contact_id: str, patch: ContactPatch, now: datetime) -> Snapshot:
    contacts = _patch_in(s.contacts, contact_id, patch, now)
    return s if contacts is None else _replace(s, contacts=contacts)


def delete_contact(s: Snapshot, contact_id: str) -> Snapshot:
    return _replace(s, contacts=_without(s.contacts, contact_id))


def set_inventory(s: Snapshot, items: Iterable[InventoryItem]) -> Snapshot:
    return _replace(s, inventory=tuple(items))


def add_inventory_item(s: Snapshot, item: InventoryItem, now: datetime) -> Snapshot:
    return _replace(s, inventory=(*s.inventory, _stamp_new(item, now)))


def update_inventory_item(s: Snapshot, item_id: str, patch: InventoryItemPatch, now: datetime) -> Snapshot:
    items = _patch_in(s.inventory, item_id, patch, now)
    return s if items is None else _replace(s, inventory=items)


def delete_inventory_item(s: Snapshot, item_id: str) -> Snapshot:
    return _replace(s, inventory=_without(s.inventory, item_id))


def set_tasks(s: Snapshot, tasks: Iterable[Task]) -> Snapshot:
    return _replace(s, tasks=tuple(tasks))


def add_task(s: Snapshot, task: Task, now: datetime) -> Snapshot:
    return _replace(s, tasks=(*s.tasks, _stamp_new(task, now)))


def update_task(s: Snapshot, task_id: str, patch: TaskPatch, now: datetime) -> Snapshot:
    tasks = _patch_in(s.tasks, task_id, patch, now)
    return s if tasks is None else _replace(s, tasks=tasks)


def delete_task(s: Snapshot, task_id: str) -> Snapshot:
    return _replace(s, tasks=_without(s.tasks, task_id))


def add_tank_log(s: Snapshot, entry: TankLogEntry) -> Snapshot:
    return _replace(s, tank_logs=(*s.tank_logs, entry))


# ── Offline mutation queue ──────────────────────────────


def enqueue_mutation(s: Snapshot, intent: MutationIntent, mutation_id: str, now: datetime) -> Snapshot:
    mutation = PendingMutation(
        id=mutation_id,
        type=intent.type,
        endpoint=intent.endpoint,
        method=intent.method,
        body=intent.body,
        created_at=now,
        retry_count=0,
    )
    return _replace(s, pending_sync=(*s.pending_sync, mutation))


def _has_mutation(s: Snapshot, mutation_id: str) -> bool:
    return any(m.id == mutation_id for m in s.pending_sync)


def remove_mutation(s: Snapshot, mutation_id: str) -> Snapshot:
    if not _has_mutation(s, mutation_id):
        return s
    return _replace(s, pending_sync=_without(s.pending_sync, mutation_id))


def increment_retry(s: Snapshot, mutation_id: str) -> Snapshot:
    if not _has_mutation(s, mutation_id):
        return s
    return _replace(
        s,
        pending_sync=tuple(
            m.model_copy(update={"retry_count": m.retry_count + 1}) if m.id == mutation_id else m
            for m in s.pending_sync
        ),
    )


def set_is_syncing(s: Snapshot, syncing: bool) -> Snapshot:
    return _replace(s, is_syncing=syncing)


def set_last_sync_at(s: Snapshot, timestamp: datetime) -> Snapshot:
    return _replace(s, last_sync_at=timestamp)


# ── Notifications ───────────────────────────────────────


def set_notification_ids(s: Snapshot, plan_id: str, ids: Iterable[str]) -> Snapshot:
    return _replace(s, notification_ids={**s.notification_ids, plan_id: tuple(ids)})


def clear_notification_ids(s: Snapshot, plan_id: str) -> Snapshot:
    return _replace(s, notification_ids={k: v for k, v in s.notification_ids.items() if k != plan_id})


# ── Cached remote collections (data + fetch time together) ──


def set_ndbc_stations(s: Snapshot, stations: Iterable[NDBCStation], now: datetime) -> Snapshot:
    return _replace(s, ndbc_stations=tuple(stations), ndbc_stations_last_fetch=now)


def set_ndbc_observation(s: Snapshot, station_id: str, observation: NDBCObservation, now: datetime) -> Snapshot:
    return _replace(
        s,
        ndbc_observations={**s.ndbc_observations, station_id: observation},
        ndbc_observations_last_fetch={**s.ndbc_observations_last_fetch, station_id: now},
    )


def set_ndbc_observations(s: Snapshot, observations: Mapping[str, NDBCObservation], now: datetime) -> Snapshot:
    return _replace(
        s,
        ndbc_observations={**s.ndbc_observations, **observations},
        ndbc_observations_last_fetch={
            **s.ndbc_observations_last_fetch,
            **{station_id: now for station_id in observations},
        },
    )


def set_tide_stations(s: Snapshot, stations: Iterable[TideStation], now: datetime) -> Snapshot:
    return _replace(s, tide_stations=tuple(stations), tide_stations_last_fetch=now)


def set_tide_observation(s: Snapshot, station_id: str, observation: TideObservation, now: datetime) -> Snapshot:
    return _replace(
        s,
        tide_observations={**s.tide_observations, station_id: observation},
        tide_observations_last_fetch={**s.tide_observations_last_fetch, station_id: now},
    )


def set_cached_alerts(s: Snapshot, alerts: Iterable[MarineAlert], now: datetime) -> Snapshot:
    return _replace(s, cached_alerts=tuple(alerts), last_alert_check=now)


def set_cached_forecast(s: Snapshot, zone_id: str, forecast: MarineForecast, now: datetime) -> Snapshot:
    return _replace(
        s,
        cached_forecasts={**s.cached_forecasts, zone_id: forecast},
        forecasts_last_fetch={**s.forecasts_last_fetch, zone_id: now},
    )


# ── Marine settings ─────────────────────────────────────


def set_subscribed_zones(s: Snapshot, zones: Iterable[SubscribedZone]) -> Snapshot:
    return _replace(s, subscribed_zones=tuple(zones))


def add_subscribed_zone(s: Snapshot, zone: SubscribedZone) -> Snapshot:
    return _replace(s, subscribed_zones=(*_without(s.subscribed_zones, zone.id), zone))


def remove_subscribed_zone(s: Snapshot, zone_id: str) -> Snapshot:
    return _replace(s, subscribed_zones=_without(s.subscribed_zones, zone_id))


def set_weather_alert_settings(s: Snapshot, settings: WeatherAlertSettings) -> Snapshot:
    return _replace(s, weather_alert_settings=settings)


def set_monitored_buoy_id(s: Snapshot, buoy_id: str | None) -> Snapshot:
    return _replace(s, monitored_buoy_id=buoy_id)


def set_is_great_lakes_user(s: Snapshot, is_great_lakes: bool) -> Snapshot:
    return _replace(s, is_great_lakes_user=is_great_lakes)


def set_pressure_unit(s: Snapshot, unit: PressureUnit) -> Snapshot:
    return _replace(s, pressure_unit=unit)


# ── Sensor history ──────────────────────────────────────


def add_pressure_reading(
    s: Snapshot,
    station_id: str,
    reading: PressureReading,
    now: datetime,
    window: timedelta = DEFAULT_WINDOW,
) -> Snapshot:
    if not is_usable_value(reading.pressure):
        logger.debug("Dropping unusable pressure reading for %s", station_id)
        return s
    history = insert_reading(s.pressure_history.get(station_id, ()), reading, now, window)
    return _replace(s, pressure_history={**s.pressure_history, station_id: history})


def add_wind_reading(
    s: Snapshot,
    station_id: str,
    reading: WindReading,
    now: datetime,
    window: timedelta = DEFAULT_WINDOW,
) -> Snapshot:
    if not is_usable_value(reading.wind_speed):
        logger.debug("Dropping unusable wind reading for %s", station_id)
        return s
    history = insert_reading(s.wind_history.get(station_id, ()), reading, now, window)
    return _replace(s, wind_history={**s.wind_history, station_id: history})
