"""The single state snapshot and its persistence scopes."""

from __future__ import annotations

from pydantic import Field

from floatplan.models._base import Record
from floatplan.models.entities import (
    Boat,
    BoatDevice,
    BoatDocument,
    Contact,
    FloatPlan,
    Household,
    HouseholdInvite,
    HouseholdMember,
    InventoryItem,
    TankLogEntry,
    Task,
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
from floatplan.models.sync import PendingMutation
from floatplan.timeutil import Timestamp


class Snapshot(Record):
    """Everything the engine knows, replaced wholesale on every mutation.

    Cached collections come paired with their fetch timestamps (a single
    one for collection-wide resources, a per-key map otherwise); the
    mutators in ``floatplan.store.mutators`` always write both together.
    """

    # Auth
    user: UserProfile | None = None
    is_authenticated: bool = False
    remember_me: bool = True

    # Household
    household: Household | None = None
    household_members: tuple[HouseholdMember, ...] = ()
    pending_invites: tuple[HouseholdInvite, ...] = ()

    # User data
    float_plans: dict[str, FloatPlan] = Field(default_factory=dict)
    boats: tuple[Boat, ...] = ()
    boat_devices: tuple[BoatDevice, ...] = ()
    boat_documents: tuple[BoatDocument, ...] = ()
    contacts: tuple[Contact, ...] = ()
    inventory: tuple[InventoryItem, ...] = ()
    tasks: tuple[Task, ...] = ()
    tank_logs: tuple[TankLogEntry, ...] = ()

    # Sync
    pending_sync: tuple[PendingMutation, ...] = ()
    last_sync_at: Timestamp = None
    is_syncing: bool = False

    # Local notification ids scheduled per plan
    notification_ids: dict[str, tuple[str, ...]] = Field(default_factory=dict)

    # NDBC weather buoys
    ndbc_stations: tuple[NDBCStation, ...] = ()
    ndbc_stations_last_fetch: Timestamp = None
    ndbc_observations: dict[str, NDBCObservation] = Field(default_factory=dict)
    ndbc_observations_last_fetch: dict[str, Timestamp] = Field(default_factory=dict)

    # CO-OPS tide stations
    tide_stations: tuple[TideStation, ...] = ()
    tide_stations_last_fetch: Timestamp = None
    tide_observations: dict[str, TideObservation] = Field(default_factory=dict)
    tide_observations_last_fetch: dict[str, Timestamp] = Field(default_factory=dict)

    # Marine weather
    subscribed_zones: tuple[SubscribedZone, ...] = ()
    weather_alert_settings: WeatherAlertSettings = WeatherAlertSettings()
    monitored_buoy_id: str | None = None
    cached_alerts: tuple[MarineAlert, ...] = ()
    last_alert_check: Timestamp = None
    cached_forecasts: dict[str, MarineForecast] = Field(default_factory=dict)
    forecasts_last_fetch: dict[str, Timestamp] = Field(default_factory=dict)
    pressure_history: dict[str, tuple[PressureReading, ...]] = Field(default_factory=dict)
    wind_history: dict[str, tuple[WindReading, ...]] = Field(default_factory=dict)
    is_great_lakes_user: bool = False
    pressure_unit: PressureUnit = PressureUnit.HPA


# In-flight flags are meaningless after a restart.
EPHEMERAL_FIELDS: frozenset[str] = frozenset({"is_syncing"})

PERSISTED_FIELDS: frozenset[str] = frozenset(Snapshot.model_fields) - EPHEMERAL_FIELDS

# Cleared by logout. Everything else (marine caches, sensor history, alert
# settings, display units, remember-me) belongs to the device.
USER_SCOPED_FIELDS: frozenset[str] = frozenset({
    "user",
    "is_authenticated",
    "household",
    "household_members",
    "pending_invites",
    "float_plans",
    "boats",
    "boat_devices",
    "boat_documents",
    "contacts",
    "inventory",
    "tasks",
    "tank_logs",
    "pending_sync",
    "last_sync_at",
    "notification_ids",
})


def empty_snapshot() -> Snapshot:
    return Snapshot()
