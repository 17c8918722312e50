"""Domain records, patch structs, and the state snapshot."""

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
from floatplan.models.snapshot import PERSISTED_FIELDS, USER_SCOPED_FIELDS, Snapshot
from floatplan.models.sync import HttpMethod, MutationIntent, MutationType, PendingMutation

__all__ = [
    "PERSISTED_FIELDS",
    "USER_SCOPED_FIELDS",
    "Boat",
    "BoatDevice",
    "BoatDevicePatch",
    "BoatDocument",
    "BoatDocumentPatch",
    "BoatPatch",
    "Contact",
    "ContactPatch",
    "FloatPlan",
    "FloatPlanPatch",
    "Household",
    "HouseholdInvite",
    "HouseholdMember",
    "HttpMethod",
    "InventoryItem",
    "InventoryItemPatch",
    "MarineAlert",
    "MarineForecast",
    "MutationIntent",
    "MutationType",
    "NDBCObservation",
    "NDBCStation",
    "PendingMutation",
    "PlanStatus",
    "PressureReading",
    "PressureUnit",
    "Snapshot",
    "SubscribedZone",
    "TankLogEntry",
    "Task",
    "TaskPatch",
    "TideObservation",
    "TideStation",
    "UserProfile",
    "WeatherAlertSettings",
    "WindReading",
    "apply_patch",
]
