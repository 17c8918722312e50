"""User-owned domain records and their patch structs."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TypeVar

from floatplan.models._base import FiniteFloat, Patch, Record
from floatplan.timeutil import Timestamp


class PlanStatus(str, Enum):
    """Stored plan lifecycle. ``overdue`` is derived, see floatplan.plans."""

    DRAFT = "draft"
    PENDING = "pending"
    ACTIVE = "active"
    CHECKED_IN = "checked_in"


class ContactMethod(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    BOTH = "both"


class Coordinates(Record):
    latitude: float
    longitude: float


class TankReading(Record):
    """Tank levels in percent (0-100)."""

    fuel: FiniteFloat = None
    water: FiniteFloat = None
    blackwater: FiniteFloat = None


class CrewMember(Record):
    id: str
    name: str
    age: int | None = None
    medical_notes: str | None = None
    contact_id: str | None = None


class FloatPlan(Record):
    id: str
    departure: str = ""
    departure_coords: Coordinates | None = None
    destination: str = ""
    destination_coords: Coordinates | None = None
    route: str | None = None
    vessel_name: str = ""
    vessel_type: str | None = None
    boat_id: str | None = None
    check_in_deadline: Timestamp = None
    grace_period: int = 0  # minutes
    last_check_in: Timestamp = None
    crew: tuple[CrewMember, ...] = ()
    notes: str | None = None
    status: PlanStatus = PlanStatus.DRAFT
    departure_tanks: TankReading | None = None
    return_tanks: TankReading | None = None
    departure_tank_log_id: str | None = None
    return_tank_log_id: str | None = None
    expected_return_time: Timestamp = None
    trip_duration_hours: FiniteFloat = None
    primary_emergency_contact_id: str | None = None
    secondary_emergency_contact_id: str | None = None
    escalation_wait_minutes: int = 30
    household_id: str | None = None
    created_at: Timestamp = None
    updated_at: Timestamp = None


class Boat(Record):
    id: str
    name: str
    type: str | None = None
    length: str | None = None
    registration: str | None = None
    home_port: str | None = None
    home_port_coords: Coordinates | None = None
    color: str | None = None
    notes: str | None = None
    photo_uri: str | None = None  # Local cache URI
    photo_url: str | None = None  # Remote storage URL for sharing
    fuel_capacity_gallons: FiniteFloat = None
    water_capacity_gallons: FiniteFloat = None
    household_id: str | None = None
    created_at: Timestamp = None
    updated_at: Timestamp = None


class BoatDevice(Record):
    id: str
    boat_id: str
    type: str = "other"  # dsc_radio, ssb_radio, epirb, plb, ais, other
    name: str = ""
    device_id: str | None = None  # MMSI, HEX ID, ...
    serial_number: str | None = None
    expiration_date: Timestamp = None
    notes: str | None = None
    household_id: str | None = None
    created_at: Timestamp = None
    updated_at: Timestamp = None


class BoatDocument(Record):
    id: str
    boat_id: str
    type: str = "other"  # federal_registration, state_registration, insurance, survey, other
    name: str = ""
    document_number: str | None = None
    issue_date: Timestamp = None
    expiration_date: Timestamp = None
    provider: str | None = None
    notes: str | None = None
    household_id: str | None = None
    created_at: Timestamp = None
    updated_at: Timestamp = None


class Contact(Record):
    id: str
    name: str
    email: str | None = None
    phone: str | None = None
    method: ContactMethod = ContactMethod.EMAIL
    permission: bool = False
    household_id: str | None = None
    created_at: Timestamp = None
    updated_at: Timestamp = None


class InventoryItem(Record):
    id: str
    name: str
    category: str = ""
    quantity: int = 0
    boat_id: str | None = None
    expiration_date: Timestamp = None
    condition: str | None = None
    location: str | None = None
    household_id: str | None = None
    created_at: Timestamp = None
    updated_at: Timestamp = None


class Task(Record):
    id: str
    title: str
    description: str | None = None
    season: str = ""
    due_date: Timestamp = None
    completed: bool = False
    recurring: bool = False
    household_id: str | None = None
    created_at: Timestamp = None
    updated_at: Timestamp = None


class TankLogEntry(Record):
    id: str
    boat_id: str
    timestamp: Timestamp = None
    fuel: FiniteFloat = None
    water: FiniteFloat = None
    blackwater: FiniteFloat = None
    notes: str | None = None


class UserProfile(Record):
    id: str
    email: str
    access_token: str = ""
    household_id: str | None = None
    household_role: str | None = None  # owner, member


class Household(Record):
    id: str
    name: str
    owner_id: str
    created_at: Timestamp = None
    updated_at: Timestamp = None


class HouseholdMember(Record):
    id: str
    household_id: str
    user_id: str
    email: str
    role: str = "member"
    status: str = "pending"
    invited_at: Timestamp = None
    accepted_at: Timestamp = None


class HouseholdInvite(Record):
    id: str
    household_id: str
    household_name: str = ""
    inviter_email: str = ""
    invitee_email: str = ""
    status: str = "pending"
    created_at: Timestamp = None


# ── Patches ─────────────────────────────────────────────────
# Each lists only the fields a caller may change; id and timestamps are
# owned by the store.


class FloatPlanPatch(Patch):
    departure: str | None = None
    departure_coords: Coordinates | None = None
    destination: str | None = None
    destination_coords: Coordinates | None = None
    route: str | None = None
    vessel_name: str | None = None
    vessel_type: str | None = None
    boat_id: str | None = None
    check_in_deadline: datetime | None = None
    grace_period: int | None = None
    crew: tuple[CrewMember, ...] | None = None
    notes: str | None = None
    status: PlanStatus | None = None
    departure_tanks: TankReading | None = None
    return_tanks: TankReading | None = None
    departure_tank_log_id: str | None = None
    return_tank_log_id: str | None = None
    expected_return_time: datetime | None = None
    trip_duration_hours: float | None = None
    primary_emergency_contact_id: str | None = None
    secondary_emergency_contact_id: str | None = None
    escalation_wait_minutes: int | None = None


class BoatPatch(Patch):
    name: str | None = None
    type: str | None = None
    length: str | None = None
    registration: str | None = None
    home_port: str | None = None
    home_port_coords: Coordinates | None = None
    color: str | None = None
    notes: str | None = None
    photo_uri: str | None = None
    photo_url: str | None = None
    fuel_capacity_gallons: float | None = None
    water_capacity_gallons: float | None = None


class BoatDevicePatch(Patch):
    type: str | None = None
    name: str | None = None
    device_id: str | None = None
    serial_number: str | None = None
    expiration_date: datetime | None = None
    notes: str | None = None


class BoatDocumentPatch(Patch):
    type: str | None = None
    name: str | None = None
    document_number: str | None = None
    issue_date: datetime | None = None
    expiration_date: datetime | None = None
    provider: str | None = None
    notes: str | None = None


class ContactPatch(Patch):
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    method: ContactMethod | None = None
    permission: bool | None = None


class InventoryItemPatch(Patch):
    name: str | None = None
    category: str | None = None
    quantity: int | None = None
    boat_id: str | None = None
    expiration_date: datetime | None = None
    condition: str | None = None
    location: str | None = None


class TaskPatch(Patch):
    title: str | None = None
    description: str | None = None
    season: str | None = None
    due_date: datetime | None = None
    completed: bool | None = None
    recurring: bool | None = None


R = TypeVar("R", bound=Record)


def apply_patch(record: R, patch: Patch, now: datetime) -> R:
    """Return a copy of ``record`` with the patch applied and ``updated_at`` bumped."""
    updates = patch.changes()
    updates["updated_at"] = now
    return record.model_copy(update=updates)
