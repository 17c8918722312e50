"""Derived plan status and read-only plan/tank-log queries."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta
from enum import Enum

from floatplan.models.entities import FloatPlan, PlanStatus, TankLogEntry


class EffectiveStatus(str, Enum):
    """Stored status plus ``overdue``, which is never persisted."""

    DRAFT = "draft"
    PENDING = "pending"
    ACTIVE = "active"
    CHECKED_IN = "checked_in"
    OVERDUE = "overdue"


def is_overdue(plan: FloatPlan, now: datetime) -> bool:
    return (
        plan.status == PlanStatus.ACTIVE
        and plan.check_in_deadline is not None
        and plan.check_in_deadline < now
    )


def effective_status(plan: FloatPlan, now: datetime) -> EffectiveStatus:
    if is_overdue(plan, now):
        return EffectiveStatus.OVERDUE
    return EffectiveStatus(plan.status.value)


def overdue_plans(plans: Iterable[FloatPlan], now: datetime) -> list[FloatPlan]:
    """Active plans past their check-in deadline, most overdue first."""
    overdue = [p for p in plans if is_overdue(p, now)]
    overdue.sort(key=lambda p: p.check_in_deadline)
    return overdue


def upcoming_plans(
    plans: Iterable[FloatPlan],
    now: datetime,
    window: timedelta = timedelta(hours=1),
) -> list[FloatPlan]:
    """Active plans whose deadline falls within the next ``window``."""
    horizon = now + window
    upcoming = [
        p for p in plans
        if p.status == PlanStatus.ACTIVE
        and p.check_in_deadline is not None
        and now <= p.check_in_deadline <= horizon
    ]
    upcoming.sort(key=lambda p: p.check_in_deadline)
    return upcoming


def active_plans(plans: Iterable[FloatPlan]) -> list[FloatPlan]:
    return [p for p in plans if p.status == PlanStatus.ACTIVE]


def tank_logs_for_boat(logs: Sequence[TankLogEntry], boat_id: str) -> list[TankLogEntry]:
    """Newest first; undated entries sort last."""
    entries = [log for log in logs if log.boat_id == boat_id]
    dated = sorted((e for e in entries if e.timestamp is not None), key=lambda e: e.timestamp, reverse=True)
    return dated + [e for e in entries if e.timestamp is None]
