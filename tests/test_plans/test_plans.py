"""Tests for derived plan status and plan queries."""

from __future__ import annotations

from datetime import timedelta

from conftest import T0
from floatplan.models.entities import FloatPlan, PlanStatus, TankLogEntry
from floatplan.plans.status import (
    EffectiveStatus,
    active_plans,
    effective_status,
    is_overdue,
    overdue_plans,
    tank_logs_for_boat,
    upcoming_plans,
)


def _plan(plan_id: str, status: PlanStatus, deadline_minutes: float | None) -> FloatPlan:
    deadline = None if deadline_minutes is None else T0 + timedelta(minutes=deadline_minutes)
    return FloatPlan(id=plan_id, status=status, check_in_deadline=deadline)


class TestEffectiveStatus:
    def test_active_past_deadline_is_overdue(self) -> None:
        plan = _plan("p1", PlanStatus.ACTIVE, -1)
        assert is_overdue(plan, T0) is True
        assert effective_status(plan, T0) is EffectiveStatus.OVERDUE

    def test_active_before_deadline(self) -> None:
        plan = _plan("p1", PlanStatus.ACTIVE, 30)
        assert effective_status(plan, T0) is EffectiveStatus.ACTIVE

    def test_deadline_now_is_not_overdue(self) -> None:
        assert is_overdue(_plan("p1", PlanStatus.ACTIVE, 0), T0) is False

    def test_checked_in_never_overdue(self) -> None:
        plan = _plan("p1", PlanStatus.CHECKED_IN, -600)
        assert effective_status(plan, T0) is EffectiveStatus.CHECKED_IN

    def test_active_without_deadline(self) -> None:
        assert is_overdue(_plan("p1", PlanStatus.ACTIVE, None), T0) is False


class TestPlanQueries:
    def _plans(self) -> list[FloatPlan]:
        return [
            _plan("late-1h", PlanStatus.ACTIVE, -60),
            _plan("late-5m", PlanStatus.ACTIVE, -5),
            _plan("soon", PlanStatus.ACTIVE, 30),
            _plan("later", PlanStatus.ACTIVE, 180),
            _plan("draft", PlanStatus.DRAFT, 20),
            _plan("done", PlanStatus.CHECKED_IN, -30),
        ]

    def test_overdue_most_overdue_first(self) -> None:
        assert [p.id for p in overdue_plans(self._plans(), T0)] == ["late-1h", "late-5m"]

    def test_upcoming_within_hour(self) -> None:
        assert [p.id for p in upcoming_plans(self._plans(), T0)] == ["soon"]

    def test_upcoming_custom_window(self) -> None:
        upcoming = upcoming_plans(self._plans(), T0, window=timedelta(hours=4))
        assert [p.id for p in upcoming] == ["soon", "later"]

    def test_active_plans(self) -> None:
        assert {p.id for p in active_plans(self._plans())} == {"late-1h", "late-5m", "soon", "later"}


class TestTankLogQueries:
    def test_newest_first_undated_last(self) -> None:
        logs = [
            TankLogEntry(id="old", boat_id="b1", timestamp=T0 - timedelta(days=2)),
            TankLogEntry(id="undated", boat_id="b1"),
            TankLogEntry(id="new", boat_id="b1", timestamp=T0),
            TankLogEntry(id="other", boat_id="b2", timestamp=T0),
        ]
        assert [e.id for e in tank_logs_for_boat(logs, "b1")] == ["new", "old", "undated"]
