"""Tests for the float plan retention sweep."""

from __future__ import annotations

from datetime import timedelta

from conftest import FakeClock
from floatplan.models.entities import FloatPlan, PlanStatus
from floatplan.retention.cleanup import sweep
from floatplan.store.store import StateStore


class TestSweep:
    def test_active_plan_never_removed(self, store: StateStore, clock: FakeClock) -> None:
        store.set_float_plans([
            FloatPlan(id="p1", status=PlanStatus.ACTIVE, updated_at=clock.now - timedelta(days=400)),
        ])
        assert sweep(store, 30) == 0
        assert "p1" in store.read().float_plans

    def test_stale_checked_in_plan_removed(self, store: StateStore, clock: FakeClock) -> None:
        store.set_float_plans([
            FloatPlan(id="p1", status=PlanStatus.CHECKED_IN, updated_at=clock.now - timedelta(days=31)),
        ])
        assert sweep(store, 30) == 1
        assert store.read().float_plans == {}

    def test_recent_plan_kept(self, store: StateStore, clock: FakeClock) -> None:
        store.set_float_plans([
            FloatPlan(id="p1", status=PlanStatus.DRAFT, updated_at=clock.now - timedelta(days=29)),
        ])
        assert sweep(store, 30) == 0

    def test_missing_updated_at_treated_as_stale(self, store: StateStore) -> None:
        store.set_float_plans([FloatPlan(id="p1", status=PlanStatus.PENDING)])
        assert sweep(store, 30) == 1

    def test_malformed_updated_at_treated_as_stale(self, store: StateStore) -> None:
        plan = FloatPlan.model_validate({"id": "p1", "status": "draft", "updated_at": "yesterday-ish"})
        store.set_float_plans([plan])
        assert sweep(store, 30) == 1

    def test_sweep_is_one_mutation(self, store: StateStore, clock: FakeClock) -> None:
        old = clock.now - timedelta(days=90)
        store.set_float_plans([
            FloatPlan(id=f"p{i}", status=PlanStatus.CHECKED_IN, updated_at=old) for i in range(5)
        ])
        notified = []
        store.subscribe(lambda s: notified.append(len(s.float_plans)))
        assert sweep(store, 30) == 5
        assert notified == [0]
