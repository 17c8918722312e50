"""Marine hazard monitoring with transition tracking.

A condition is dispatched once when it becomes active and forgotten when
it clears, so a pressure drop that persists across several refreshes
raises a single notification.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from floatplan.history.sensors import SensorHistory
from floatplan.history.trend import Trend
from floatplan.models.marine import MarineAlert, WeatherAlertSettings
from floatplan.store.store import StateStore

logger = logging.getLogger(__name__)


class HazardKind(str, Enum):
    PRESSURE_DROP = "pressure_drop"
    WIND_RISING = "wind_rising"
    MARINE_ALERT = "marine_alert"


@dataclass(frozen=True)
class AlertCondition:
    kind: HazardKind
    key: str  # station id or NWS alert id
    title: str
    message: str
    severity: str = "Moderate"

    @property
    def ident(self) -> tuple[HazardKind, str]:
        return (self.kind, self.key)


@dataclass
class HazardState:
    active: dict[tuple[HazardKind, str], AlertCondition] = field(default_factory=dict)
    activated_at: dict[tuple[HazardKind, str], datetime] = field(default_factory=dict)
    transition_count: int = 0


Dispatcher = Callable[[AlertCondition], Awaitable[None]]


def should_notify_for_alert(alert: MarineAlert, settings: WeatherAlertSettings) -> bool:
    """Whether the user's settings opt in to this NWS event type."""
    event = alert.event.lower()
    if settings.small_craft_advisory and "small craft" in event:
        return True
    if settings.gale_warning and ("gale" in event or "storm watch" in event):
        return True
    if settings.storm_warning and ("storm warning" in event or "hurricane force" in event):
        return True
    return False


class HazardMonitor:
    def __init__(
        self,
        store: StateStore,
        history: SensorHistory,
        dispatcher: Dispatcher | None = None,
    ) -> None:
        self._store = store
        self._history = history
        self._dispatcher = dispatcher
        self._state = HazardState()

    @property
    def state(self) -> HazardState:
        return self._state

    def evaluate(self) -> list[AlertCondition]:
        """Every condition active right now, without dispatching."""
        snapshot = self._store.read()
        settings = snapshot.weather_alert_settings
        now = self._store.now()
        conditions: list[AlertCondition] = []

        buoy_id = snapshot.monitored_buoy_id
        if buoy_id:
            if settings.pressure_drop:
                drop = self._history.pressure_drop(buoy_id, settings.pressure_drop_threshold)
                if drop is not None and drop.has_significant_drop:
                    conditions.append(AlertCondition(
                        kind=HazardKind.PRESSURE_DROP,
                        key=buoy_id,
                        title="Rapid pressure drop",
                        message=(
                            f"Pressure at {buoy_id} fell {drop.drop_amount:.1f} hPa "
                            f"over {drop.hours_ago:.1f} h"
                        ),
                        severity="Severe",
                    ))
            if self._history.wind_trend(buoy_id) is Trend.RISING:
                conditions.append(AlertCondition(
                    kind=HazardKind.WIND_RISING,
                    key=buoy_id,
                    title="Wind increasing",
                    message=f"Wind at {buoy_id} is building",
                    severity="Minor",
                ))

        for alert in snapshot.cached_alerts:
            if alert.expires is not None and alert.expires <= now:
                continue
            if should_notify_for_alert(alert, settings):
                conditions.append(AlertCondition(
                    kind=HazardKind.MARINE_ALERT,
                    key=alert.id,
                    title=alert.event,
                    message=alert.headline or alert.event,
                    severity=alert.severity,
                ))
        return conditions

    async def update(self) -> list[AlertCondition]:
        """Re-evaluate and dispatch conditions that just became active."""
        current = {c.ident: c for c in self.evaluate()}
        now = self._store.now()

        raised = [c for ident, c in current.items() if ident not in self._state.active]
        cleared = [ident for ident in self._state.active if ident not in current]

        for condition in raised:
            self._state.activated_at[condition.ident] = now
            self._state.transition_count += 1
            logger.warning(
                "Hazard ACTIVATED: %s (%s) %s",
                condition.kind.value, condition.key, condition.message,
            )
        for ident in cleared:
            self._state.activated_at.pop(ident, None)
            self._state.transition_count += 1
            logger.info("Hazard cleared: %s (%s)", ident[0].value, ident[1])

        self._state.active = current

        if self._dispatcher is not None:
            for condition in raised:
                try:
                    await self._dispatcher(condition)
                except Exception:
                    logger.exception("Dispatching %s failed", condition.kind.value)
        return raised

    def reset(self) -> None:
        self._state = HazardState()
