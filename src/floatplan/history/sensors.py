"""Per-station pressure and wind history backed by the state store."""

from __future__ import annotations

import logging
from datetime import timedelta

from floatplan.config.schema import AlertsConfig, HistoryConfig
from floatplan.history.trend import PressureDrop, Trend, check_pressure_drop, pressure_trend, wind_trend
from floatplan.history.window import is_usable_value
from floatplan.models.marine import NDBCObservation, PressureReading, WindReading
from floatplan.store.store import StateStore

logger = logging.getLogger(__name__)


class SensorHistory:
    def __init__(
        self,
        store: StateStore,
        history: HistoryConfig | None = None,
        alerts: AlertsConfig | None = None,
    ) -> None:
        self._store = store
        self._history = history or HistoryConfig()
        self._alerts = alerts or AlertsConfig()

    @property
    def trend_lookback(self) -> timedelta:
        return timedelta(hours=self._history.trend_lookback_hours)

    def record_observation(self, station_id: str, obs: NDBCObservation) -> int:
        """Feed an observation's pressure and wind into history.

        Observations without a timestamp are skipped, as is a value whose
        timestamp is already recorded (a re-fetch of the same report).
        Returns the number of readings added.
        """
        if obs.timestamp is None:
            logger.debug("Observation for %s has no timestamp, not recorded", station_id)
            return 0

        snapshot = self._store.read()
        added = 0
        if is_usable_value(obs.pressure):
            seen = {r.timestamp for r in snapshot.pressure_history.get(station_id, ())}
            if obs.timestamp not in seen:
                self._store.add_pressure_reading(station_id, PressureReading(
                    timestamp=obs.timestamp, pressure=obs.pressure, station_id=station_id,
                ))
                added += 1
        if is_usable_value(obs.wind_speed):
            seen = {r.timestamp for r in snapshot.wind_history.get(station_id, ())}
            if obs.timestamp not in seen:
                self._store.add_wind_reading(station_id, WindReading(
                    timestamp=obs.timestamp, wind_speed=obs.wind_speed, station_id=station_id,
                ))
                added += 1
        return added

    def pressure_readings(self, station_id: str) -> tuple[PressureReading, ...]:
        return self._store.read().pressure_history.get(station_id, ())

    def wind_readings(self, station_id: str) -> tuple[WindReading, ...]:
        return self._store.read().wind_history.get(station_id, ())

    def wind_trend(self, station_id: str) -> Trend | None:
        return wind_trend(
            self.wind_readings(station_id),
            self._store.now(),
            lookback=self.trend_lookback,
            threshold_knots=self._history.wind_trend_threshold_knots,
        )

    def pressure_trend(self, station_id: str) -> Trend | None:
        return pressure_trend(
            self.pressure_readings(station_id),
            self._store.now(),
            lookback=self.trend_lookback,
            threshold_hpa=self._alerts.pressure_drop_threshold_hpa,
        )

    def pressure_drop(self, station_id: str, threshold: float | None = None) -> PressureDrop | None:
        return check_pressure_drop(
            self.pressure_readings(station_id),
            self._store.now(),
            threshold=self._alerts.pressure_drop_threshold_hpa if threshold is None else threshold,
            lookback=timedelta(hours=self._alerts.pressure_lookback_hours),
        )
