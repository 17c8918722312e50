"""Cache-aware refresh of marine data.

Each category is fetched only when its cache entry has expired (or when
forced). Every fetch is bounded by a deadline; a timeout or error leaves
both the cached data and its fetch timestamp exactly as they were.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from functools import partial
from typing import TypeVar

from floatplan.cache.validity import DEFAULT_TTLS, CacheCategory, CacheTtls, is_cache_valid
from floatplan.history.sensors import SensorHistory
from floatplan.logging.context import log_context
from floatplan.marine.sources import MarineDataSource
from floatplan.models.marine import MarineForecast, NDBCObservation, TideObservation
from floatplan.resilience.health import HealthTracker
from floatplan.store.store import StateStore
from floatplan.sync.connectivity import ConnectivityMonitor

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_FETCH_TIMEOUT = 30.0


class FetchFailed(Exception):
    """Internal marker: the fetch did not complete, keep the cache as is."""


@dataclass
class RefreshReport:
    refreshed: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)  # still fresh, failed, or no data
    offline: bool = False

    def record(self, name: str, updated: bool) -> None:
        (self.refreshed if updated else self.unchanged).append(name)


class MarineRefresher:
    def __init__(
        self,
        store: StateStore,
        source: MarineDataSource,
        *,
        connectivity: ConnectivityMonitor | None = None,
        history: SensorHistory | None = None,
        ttls: CacheTtls = DEFAULT_TTLS,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
        health: HealthTracker | None = None,
    ) -> None:
        self._store = store
        self._source = source
        self._connectivity = connectivity
        self._history = history or SensorHistory(store)
        self._ttls = ttls
        self._timeout = fetch_timeout
        self._health = health or HealthTracker()

    def _fresh(self, category: CacheCategory, key: str | None = None) -> bool:
        return is_cache_valid(self._store.read(), category, self._store.now(), key, self._ttls)

    def _online(self) -> bool:
        return self._connectivity is None or self._connectivity.is_online()

    async def _fetch(self, name: str, call: Callable[[], Awaitable[T]]) -> T:
        if not self._online():
            logger.debug("Offline, not fetching %s", name)
            raise FetchFailed(name)
        try:
            result = await asyncio.wait_for(call(), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("Fetching %s timed out after %.0fs", name, self._timeout)
            self._health.record_failure(name, "timeout")
            raise FetchFailed(name) from None
        except Exception as e:
            logger.warning("Fetching %s failed: %s", name, e)
            self._health.record_failure(name, str(e))
            raise FetchFailed(name) from e
        self._health.record_success(name)
        return result

    # ── Stations ──────────────────────────────────────────

    async def refresh_stations(self, force: bool = False) -> bool:
        """Refresh the NDBC station list; True if the cache was updated."""
        if not force and self._fresh(CacheCategory.NDBC_STATIONS):
            return False
        try:
            stations = await self._fetch("ndbc", self._source.fetch_stations)
        except FetchFailed:
            return False
        self._store.set_ndbc_stations(stations)
        return True

    async def refresh_tide_stations(self, force: bool = False) -> bool:
        if not force and self._fresh(CacheCategory.TIDE_STATIONS):
            return False
        try:
            stations = await self._fetch("coops", self._source.fetch_tide_stations)
        except FetchFailed:
            return False
        self._store.set_tide_stations(stations)
        return True

    # ── Observations ──────────────────────────────────────

    async def refresh_observation(self, station_id: str, force: bool = False) -> NDBCObservation | None:
        """Latest buoy observation, fetched if the cached one expired.

        A fresh observation also feeds the station's sensor history.
        """
        cached = self._store.read().ndbc_observations.get(station_id)
        if not force and self._fresh(CacheCategory.NDBC_OBSERVATIONS, station_id):
            return cached
        try:
            obs = await self._fetch("ndbc", partial(self._source.fetch_observation, station_id))
        except FetchFailed:
            return cached
        if obs is None:
            logger.debug("Station %s has no current observation", station_id)
            return cached
        self._store.set_ndbc_observation(station_id, obs)
        self._history.record_observation(station_id, obs)
        return obs

    async def refresh_tide_observation(self, station_id: str, force: bool = False) -> TideObservation | None:
        cached = self._store.read().tide_observations.get(station_id)
        if not force and self._fresh(CacheCategory.TIDE_OBSERVATIONS, station_id):
            return cached
        try:
            obs = await self._fetch("coops", partial(self._source.fetch_tide_observation, station_id))
        except FetchFailed:
            return cached
        if obs is None:
            return cached
        self._store.set_tide_observation(station_id, obs)
        return obs

    # ── Alerts & forecasts ────────────────────────────────

    async def refresh_alerts(self, force: bool = False) -> bool:
        zone_ids = [z.id for z in self._store.read().subscribed_zones]
        if not zone_ids:
            return False
        if not force and self._fresh(CacheCategory.ALERTS):
            return False
        try:
            alerts = await self._fetch("nws", partial(self._source.fetch_alerts, zone_ids))
        except FetchFailed:
            return False
        self._store.set_cached_alerts(alerts)
        logger.info("Marine alerts refreshed: %d active across %d zones", len(alerts), len(zone_ids))
        return True

    async def refresh_forecast(self, zone_id: str, force: bool = False) -> MarineForecast | None:
        cached = self._store.read().cached_forecasts.get(zone_id)
        if not force and self._fresh(CacheCategory.FORECASTS, zone_id):
            return cached
        try:
            forecast = await self._fetch("nws", partial(self._source.fetch_forecast, zone_id))
        except FetchFailed:
            return cached
        if forecast is None:
            return cached
        self._store.set_cached_forecast(zone_id, forecast)
        return forecast

    # ── Everything ────────────────────────────────────────

    async def refresh_all(self, force: bool = False) -> RefreshReport:
        """One refresh cycle over everything the user follows."""
        report = RefreshReport()
        if not self._online():
            report.offline = True
            logger.debug("Offline, skipping marine refresh")
            return report

        snapshot = self._store.read()
        with log_context(refresh="marine", forced=force):
            report.record("ndbc_stations", await self.refresh_stations(force))
            if not snapshot.is_great_lakes_user:
                report.record("tide_stations", await self.refresh_tide_stations(force))

            buoy_id = snapshot.monitored_buoy_id
            if buoy_id:
                before = self._store.read().ndbc_observations_last_fetch.get(buoy_id)
                await self.refresh_observation(buoy_id, force)
                after = self._store.read().ndbc_observations_last_fetch.get(buoy_id)
                report.record(f"observation:{buoy_id}", after != before)

            report.record("alerts", await self.refresh_alerts(force))
            for zone in snapshot.subscribed_zones:
                before = self._store.read().forecasts_last_fetch.get(zone.id)
                await self.refresh_forecast(zone.id, force)
                after = self._store.read().forecasts_last_fetch.get(zone.id)
                report.record(f"forecast:{zone.id}", after != before)

        logger.info(
            "Marine refresh: %d refreshed, %d unchanged",
            len(report.refreshed), len(report.unchanged),
        )
        return report
