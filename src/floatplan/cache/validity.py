"""TTL-based freshness of cached remote data.

Validity is a pure function of the fetch timestamp, the category TTL and
the current time; nothing here performs I/O. A backward clock jump makes
data look fresher than it is, which is accepted.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from floatplan.config.schema import CacheConfig
from floatplan.models.entities import TankLogEntry
from floatplan.models.snapshot import Snapshot


class CacheCategory(str, Enum):
    NDBC_STATIONS = "ndbc_stations"
    NDBC_OBSERVATIONS = "ndbc_observations"
    TIDE_STATIONS = "tide_stations"
    TIDE_OBSERVATIONS = "tide_observations"
    ALERTS = "alerts"
    FORECASTS = "forecasts"


@dataclass(frozen=True)
class CacheTtls:
    ndbc_stations: timedelta = timedelta(hours=24)
    ndbc_observations: timedelta = timedelta(minutes=30)
    tide_stations: timedelta = timedelta(hours=24)
    tide_observations: timedelta = timedelta(minutes=15)
    alerts: timedelta = timedelta(minutes=15)
    forecasts: timedelta = timedelta(minutes=60)
    tank_log_stale: timedelta = timedelta(hours=24)

    @classmethod
    def from_config(cls, config: CacheConfig) -> CacheTtls:
        return cls(
            ndbc_stations=timedelta(seconds=config.ndbc_stations_ttl_seconds),
            ndbc_observations=timedelta(seconds=config.ndbc_observations_ttl_seconds),
            tide_stations=timedelta(seconds=config.tide_stations_ttl_seconds),
            tide_observations=timedelta(seconds=config.tide_observations_ttl_seconds),
            alerts=timedelta(seconds=config.alerts_ttl_seconds),
            forecasts=timedelta(seconds=config.forecast_ttl_seconds),
            tank_log_stale=timedelta(seconds=config.tank_log_stale_seconds),
        )

    def for_category(self, category: CacheCategory) -> timedelta:
        return getattr(self, category.value)


DEFAULT_TTLS = CacheTtls()


def is_valid(last_fetched: datetime | None, ttl: timedelta, now: datetime) -> bool:
    """True iff data fetched at ``last_fetched`` is younger than ``ttl``."""
    return last_fetched is not None and (now - last_fetched) < ttl


def last_fetched(snapshot: Snapshot, category: CacheCategory, key: str | None = None) -> datetime | None:
    """Fetch time for a category; per-station/per-zone categories need ``key``."""
    if category is CacheCategory.NDBC_STATIONS:
        return snapshot.ndbc_stations_last_fetch
    if category is CacheCategory.TIDE_STATIONS:
        return snapshot.tide_stations_last_fetch
    if category is CacheCategory.ALERTS:
        return snapshot.last_alert_check

    if key is None:
        raise ValueError(f"{category.value} is cached per key")
    if category is CacheCategory.NDBC_OBSERVATIONS:
        return snapshot.ndbc_observations_last_fetch.get(key)
    if category is CacheCategory.TIDE_OBSERVATIONS:
        return snapshot.tide_observations_last_fetch.get(key)
    return snapshot.forecasts_last_fetch.get(key)


def is_cache_valid(
    snapshot: Snapshot,
    category: CacheCategory,
    now: datetime,
    key: str | None = None,
    ttls: CacheTtls = DEFAULT_TTLS,
) -> bool:
    return is_valid(last_fetched(snapshot, category, key), ttls.for_category(category), now)


def latest_tank_log(logs: Sequence[TankLogEntry], boat_id: str) -> TankLogEntry | None:
    dated = [log for log in logs if log.boat_id == boat_id and log.timestamp is not None]
    return max(dated, key=lambda log: log.timestamp, default=None)


def is_tank_log_stale(
    logs: Sequence[TankLogEntry],
    boat_id: str,
    now: datetime,
    max_age: timedelta = DEFAULT_TTLS.tank_log_stale,
) -> bool:
    """A boat with no dated tank log, or only old ones, needs a new reading."""
    latest = latest_tank_log(logs, boat_id)
    if latest is None:
        return True
    return not is_valid(latest.timestamp, max_age, now)
