"""Trend and threshold detection over sensor history.

Both detectors compare the earliest and latest samples inside a lookback
window ending at ``now``. Fewer than two qualifying samples yields ``None``
("insufficient data"), which callers must keep distinct from "no hazard".
All threshold comparisons are strict: a change exactly at the threshold
does not count.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from floatplan.models.marine import PressureReading, WindReading

MS_TO_KNOTS = 1.944

DEFAULT_LOOKBACK = timedelta(hours=3)
DEFAULT_WIND_THRESHOLD_KNOTS = 3.0
DEFAULT_PRESSURE_DROP_HPA = 4.0

# Readings are reported at a few decimals; rounding here keeps float noise
# from the unit conversion out of the strict threshold comparison.
_COMPARE_DIGITS = 6


class Trend(str, Enum):
    RISING = "rising"
    FALLING = "falling"
    STEADY = "steady"


@dataclass(frozen=True)
class PressureDrop:
    """Result of a pressure drop check with enough samples to decide."""

    has_significant_drop: bool
    drop_amount: float  # hPa, positive = falling pressure
    hours_ago: float  # age of the oldest qualifying sample


def ms_to_knots(ms: float) -> float:
    return ms * MS_TO_KNOTS


def _within(readings: Sequence, now: datetime, lookback: timedelta) -> list:
    cutoff = now - lookback
    qualifying = [r for r in readings if cutoff <= r.timestamp <= now]
    qualifying.sort(key=lambda r: r.timestamp)
    return qualifying


def classify(diff: float, threshold: float) -> Trend:
    diff = round(diff, _COMPARE_DIGITS)
    if diff > threshold:
        return Trend.RISING
    if diff < -threshold:
        return Trend.FALLING
    return Trend.STEADY


def wind_trend(
    readings: Sequence[WindReading],
    now: datetime,
    lookback: timedelta = DEFAULT_LOOKBACK,
    threshold_knots: float = DEFAULT_WIND_THRESHOLD_KNOTS,
) -> Trend | None:
    """Classify wind escalation over the lookback, in knots."""
    qualifying = _within(readings, now, lookback)
    if len(qualifying) < 2:
        return None
    diff_knots = ms_to_knots(qualifying[-1].wind_speed - qualifying[0].wind_speed)
    return classify(diff_knots, threshold_knots)


def pressure_trend(
    readings: Sequence[PressureReading],
    now: datetime,
    lookback: timedelta = DEFAULT_LOOKBACK,
    threshold_hpa: float = DEFAULT_PRESSURE_DROP_HPA,
) -> Trend | None:
    qualifying = _within(readings, now, lookback)
    if len(qualifying) < 2:
        return None
    return classify(qualifying[-1].pressure - qualifying[0].pressure, threshold_hpa)


def check_pressure_drop(
    readings: Sequence[PressureReading],
    now: datetime,
    threshold: float = DEFAULT_PRESSURE_DROP_HPA,
    lookback: timedelta = DEFAULT_LOOKBACK,
) -> PressureDrop | None:
    """Detect a rapid pressure fall, the classic sign of an approaching low.

    Example: 1013 -> 1010 -> 1008 hPa over two hours with a 4 hPa threshold
    reports a 5.0 hPa drop developing over 2.0 hours.
    """
    qualifying = _within(readings, now, lookback)
    if len(qualifying) < 2:
        return None

    oldest, newest = qualifying[0], qualifying[-1]
    drop = round(oldest.pressure - newest.pressure, _COMPARE_DIGITS)
    hours_ago = (now - oldest.timestamp).total_seconds() / 3600.0

    return PressureDrop(
        has_significant_drop=drop > threshold,
        drop_amount=round(drop, 1),
        hours_ago=round(hours_ago, 1),
    )
