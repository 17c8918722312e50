"""Rolling, wall-clock bounded sensor buffers."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Protocol, TypeVar

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = timedelta(hours=4)


class Timestamped(Protocol):
    @property
    def timestamp(self) -> datetime: ...


T = TypeVar("T", bound=Timestamped)


def insert_reading(
    readings: tuple[T, ...],
    reading: T,
    now: datetime,
    window: timedelta = DEFAULT_WINDOW,
) -> tuple[T, ...]:
    """Append, drop everything older than ``window``, sort ascending.

    Readings may arrive out of order.
    """
    cutoff = now - window
    kept = [r for r in (*readings, reading) if r.timestamp >= cutoff]
    kept.sort(key=lambda r: r.timestamp)
    return tuple(kept)


def is_usable_value(value: float | None) -> bool:
    """Finite numeric sample; NaN and infinities mean "no data"."""
    return value is not None and not isinstance(value, bool) and math.isfinite(value)
