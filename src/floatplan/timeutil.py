"""Timestamp parsing helpers with lenient fallbacks."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Annotated, Any

from pydantic import BeforeValidator

# Threshold to distinguish seconds from milliseconds.
_MS_THRESHOLD = 1_000_000_000_000


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Convert an ISO string, epoch number (s or ms) or datetime to UTC.

    Returns ``None`` for anything that cannot be interpreted as a point in
    time; callers treat that as "no data" rather than an error.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)):
        if not math.isfinite(value) or value <= 0:
            return None
        ts = float(value)
        if ts >= _MS_THRESHOLD:
            ts /= 1000.0
        try:
            return datetime.fromtimestamp(ts, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return ensure_utc(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


Timestamp = Annotated[datetime | None, BeforeValidator(parse_timestamp)]
"""Optional timestamp that coerces malformed input to ``None``."""

UtcDatetime = Annotated[datetime, BeforeValidator(parse_timestamp)]
"""Required timestamp, normalised to UTC; naive input is taken as UTC."""
