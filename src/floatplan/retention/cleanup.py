"""Retention sweep for float plans.

A plan survives while it is active, no matter how old, or while it was
updated within the retention horizon. Runs once at process start; there
is no internal scheduler.
"""

from __future__ import annotations

import logging

from floatplan.store.store import StateStore

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 30


def sweep(store: StateStore, retention_days: int = DEFAULT_RETENTION_DAYS) -> int:
    """Remove expired plans in a single mutation; returns the count removed."""
    removed = store.cleanup_expired_plans(retention_days)
    if removed:
        logger.info("Retention sweep removed %d plans older than %d days", removed, retention_days)
    else:
        logger.debug("Retention sweep: nothing to remove")
    return removed
