"""Health tracking for remote endpoints (backend API and marine data feeds)."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class SourceHealth:
    """Running success/failure record for one remote source."""

    name: str
    healthy: bool = True
    last_success: float = 0.0
    last_failure: float = 0.0
    consecutive_failures: int = 0
    total_failures: int = 0
    last_error: str = ""


class HealthTracker:
    """Marks a source unhealthy after N consecutive failures.

    Purely observational: sync and refresh keep trying regardless, this
    only feeds logging and the status summary.
    """

    def __init__(self, max_consecutive_failures: int = 3) -> None:
        self._max_failures = max_consecutive_failures
        self._sources: dict[str, SourceHealth] = {}

    def _get(self, name: str) -> SourceHealth:
        if name not in self._sources:
            self._sources[name] = SourceHealth(name=name)
        return self._sources[name]

    def record_success(self, name: str) -> None:
        source = self._get(name)
        if not source.healthy:
            logger.info("Source '%s' recovered after %d failures", name, source.consecutive_failures)
        source.healthy = True
        source.last_success = time.monotonic()
        source.consecutive_failures = 0

    def record_failure(self, name: str, error: str = "") -> None:
        source = self._get(name)
        source.last_failure = time.monotonic()
        source.consecutive_failures += 1
        source.total_failures += 1
        source.last_error = error

        if source.healthy and source.consecutive_failures >= self._max_failures:
            source.healthy = False
            logger.warning(
                "Source '%s' marked unhealthy (%d consecutive failures): %s",
                name, source.consecutive_failures, error,
            )

    def is_healthy(self, name: str) -> bool:
        source = self._sources.get(name)
        return source.healthy if source else True  # Unknown sources assumed healthy

    def unhealthy(self) -> list[str]:
        return [name for name, s in self._sources.items() if not s.healthy]

    def get(self, name: str) -> SourceHealth | None:
        return self._sources.get(name)
