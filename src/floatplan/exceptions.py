"""Exception hierarchy for floatplan."""

from __future__ import annotations


class FloatPlanError(Exception):
    """Base exception for all floatplan errors."""


class ConfigError(FloatPlanError):
    """Invalid or missing configuration."""


class PersistenceError(FloatPlanError):
    """Durable key-value store read/write failure."""


class RemoteError(FloatPlanError):
    """Remote API call failed (network, timeout, non-2xx)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)
