"""Log context enrichment for sync and refresh passes."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import structlog


@contextmanager
def log_context(**kwargs: object) -> Iterator[None]:
    """Bind keys for the duration of a block, e.g. one drain pass."""
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield
