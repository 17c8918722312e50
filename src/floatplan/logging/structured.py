"""Process-wide logging for the engine.

Modules log through plain ``logging.getLogger(__name__)``; this module
routes those records through structlog so drain and refresh context bound
with :func:`floatplan.logging.context.log_context` lands on every line.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterable, MutableMapping
from typing import Any

import structlog

# Keys whose values must never reach a log sink (bearer tokens, auth headers).
SENSITIVE_KEYS = frozenset({"authorization", "token", "access_token", "refresh_token", "password"})

QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite")


def redact_secrets(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    for key in event_dict:
        if key.lower() in SENSITIVE_KEYS and event_dict[key]:
            event_dict[key] = "***"
    return event_dict


def setup_logging(
    level: str = "INFO",
    fmt: str = "json",
    log_file: str = "",
    quiet: Iterable[str] = QUIET_LOGGERS,
) -> None:
    """Install the stdout (and optional file) handlers on the root logger.

    Args:
        level: Log level name; unknown names fall back to INFO.
        fmt: "json" for devices shipping logs, "console" for development.
        log_file: Optional file path for log output. Empty = stdout only.
        quiet: Library loggers capped at WARNING.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_secrets,
    ]

    render: list[structlog.types.Processor]
    if fmt == "console":
        render = [structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())]
    else:
        render = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer(sort_keys=True)]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *render,
        ],
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)
