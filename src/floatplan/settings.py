"""Application settings loader."""

from __future__ import annotations

from pathlib import Path

from floatplan.config.manager import ConfigManager
from floatplan.config.schema import AppConfig


def load_settings(
    defaults_path: Path | None = None,
    user_path: Path | None = None,
) -> tuple[AppConfig, ConfigManager]:
    """Build a config manager, load it, and return both.

    The manager is handed to the application explicitly rather than kept
    in a module global.
    """
    manager = ConfigManager(defaults_path=defaults_path, user_path=user_path)
    return manager.load(), manager
