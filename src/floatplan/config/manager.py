"""Configuration loading, merging, and validation."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from floatplan.config.schema import AppConfig
from floatplan.exceptions import ConfigError

logger = logging.getLogger(__name__)


class ConfigManager:
    """Loads config from a defaults YAML plus user overrides and validates it."""

    def __init__(
        self,
        defaults_path: Path | None = None,
        user_path: Path | None = None,
    ) -> None:
        self._defaults_path = defaults_path or Path("config.defaults.yaml")
        self._user_path = user_path or Path("config.yaml")
        self._config: AppConfig | None = None
        self._raw: dict[str, Any] = {}

    @property
    def config(self) -> AppConfig:
        if self._config is None:
            raise RuntimeError("Config not loaded. Call load() first.")
        return self._config

    def load(self) -> AppConfig:
        """Load configuration from defaults + user overrides."""
        defaults = self._load_yaml(self._defaults_path)
        overrides = self._load_yaml(self._user_path)
        merged = self._deep_merge(defaults, overrides)
        try:
            config = AppConfig.model_validate(merged)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e
        self._raw = merged
        self._config = config
        logger.info(
            "Configuration loaded (defaults=%s, user=%s)",
            self._defaults_path, self._user_path if self._user_path.exists() else "none",
        )
        return config

    def get_raw(self) -> dict[str, Any]:
        return dict(self._raw)

    def to_json(self) -> str:
        return self.config.model_dump_json(indent=2)

    def save_user_config(self, updates: dict[str, Any]) -> AppConfig:
        """Merge updates into the user config file and reload."""
        current = self._load_yaml(self._user_path)
        merged = self._deep_merge(current, updates)
        self._user_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._user_path, "w") as f:
            yaml.safe_dump(merged, f, default_flow_style=False, sort_keys=False)
        logger.info("User config updated: %s", ", ".join(sorted(updates)))
        return self.load()

    @staticmethod
    def _load_yaml(path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Cannot parse {path}: {e}") from e
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Recursively merge override into base, returning a new dict."""
        result = dict(base)
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = ConfigManager._deep_merge(result[key], value)
            else:
                result[key] = value
        return result
