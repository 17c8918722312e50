"""Configuration management for the floatplan engine."""

from floatplan.config.manager import ConfigManager
from floatplan.config.schema import AppConfig

__all__ = ["AppConfig", "ConfigManager"]
