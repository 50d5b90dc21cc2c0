"""Configuration management for KOH Backup."""

from .manager import ConfigManager, Settings
from .schemas import CONFIG_SCHEMA, DEFAULT_CONFIG

__all__ = ["ConfigManager", "Settings", "CONFIG_SCHEMA", "DEFAULT_CONFIG"]
