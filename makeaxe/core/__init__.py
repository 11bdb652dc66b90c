"""Core package containing the managers shared by every makeaxe run."""

from makeaxe.core.base import AxeManager
from makeaxe.core.config_manager import ConfigManager, DatabaseSettings, RelaxeConfig
from makeaxe.core.logging_manager import LoggingManager

__all__ = [
    "AxeManager",
    "ConfigManager",
    "DatabaseSettings",
    "LoggingManager",
    "RelaxeConfig",
]
