"""
Configuration layer.

- ``Config``: static settings from the environment (.env supported).
- ``ConfigManager``: dot-notation tunables from YAML with in-memory overrides.
"""

from questline.core.config.config import Config, Environment
from questline.core.config.manager import ConfigManager, ConfigManagerError, ConfigWriteError

__all__ = [
    "Config",
    "Environment",
    "ConfigManager",
    "ConfigManagerError",
    "ConfigWriteError",
]
