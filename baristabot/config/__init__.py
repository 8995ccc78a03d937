"""
Configuration package.

This package contains environment loading, validation and remote
snapshot updates.
"""

from baristabot.config.config import ConfigError, Settings
from baristabot.config.config_validator import ConfigValidator, validate_and_log
from baristabot.config.cloud_update import CloudConfigPoller, fetch_remote_settings

__all__ = [
    "Settings",
    "ConfigError",
    "ConfigValidator",
    "validate_and_log",
    "CloudConfigPoller",
    "fetch_remote_settings",
]
