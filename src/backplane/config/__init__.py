"""Configuration management: settings, profiles, TOML loading.

Usage:
    >>> from backplane.config import get_settings, load_db_config, DatabaseProfile
"""

from backplane.config.loader import load_db_config
from backplane.config.models import DatabaseConfig, DatabaseProfile
from backplane.config.settings import DEFAULT_IGNORED_SCHEMAS, Settings, get_settings

__all__ = [
    "DEFAULT_IGNORED_SCHEMAS",
    "load_db_config",
    "DatabaseConfig",
    "DatabaseProfile",
    "Settings",
    "get_settings",
]
