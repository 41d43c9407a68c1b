"""Configuration management: profiles, TOML loading, and config models.

Usage:
    >>> from erp_porter.config import load_config, AppConfig, DataStoreProfile
"""

from erp_porter.config.loader import Settings, get_settings, load_config
from erp_porter.config.models import AppConfig, BackupSettings, DataStoreProfile

__all__ = [
    "load_config",
    "get_settings",
    "Settings",
    "AppConfig",
    "BackupSettings",
    "DataStoreProfile",
]
