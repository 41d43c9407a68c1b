"""Configuration loading: erp.toml profiles plus environment overrides."""

import tomllib
from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from erp_porter.config.models import AppConfig, BackupSettings, DataStoreProfile

DEFAULT_CONFIG_FILE = "erp.toml"


class Settings(BaseSettings):
    """Environment overrides.

    Separation of concerns:
    - Settings: process environment (active profile, ad-hoc Supabase creds)
    - erp.toml: named connection profiles and backup settings
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    config_path: str | None = Field(
        default=None, validation_alias=AliasChoices("ERP_PORTER_CONFIG")
    )
    profile: str | None = Field(default=None, validation_alias=AliasChoices("ERP_PROFILE"))

    supabase_url: str = Field(default="", validation_alias=AliasChoices("SUPABASE_URL"))

    # Accept either env var name for the key
    supabase_key: str = Field(
        default="",
        validation_alias=AliasChoices("SUPABASE_KEY", "SUPABASE_ANON_KEY"),
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def resolve_config_path(config_path: Path | str | None = None) -> Path:
    """Explicit path, then ERP_PORTER_CONFIG, then ./erp.toml."""
    if config_path is not None:
        return Path(config_path)
    env_path = get_settings().config_path
    if env_path:
        return Path(env_path)
    return Path.cwd() / DEFAULT_CONFIG_FILE


def load_config(config_path: Path | str | None = None) -> AppConfig:
    """Load configuration from a TOML file.

    Args:
        config_path: Path to erp.toml (default: ERP_PORTER_CONFIG or ./erp.toml)

    Returns:
        AppConfig with all profiles

    Raises:
        FileNotFoundError: If config file doesn't exist
        pydantic.ValidationError: If config format is invalid

    Example:
        >>> config = load_config("erp.toml")
        >>> config.profiles["production"].provider
        'supabase'
    """
    path = resolve_config_path(config_path)

    if not path.exists():
        raise FileNotFoundError(
            f"Config not found: {path}\n"
            f"Copy erp.toml.example to erp.toml and configure your profiles."
        )

    with open(path, "rb") as f:
        data = tomllib.load(f)

    profiles = {}
    for name, profile_data in data.get("profiles", {}).items():
        profiles[name] = DataStoreProfile(**profile_data)

    settings = get_settings()
    if settings.supabase_url and "env" not in profiles:
        profiles["env"] = DataStoreProfile(
            url=settings.supabase_url,
            key=settings.supabase_key or None,
            provider="supabase",
            description="From SUPABASE_URL / SUPABASE_KEY",
        )

    return AppConfig(
        profiles=profiles,
        default_profile=data.get("default_profile"),
        backup=BackupSettings(**data.get("backup", {})),
    )
