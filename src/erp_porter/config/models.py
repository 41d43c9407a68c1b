"""Pydantic models for erp.toml."""

from typing import Literal

from pydantic import BaseModel, Field


class DataStoreProfile(BaseModel):
    """Connection profile from erp.toml."""

    url: str
    description: str = ""
    provider: Literal["supabase", "postgres"] = "supabase"
    key: str | None = None  # Supabase anon/service key
    email: str | None = None  # Optional Supabase sign-in
    password: str | None = None
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    identity_id: str | None = None  # Static identity for postgres profiles
    identity_email: str | None = None


class BackupSettings(BaseModel):
    """The [backup] table of erp.toml."""

    product: str = "erp"
    batch_size: int = Field(default=50, gt=0)
    output_dir: str = "backups"


class AppConfig(BaseModel):
    """Complete configuration from erp.toml."""

    profiles: dict[str, DataStoreProfile] = Field(default_factory=dict)
    default_profile: str | None = None
    backup: BackupSettings = Field(default_factory=BackupSettings)
