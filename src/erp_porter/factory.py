"""DataStore factory.

Resolves the active profile from erp.toml and the environment, and builds
the adapter for it.  Every adapter returned here implements both
``DataStore`` and ``AuthProvider``.

Usage:
    >>> from erp_porter.config import load_config
    >>> from erp_porter.factory import create_datastore, get_active_profile
    >>> config = load_config()
    >>> name, profile = get_active_profile(config)
    >>> store = create_datastore(profile)
"""

import logging
from urllib.parse import quote

from erp_porter.adapters import AsyncPostgresAdapter, AsyncSupabaseAdapter, Identity
from erp_porter.config import AppConfig, DataStoreProfile, get_settings
from erp_porter.errors import ProfileNotFoundError

logger = logging.getLogger(__name__)


# ============================================================================
# Profile Resolution
# ============================================================================


def get_active_profile_name(config: AppConfig, override: str | None = None) -> str:
    """Get active profile name.

    Priority:
    1. ``override`` (the CLI --profile flag)
    2. ERP_PROFILE env var
    3. ``default_profile`` from erp.toml
    4. The only profile, when exactly one is configured
    5. Raise ProfileNotFoundError

    Raises:
        ProfileNotFoundError: If no profile is configured
    """
    if override:
        return override

    env_profile = get_settings().profile
    if env_profile:
        return env_profile

    if config.default_profile:
        return config.default_profile

    if len(config.profiles) == 1:
        return next(iter(config.profiles))

    available = ", ".join(config.profiles) or "(none)"
    raise ProfileNotFoundError(
        "No profile selected.\n"
        "Pass --profile <name>, set ERP_PROFILE, or set default_profile in erp.toml.\n"
        f"Available profiles: {available}"
    )


def get_active_profile(
    config: AppConfig, override: str | None = None
) -> tuple[str, DataStoreProfile]:
    """Get active profile name and configuration.

    Raises:
        ProfileNotFoundError: If no profile is selected or the selected name
            is not in erp.toml
    """
    profile_name = get_active_profile_name(config, override)

    if profile_name not in config.profiles:
        raise ProfileNotFoundError(
            f"Profile '{profile_name}' not found in erp.toml.\n"
            f"Available profiles: {', '.join(config.profiles)}"
        )

    return profile_name, config.profiles[profile_name]


# ============================================================================
# Adapter Construction
# ============================================================================


def resolve_url(profile: DataStoreProfile) -> str:
    """Resolve profile URL with password substitution.

    Args:
        profile: Profile from config

    Returns:
        Connection URL with password substituted
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


def create_datastore(
    profile: DataStoreProfile,
) -> AsyncSupabaseAdapter | AsyncPostgresAdapter:
    """Create the adapter for a profile.

    Supabase profiles need ``key`` (falls back to SUPABASE_KEY); postgres
    profiles use ``identity_id``/``identity_email`` as the static identity
    required by backup, restore and import.

    Raises:
        ValueError: If a supabase profile has no key
    """
    if profile.provider == "supabase":
        key = profile.key or get_settings().supabase_key
        if not key:
            raise ValueError(
                "Supabase profile requires 'key' in erp.toml or SUPABASE_KEY"
            )
        logger.debug(f"Creating Supabase adapter for {profile.url}")
        return AsyncSupabaseAdapter(
            url=profile.url,
            key=key,
            email=profile.email,
            password=profile.password,
        )

    identity = None
    if profile.identity_id:
        identity = Identity(id=profile.identity_id, email=profile.identity_email)
    logger.debug("Creating Postgres adapter")
    return AsyncPostgresAdapter(database_url=resolve_url(profile), identity=identity)
