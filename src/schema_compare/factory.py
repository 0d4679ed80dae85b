"""Profile resolution and live model-vs-database comparisons.

Profiles live in db.toml (``[profiles.<name>]``).  The active profile comes
from an explicit argument, else the ``{env_prefix}DB_PROFILE`` environment
variable.

Usage:
    from schema_compare.factory import compare_model_to_profile

    result = await compare_model_to_profile("myapp.models:Base", profile_name="local")
    result.raise_for_differences()
"""

import logging
import os
from typing import Any
from urllib.parse import quote

from schema_compare.adapters.sqlalchemy import SQLAlchemyModelSource, load_metadata
from schema_compare.config.loader import load_config
from schema_compare.config.models import CompareConfig, DatabaseProfile
from schema_compare.schema.comparator import validate_schema
from schema_compare.schema.declarations import SchemaDeclaration
from schema_compare.schema.introspector import SchemaIntrospector
from schema_compare.schema.models import ComparisonResult

logger = logging.getLogger(__name__)


class ProfileNotFoundError(Exception):
    """Raised when no database profile is configured."""

    pass


# ============================================================================
# Profile Resolution
# ============================================================================


def get_active_profile_name(env_prefix: str = "") -> str:
    """Get active profile name from the environment.

    Args:
        env_prefix: Prefix for the env var (``APP_`` reads ``APP_DB_PROFILE``).

    Raises:
        ProfileNotFoundError: If the variable is unset or empty
    """
    env_var = f"{env_prefix}DB_PROFILE"
    env_profile = os.environ.get(env_var)
    if env_profile:
        return env_profile

    raise ProfileNotFoundError(
        "No database profile configured.\n"
        f"Run: {env_var}=<name> schema-compare check --model package.module:Base"
    )


def get_profile(
    config: CompareConfig,
    profile_name: str | None = None,
    env_prefix: str = "",
) -> tuple[str, DatabaseProfile]:
    """Resolve a profile name and look it up in *config*.

    Raises:
        ProfileNotFoundError: If no profile is configured or it is not in db.toml
    """
    if profile_name is None:
        profile_name = get_active_profile_name(env_prefix)

    if profile_name not in config.profiles:
        available = ", ".join(config.profiles.keys()) or "(none)"
        raise ProfileNotFoundError(
            f"Profile '{profile_name}' not found in db.toml. Available: {available}"
        )

    return profile_name, config.profiles[profile_name]


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    Example:
        >>> resolve_url(DatabaseProfile(url="postgresql://u:[YOUR-PASSWORD]@h/db",
        ...                             db_password="p@ss"))
        'postgresql://u:p%40ss@h/db'
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


# ============================================================================
# Live Comparison
# ============================================================================


async def introspect_profile(
    profile_name: str | None = None,
    config: CompareConfig | None = None,
    env_prefix: str = "",
) -> SchemaDeclaration:
    """Read the live schema of a profile's database.

    Raises:
        FileNotFoundError: If db.toml is needed and missing
        ProfileNotFoundError: If the profile cannot be resolved
        psycopg.OperationalError: If the database is unreachable
    """
    config = config or load_config()
    profile_name, profile = get_profile(config, profile_name, env_prefix)

    logger.debug(f"Introspecting profile {profile_name} (schema {profile.schema_name})")

    async with SchemaIntrospector(resolve_url(profile)) as introspector:
        return await introspector.introspect(profile.schema_name)


async def compare_model_to_profile(
    model: Any,
    profile_name: str | None = None,
    config: CompareConfig | None = None,
    env_prefix: str = "",
) -> ComparisonResult:
    """Compare a SQLAlchemy model against a profile's live database.

    Args:
        model: ``"package.module:attribute"`` path, ``MetaData``, declarative
            base, or any ``MetadataSource``.
        profile_name: Profile from db.toml (default: ``{env_prefix}DB_PROFILE``).
        config: Loaded configuration (default: ``load_config()``).
        env_prefix: Prefix for environment variable lookup.

    Returns:
        ComparisonResult using the ``[compare]`` options of *config*.
    """
    config = config or load_config()

    if isinstance(model, str):
        model = load_metadata(model)
    source = model if hasattr(model, "read_schema") else SQLAlchemyModelSource(model)

    actual = await introspect_profile(profile_name, config, env_prefix)
    return validate_schema(source, actual, config.compare)
