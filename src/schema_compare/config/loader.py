"""TOML configuration loader.

Usage:
    from schema_compare.config.loader import load_config

    config = load_config(Path("db.toml"))
    config.compare.ignore_tables
"""

import tomllib
from pathlib import Path

from pydantic import ValidationError

from schema_compare.config.models import CompareConfig, CompareOptions, DatabaseProfile


def load_config(config_path: Path | None = None) -> CompareConfig:
    """Load profiles and comparison options from a TOML file.

    Args:
        config_path: Path to db.toml (default: ``db.toml`` in the current
            working directory).

    Returns:
        CompareConfig with all profiles and the ``[compare]`` options.
        Missing sections fall back to defaults.

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config format is invalid
    """
    if config_path is None:
        config_path = Path.cwd() / "db.toml"

    if not config_path.exists():
        raise FileNotFoundError(
            f"Database config not found: {config_path}\n"
            f"Create db.toml with [profiles.<name>] and optional [compare] tables."
        )

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML in {config_path.name}: {e}") from e

    try:
        profiles = {
            name: DatabaseProfile(**profile_data)
            for name, profile_data in data.get("profiles", {}).items()
        }
        compare = CompareOptions(**data.get("compare", {}))
    except (TypeError, ValidationError) as e:
        raise ValueError(f"Invalid configuration in {config_path.name}: {e}") from e

    return CompareConfig(profiles=profiles, compare=compare)
