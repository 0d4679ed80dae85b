"""Configuration management: profiles, comparison options, TOML loading.

Usage:
    >>> from schema_compare.config import load_config, CompareOptions, DatabaseProfile
"""

from schema_compare.config.loader import load_config
from schema_compare.config.models import CompareConfig, CompareOptions, DatabaseProfile

__all__ = ["load_config", "CompareConfig", "CompareOptions", "DatabaseProfile"]
