"""Pydantic models for comparison configuration."""

from pydantic import BaseModel, ConfigDict, Field


class DatabaseProfile(BaseModel):
    """Database connection profile from db.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    schema_name: str = Field(default="public", alias="schema")

    model_config = ConfigDict(populate_by_name=True)


class CompareOptions(BaseModel):
    """Comparison settings from the ``[compare]`` table of db.toml.

    Example:
        >>> options = CompareOptions()
        >>> options.extra_tables_are_errors
        False
    """

    ignore_tables: list[str] = Field(default_factory=list)
    ignore: list[str] = Field(default_factory=list)  # fnmatch patterns on Difference.path
    case_sensitive: bool = False
    extra_tables_are_errors: bool = False
    report_name_mismatches: bool = True
    compare_column_order: bool = False


class CompareConfig(BaseModel):
    """Complete configuration from db.toml."""

    profiles: dict[str, DatabaseProfile] = Field(default_factory=dict)
    compare: CompareOptions = Field(default_factory=CompareOptions)
