"""schema-compare: check a code-first model against a live database schema.

Builds canonical snapshots of the expected model and the actual database,
collapses equivalent indexes and unique constraints, and reports every
structural difference in a deterministic order.

Usage:
    from schema_compare import validate_schema, SQLAlchemyModelSource
    from schema_compare import load_declaration

    result = validate_schema(
        SQLAlchemyModelSource(Base.metadata),
        load_declaration("actual.json"),
    )
    result.raise_for_differences()
"""

__version__ = "0.1.0"

# Sources
from schema_compare.adapters.base import DeclarationFileSource, MetadataSource
from schema_compare.adapters.sqlalchemy import SQLAlchemyModelSource, load_metadata

# Config
from schema_compare.config.loader import load_config
from schema_compare.config.models import CompareConfig, CompareOptions, DatabaseProfile

# Factory
from schema_compare.factory import (
    ProfileNotFoundError,
    compare_model_to_profile,
    introspect_profile,
    resolve_url,
)

# Schema
from schema_compare.schema.comparator import compare_snapshots, validate_schema
from schema_compare.schema.declarations import (
    SchemaDeclaration,
    dump_declaration,
    load_declaration,
)
from schema_compare.schema.models import (
    ComparisonResult,
    Difference,
    DifferenceKind,
    ElementKind,
    SchemaMismatchError,
    Severity,
    Snapshot,
)
from schema_compare.schema.normalizer import normalize_snapshot
from schema_compare.schema.snapshot import AdapterError, build_snapshot

__all__ = [
    # Sources
    "MetadataSource",
    "DeclarationFileSource",
    "SQLAlchemyModelSource",
    "load_metadata",
    # Config
    "load_config",
    "CompareConfig",
    "CompareOptions",
    "DatabaseProfile",
    # Factory
    "compare_model_to_profile",
    "introspect_profile",
    "resolve_url",
    "ProfileNotFoundError",
    # Schema
    "validate_schema",
    "compare_snapshots",
    "build_snapshot",
    "normalize_snapshot",
    "AdapterError",
    "SchemaDeclaration",
    "load_declaration",
    "dump_declaration",
    "Snapshot",
    "ComparisonResult",
    "Difference",
    "DifferenceKind",
    "ElementKind",
    "Severity",
    "SchemaMismatchError",
]
