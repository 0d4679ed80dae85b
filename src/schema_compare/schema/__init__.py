"""Schema snapshots, index normalization, comparison, and introspection.

Provides the comparison pipeline (``build_snapshot``, ``normalize_snapshot``,
``compare_snapshots``, ``validate_schema``), the canonical models, and the
PostgreSQL catalog reader (``SchemaIntrospector``).

Usage:
    from schema_compare.schema import validate_schema, build_snapshot
    from schema_compare.schema import SchemaIntrospector
"""

from schema_compare.schema.comparator import compare_snapshots, validate_schema
from schema_compare.schema.declarations import (
    ColumnDeclaration,
    ForeignKeyDeclaration,
    IndexDeclaration,
    SchemaDeclaration,
    TableDeclaration,
    UniqueConstraintDeclaration,
    UnsupportedDeclaration,
    dump_declaration,
    load_declaration,
)
from schema_compare.schema.introspector import SchemaIntrospector
from schema_compare.schema.models import (
    ColumnSchema,
    ComparisonResult,
    Difference,
    DifferenceKind,
    ElementKind,
    ForeignKeySchema,
    IndexProvenance,
    IndexSchema,
    SchemaMismatchError,
    Severity,
    Snapshot,
    TableSchema,
    UnsupportedFeature,
)
from schema_compare.schema.normalizer import normalize_snapshot, normalize_table
from schema_compare.schema.snapshot import AdapterError, build_snapshot

__all__ = [
    "validate_schema",
    "compare_snapshots",
    "build_snapshot",
    "normalize_snapshot",
    "normalize_table",
    "AdapterError",
    "SchemaIntrospector",
    "SchemaDeclaration",
    "TableDeclaration",
    "ColumnDeclaration",
    "IndexDeclaration",
    "UniqueConstraintDeclaration",
    "ForeignKeyDeclaration",
    "UnsupportedDeclaration",
    "load_declaration",
    "dump_declaration",
    "Snapshot",
    "TableSchema",
    "ColumnSchema",
    "IndexSchema",
    "IndexProvenance",
    "ForeignKeySchema",
    "UnsupportedFeature",
    "Difference",
    "DifferenceKind",
    "ElementKind",
    "Severity",
    "ComparisonResult",
    "SchemaMismatchError",
]
