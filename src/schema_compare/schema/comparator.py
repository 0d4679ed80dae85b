"""Schema comparison of canonical snapshots.

Compares an expected snapshot (the code-first model) against an actual
snapshot (the live database catalog) table by table, then column by column,
index by index and foreign key by foreign key.
Pure logic -- no I/O, no database connections.

Matching never relies on object identity or on provider-generated names:
- tables and columns match by name (case-folded unless ``case_sensitive``)
- indexes match by ``(ordered columns, is_unique)``
- foreign keys match by ``(table, ordered columns, referenced table,
  ordered referenced columns)``

Usage:
    from schema_compare.schema.comparator import validate_schema
    from schema_compare.adapters.sqlalchemy import SQLAlchemyModelSource
    from schema_compare.schema.declarations import load_declaration

    result = validate_schema(
        SQLAlchemyModelSource(Base.metadata),
        load_declaration("actual.json"),
    )
    if result.is_valid:
        print("Schema is valid")
    else:
        print(result.format_report())
"""

import logging
import re
from fnmatch import fnmatchcase
from typing import Any

from schema_compare.config.models import CompareOptions
from schema_compare.schema.models import (
    ColumnSchema,
    ComparisonResult,
    Difference,
    DifferenceKind,
    ElementKind,
    Severity,
    Snapshot,
    TableSchema,
    columns_key,
    name_key,
)
from schema_compare.schema.normalizer import normalize_snapshot
from schema_compare.schema.snapshot import build_snapshot

logger = logging.getLogger(__name__)


def validate_schema(
    expected_source: Any,
    actual_source: Any,
    options: CompareOptions | None = None,
) -> ComparisonResult:
    """Build both snapshots and compare them.

    Args:
        expected_source: Source of the expected model (``SchemaDeclaration``,
            mapping, or ``MetadataSource``).
        actual_source: Source of the actual database schema, same shapes.
        options: Comparison settings (defaults to ``CompareOptions()``).

    Returns:
        ``ComparisonResult`` with every difference in deterministic order.

    Raises:
        AdapterError: If either source cannot be materialised.

    Examples:
        >>> books = {"tables": [{"name": "Books", "columns": [
        ...     {"name": "BookId", "data_type": "int", "is_nullable": False}]}]}
        >>> validate_schema(books, books).is_valid
        True
    """
    options = options or CompareOptions()
    expected = build_snapshot(
        expected_source, label="expected", case_sensitive=options.case_sensitive
    )
    actual = build_snapshot(actual_source, label="actual", case_sensitive=options.case_sensitive)
    return compare_snapshots(expected, actual, options)


def compare_snapshots(
    expected: Snapshot,
    actual: Snapshot,
    options: CompareOptions | None = None,
) -> ComparisonResult:
    """Compare two snapshots and return every structural difference.

    Both snapshots are index-normalized first (normalizing twice is a no-op).

    - Missing tables: in *expected* only (error)
    - Extra tables: in *actual* only (warning unless
      ``extra_tables_are_errors``); their contents are not diffed
    - Columns, primary keys, indexes and foreign keys of shared tables
    - Unsupported constructs recorded by the adapter (warning)

    Differences whose path matches an ``options.ignore`` pattern are dropped.
    """
    options = options or CompareOptions()
    case_sensitive = options.case_sensitive
    ignored = {name_key(t, case_sensitive) for t in options.ignore_tables}

    expected = normalize_snapshot(expected)
    actual = normalize_snapshot(actual)

    expected_tables = _table_map(expected, case_sensitive, ignored)
    actual_tables = _table_map(actual, case_sensitive, ignored)

    differences: list[Difference] = []

    for key in sorted(expected_tables.keys() | actual_tables.keys()):
        expected_table = expected_tables.get(key)
        actual_table = actual_tables.get(key)

        if actual_table is None:
            differences.append(
                Difference(
                    kind=DifferenceKind.MISSING,
                    element=ElementKind.TABLE,
                    table=expected_table.name,
                )
            )
        elif expected_table is None:
            differences.append(
                Difference(
                    kind=DifferenceKind.EXTRA,
                    element=ElementKind.TABLE,
                    table=actual_table.name,
                    severity=(
                        Severity.ERROR if options.extra_tables_are_errors else Severity.WARNING
                    ),
                )
            )
        else:
            differences.extend(_compare_table(expected_table, actual_table, options))

    for snapshot in (expected, actual):
        for feature in snapshot.unsupported:
            if name_key(feature.table, case_sensitive) in ignored:
                continue
            label = f"{feature.element}:{feature.name}" if feature.name else feature.element
            differences.append(
                Difference(
                    kind=DifferenceKind.UNSUPPORTED,
                    element=ElementKind.UNSUPPORTED,
                    table=feature.table,
                    name=label,
                    actual=feature.detail,
                    severity=Severity.WARNING,
                    source=snapshot.label,
                )
            )

    if options.ignore:
        patterns = [p.casefold() for p in options.ignore]
        differences = [
            d
            for d in differences
            if not any(fnmatchcase(d.path.casefold(), p) for p in patterns)
        ]

    differences.sort(key=Difference.sort_key)
    result = ComparisonResult(differences=tuple(differences))

    logger.debug(
        f"Compared {len(expected_tables)} expected tables with {len(actual_tables)} "
        f"actual tables: {result.error_count} errors, {len(differences)} differences"
    )
    return result


# ============================================================================
# Per-table comparison
# ============================================================================


def _table_map(
    snapshot: Snapshot, case_sensitive: bool, ignored: set[str]
) -> dict[str, TableSchema]:
    tables: dict[str, TableSchema] = {}
    for table in snapshot.tables:
        key = name_key(table.name, case_sensitive)
        if key not in ignored:
            tables[key] = table
    return tables


def _compare_table(
    expected: TableSchema, actual: TableSchema, options: CompareOptions
) -> list[Difference]:
    differences = _compare_columns(expected, actual, options)
    differences.extend(_compare_primary_key(expected, actual, options.case_sensitive))
    differences.extend(_compare_indexes(expected, actual, options))
    differences.extend(_compare_foreign_keys(expected, actual, options))
    return differences


TYPE_ALIASES = {
    "character varying": "varchar",
    "character": "char",
    "bpchar": "char",
    "integer": "int",
    "int4": "int",
    "int8": "bigint",
    "int2": "smallint",
    "boolean": "bool",
    "timestamp without time zone": "timestamp",
    "timestamp with time zone": "timestamptz",
    "time without time zone": "time",
    "time with time zone": "timetz",
    "double precision": "float8",
    "double": "float8",
    "float": "float8",
    "real": "float4",
    "numeric": "decimal",
}

# FLOAT(p) is stored as real up to 24 binary digits, double precision above
FLOAT4_MAX_PRECISION = 24


def normalize_type(data_type: str) -> str:
    """Canonical spelling of a column type.

    Collapses case and whitespace and maps verbose names to short ones, so
    ``NUMERIC(10, 2)`` equals ``decimal(10,2)`` and ``character varying(200)``
    equals ``VARCHAR(200)``. ``FLOAT`` and ``FLOAT(p)`` resolve to the
    ``float4``/``float8`` type PostgreSQL stores for them.
    """
    collapsed = " ".join(data_type.split()).casefold()
    collapsed = re.sub(r"\s*([(),])\s*", r"\1", collapsed)

    suffix = ""
    while collapsed.endswith("[]"):
        collapsed = collapsed[:-2]
        suffix += "[]"

    base, paren, modifiers = collapsed.partition("(")
    base = base.strip()
    if base == "float" and modifiers.rstrip(")").isdigit():
        precision = int(modifiers.rstrip(")"))
        return ("float4" if precision <= FLOAT4_MAX_PRECISION else "float8") + suffix
    base = TYPE_ALIASES.get(base, base)
    return f"{base}{paren}{modifiers}{suffix}"


def normalize_default(default: str | None) -> str | None:
    """Strip whitespace, redundant outer parentheses and trailing casts.

    ``((0))`` -> ``0`` and ``'draft'::character varying`` -> ``'draft'``.
    """
    if default is None:
        return None
    value = default.strip()
    while value.startswith("(") and value.endswith(")") and _wraps(value):
        value = value[1:-1].strip()
    return re.sub(r"::[\w ]+(\[\])?$", "", value)


def _wraps(value: str) -> bool:
    """True when the first character's parenthesis closes at the last character."""
    depth = 0
    for i, char in enumerate(value):
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0 and i != len(value) - 1:
                return False
    return depth == 0


def _nullability(column: ColumnSchema) -> str:
    return "NULL" if column.is_nullable else "NOT NULL"


def _compare_columns(
    expected: TableSchema, actual: TableSchema, options: CompareOptions
) -> list[Difference]:
    expected_columns = expected.column_map(options.case_sensitive)
    actual_columns = actual.column_map(options.case_sensitive)
    differences: list[Difference] = []

    for key in sorted(expected_columns.keys() | actual_columns.keys()):
        expected_col = expected_columns.get(key)
        actual_col = actual_columns.get(key)

        if actual_col is None:
            differences.append(
                Difference(
                    kind=DifferenceKind.MISSING,
                    element=ElementKind.COLUMN,
                    table=expected.name,
                    name=expected_col.name,
                    expected=expected_col.data_type,
                )
            )
            continue

        if expected_col is None:
            differences.append(
                Difference(
                    kind=DifferenceKind.EXTRA,
                    element=ElementKind.COLUMN,
                    table=expected.name,
                    name=actual_col.name,
                    actual=actual_col.data_type,
                )
            )
            continue

        mismatches: list[tuple[str, str | None, str | None]] = []
        if normalize_type(expected_col.data_type) != normalize_type(actual_col.data_type):
            mismatches.append(("data_type", expected_col.data_type, actual_col.data_type))
        if expected_col.is_nullable != actual_col.is_nullable:
            mismatches.append(
                ("is_nullable", _nullability(expected_col), _nullability(actual_col))
            )
        if normalize_default(expected_col.default) != normalize_default(actual_col.default):
            mismatches.append(("default", expected_col.default, actual_col.default))
        if options.compare_column_order and expected_col.ordinal != actual_col.ordinal:
            mismatches.append(
                ("ordinal", str(expected_col.ordinal), str(actual_col.ordinal))
            )

        for attribute, expected_value, actual_value in mismatches:
            differences.append(
                Difference(
                    kind=DifferenceKind.MISMATCHED,
                    element=ElementKind.COLUMN,
                    table=expected.name,
                    name=expected_col.name,
                    attribute=attribute,
                    expected=expected_value,
                    actual=actual_value,
                )
            )

    return differences


def _compare_primary_key(
    expected: TableSchema, actual: TableSchema, case_sensitive: bool
) -> list[Difference]:
    if columns_key(expected.primary_key, case_sensitive) == columns_key(
        actual.primary_key, case_sensitive
    ):
        return []

    if not actual.primary_key:
        kind = DifferenceKind.MISSING
    elif not expected.primary_key:
        kind = DifferenceKind.EXTRA
    else:
        kind = DifferenceKind.MISMATCHED

    return [
        Difference(
            kind=kind,
            element=ElementKind.PRIMARY_KEY,
            table=expected.name,
            attribute="columns" if kind is DifferenceKind.MISMATCHED else None,
            expected=", ".join(expected.primary_key) or None,
            actual=", ".join(actual.primary_key) or None,
        )
    ]


def _names_differ(
    expected_name: str | None,
    actual_name: str | None,
    case_sensitive: bool,
) -> bool:
    if expected_name is None or actual_name is None:
        return False
    return name_key(expected_name, case_sensitive) != name_key(actual_name, case_sensitive)


def _compare_indexes(
    expected: TableSchema, actual: TableSchema, options: CompareOptions
) -> list[Difference]:
    case_sensitive = options.case_sensitive
    expected_indexes = {i.identity(case_sensitive): i for i in expected.indexes}
    actual_indexes = {i.identity(case_sensitive): i for i in actual.indexes}
    differences: list[Difference] = []

    for identity in sorted(expected_indexes.keys() | actual_indexes.keys()):
        expected_index = expected_indexes.get(identity)
        actual_index = actual_indexes.get(identity)

        if actual_index is None:
            differences.append(
                Difference(
                    kind=DifferenceKind.MISSING,
                    element=ElementKind.INDEX,
                    table=expected.name,
                    name=expected_index.label,
                    expected=expected_index.name,
                )
            )
        elif expected_index is None:
            differences.append(
                Difference(
                    kind=DifferenceKind.EXTRA,
                    element=ElementKind.INDEX,
                    table=expected.name,
                    name=actual_index.label,
                    actual=actual_index.name,
                )
            )
        elif options.report_name_mismatches and _names_differ(
            None if expected_index.name_is_synthesized else expected_index.name,
            None if actual_index.name_is_synthesized else actual_index.name,
            case_sensitive,
        ):
            differences.append(
                Difference(
                    kind=DifferenceKind.MISMATCHED,
                    element=ElementKind.INDEX,
                    table=expected.name,
                    name=expected_index.label,
                    attribute="name",
                    expected=expected_index.name,
                    actual=actual_index.name,
                    severity=Severity.INFO,
                )
            )

    return differences


def _compare_foreign_keys(
    expected: TableSchema, actual: TableSchema, options: CompareOptions
) -> list[Difference]:
    case_sensitive = options.case_sensitive
    expected_keys = {fk.identity(case_sensitive): fk for fk in expected.foreign_keys}
    actual_keys = {fk.identity(case_sensitive): fk for fk in actual.foreign_keys}
    differences: list[Difference] = []

    for identity in sorted(expected_keys.keys() | actual_keys.keys()):
        expected_fk = expected_keys.get(identity)
        actual_fk = actual_keys.get(identity)

        if actual_fk is None:
            differences.append(
                Difference(
                    kind=DifferenceKind.MISSING,
                    element=ElementKind.FOREIGN_KEY,
                    table=expected.name,
                    name=expected_fk.label,
                    expected=expected_fk.name,
                )
            )
            continue

        if expected_fk is None:
            differences.append(
                Difference(
                    kind=DifferenceKind.EXTRA,
                    element=ElementKind.FOREIGN_KEY,
                    table=expected.name,
                    name=actual_fk.label,
                    actual=actual_fk.name,
                )
            )
            continue

        for attribute in ("on_delete", "on_update"):
            expected_value = getattr(expected_fk, attribute)
            actual_value = getattr(actual_fk, attribute)
            if expected_value != actual_value:
                differences.append(
                    Difference(
                        kind=DifferenceKind.MISMATCHED,
                        element=ElementKind.FOREIGN_KEY,
                        table=expected.name,
                        name=expected_fk.label,
                        attribute=attribute,
                        expected=expected_value,
                        actual=actual_value,
                    )
                )

        if options.report_name_mismatches and _names_differ(
            expected_fk.name, actual_fk.name, case_sensitive
        ):
            differences.append(
                Difference(
                    kind=DifferenceKind.MISMATCHED,
                    element=ElementKind.FOREIGN_KEY,
                    table=expected.name,
                    name=expected_fk.label,
                    attribute="name",
                    expected=expected_fk.name,
                    actual=actual_fk.name,
                    severity=Severity.INFO,
                )
            )

    return differences
