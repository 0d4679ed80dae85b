"""Metadata adapter: build canonical snapshots from schema declarations.

Performs a structural copy of a ``SchemaDeclaration`` into the frozen
canonical models.  No renaming and no inference of intent: names, types and
defaults are copied as declared.  Unique constraints become ``IndexSchema``
entries tagged with ``UNIQUE_CONSTRAINT`` provenance so the normalizer can
treat both kinds alike.

Pure logic -- no I/O, no database connections.

Usage:
    from schema_compare.schema.snapshot import build_snapshot

    expected = build_snapshot(SQLAlchemyModelSource(Base.metadata), label="expected")
    actual = build_snapshot(load_declaration("actual.json"), label="actual")
"""

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from schema_compare.schema.declarations import (
    ColumnDeclaration,
    SchemaDeclaration,
    TableDeclaration,
)
from schema_compare.schema.models import (
    ColumnSchema,
    ForeignKeySchema,
    IndexProvenance,
    IndexSchema,
    Snapshot,
    TableSchema,
    UnsupportedFeature,
    name_key,
)

logger = logging.getLogger(__name__)

# Index access methods with a canonical mapping
SUPPORTED_INDEX_TYPES = {"btree", "clustered", "nonclustered"}


class AdapterError(Exception):
    """Raised when a source cannot be materialised into a snapshot."""

    pass


# ============================================================================
# Public API
# ============================================================================


def build_snapshot(
    source: Any,
    *,
    label: str = "snapshot",
    case_sensitive: bool = False,
) -> Snapshot:
    """Build a canonical ``Snapshot`` from one metadata source.

    Args:
        source: A ``SchemaDeclaration``, a mapping in the same shape, or any
            object with a ``read_schema()`` method returning one of those
            (see ``schema_compare.adapters.base.MetadataSource``).
        label: Snapshot label used in reports (``"expected"``/``"actual"``).
        case_sensitive: Whether table and column names are compared
            case-sensitively.

    Returns:
        Frozen ``Snapshot`` with tables ordered by name key.  Provider
        constructs without a canonical mapping are collected in
        ``Snapshot.unsupported`` rather than raised.

    Raises:
        AdapterError: If the source is unreadable or structurally malformed
            (foreign key to an unknown table, index over an undeclared column,
            conflicting duplicate column definitions, ...).
    """
    declaration = _coerce_declaration(source, label)

    grouped: dict[str, list[TableDeclaration]] = {}
    for table_decl in declaration.tables:
        grouped.setdefault(name_key(table_decl.name, case_sensitive), []).append(table_decl)

    tables: list[TableSchema] = []
    unsupported: list[UnsupportedFeature] = []

    for key in sorted(grouped):
        table, issues = _build_table(grouped[key], case_sensitive)
        tables.append(table)
        unsupported.extend(issues)

    _check_references(tables, case_sensitive)

    logger.debug(
        f"Built {label} snapshot: {len(tables)} tables, "
        f"{len(unsupported)} unsupported constructs"
    )

    return Snapshot(
        label=label,
        tables=tuple(tables),
        unsupported=tuple(unsupported),
        case_sensitive=case_sensitive,
    )


def normalize_rule(rule: str | None) -> str:
    """Canonical spelling of a referential action (``set_null`` -> ``SET NULL``)."""
    if not rule:
        return "NO ACTION"
    return " ".join(rule.replace("_", " ").upper().split())


# ============================================================================
# Helpers
# ============================================================================


def _coerce_declaration(source: Any, label: str) -> SchemaDeclaration:
    """Turn *source* into a ``SchemaDeclaration`` or raise ``AdapterError``."""
    if hasattr(source, "read_schema"):
        try:
            source = source.read_schema()
        except Exception as e:
            raise AdapterError(f"Could not read {label} source: {e}") from e

    if isinstance(source, SchemaDeclaration):
        return source

    if isinstance(source, Mapping):
        try:
            return SchemaDeclaration.model_validate(source)
        except ValidationError as e:
            raise AdapterError(f"Malformed {label} source: {e}") from e

    raise AdapterError(
        f"Unreadable {label} source: expected SchemaDeclaration or mapping, "
        f"got {type(source).__name__}"
    )


def _merge_columns(
    table_name: str,
    declarations: list[TableDeclaration],
    case_sensitive: bool,
) -> list[ColumnSchema]:
    """Collect columns of every declaration of one table.

    Several declarations of a table happen when more than one entity is
    mapped onto it.  Identical column definitions collapse; conflicting ones
    make the source unusable.
    """
    seen: dict[str, ColumnDeclaration] = {}
    columns: list[ColumnSchema] = []

    for table_decl in declarations:
        for column in table_decl.columns:
            key = name_key(column.name, case_sensitive)
            previous = seen.get(key)
            if previous is not None:
                if previous.model_dump(exclude={"ordinal"}) != column.model_dump(
                    exclude={"ordinal"}
                ):
                    raise AdapterError(
                        f"Conflicting definitions for column '{table_name}.{column.name}'"
                    )
                continue

            seen[key] = column
            columns.append(
                ColumnSchema(
                    name=column.name,
                    data_type=column.data_type,
                    is_nullable=column.is_nullable,
                    default=column.default,
                    ordinal=column.ordinal if column.ordinal is not None else len(columns) + 1,
                )
            )

    return columns


def _require_columns(
    table_name: str,
    element: str,
    columns: list[str],
    known: set[str],
    case_sensitive: bool,
) -> None:
    if not columns:
        raise AdapterError(f"{element} on '{table_name}' has no columns")
    for column in columns:
        if name_key(column, case_sensitive) not in known:
            raise AdapterError(
                f"{element} on '{table_name}' references unknown column '{column}'"
            )


def _build_table(
    declarations: list[TableDeclaration],
    case_sensitive: bool,
) -> tuple[TableSchema, list[UnsupportedFeature]]:
    """Build one canonical table from all declarations sharing its name."""
    table_name = declarations[0].name
    columns = _merge_columns(table_name, declarations, case_sensitive)
    known = {name_key(c.name, case_sensitive) for c in columns}
    unsupported: list[UnsupportedFeature] = []

    # Primary key
    primary_keys = {tuple(d.primary_key) for d in declarations if d.primary_key}
    if len(primary_keys) > 1:
        raise AdapterError(f"Conflicting primary keys declared for '{table_name}'")
    primary_key = primary_keys.pop() if primary_keys else ()
    if primary_key:
        _require_columns(table_name, "Primary key", list(primary_key), known, case_sensitive)

    indexes: list[IndexSchema] = []
    foreign_keys: list[ForeignKeySchema] = []
    fk_by_identity: dict[tuple, ForeignKeySchema] = {}

    for table_decl in declarations:
        # Indexes
        for index in table_decl.indexes:
            reason = None
            if any(c is None for c in index.columns):
                reason = "expression index"
            elif index.filter:
                reason = f"filtered index ({index.filter})"
            elif index.index_type.lower() not in SUPPORTED_INDEX_TYPES:
                reason = f"{index.index_type} index"

            if reason:
                unsupported.append(
                    UnsupportedFeature(
                        table=table_name, element="index", name=index.name, detail=reason
                    )
                )
                continue

            _require_columns(table_name, "Index", index.columns, known, case_sensitive)
            indexes.append(
                IndexSchema(
                    table=table_name,
                    columns=tuple(index.columns),
                    is_unique=index.is_unique,
                    name=index.name,
                    provenance=IndexProvenance.INDEX,
                )
            )

        # Unique constraints
        for constraint in table_decl.unique_constraints:
            _require_columns(
                table_name, "Unique constraint", constraint.columns, known, case_sensitive
            )
            indexes.append(
                IndexSchema(
                    table=table_name,
                    columns=tuple(constraint.columns),
                    is_unique=True,
                    name=constraint.name,
                    provenance=IndexProvenance.UNIQUE_CONSTRAINT,
                )
            )

        # Foreign keys
        for fk in table_decl.foreign_keys:
            _require_columns(table_name, "Foreign key", fk.columns, known, case_sensitive)
            if len(fk.columns) != len(fk.referenced_columns):
                raise AdapterError(
                    f"Foreign key on '{table_name}' pairs {len(fk.columns)} columns "
                    f"with {len(fk.referenced_columns)} referenced columns"
                )

            foreign_key = ForeignKeySchema(
                table=table_name,
                columns=tuple(fk.columns),
                referenced_table=fk.referenced_table,
                referenced_columns=tuple(fk.referenced_columns),
                name=fk.name,
                on_delete=normalize_rule(fk.on_delete),
                on_update=normalize_rule(fk.on_update),
            )
            identity = foreign_key.identity(case_sensitive)
            seen = fk_by_identity.get(identity)
            if seen is not None:
                if (seen.on_delete, seen.on_update) != (foreign_key.on_delete, foreign_key.on_update):
                    raise AdapterError(
                        f"Conflicting foreign keys declared for '{table_name}' "
                        f"({', '.join(fk.columns)}) -> {fk.referenced_table}"
                    )
                continue
            fk_by_identity[identity] = foreign_key
            foreign_keys.append(foreign_key)

        # Constructs the source already knows it cannot map
        for item in table_decl.unsupported:
            unsupported.append(
                UnsupportedFeature(
                    table=table_name, element=item.element, name=item.name, detail=item.detail
                )
            )

    table = TableSchema(
        name=table_name,
        columns=tuple(columns),
        primary_key=tuple(primary_key),
        indexes=tuple(indexes),
        foreign_keys=tuple(foreign_keys),
    )
    return table, unsupported


def _check_references(tables: list[TableSchema], case_sensitive: bool) -> None:
    """Every foreign key must point at a declared table and columns."""
    by_key = {name_key(t.name, case_sensitive): t for t in tables}

    for table in tables:
        for fk in table.foreign_keys:
            target = by_key.get(name_key(fk.referenced_table, case_sensitive))
            if target is None:
                raise AdapterError(
                    f"Foreign key {table.name}.{fk.label} references unknown table "
                    f"'{fk.referenced_table}'"
                )
            target_columns = {name_key(c.name, case_sensitive) for c in target.columns}
            for column in fk.referenced_columns:
                if name_key(column, case_sensitive) not in target_columns:
                    raise AdapterError(
                        f"Foreign key {table.name}.{fk.label} references unknown column "
                        f"'{target.name}.{column}'"
                    )
