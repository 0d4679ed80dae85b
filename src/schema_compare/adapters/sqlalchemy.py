"""SQLAlchemy model source.

Reads a code-first model (a SQLAlchemy ``MetaData`` or declarative base) into
a ``SchemaDeclaration``:
- column types compiled against a dialect (PostgreSQL by default)
- nullability and server defaults (client-side ``default=`` is not schema);
  an autoincrement integer primary key gets the ``nextval(...)`` default
  PostgreSQL attaches to SERIAL columns
- primary keys
- ``Index`` objects, including ``Column(index=True)``
- ``UniqueConstraint`` objects, including ``Column(unique=True)``
- foreign key constraints with ``ondelete``/``onupdate``

Functional index members, check constraints and types the dialect cannot
compile are flagged as unsupported rather than guessed.

Usage:
    from schema_compare.adapters.sqlalchemy import SQLAlchemyModelSource, load_metadata

    source = SQLAlchemyModelSource(load_metadata("myapp.models:Base"))
    declaration = source.read_schema()
"""

import importlib
import os
import sys
from typing import Any

from sqlalchemy import CheckConstraint, Column, MetaData, Sequence, Table, UniqueConstraint
from sqlalchemy.dialects import postgresql
from sqlalchemy.engine import Dialect
from sqlalchemy.exc import CompileError
from sqlalchemy.schema import DefaultClause

from schema_compare.schema.declarations import (
    ColumnDeclaration,
    ForeignKeyDeclaration,
    IndexDeclaration,
    SchemaDeclaration,
    TableDeclaration,
    UniqueConstraintDeclaration,
    UnsupportedDeclaration,
)


def load_metadata(path: str) -> MetaData:
    """Import ``package.module:attribute`` and return its ``MetaData``.

    The attribute may be a ``MetaData`` or anything with a ``metadata``
    attribute (a declarative base or mapped class). The current directory is
    put on ``sys.path`` first, so a project that is not installed can be
    checked from its root with the ``schema-compare`` console script.

    Raises:
        ValueError: If *path* is not ``module:attribute`` or the attribute
            carries no ``MetaData``.
        ImportError: If the module cannot be imported.
    """
    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Expected 'package.module:attribute', got '{path}'")

    cwd = os.getcwd()
    if cwd not in sys.path:
        sys.path.insert(0, cwd)

    module = importlib.import_module(module_name)
    target = getattr(module, attribute, None)
    if target is None:
        raise ValueError(f"Module '{module_name}' has no attribute '{attribute}'")

    metadata = target if isinstance(target, MetaData) else getattr(target, "metadata", None)
    if not isinstance(metadata, MetaData):
        raise ValueError(f"'{path}' is neither a MetaData nor a declarative base")
    return metadata


def _name(value: Any) -> str | None:
    """Plain string name, or ``None`` for unnamed / deferred names."""
    return str(value) if isinstance(value, str) and value else None


def _constraint_sort_key(constraint: Any) -> tuple[str, list[str]]:
    # Table.constraints is a set
    return _name(constraint.name) or "", [c.name for c in constraint.columns]


class SQLAlchemyModelSource:
    """``MetadataSource`` reading a SQLAlchemy model.

    Args:
        metadata: ``MetaData`` or declarative base.
        dialect: Dialect used to compile column types and defaults
            (default: PostgreSQL).
        excluded_tables: Table names to leave out.
    """

    def __init__(
        self,
        metadata: Any,
        dialect: Dialect | None = None,
        excluded_tables: set[str] | None = None,
    ):
        self._metadata: MetaData = (
            metadata if isinstance(metadata, MetaData) else metadata.metadata
        )
        self._dialect = dialect or postgresql.dialect()
        self._excluded_tables = excluded_tables or set()

    def read_schema(self) -> SchemaDeclaration:
        tables = [
            self._read_table(table)
            for table in sorted(self._metadata.tables.values(), key=lambda t: t.name)
            if table.name not in self._excluded_tables
        ]
        return SchemaDeclaration(tables=tables)

    def _read_table(self, table: Table) -> TableDeclaration:
        declaration = TableDeclaration(name=table.name)

        for ordinal, column in enumerate(table.columns, start=1):
            data_type = self._compile_type(column)
            if data_type is None:
                data_type = type(column.type).__name__
                declaration.unsupported.append(
                    UnsupportedDeclaration(
                        element="column_type",
                        name=column.name,
                        detail=f"{data_type} has no {self._dialect.name} type",
                    )
                )

            declaration.columns.append(
                ColumnDeclaration(
                    name=column.name,
                    data_type=data_type,
                    is_nullable=bool(column.nullable),
                    default=self._server_default(table, column),
                    ordinal=ordinal,
                )
            )

        declaration.primary_key = [c.name for c in table.primary_key.columns]

        for index in sorted(table.indexes, key=lambda i: _name(i.name) or ""):
            declaration.indexes.append(
                IndexDeclaration(
                    name=_name(index.name),
                    columns=[
                        expr.name if isinstance(expr, Column) else None
                        for expr in index.expressions
                    ],
                    is_unique=bool(index.unique),
                    index_type=index.dialect_options["postgresql"].get("using") or "btree",
                    filter=self._index_filter(index),
                )
            )

        unique_constraints = [c for c in table.constraints if isinstance(c, UniqueConstraint)]
        for constraint in sorted(unique_constraints, key=_constraint_sort_key):
            declaration.unique_constraints.append(
                UniqueConstraintDeclaration(
                    name=_name(constraint.name),
                    columns=[c.name for c in constraint.columns],
                )
            )

        for constraint in sorted(table.foreign_key_constraints, key=_constraint_sort_key):
            referenced_table = None
            referenced_columns = []
            for element in constraint.elements:
                target, _, column_name = element.target_fullname.rpartition(".")
                referenced_table = target.rpartition(".")[2]
                referenced_columns.append(column_name)

            declaration.foreign_keys.append(
                ForeignKeyDeclaration(
                    name=_name(constraint.name),
                    columns=[c.name for c in constraint.columns],
                    referenced_table=referenced_table,
                    referenced_columns=referenced_columns,
                    on_delete=constraint.ondelete,
                    on_update=constraint.onupdate,
                )
            )

        checks = [c for c in table.constraints if isinstance(c, CheckConstraint)]
        for constraint in sorted(checks, key=lambda c: _name(c.name) or ""):
            declaration.unsupported.append(
                UnsupportedDeclaration(
                    element="check_constraint",
                    name=_name(constraint.name),
                    detail=f"CHECK ({self._compile_expression(constraint.sqltext)})",
                )
            )

        return declaration

    def _compile_type(self, column: Column) -> str | None:
        try:
            return column.type.compile(dialect=self._dialect)
        except CompileError:
            return None

    def _compile_expression(self, expression: Any) -> str:
        return str(
            expression.compile(dialect=self._dialect, compile_kwargs={"literal_binds": True})
        )

    def _server_default(self, table: Table, column: Column) -> str | None:
        default = column.server_default
        if default is None:
            return self._serial_default(table, column)
        if not isinstance(default, DefaultClause):
            return None
        if isinstance(default.arg, str):
            # Rendered as a string literal in DDL
            return "'" + default.arg.replace("'", "''") + "'"
        return str(default.arg.compile(dialect=self._dialect))

    def _serial_default(self, table: Table, column: Column) -> str | None:
        """Sequence default PostgreSQL creates for a SERIAL primary key.

        SQLAlchemy emits ``SERIAL``/``BIGSERIAL`` for the table's autoincrement
        column unless it carries an ``Identity`` or an explicit ``Sequence``; the
        catalog then reports
        ``nextval('<table>_<column>_seq'::regclass)`` as its default.
        """
        if self._dialect.name != "postgresql" or column.identity is not None:
            return None
        if column is not table.autoincrement_column or isinstance(column.default, Sequence):
            return None
        sequence = f"{table.name}_{column.name}_seq"
        if sequence != sequence.lower():
            sequence = f'"{sequence}"'
        return f"nextval('{sequence}'::regclass)"

    def _index_filter(self, index: Any) -> str | None:
        where = index.dialect_options["postgresql"].get("where")
        if where is None:
            return None
        return str(where.compile(dialect=self._dialect)) if not isinstance(where, str) else where
