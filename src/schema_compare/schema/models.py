"""Pydantic models for canonical snapshots and comparison results.

This module contains:
- Canonical snapshot models: ColumnSchema, IndexSchema, ForeignKeySchema,
  TableSchema, UnsupportedFeature, Snapshot
- Comparison models: Difference, ComparisonResult

Canonical models are frozen: a snapshot is built once per comparison and
never mutated afterwards.  Raw source shapes live in
schema_compare.schema.declarations.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field


def name_key(name: str, case_sensitive: bool = False) -> str:
    """Return the identity key for a table or column name."""
    return name if case_sensitive else name.casefold()


def columns_key(columns: tuple[str, ...], case_sensitive: bool = False) -> tuple[str, ...]:
    """Return the ordered identity key for a column sequence."""
    return tuple(name_key(c, case_sensitive) for c in columns)


# ============================================================================
# Enumerations
# ============================================================================


class IndexProvenance(str, Enum):
    """Where an index-like construct came from."""

    INDEX = "index"
    UNIQUE_CONSTRAINT = "unique_constraint"


class DifferenceKind(str, Enum):
    MISSING = "missing"
    EXTRA = "extra"
    MISMATCHED = "mismatched"
    UNSUPPORTED = "unsupported"


class ElementKind(str, Enum):
    TABLE = "table"
    COLUMN = "column"
    PRIMARY_KEY = "primary_key"
    INDEX = "index"
    FOREIGN_KEY = "foreign_key"
    UNSUPPORTED = "unsupported"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


# Report and sort order
_ELEMENT_ORDER = {kind: i for i, kind in enumerate(ElementKind)}
_KIND_ORDER = {kind: i for i, kind in enumerate(DifferenceKind)}


# ============================================================================
# Canonical Snapshot Models
# ============================================================================


class ColumnSchema(BaseModel):
    """Schema for a table column.

    Example:
        >>> col = ColumnSchema(name="Title", data_type="varchar")
        >>> col.is_nullable
        True
    """

    model_config = ConfigDict(frozen=True)

    name: str
    data_type: str
    is_nullable: bool = True
    default: str | None = None
    ordinal: int = 0


class IndexSchema(BaseModel):
    """Schema for an index or a unique constraint.

    Two descriptors with the same ordered columns and uniqueness enforce the
    same guarantee, whatever their name or provenance.
    """

    model_config = ConfigDict(frozen=True)

    table: str
    columns: tuple[str, ...]
    is_unique: bool = False
    name: str | None = None
    provenance: IndexProvenance = IndexProvenance.INDEX
    name_is_synthesized: bool = False

    def identity(self, case_sensitive: bool = False) -> tuple[tuple[str, ...], bool]:
        return columns_key(self.columns, case_sensitive), self.is_unique

    @property
    def label(self) -> str:
        """Readable identity, e.g. ``unique(Email)`` or ``index(LastName, FirstName)``."""
        prefix = "unique" if self.is_unique else "index"
        return f"{prefix}({', '.join(self.columns)})"


class ForeignKeySchema(BaseModel):
    """Schema for a foreign key."""

    model_config = ConfigDict(frozen=True)

    table: str
    columns: tuple[str, ...]
    referenced_table: str
    referenced_columns: tuple[str, ...]
    name: str | None = None
    on_delete: str = "NO ACTION"
    on_update: str = "NO ACTION"

    def identity(
        self, case_sensitive: bool = False
    ) -> tuple[str, tuple[str, ...], str, tuple[str, ...]]:
        return (
            name_key(self.table, case_sensitive),
            columns_key(self.columns, case_sensitive),
            name_key(self.referenced_table, case_sensitive),
            columns_key(self.referenced_columns, case_sensitive),
        )

    @property
    def label(self) -> str:
        """Readable identity, e.g. ``fk(AuthorId)->Authors(AuthorId)``."""
        return (
            f"fk({', '.join(self.columns)})->"
            f"{self.referenced_table}({', '.join(self.referenced_columns)})"
        )


class UnsupportedFeature(BaseModel):
    """A provider construct with no canonical mapping."""

    model_config = ConfigDict(frozen=True)

    table: str
    element: str
    name: str | None = None
    detail: str = ""


class TableSchema(BaseModel):
    """Schema for a table."""

    model_config = ConfigDict(frozen=True)

    name: str
    columns: tuple[ColumnSchema, ...] = ()
    primary_key: tuple[str, ...] = ()
    indexes: tuple[IndexSchema, ...] = ()
    foreign_keys: tuple[ForeignKeySchema, ...] = ()

    def column_map(self, case_sensitive: bool = False) -> dict[str, ColumnSchema]:
        return {name_key(c.name, case_sensitive): c for c in self.columns}


class Snapshot(BaseModel):
    """Canonical, source-agnostic description of one schema."""

    model_config = ConfigDict(frozen=True)

    label: str = "snapshot"
    tables: tuple[TableSchema, ...] = ()
    unsupported: tuple[UnsupportedFeature, ...] = ()
    case_sensitive: bool = False

    def table_map(self) -> dict[str, TableSchema]:
        return {name_key(t.name, self.case_sensitive): t for t in self.tables}

    def get_table(self, name: str) -> TableSchema | None:
        return self.table_map().get(name_key(name, self.case_sensitive))


# ============================================================================
# Comparison Result Models
# ============================================================================


class Difference(BaseModel):
    """A single discrepancy between the expected and the actual schema.

    ``name`` is the column name for columns, the readable identity
    (``IndexSchema.label`` / ``ForeignKeySchema.label``) for indexes and
    foreign keys, and ``None`` for tables and primary keys.  ``attribute`` is
    set on MISMATCHED differences only.

    Example:
        >>> diff = Difference(
        ...     kind=DifferenceKind.EXTRA,
        ...     element=ElementKind.COLUMN,
        ...     table="Books",
        ...     name="Price",
        ... )
        >>> diff.path
        'Books.Price'
    """

    model_config = ConfigDict(frozen=True)

    kind: DifferenceKind
    element: ElementKind
    table: str
    name: str | None = None
    attribute: str | None = None
    expected: str | None = None
    actual: str | None = None
    severity: Severity = Severity.ERROR
    source: str | None = None  # snapshot label, UNSUPPORTED only

    @property
    def path(self) -> str:
        """Location of the difference, e.g. ``Users.unique(Email).name``."""
        path = self.table
        if self.element is not ElementKind.TABLE:
            path = f"{path}.{self.name or self.element.value}"
        if self.attribute:
            path = f"{path}.{self.attribute}"
        return path

    @property
    def message(self) -> str:
        element = self.element.value.replace("_", " ")
        if self.kind is DifferenceKind.MISSING:
            return f"Missing {element}: {self.path}"
        if self.kind is DifferenceKind.EXTRA:
            return f"Extra {element}: {self.path}"
        if self.kind is DifferenceKind.UNSUPPORTED:
            return f"Unsupported in {self.source} schema: {self.path} ({self.actual})"
        return f"Mismatched {self.path}: expected {self.expected!r}, found {self.actual!r}"

    def sort_key(self) -> tuple:
        return (
            self.table.casefold(),
            self.table,
            _ELEMENT_ORDER[self.element],
            (self.name or "").casefold(),
            self.attribute or "",
            _KIND_ORDER[self.kind],
            self.source or "",
        )


class ComparisonResult(BaseModel):
    """Result of comparing an expected snapshot against an actual one.

    Example:
        >>> result = ComparisonResult()
        >>> result.is_valid
        True
        >>> result.format_report()
        'Schema valid'
    """

    model_config = ConfigDict(frozen=True)

    differences: tuple[Difference, ...] = Field(default_factory=tuple)

    @computed_field
    @property
    def is_valid(self) -> bool:
        """True when no difference has ERROR severity."""
        return not self.errors

    @property
    def errors(self) -> list[Difference]:
        return [d for d in self.differences if d.severity is Severity.ERROR]

    @property
    def warnings(self) -> list[Difference]:
        return [d for d in self.differences if d.severity is Severity.WARNING]

    @property
    def notes(self) -> list[Difference]:
        return [d for d in self.differences if d.severity is Severity.INFO]

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def exit_code(self) -> int:
        """Process exit code for CI gates (0 valid, 1 invalid)."""
        return 0 if self.is_valid else 1

    def by_table(self) -> dict[str, list[Difference]]:
        """Group differences by table, preserving result order."""
        grouped: dict[str, list[Difference]] = {}
        for diff in self.differences:
            grouped.setdefault(diff.table, []).append(diff)
        return grouped

    def format_report(self) -> str:
        """Format comparison result as human-readable report grouped by table."""
        if not self.differences:
            return "Schema valid"

        if self.is_valid:
            lines = ["Schema valid (with findings):"]
        else:
            lines = [f"Schema comparison failed ({self.error_count} errors):"]

        for table, diffs in self.by_table().items():
            lines.append(f"\n  {table}:")
            for diff in diffs:
                lines.append(f"    [{diff.severity.value.upper()}] {diff.message}")

        return "\n".join(lines)

    def raise_for_differences(self) -> None:
        """Raise ``SchemaMismatchError`` unless the result is valid."""
        if not self.is_valid:
            raise SchemaMismatchError(self)


class SchemaMismatchError(AssertionError):
    """Raised by ``ComparisonResult.raise_for_differences()``."""

    def __init__(self, result: ComparisonResult):
        self.result = result
        super().__init__(result.format_report())
