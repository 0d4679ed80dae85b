"""Pydantic models for raw schema declarations.

Both sides of a comparison arrive in this shape: the code-first model
(``SQLAlchemyModelSource``) and the live database catalog
(``SchemaIntrospector``) each produce a ``SchemaDeclaration``.  The shape
mirrors a catalog scrape, so unique constraints are kept apart from indexes
and foreign keys carry ordered column pairs.

Declarations are plain data and may be serialised to JSON for fixtures,
CI snapshots, or hand-written expectations.

Usage:
    from schema_compare.schema.declarations import load_declaration

    declaration = load_declaration("expected.json")
    declaration.tables[0].name
"""

from pathlib import Path

from pydantic import BaseModel, Field


# ============================================================================
# Element Declarations
# ============================================================================


class ColumnDeclaration(BaseModel):
    """A column as declared by a source.

    Example:
        >>> col = ColumnDeclaration(name="BookId", data_type="int")
        >>> col.is_nullable
        True
    """

    name: str
    data_type: str
    is_nullable: bool = True
    default: str | None = None
    ordinal: int | None = None


class IndexDeclaration(BaseModel):
    """A database index.

    ``columns`` entries are ``None`` for expression members the source could
    not reduce to a column name.
    """

    name: str | None = None
    columns: list[str | None] = Field(default_factory=list)
    is_unique: bool = False
    index_type: str = "btree"
    filter: str | None = None  # partial index predicate


class UniqueConstraintDeclaration(BaseModel):
    """A unique constraint (always enforces uniqueness)."""

    name: str | None = None
    columns: list[str] = Field(default_factory=list)


class ForeignKeyDeclaration(BaseModel):
    """A foreign key; ``columns[i]`` references ``referenced_columns[i]``."""

    name: str | None = None
    columns: list[str] = Field(default_factory=list)
    referenced_table: str
    referenced_columns: list[str] = Field(default_factory=list)
    on_delete: str | None = None
    on_update: str | None = None


class UnsupportedDeclaration(BaseModel):
    """A provider construct the source knows has no canonical mapping."""

    element: str  # e.g. "check_constraint", "trigger", "exclusion_constraint"
    name: str | None = None
    detail: str = ""


class TableDeclaration(BaseModel):
    """A table as declared by a source."""

    name: str
    columns: list[ColumnDeclaration] = Field(default_factory=list)
    primary_key: list[str] = Field(default_factory=list)
    indexes: list[IndexDeclaration] = Field(default_factory=list)
    unique_constraints: list[UniqueConstraintDeclaration] = Field(default_factory=list)
    foreign_keys: list[ForeignKeyDeclaration] = Field(default_factory=list)
    unsupported: list[UnsupportedDeclaration] = Field(default_factory=list)


class SchemaDeclaration(BaseModel):
    """Everything one source knows about a schema."""

    tables: list[TableDeclaration] = Field(default_factory=list)


# ============================================================================
# JSON Files
# ============================================================================


def load_declaration(path: str | Path) -> SchemaDeclaration:
    """Read a ``SchemaDeclaration`` from a JSON file.

    Raises:
        FileNotFoundError: If the file does not exist.
        pydantic.ValidationError: If the JSON does not match the declaration shape.
    """
    declaration_path = Path(path)
    if not declaration_path.exists():
        raise FileNotFoundError(f"Schema declaration not found: {declaration_path}")

    return SchemaDeclaration.model_validate_json(declaration_path.read_text())


def dump_declaration(declaration: SchemaDeclaration, path: str | Path) -> Path:
    """Write *declaration* as indented JSON and return the path written."""
    declaration_path = Path(path)
    declaration_path.parent.mkdir(parents=True, exist_ok=True)
    declaration_path.write_text(declaration.model_dump_json(indent=2) + "\n")
    return declaration_path
