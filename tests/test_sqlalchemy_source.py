"""Tests for SQLAlchemyModelSource and load_metadata.

Builds small SQLAlchemy models in memory (Core tables and a declarative base)
and checks the declarations they produce, then runs a model through the full
comparison against a catalog-shaped declaration.
"""

import os
import sys
import types

import pytest
from sqlalchemy import (
    CheckConstraint,
    Column,
    Float,
    ForeignKey,
    Identity,
    Index,
    Integer,
    MetaData,
    Sequence,
    String,
    Table,
    Text,
    func,
)
from sqlalchemy.dialects.mssql import UNIQUEIDENTIFIER
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from schema_compare.adapters.base import MetadataSource
from schema_compare.adapters.sqlalchemy import SQLAlchemyModelSource, load_metadata
from schema_compare.schema.comparator import validate_schema
from schema_compare.schema.snapshot import build_snapshot


def _library_metadata() -> MetaData:
    metadata = MetaData()
    Table(
        "authors",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("name", String(100), nullable=False),
        Column("rating", Float),
    )
    Table(
        "books",
        metadata,
        Column("id", Integer, primary_key=True),
        Column("title", String(200), nullable=False, index=True),
        Column("isbn", String(13), unique=True),
        Column("author_id", Integer, ForeignKey("authors.id", ondelete="CASCADE"), nullable=False),
        Column("status", String(20), nullable=False, server_default="draft"),
        Index("ix_books_author_status", "author_id", "status"),
    )
    return metadata


def _table(declaration, name: str):
    return next(t for t in declaration.tables if t.name == name)


# ============================================================================
# Core tables
# ============================================================================


class TestReadSchema:
    """SQLAlchemyModelSource.read_schema() on Core tables."""

    def test_is_metadata_source(self) -> None:
        assert isinstance(SQLAlchemyModelSource(MetaData()), MetadataSource)

    def test_tables_sorted(self) -> None:
        declaration = SQLAlchemyModelSource(_library_metadata()).read_schema()

        assert [t.name for t in declaration.tables] == ["authors", "books"]

    def test_columns(self) -> None:
        books = _table(SQLAlchemyModelSource(_library_metadata()).read_schema(), "books")

        columns = {c.name: c for c in books.columns}
        assert [c.name for c in books.columns] == ["id", "title", "isbn", "author_id", "status"]
        assert columns["title"].data_type == "VARCHAR(200)"
        assert columns["title"].is_nullable is False
        assert columns["isbn"].is_nullable is True
        assert columns["id"].data_type == "INTEGER"
        assert columns["status"].ordinal == 5

    def test_server_default_quoted(self) -> None:
        books = _table(SQLAlchemyModelSource(_library_metadata()).read_schema(), "books")

        status = next(c for c in books.columns if c.name == "status")
        assert status.default == "'draft'"

    def test_client_default_ignored(self) -> None:
        """Python-side defaults are not part of the schema."""
        metadata = MetaData()
        Table("t", metadata, Column("n", Integer, default=5))

        column = SQLAlchemyModelSource(metadata).read_schema().tables[0].columns[0]

        assert column.default is None

    def test_serial_primary_key_default(self) -> None:
        """An autoincrement integer key carries the SERIAL sequence default."""
        books = _table(SQLAlchemyModelSource(_library_metadata()).read_schema(), "books")

        columns = {c.name: c for c in books.columns}
        assert columns["id"].default == "nextval('books_id_seq'::regclass)"
        assert columns["author_id"].default is None

    def test_serial_default_quotes_mixed_case(self) -> None:
        metadata = MetaData()
        Table("Books", metadata, Column("BookId", Integer, primary_key=True))

        column = SQLAlchemyModelSource(metadata).read_schema().tables[0].columns[0]

        assert column.default == "nextval('\"Books_BookId_seq\"'::regclass)"

    @pytest.mark.parametrize(
        "key",
        [
            lambda: Column("id", Integer, Identity(), primary_key=True),
            lambda: Column("id", Integer, primary_key=True, autoincrement=False),
            lambda: Column("id", String(36), primary_key=True),
            lambda: Column("id", Integer, Sequence("t_ids"), primary_key=True),
        ],
        ids=["identity", "autoincrement-off", "string-key", "explicit-sequence"],
    )
    def test_no_serial_default(self, key) -> None:
        metadata = MetaData()
        Table("t", metadata, key())

        column = SQLAlchemyModelSource(metadata).read_schema().tables[0].columns[0]

        assert column.default is None

    def test_float_type(self) -> None:
        authors = _table(SQLAlchemyModelSource(_library_metadata()).read_schema(), "authors")

        rating = next(c for c in authors.columns if c.name == "rating")
        assert rating.data_type == "FLOAT"

    def test_primary_key(self) -> None:
        books = _table(SQLAlchemyModelSource(_library_metadata()).read_schema(), "books")

        assert books.primary_key == ["id"]

    def test_indexes(self) -> None:
        """Column(index=True) and Index() both become index declarations."""
        books = _table(SQLAlchemyModelSource(_library_metadata()).read_schema(), "books")

        columns = sorted(tuple(i.columns) for i in books.indexes)
        assert columns == [("author_id", "status"), ("title",)]
        assert all(i.index_type == "btree" and not i.is_unique for i in books.indexes)

    def test_unique_constraint(self) -> None:
        """Column(unique=True) becomes an unnamed unique constraint."""
        books = _table(SQLAlchemyModelSource(_library_metadata()).read_schema(), "books")

        assert len(books.unique_constraints) == 1
        assert books.unique_constraints[0].columns == ["isbn"]
        assert books.unique_constraints[0].name is None

    def test_foreign_key(self) -> None:
        books = _table(SQLAlchemyModelSource(_library_metadata()).read_schema(), "books")

        fk = books.foreign_keys[0]
        assert fk.columns == ["author_id"]
        assert fk.referenced_table == "authors"
        assert fk.referenced_columns == ["id"]
        assert fk.on_delete == "CASCADE"
        assert fk.on_update is None

    def test_excluded_tables(self) -> None:
        source = SQLAlchemyModelSource(_library_metadata(), excluded_tables={"authors"})

        assert [t.name for t in source.read_schema().tables] == ["books"]


class TestUnsupportedConstructs:
    """Constructs with no canonical mapping are flagged."""

    def test_expression_index(self) -> None:
        metadata = MetaData()
        users = Table("users", metadata, Column("email", Text))
        Index("ix_users_lower_email", func.lower(users.c.email), unique=True)

        snapshot = build_snapshot(SQLAlchemyModelSource(metadata))

        assert snapshot.tables[0].indexes == ()
        assert snapshot.unsupported[0].name == "ix_users_lower_email"
        assert snapshot.unsupported[0].detail == "expression index"

    def test_gin_index(self) -> None:
        metadata = MetaData()
        Table(
            "docs",
            metadata,
            Column("body", Text),
            Index("ix_docs_body", "body", postgresql_using="gin"),
        )

        declaration = SQLAlchemyModelSource(metadata).read_schema()

        assert declaration.tables[0].indexes[0].index_type == "gin"
        assert build_snapshot(declaration).unsupported[0].detail == "gin index"

    def test_partial_index(self) -> None:
        metadata = MetaData()
        orders = Table("orders", metadata, Column("id", Integer), Column("status", Text))
        Index("ix_open", orders.c.id, postgresql_where=orders.c.status == "open")

        index = SQLAlchemyModelSource(metadata).read_schema().tables[0].indexes[0]

        assert index.filter is not None
        assert "status" in index.filter

    def test_uncompilable_type(self) -> None:
        """A type the dialect cannot render is recorded, not raised."""
        metadata = MetaData()
        Table("legacy", metadata, Column("guid", UNIQUEIDENTIFIER))

        table = SQLAlchemyModelSource(metadata).read_schema().tables[0]

        assert table.columns[0].data_type == "UNIQUEIDENTIFIER"
        assert table.unsupported[0].element == "column_type"
        assert table.unsupported[0].name == "guid"

    def test_check_constraint(self) -> None:
        metadata = MetaData()
        Table(
            "products",
            metadata,
            Column("price", Integer),
            CheckConstraint("price > 0", name="ck_products_price"),
        )

        table = SQLAlchemyModelSource(metadata).read_schema().tables[0]

        assert len(table.unsupported) == 1
        check = table.unsupported[0]
        assert check.element == "check_constraint"
        assert check.name == "ck_products_price"
        assert check.detail == "CHECK (price > 0)"


# ============================================================================
# Declarative models
# ============================================================================


class Base(DeclarativeBase):
    pass


class Author(Base):
    __tablename__ = "authors"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(256), unique=True)
    bio: Mapped[str | None] = mapped_column(Text)


class TestDeclarativeBase:
    def test_reads_base(self) -> None:
        declaration = SQLAlchemyModelSource(Base).read_schema()

        authors = declaration.tables[0]
        nullability = {c.name: c.is_nullable for c in authors.columns}
        assert nullability == {"id": False, "email": False, "bio": True}
        assert authors.unique_constraints[0].columns == ["email"]


class TestLoadMetadata:
    """load_metadata('module:attribute')."""

    @pytest.fixture
    def models_module(self, monkeypatch: pytest.MonkeyPatch) -> types.ModuleType:
        module = types.ModuleType("library_models")
        module.Base = Base
        module.metadata = _library_metadata()
        module.not_metadata = 42
        monkeypatch.setitem(sys.modules, "library_models", module)
        return module

    def test_declarative_base(self, models_module: types.ModuleType) -> None:
        assert load_metadata("library_models:Base") is Base.metadata

    def test_metadata(self, models_module: types.ModuleType) -> None:
        assert load_metadata("library_models:metadata") is models_module.metadata

    def test_bad_format(self) -> None:
        with pytest.raises(ValueError, match="module:attribute"):
            load_metadata("library_models.Base")

    def test_missing_attribute(self, models_module: types.ModuleType) -> None:
        with pytest.raises(ValueError, match="has no attribute"):
            load_metadata("library_models:Missing")

    def test_not_metadata(self, models_module: types.ModuleType) -> None:
        with pytest.raises(ValueError, match="neither"):
            load_metadata("library_models:not_metadata")

    def test_missing_module(self) -> None:
        with pytest.raises(ImportError):
            load_metadata("no_such_module_here:Base")

    def test_imports_from_working_directory(
        self, tmp_path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A project module in the current directory loads without installing it."""
        (tmp_path / "shelf_models.py").write_text(
            "from sqlalchemy import Column, Integer, MetaData, Table\n"
            "metadata = MetaData()\n"
            "Table('shelves', metadata, Column('id', Integer, primary_key=True))\n"
        )
        monkeypatch.chdir(tmp_path)
        cwd = os.getcwd()
        monkeypatch.setattr(sys, "path", [p for p in sys.path if p not in ("", cwd)])
        monkeypatch.delitem(sys.modules, "shelf_models", raising=False)

        metadata = load_metadata("shelf_models:metadata")

        assert list(metadata.tables) == ["shelves"]
        assert sys.path[0] == cwd
        sys.modules.pop("shelf_models", None)


# ============================================================================
# End to end
# ============================================================================


class TestModelAgainstCatalog:
    """A model compared with the catalog PostgreSQL would report for it."""

    def _catalog(self) -> dict:
        return {
            "tables": [
                {
                    "name": "authors",
                    "columns": [
                        {
                            "name": "id",
                            "data_type": "integer",
                            "is_nullable": False,
                            "default": "nextval('authors_id_seq'::regclass)",
                        },
                        {"name": "name", "data_type": "character varying(100)", "is_nullable": False},
                        {"name": "rating", "data_type": "double precision"},
                    ],
                    "primary_key": ["id"],
                },
                {
                    "name": "books",
                    "columns": [
                        {
                            "name": "id",
                            "data_type": "integer",
                            "is_nullable": False,
                            "default": "nextval('books_id_seq'::regclass)",
                        },
                        {"name": "title", "data_type": "character varying(200)", "is_nullable": False},
                        {"name": "isbn", "data_type": "character varying(13)"},
                        {"name": "author_id", "data_type": "integer", "is_nullable": False},
                        {
                            "name": "status",
                            "data_type": "character varying(20)",
                            "is_nullable": False,
                            "default": "'draft'::character varying",
                        },
                    ],
                    "primary_key": ["id"],
                    "indexes": [
                        {"name": "books_isbn_key", "columns": ["isbn"], "is_unique": True},
                        {"name": "ix_books_author_status", "columns": ["author_id", "status"]},
                        {"name": "ix_books_title", "columns": ["title"]},
                    ],
                    "unique_constraints": [{"name": "books_isbn_key", "columns": ["isbn"]}],
                    "foreign_keys": [
                        {
                            "name": "books_author_id_fkey",
                            "columns": ["author_id"],
                            "referenced_table": "authors",
                            "referenced_columns": ["id"],
                            "on_delete": "CASCADE",
                            "on_update": "NO ACTION",
                        }
                    ],
                },
            ]
        }

    def test_matching_catalog_is_valid(self) -> None:
        """Spelling differences between model and catalog are not drift."""
        result = validate_schema(SQLAlchemyModelSource(_library_metadata()), self._catalog())

        assert result.is_valid is True
        assert result.errors == []
        assert result.warnings == []

    def test_drift_detected(self) -> None:
        catalog = self._catalog()
        books = catalog["tables"][1]
        books["columns"].append({"name": "price", "data_type": "numeric(10,2)"})
        books["foreign_keys"][0]["on_delete"] = "NO ACTION"

        result = validate_schema(SQLAlchemyModelSource(_library_metadata()), catalog)

        assert result.is_valid is False
        assert [d.path for d in result.errors] == [
            "books.price",
            "books.fk(author_id)->authors(id).on_delete",
        ]

    def test_key_without_sequence_is_drift(self) -> None:
        """A catalog key with no sequence default does not match a SERIAL model key."""
        catalog = self._catalog()
        del catalog["tables"][1]["columns"][0]["default"]

        result = validate_schema(SQLAlchemyModelSource(_library_metadata()), catalog)

        assert [d.path for d in result.errors] == ["books.id.default"]

    def test_check_constraint_seen_on_both_sides(self) -> None:
        metadata = _library_metadata()
        metadata.tables["authors"].append_constraint(
            CheckConstraint("rating >= 0", name="ck_authors_rating")
        )
        catalog = self._catalog()
        catalog["tables"][0]["unsupported"] = [
            {
                "element": "check_constraint",
                "name": "ck_authors_rating",
                "detail": "CHECK ((rating >= (0)::double precision))",
            }
        ]

        result = validate_schema(SQLAlchemyModelSource(metadata), catalog)

        assert result.is_valid is True
        assert sorted(d.source for d in result.warnings) == ["actual", "expected"]
        assert {d.name for d in result.warnings} == {"check_constraint:ck_authors_rating"}
