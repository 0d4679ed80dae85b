"""Tests for build_snapshot (metadata adapter).

Verifies structural copying, table merging, adapter errors for malformed
sources, and that provider constructs without a canonical mapping are
recorded instead of raised.
"""

import pytest
from pydantic import ValidationError

from schema_compare.schema.declarations import (
    ColumnDeclaration,
    SchemaDeclaration,
    TableDeclaration,
)
from schema_compare.schema.models import IndexProvenance, Snapshot
from schema_compare.schema.snapshot import AdapterError, build_snapshot, normalize_rule


def _books(**overrides) -> dict:
    table = {
        "name": "Books",
        "columns": [
            {"name": "BookId", "data_type": "int", "is_nullable": False},
            {"name": "Title", "data_type": "varchar(200)", "is_nullable": False},
            {"name": "AuthorId", "data_type": "int"},
        ],
        "primary_key": ["BookId"],
    }
    table.update(overrides)
    return table


def _authors() -> dict:
    return {
        "name": "Authors",
        "columns": [{"name": "AuthorId", "data_type": "int", "is_nullable": False}],
        "primary_key": ["AuthorId"],
    }


class _Source:
    """Minimal MetadataSource."""

    def __init__(self, result=None, error: Exception | None = None):
        self._result = result
        self._error = error

    def read_schema(self):
        if self._error:
            raise self._error
        return self._result


# ============================================================================
# Structural copy
# ============================================================================


class TestStructuralCopy:
    """Declarations are copied without renaming or inference."""

    def test_accepts_mapping(self) -> None:
        snapshot = build_snapshot({"tables": [_books()]}, label="expected")

        assert isinstance(snapshot, Snapshot)
        assert snapshot.label == "expected"
        table = snapshot.get_table("Books")
        assert [c.name for c in table.columns] == ["BookId", "Title", "AuthorId"]
        assert table.primary_key == ("BookId",)

    def test_accepts_declaration(self) -> None:
        declaration = SchemaDeclaration(
            tables=[
                TableDeclaration(
                    name="Books",
                    columns=[ColumnDeclaration(name="BookId", data_type="INTEGER")],
                )
            ]
        )

        snapshot = build_snapshot(declaration)

        # Types are copied as declared
        assert snapshot.tables[0].columns[0].data_type == "INTEGER"

    def test_accepts_metadata_source(self) -> None:
        snapshot = build_snapshot(_Source({"tables": [_authors()]}))

        assert [t.name for t in snapshot.tables] == ["Authors"]

    def test_tables_sorted_by_name(self) -> None:
        snapshot = build_snapshot({"tables": [_books(), _authors()]})

        assert [t.name for t in snapshot.tables] == ["Authors", "Books"]

    def test_ordinals_default_to_position(self) -> None:
        snapshot = build_snapshot({"tables": [_books()]})

        assert [c.ordinal for c in snapshot.tables[0].columns] == [1, 2, 3]

    def test_unique_constraint_becomes_index(self) -> None:
        """Unique constraints are unique indexes tagged with their provenance."""
        snapshot = build_snapshot(
            {"tables": [_books(unique_constraints=[{"name": "UQ_Title", "columns": ["Title"]}])]}
        )

        index = snapshot.tables[0].indexes[0]
        assert index.is_unique is True
        assert index.provenance is IndexProvenance.UNIQUE_CONSTRAINT
        assert index.name == "UQ_Title"

    def test_referential_actions_normalized(self) -> None:
        snapshot = build_snapshot(
            {
                "tables": [
                    _authors(),
                    _books(
                        foreign_keys=[
                            {
                                "columns": ["AuthorId"],
                                "referenced_table": "authors",
                                "referenced_columns": ["authorid"],
                                "on_delete": "set_null",
                            }
                        ]
                    ),
                ]
            }
        )

        fk = snapshot.get_table("Books").foreign_keys[0]
        assert fk.on_delete == "SET NULL"
        assert fk.on_update == "NO ACTION"

    def test_snapshot_is_frozen(self) -> None:
        snapshot = build_snapshot({"tables": [_books()]})

        with pytest.raises(ValidationError):
            snapshot.label = "other"

    def test_source_not_mutated(self) -> None:
        """Building twice from the same source gives equal snapshots."""
        source = {"tables": [_books(), _authors()]}

        assert build_snapshot(source) == build_snapshot(source)


class TestNormalizeRule:
    @pytest.mark.parametrize(
        "rule, expected",
        [
            (None, "NO ACTION"),
            ("", "NO ACTION"),
            ("cascade", "CASCADE"),
            ("set_null", "SET NULL"),
            ("SET  DEFAULT", "SET DEFAULT"),
        ],
    )
    def test_spellings(self, rule: str | None, expected: str) -> None:
        assert normalize_rule(rule) == expected


# ============================================================================
# Table splitting
# ============================================================================


class TestTableMerging:
    """Several entities mapped onto one table merge into one canonical table."""

    def test_identical_columns_merge(self) -> None:
        summary = {
            "name": "books",
            "columns": [
                {"name": "BookId", "data_type": "int", "is_nullable": False},
                {"name": "Title", "data_type": "varchar(200)", "is_nullable": False},
            ],
            "primary_key": ["BookId"],
        }

        snapshot = build_snapshot({"tables": [_books(), summary]})

        assert len(snapshot.tables) == 1
        assert [c.name for c in snapshot.tables[0].columns] == ["BookId", "Title", "AuthorId"]

    def test_conflicting_columns_rejected(self) -> None:
        summary = {
            "name": "Books",
            "columns": [{"name": "Title", "data_type": "text", "is_nullable": False}],
        }

        with pytest.raises(AdapterError, match="Conflicting definitions"):
            build_snapshot({"tables": [_books(), summary]})

    def test_conflicting_primary_keys_rejected(self) -> None:
        summary = {
            "name": "Books",
            "columns": [{"name": "Title", "data_type": "varchar(200)", "is_nullable": False}],
            "primary_key": ["Title"],
        }

        with pytest.raises(AdapterError, match="Conflicting primary keys"):
            build_snapshot({"tables": [_books(), summary]})

    def _author_fk(self, on_delete: str) -> dict:
        return {
            "name": "Books",
            "columns": [{"name": "AuthorId", "data_type": "int"}],
            "foreign_keys": [
                {
                    "columns": ["AuthorId"],
                    "referenced_table": "Authors",
                    "referenced_columns": ["AuthorId"],
                    "on_delete": on_delete,
                }
            ],
        }

    def test_identical_foreign_keys_merge(self) -> None:
        snapshot = build_snapshot(
            {"tables": [_authors(), self._author_fk("cascade"), self._author_fk("CASCADE")]}
        )

        books = snapshot.tables[1]
        assert len(books.foreign_keys) == 1
        assert books.foreign_keys[0].on_delete == "CASCADE"

    def test_conflicting_foreign_keys_rejected(self) -> None:
        """Same identity with different referential actions cannot be merged."""
        tables = [_authors(), self._author_fk("CASCADE"), self._author_fk("SET NULL")]

        with pytest.raises(AdapterError, match="Conflicting foreign keys"):
            build_snapshot({"tables": tables})


# ============================================================================
# Adapter errors
# ============================================================================


class TestAdapterErrors:
    """Unreadable or structurally broken sources raise AdapterError."""

    def test_unreadable_source(self) -> None:
        with pytest.raises(AdapterError, match="Unreadable"):
            build_snapshot(["not", "a", "schema"])

    def test_malformed_mapping(self) -> None:
        with pytest.raises(AdapterError, match="Malformed"):
            build_snapshot({"tables": [{"columns": []}]})

    def test_source_failure_wrapped(self) -> None:
        """Exceptions from read_schema become AdapterError with a cause."""
        with pytest.raises(AdapterError, match="Could not read expected source") as exc_info:
            build_snapshot(_Source(error=FileNotFoundError("gone")), label="expected")

        assert isinstance(exc_info.value.__cause__, FileNotFoundError)

    def test_fk_to_unknown_table(self) -> None:
        books = _books(
            foreign_keys=[
                {
                    "columns": ["AuthorId"],
                    "referenced_table": "Authors",
                    "referenced_columns": ["AuthorId"],
                }
            ]
        )

        with pytest.raises(AdapterError, match="unknown table 'Authors'"):
            build_snapshot({"tables": [books]})

    def test_fk_to_unknown_column(self) -> None:
        books = _books(
            foreign_keys=[
                {
                    "columns": ["AuthorId"],
                    "referenced_table": "Authors",
                    "referenced_columns": ["Id"],
                }
            ]
        )

        with pytest.raises(AdapterError, match="unknown column 'Authors.Id'"):
            build_snapshot({"tables": [_authors(), books]})

    def test_fk_column_count_mismatch(self) -> None:
        books = _books(
            foreign_keys=[
                {
                    "columns": ["AuthorId", "BookId"],
                    "referenced_table": "Authors",
                    "referenced_columns": ["AuthorId"],
                }
            ]
        )

        with pytest.raises(AdapterError, match="pairs 2 columns with 1"):
            build_snapshot({"tables": [_authors(), books]})

    def test_index_over_undeclared_column(self) -> None:
        with pytest.raises(AdapterError, match="unknown column 'Isbn'"):
            build_snapshot({"tables": [_books(indexes=[{"columns": ["Isbn"]}])]})

    def test_unique_constraint_over_undeclared_column(self) -> None:
        with pytest.raises(AdapterError, match="Unique constraint"):
            build_snapshot(
                {"tables": [_books(unique_constraints=[{"columns": ["Isbn"]}])]}
            )

    def test_primary_key_over_undeclared_column(self) -> None:
        with pytest.raises(AdapterError, match="Primary key"):
            build_snapshot({"tables": [_books(primary_key=["Id"])]})

    def test_index_without_columns(self) -> None:
        with pytest.raises(AdapterError, match="has no columns"):
            build_snapshot({"tables": [_books(indexes=[{"name": "IX_Empty", "columns": []}])]})


# ============================================================================
# Unsupported constructs
# ============================================================================


class TestUnsupported:
    """Constructs without a canonical mapping are recorded, not raised."""

    @pytest.mark.parametrize(
        "index, detail",
        [
            ({"name": "ix_expr", "columns": ["Title", None]}, "expression index"),
            (
                {"name": "ix_partial", "columns": ["Title"], "filter": "AuthorId IS NOT NULL"},
                "filtered index (AuthorId IS NOT NULL)",
            ),
            ({"name": "ix_gin", "columns": ["Title"], "index_type": "gin"}, "gin index"),
        ],
    )
    def test_index_recorded(self, index: dict, detail: str) -> None:
        snapshot = build_snapshot({"tables": [_books(indexes=[index])]})

        assert snapshot.tables[0].indexes == ()
        feature = snapshot.unsupported[0]
        assert feature.table == "Books"
        assert feature.element == "index"
        assert feature.name == index["name"]
        assert feature.detail == detail

    def test_clustered_index_supported(self) -> None:
        snapshot = build_snapshot(
            {"tables": [_books(indexes=[{"columns": ["Title"], "index_type": "CLUSTERED"}])]}
        )

        assert len(snapshot.tables[0].indexes) == 1
        assert snapshot.unsupported == ()

    def test_declared_unsupported_carried(self) -> None:
        snapshot = build_snapshot(
            {
                "tables": [
                    _books(
                        unsupported=[
                            {
                                "element": "check_constraint",
                                "name": "ck_title",
                                "detail": "CHECK (length(Title) > 0)",
                            }
                        ]
                    )
                ]
            }
        )

        assert snapshot.unsupported[0].element == "check_constraint"
        assert snapshot.unsupported[0].detail == "CHECK (length(Title) > 0)"
