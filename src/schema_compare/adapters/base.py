"""Metadata source protocol definition.

Defines the ``MetadataSource`` Protocol accepted by ``build_snapshot()``.
A source turns some external description of a schema (an ORM model, a JSON
file, ...) into a ``SchemaDeclaration``.  Sources are adapters per input;
they never inherit from one another.

Usage:
    from schema_compare.adapters.base import MetadataSource

    def expected_snapshot(source: MetadataSource) -> Snapshot:
        return build_snapshot(source, label="expected")
"""

from pathlib import Path
from typing import Protocol, runtime_checkable

from schema_compare.schema.declarations import SchemaDeclaration, load_declaration


@runtime_checkable
class MetadataSource(Protocol):
    """Source interface that every metadata adapter implements."""

    def read_schema(self) -> SchemaDeclaration:
        """Return everything this source knows about the schema.

        Raises:
            Exception: Any failure; ``build_snapshot()`` wraps it in
                ``AdapterError``.
        """
        ...


class DeclarationFileSource:
    """``MetadataSource`` backed by a ``SchemaDeclaration`` JSON file.

    Example:
        source = DeclarationFileSource("snapshots/actual.json")
        snapshot = build_snapshot(source, label="actual")
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)

    def read_schema(self) -> SchemaDeclaration:
        return load_declaration(self._path)
