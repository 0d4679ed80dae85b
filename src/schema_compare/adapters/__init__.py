"""Metadata sources: the ``MetadataSource`` Protocol and its implementations.

Usage:
    from schema_compare.adapters import SQLAlchemyModelSource, DeclarationFileSource
"""

from schema_compare.adapters.base import DeclarationFileSource, MetadataSource
from schema_compare.adapters.sqlalchemy import SQLAlchemyModelSource, load_metadata

__all__ = [
    "MetadataSource",
    "DeclarationFileSource",
    "SQLAlchemyModelSource",
    "load_metadata",
]
