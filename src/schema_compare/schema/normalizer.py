"""Index normalization.

Collapses index descriptors that enforce the same guarantee into one
canonical descriptor per table.  A unique index and a unique constraint over
the same ordered columns are the same thing from the model's point of view,
so only one survives.

Rules:
- Identity is ``(ordered column keys, is_unique)``.
- Column order is significant: ``(A, B)`` and ``(B, A)`` stay distinct.
- Unique and non-unique descriptors are never merged.
- The survivor is the first descriptor with an explicit name (plain indexes
  before unique constraints, then by name); when nobody in the group has a
  name one is synthesised and flagged with ``name_is_synthesized``.
- Discarded duplicates are not differences and are not reported.
"""

import logging

from schema_compare.schema.models import (
    IndexProvenance,
    IndexSchema,
    Snapshot,
    TableSchema,
)

logger = logging.getLogger(__name__)


def synthesize_index_name(table: str, columns: tuple[str, ...], is_unique: bool) -> str:
    """Build a stable name for an unnamed index.

    Example:
        >>> synthesize_index_name("Users", ("Email",), True)
        'UX_Users_Email'
    """
    prefix = "UX" if is_unique else "IX"
    return "_".join([prefix, table, *columns])


def _preference(index: IndexSchema) -> tuple:
    return (
        index.name is None,
        index.provenance is not IndexProvenance.INDEX,
        index.name or "",
    )


def normalize_table(table: TableSchema, case_sensitive: bool = False) -> TableSchema:
    """Return *table* with exactly one index per ``(columns, is_unique)`` identity."""
    groups: dict[tuple[tuple[str, ...], bool], list[IndexSchema]] = {}
    for index in table.indexes:
        groups.setdefault(index.identity(case_sensitive), []).append(index)

    indexes: list[IndexSchema] = []
    for identity in sorted(groups):
        candidates = groups[identity]
        survivor = min(candidates, key=_preference)

        if survivor.name is None:
            survivor = survivor.model_copy(
                update={
                    "name": synthesize_index_name(table.name, survivor.columns, survivor.is_unique),
                    "name_is_synthesized": True,
                }
            )

        if len(candidates) > 1:
            logger.debug(
                f"Merged {len(candidates)} equivalent indexes on {table.name} "
                f"into {survivor.name}"
            )
        indexes.append(survivor)

    return table.model_copy(update={"indexes": tuple(indexes)})


def normalize_snapshot(snapshot: Snapshot) -> Snapshot:
    """Normalize the indexes of every table in *snapshot*."""
    tables = tuple(
        normalize_table(table, snapshot.case_sensitive) for table in snapshot.tables
    )
    return snapshot.model_copy(update={"tables": tables})
