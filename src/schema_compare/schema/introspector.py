"""PostgreSQL catalog reader.

Queries pg_catalog of a live database and returns a ``SchemaDeclaration``:
- Tables, columns, formatted data types, nullability, defaults
- Primary keys (ordered)
- Indexes (name, ordered key columns, uniqueness, access method, predicate)
- Unique constraints, kept apart from their backing indexes
- Foreign keys (ordered column pairs, delete/update rules)
- Check and exclusion constraints, flagged as unsupported

Uses psycopg (v3) async connections.  This module is the only part of the
package that talks to a database; the comparison engine consumes its output.

Usage:
    async with SchemaIntrospector(database_url) as introspector:
        declaration = await introspector.introspect()

    result = validate_schema(SQLAlchemyModelSource(Base), declaration)
"""

import logging

import psycopg
from psycopg import AsyncConnection

from schema_compare.schema.comparator import normalize_type
from schema_compare.schema.declarations import (
    ColumnDeclaration,
    ForeignKeyDeclaration,
    IndexDeclaration,
    SchemaDeclaration,
    TableDeclaration,
    UniqueConstraintDeclaration,
    UnsupportedDeclaration,
)

logger = logging.getLogger(__name__)

# pg_constraint.confdeltype / confupdtype codes
FK_ACTIONS = {
    "a": "NO ACTION",
    "r": "RESTRICT",
    "c": "CASCADE",
    "n": "SET NULL",
    "d": "SET DEFAULT",
}

# pg_constraint.contype codes with no canonical mapping
UNSUPPORTED_CONSTRAINTS = {
    "c": "check_constraint",
    "x": "exclusion_constraint",
}


class SchemaIntrospector:
    """Introspects a PostgreSQL database schema.

    Works with any PostgreSQL database (RDS, Supabase, local).

    Usage:
        async with SchemaIntrospector(database_url) as introspector:
            declaration = await introspector.introspect("public")
    """

    # Tables excluded unless the caller passes its own set
    EXCLUDED_TABLES_DEFAULT = {
        "schema_migrations",
        "pg_stat_statements",
        "spatial_ref_sys",
    }

    def __init__(
        self,
        database_url: str,
        excluded_tables: set[str] | None = None,
        connect_timeout: int = 10,
    ):
        """Initialize with database connection URL.

        Args:
            database_url: PostgreSQL connection URL
            excluded_tables: Table names to skip (default: EXCLUDED_TABLES_DEFAULT)
            connect_timeout: Connection timeout in seconds
        """
        self._database_url = database_url
        self._excluded_tables = (
            set(self.EXCLUDED_TABLES_DEFAULT) if excluded_tables is None else excluded_tables
        )
        self._connect_timeout = connect_timeout
        self._conn: AsyncConnection | None = None

    async def __aenter__(self) -> "SchemaIntrospector":
        """Async context manager entry - opens connection."""
        self._conn = await psycopg.AsyncConnection.connect(
            self._database_url,
            connect_timeout=self._connect_timeout,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit - closes connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _require_connection(self) -> AsyncConnection:
        if not self._conn:
            raise RuntimeError("Introspector not connected. Use async with statement.")
        return self._conn

    async def test_connection(self) -> bool:
        """Run ``SELECT 1`` against the open connection.

        Raises:
            RuntimeError: If not connected.
            ConnectionError: If the query fails.
        """
        conn = self._require_connection()
        try:
            async with conn.cursor() as cur:
                await cur.execute("SELECT 1")
                await cur.fetchone()
        except psycopg.Error as e:
            raise ConnectionError(f"Connection test failed: {e}") from e
        return True

    async def introspect(self, schema_name: str = "public") -> SchemaDeclaration:
        """Introspect the tables of one PostgreSQL schema.

        Args:
            schema_name: PostgreSQL schema to introspect (default: public)

        Returns:
            SchemaDeclaration with one TableDeclaration per base table
        """
        self._require_connection()

        declaration = SchemaDeclaration()

        for table_name in await self._get_tables(schema_name):
            if table_name in self._excluded_tables:
                continue

            declaration.tables.append(
                TableDeclaration(
                    name=table_name,
                    columns=await self._get_columns(schema_name, table_name),
                    primary_key=await self._get_primary_key(schema_name, table_name),
                    indexes=await self._get_indexes(schema_name, table_name),
                    unique_constraints=await self._get_unique_constraints(
                        schema_name, table_name
                    ),
                    foreign_keys=await self._get_foreign_keys(schema_name, table_name),
                    unsupported=await self._get_unsupported(schema_name, table_name),
                )
            )

        logger.debug(f"Introspected {len(declaration.tables)} tables from schema {schema_name}")
        return declaration

    async def _fetch(self, query: str, params: tuple) -> list[tuple]:
        conn = self._require_connection()
        async with conn.cursor() as cur:
            await cur.execute(query, params)
            return await cur.fetchall()

    async def _get_tables(self, schema_name: str) -> list[str]:
        """Get all base table names in schema."""
        query = """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = %s
              AND table_type = 'BASE TABLE'
            ORDER BY table_name
        """
        return [row[0] for row in await self._fetch(query, (schema_name,))]

    async def _get_columns(self, schema_name: str, table_name: str) -> list[ColumnDeclaration]:
        """Get columns for a table in ordinal order."""
        query = """
            SELECT
                a.attname,
                format_type(a.atttypid, a.atttypmod),
                NOT a.attnotnull,
                pg_get_expr(d.adbin, d.adrelid),
                a.attnum
            FROM pg_attribute a
            JOIN pg_class c ON c.oid = a.attrelid
            JOIN pg_namespace n ON n.oid = c.relnamespace
            LEFT JOIN pg_attrdef d ON d.adrelid = a.attrelid AND d.adnum = a.attnum
            WHERE n.nspname = %s
              AND c.relname = %s
              AND a.attnum > 0
              AND NOT a.attisdropped
            ORDER BY a.attnum
        """
        columns = []
        for name, data_type, is_nullable, default, ordinal in await self._fetch(
            query, (schema_name, table_name)
        ):
            columns.append(
                ColumnDeclaration(
                    name=name,
                    data_type=self._normalize_data_type(data_type),
                    is_nullable=is_nullable,
                    default=default,
                    ordinal=ordinal,
                )
            )
        return columns

    def _normalize_data_type(self, data_type: str) -> str:
        """Normalize PostgreSQL data type names.

        Maps verbose catalog types to standard names
        (``character varying(50)`` -> ``varchar(50)``).
        """
        return normalize_type(data_type)

    async def _get_primary_key(self, schema_name: str, table_name: str) -> list[str]:
        """Get ordered primary key columns (empty when the table has none)."""
        query = """
            SELECT a.attname
            FROM pg_index ix
            JOIN pg_class t ON t.oid = ix.indrelid
            JOIN pg_namespace n ON n.oid = t.relnamespace
            JOIN LATERAL unnest(ix.indkey) WITH ORDINALITY AS x(attnum, ordinality) ON TRUE
            JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = x.attnum
            WHERE n.nspname = %s
              AND t.relname = %s
              AND ix.indisprimary
            ORDER BY x.ordinality
        """
        return [row[0] for row in await self._fetch(query, (schema_name, table_name))]

    async def _get_indexes(self, schema_name: str, table_name: str) -> list[IndexDeclaration]:
        """Get indexes for a table (excluding primary key).

        Expression members come back as ``None`` column names.
        """
        query = """
            SELECT
                i.relname AS index_name,
                array_agg(a.attname ORDER BY x.ordinality) AS columns,
                ix.indisunique AS is_unique,
                am.amname AS index_type,
                pg_get_expr(ix.indpred, ix.indrelid) AS predicate
            FROM pg_index ix
            JOIN pg_class t ON t.oid = ix.indrelid
            JOIN pg_class i ON i.oid = ix.indexrelid
            JOIN pg_namespace n ON n.oid = t.relnamespace
            JOIN pg_am am ON am.oid = i.relam
            JOIN LATERAL unnest(ix.indkey) WITH ORDINALITY AS x(attnum, ordinality) ON TRUE
            LEFT JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = x.attnum
            WHERE n.nspname = %s
              AND t.relname = %s
              AND NOT ix.indisprimary
              AND x.ordinality <= ix.indnkeyatts
            GROUP BY i.relname, ix.indisunique, am.amname, ix.indpred, ix.indrelid
            ORDER BY i.relname
        """
        indexes = []
        for name, columns, is_unique, index_type, predicate in await self._fetch(
            query, (schema_name, table_name)
        ):
            indexes.append(
                IndexDeclaration(
                    name=name,
                    columns=list(columns),
                    is_unique=is_unique,
                    index_type=index_type,
                    filter=predicate,
                )
            )
        return indexes

    async def _get_unique_constraints(
        self, schema_name: str, table_name: str
    ) -> list[UniqueConstraintDeclaration]:
        """Get unique constraints for a table."""
        query = """
            SELECT
                con.conname,
                array_agg(a.attname ORDER BY x.ordinality)
            FROM pg_constraint con
            JOIN pg_class t ON t.oid = con.conrelid
            JOIN pg_namespace n ON n.oid = t.relnamespace
            JOIN LATERAL unnest(con.conkey) WITH ORDINALITY AS x(attnum, ordinality) ON TRUE
            JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = x.attnum
            WHERE n.nspname = %s
              AND t.relname = %s
              AND con.contype = 'u'
            GROUP BY con.conname
            ORDER BY con.conname
        """
        return [
            UniqueConstraintDeclaration(name=name, columns=list(columns))
            for name, columns in await self._fetch(query, (schema_name, table_name))
        ]

    async def _get_foreign_keys(
        self, schema_name: str, table_name: str
    ) -> list[ForeignKeyDeclaration]:
        """Get foreign keys with ordered (column, referenced column) pairs."""
        query = """
            SELECT
                con.conname,
                rt.relname,
                array_agg(a.attname ORDER BY x.ordinality),
                array_agg(ra.attname ORDER BY x.ordinality),
                con.confdeltype,
                con.confupdtype
            FROM pg_constraint con
            JOIN pg_class t ON t.oid = con.conrelid
            JOIN pg_namespace n ON n.oid = t.relnamespace
            JOIN pg_class rt ON rt.oid = con.confrelid
            JOIN LATERAL unnest(con.conkey, con.confkey)
                WITH ORDINALITY AS x(attnum, refattnum, ordinality) ON TRUE
            JOIN pg_attribute a ON a.attrelid = con.conrelid AND a.attnum = x.attnum
            JOIN pg_attribute ra ON ra.attrelid = con.confrelid AND ra.attnum = x.refattnum
            WHERE n.nspname = %s
              AND t.relname = %s
              AND con.contype = 'f'
            GROUP BY con.conname, rt.relname, con.confdeltype, con.confupdtype
            ORDER BY con.conname
        """
        foreign_keys = []
        for name, ref_table, columns, ref_columns, on_delete, on_update in await self._fetch(
            query, (schema_name, table_name)
        ):
            foreign_keys.append(
                ForeignKeyDeclaration(
                    name=name,
                    columns=list(columns),
                    referenced_table=ref_table,
                    referenced_columns=list(ref_columns),
                    on_delete=FK_ACTIONS.get(on_delete, on_delete),
                    on_update=FK_ACTIONS.get(on_update, on_update),
                )
            )
        return foreign_keys

    async def _get_unsupported(
        self, schema_name: str, table_name: str
    ) -> list[UnsupportedDeclaration]:
        """Get check and exclusion constraints, which have no canonical mapping."""
        query = """
            SELECT con.conname, con.contype, pg_get_constraintdef(con.oid)
            FROM pg_constraint con
            JOIN pg_class t ON t.oid = con.conrelid
            JOIN pg_namespace n ON n.oid = t.relnamespace
            WHERE n.nspname = %s
              AND t.relname = %s
              AND con.contype IN ('c', 'x')
            ORDER BY con.conname
        """
        return [
            UnsupportedDeclaration(
                element=UNSUPPORTED_CONSTRAINTS[contype], name=name, detail=definition
            )
            for name, contype, definition in await self._fetch(query, (schema_name, table_name))
        ]
