"""Catalog queries against information_schema and pg_catalog.

Every function here is a single read-only query returning typed rows.
Schema sets are bound as one array parameter (``= ANY(:schemas)``), so an
empty schema list simply yields no rows.

Ordering is part of each query's contract:

- schemas: alphabetical
- tables: (schema, table)
- columns: (schema, table, ordinal_position)
- primary keys: (schema, table, position within the key)
- foreign keys: (source schema, source table, constraint name, position)
"""

import logging
from collections.abc import Sequence

from backplane.adapters.base import DatabaseClient
from backplane.errors import DatabaseError
from backplane.schema.models import (
    ColumnRow,
    ForeignKeyRow,
    IndexInfo,
    IndexRow,
    PrimaryKeyRow,
    TableRow,
)
from backplane.schema.primary_key import parse_pg_array

logger = logging.getLogger(__name__)

SCHEMAS_QUERY = """
    SELECT schema_name
    FROM information_schema.schemata
    WHERE schema_name NOT IN ('pg_catalog', 'information_schema')
    ORDER BY schema_name
"""

TABLES_QUERY = """
    SELECT table_schema, table_name, table_type
    FROM information_schema.tables
    WHERE table_schema = ANY(:schemas)
    ORDER BY table_schema, table_name
"""

COLUMNS_QUERY = """
    SELECT
        table_schema,
        table_name,
        column_name,
        data_type,
        udt_name,
        is_nullable,
        column_default,
        ordinal_position
    FROM information_schema.columns
    WHERE table_schema = ANY(:schemas)
    ORDER BY table_schema, table_name, ordinal_position
"""

PRIMARY_KEYS_QUERY = """
    SELECT
        tc.table_schema,
        tc.table_name,
        kcu.column_name
    FROM information_schema.table_constraints tc
    JOIN information_schema.key_column_usage kcu
        ON tc.constraint_name = kcu.constraint_name
        AND tc.constraint_schema = kcu.constraint_schema
    WHERE tc.constraint_type = 'PRIMARY KEY'
      AND tc.table_schema = ANY(:schemas)
    ORDER BY tc.table_schema, tc.table_name, kcu.ordinal_position
"""

FOREIGN_KEYS_QUERY = """
    SELECT
        tc.constraint_name AS fk_name,
        tc.table_schema    AS source_schema,
        tc.table_name      AS source_table,
        kcu.column_name    AS source_column,
        ccu.table_schema   AS target_schema,
        ccu.table_name     AS target_table,
        ccu.column_name    AS target_column
    FROM information_schema.table_constraints tc
    JOIN information_schema.key_column_usage kcu
        ON tc.constraint_name = kcu.constraint_name
        AND tc.constraint_schema = kcu.constraint_schema
    JOIN information_schema.constraint_column_usage ccu
        ON ccu.constraint_name = tc.constraint_name
        AND ccu.constraint_schema = tc.constraint_schema
    WHERE tc.constraint_type = 'FOREIGN KEY'
      AND tc.table_schema = ANY(:schemas)
    ORDER BY source_schema, source_table, fk_name, kcu.ordinal_position
"""

TABLE_COLUMNS_QUERY = """
    SELECT
        table_schema,
        table_name,
        column_name,
        data_type,
        udt_name,
        is_nullable,
        column_default,
        ordinal_position
    FROM information_schema.columns
    WHERE table_schema = :schema
      AND table_name = :table
    ORDER BY ordinal_position
"""

INDEXES_QUERY = """
    SELECT
        i.relname AS index_name,
        array_agg(a.attname ORDER BY x.ordinality)::text[] AS columns,
        ix.indisunique AS is_unique,
        ix.indisprimary AS is_primary,
        am.amname AS method
    FROM pg_index ix
    JOIN pg_class t ON t.oid = ix.indrelid
    JOIN pg_class i ON i.oid = ix.indexrelid
    JOIN pg_namespace n ON n.oid = t.relnamespace
    JOIN pg_am am ON am.oid = i.relam
    JOIN LATERAL unnest(ix.indkey) WITH ORDINALITY AS x(attnum, ordinality) ON TRUE
    JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = x.attnum
    WHERE n.nspname = :schema
      AND t.relname = :table
    GROUP BY i.relname, ix.indisunique, ix.indisprimary, am.amname
    ORDER BY i.relname
"""


async def list_schemas(client: DatabaseClient) -> list[str]:
    """Non-system schema names, alphabetical."""
    rows = await client.query(SCHEMAS_QUERY)
    return [row["schema_name"] for row in rows]


async def list_tables(client: DatabaseClient, schemas: Sequence[str]) -> list[TableRow]:
    rows = await client.query(TABLES_QUERY, {"schemas": list(schemas)})
    return [TableRow.model_validate(row) for row in rows]


async def list_columns(client: DatabaseClient, schemas: Sequence[str]) -> list[ColumnRow]:
    rows = await client.query(COLUMNS_QUERY, {"schemas": list(schemas)})
    return [ColumnRow.model_validate(row) for row in rows]


async def list_primary_keys(
    client: DatabaseClient, schemas: Sequence[str]
) -> list[PrimaryKeyRow]:
    """One row per primary-key column; composite keys keep key order."""
    rows = await client.query(PRIMARY_KEYS_QUERY, {"schemas": list(schemas)})
    return [PrimaryKeyRow.model_validate(row) for row in rows]


async def list_foreign_keys(
    client: DatabaseClient, schemas: Sequence[str]
) -> list[ForeignKeyRow]:
    """One row per foreign-key column mapping."""
    rows = await client.query(FOREIGN_KEYS_QUERY, {"schemas": list(schemas)})
    return [ForeignKeyRow.model_validate(row) for row in rows]


async def list_table_columns(
    client: DatabaseClient, table: str, schema: str = "public"
) -> list[ColumnRow]:
    """Columns currently declared on exactly ``schema.table``.

    This is the column whitelist the record service validates untyped
    input against.  An unknown table yields an empty list.
    """
    rows = await client.query(TABLE_COLUMNS_QUERY, {"schema": schema, "table": table})
    return [ColumnRow.model_validate(row) for row in rows]


async def list_indexes(client: DatabaseClient, schema: str, table: str) -> list[IndexInfo]:
    """Indexes defined on ``schema.table``, primary key included.

    Raises:
        DatabaseError: If the catalog query fails.
    """
    try:
        rows = await client.query(INDEXES_QUERY, {"schema": schema, "table": table})
    except Exception as e:
        logger.error(f"Failed to fetch indexes for {schema}.{table}: {e}")
        raise DatabaseError("Failed to fetch indexes", {"originalError": str(e)}) from e

    indexes = []
    for row in rows:
        index = IndexRow.model_validate({**row, "columns": parse_pg_array(row.get("columns"))})
        indexes.append(
            IndexInfo(
                name=index.index_name,
                columns=index.columns,
                unique=index.is_unique,
                primary=index.is_primary,
                method=index.method,
            )
        )
    return indexes
