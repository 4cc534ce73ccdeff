"""Schema graph assembly.

Joins the raw catalog rows into a ``SchemaGraph``: one node per table or
view (columns and primary key nested), one edge per foreign-key column
mapping.  ``build_schema_graph`` is pure; ``introspect_database`` runs the
catalog queries (the four per-schema queries concurrently) and feeds it.

Usage:
    from backplane.schema.assembler import introspect_database

    graph = await introspect_database(client)
    graph.to_dict()
    # {'schemas': ['public'], 'nodes': [...], 'edges': [...]}
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import Collection, Iterable, Sequence

from backplane.adapters.base import DatabaseClient
from backplane.errors import BackplaneError, DatabaseError
from backplane.schema import catalog
from backplane.schema.models import (
    ColumnInfo,
    ColumnRow,
    ForeignKeyEdge,
    ForeignKeyRow,
    PrimaryKeyRow,
    SchemaGraph,
    TableNode,
    TableRow,
    table_key,
)

logger = logging.getLogger(__name__)

IGNORED_SCHEMA_PREFIXES = ("pg_toast", "pg_temp")


def edge_label(source_column: str, target_column: str) -> str:
    """Display label for a foreign-key edge."""
    return f"{source_column} → {target_column}"


def filter_schemas(schemas: Iterable[str], ignored: Collection[str]) -> list[str]:
    """Drop ignored schema names and toast/temp schemas, keeping order.

    An empty *ignored* collection disables filtering entirely.
    """
    if not ignored:
        return list(schemas)
    return [
        name
        for name in schemas
        if name not in ignored and not name.startswith(IGNORED_SCHEMA_PREFIXES)
    ]


def build_schema_graph(
    schemas: Sequence[str],
    tables: Sequence[TableRow],
    columns: Sequence[ColumnRow],
    primary_keys: Sequence[PrimaryKeyRow],
    foreign_keys: Sequence[ForeignKeyRow],
) -> SchemaGraph:
    """Group catalog rows into a schema graph.

    Row order is preserved throughout: columns stay in ordinal order and
    primary-key columns in key order, as delivered by the catalog queries.
    Tables without columns or without a primary key still become nodes
    (with empty lists).
    """
    columns_by_table: dict[str, list[ColumnInfo]] = defaultdict(list)
    for row in columns:
        columns_by_table[row.key].append(
            ColumnInfo(
                name=row.column_name,
                type=row.data_type,
                udt=row.udt_name,
                nullable=row.nullable,
                default=row.column_default,
                position=row.ordinal_position,
            )
        )

    pk_by_table: dict[str, list[str]] = defaultdict(list)
    for row in primary_keys:
        pk_by_table[row.key].append(row.column_name)

    nodes = [
        TableNode(
            id=row.key,
            schema=row.table_schema,
            name=row.table_name,
            type=row.table_type,
            primary_key=pk_by_table.get(row.key, []),
            columns=columns_by_table.get(row.key, []),
        )
        for row in tables
    ]

    edges = [
        ForeignKeyEdge(
            id=fk.fk_name,
            source=table_key(fk.source_schema, fk.source_table),
            source_column=fk.source_column,
            target=table_key(fk.target_schema, fk.target_table),
            target_column=fk.target_column,
            label=edge_label(fk.source_column, fk.target_column),
        )
        for fk in foreign_keys
    ]

    return SchemaGraph(schemas=list(schemas), nodes=nodes, edges=edges)


async def introspect_database(
    client: DatabaseClient,
    ignored_schemas: Collection[str] = (),
) -> SchemaGraph:
    """Read the live catalog and assemble the schema graph.

    Args:
        client: Database client for the target database.
        ignored_schemas: Extra schema names to leave out (toast and temp
            schemas are dropped too whenever this is non-empty).

    Returns:
        ``SchemaGraph`` for every remaining schema.

    Raises:
        DatabaseError: If the database has no non-system schema, or if any
            catalog query fails (original message kept in ``details``).
    """
    try:
        schemas = filter_schemas(await catalog.list_schemas(client), ignored_schemas)

        if not schemas:
            raise DatabaseError(
                "No schemas found in the database. "
                "Please ensure the database contains at least one schema."
            )

        # A failed query cancels its siblings before the error leaves here.
        try:
            async with asyncio.TaskGroup() as tg:
                tables = tg.create_task(catalog.list_tables(client, schemas))
                columns = tg.create_task(catalog.list_columns(client, schemas))
                primary_keys = tg.create_task(catalog.list_primary_keys(client, schemas))
                foreign_keys = tg.create_task(catalog.list_foreign_keys(client, schemas))
        except ExceptionGroup as eg:
            raise eg.exceptions[0]

        graph = build_schema_graph(
            schemas,
            tables.result(),
            columns.result(),
            primary_keys.result(),
            foreign_keys.result(),
        )
        logger.debug(
            f"Introspected {len(graph.schemas)} schemas, "
            f"{len(graph.nodes)} tables, {len(graph.edges)} foreign keys"
        )
        return graph
    except BackplaneError:
        raise
    except Exception as e:
        logger.error(f"Introspection failed: {e}")
        raise DatabaseError(
            f"Failed to introspect database structure: {e}",
            {"originalError": str(e), "errorType": type(e).__name__},
        ) from e
