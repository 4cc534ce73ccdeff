"""Primary key resolution from pg_index.

Generic record operations identify rows by primary key without any ORM
metadata, so the key is recovered from the low-level catalog: the
``pg_index`` entry flagged ``indisprimary`` for the relation, with its
``indkey`` attribute numbers mapped back to column names in key order.

Drivers disagree on how the aggregated ``name[]`` comes back: psycopg
returns a list, others hand over the array literal (``"{id,tenant_id}"``).
``parse_pg_array`` accepts both.

Composite keys are a known limitation: only the first key column is used
for row identification, and a warning names the ignored columns.
"""

import csv
import logging
from typing import Any

from backplane.adapters.base import DatabaseClient
from backplane.errors import DatabaseError

logger = logging.getLogger(__name__)


PRIMARY_KEY_QUERY = """
    SELECT array_agg(a.attname ORDER BY k.ordinality) AS pk_cols
    FROM pg_index i
    JOIN pg_class c ON c.oid = i.indrelid
    JOIN pg_namespace n ON n.oid = c.relnamespace
    JOIN LATERAL unnest(i.indkey) WITH ORDINALITY AS k(attnum, ordinality) ON TRUE
    JOIN pg_attribute a ON a.attrelid = c.oid AND a.attnum = k.attnum
    WHERE i.indisprimary = true
      AND c.relname = :table
"""

_SCHEMA_FILTER = "      AND n.nspname = :schema\n"
# Without a schema, only the relation visible on the search_path counts
_VISIBLE_FILTER = "      AND pg_catalog.pg_table_is_visible(c.oid)\n"


def parse_pg_array(value: Any) -> list[str]:
    """Normalize a one-dimensional PostgreSQL text array.

    Args:
        value: A list/tuple from the driver, an array literal string such
            as ``'{id,"tenant id"}'``, or ``None``.

    Returns:
        List of element strings.  ``NULL`` elements are skipped.

    Examples:
        >>> parse_pg_array(["id", "tenant_id"])
        ['id', 'tenant_id']
        >>> parse_pg_array("{id,tenant_id}")
        ['id', 'tenant_id']
        >>> parse_pg_array('{"a,b",c}')
        ['a,b', 'c']
        >>> parse_pg_array("{}")
        []
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None]
    if not isinstance(value, str):
        return [str(value)]

    literal = value.strip()
    if not (literal.startswith("{") and literal.endswith("}")):
        return [literal] if literal else []

    inner = literal[1:-1]
    if not inner:
        return []

    reader = csv.reader([inner], delimiter=",", quotechar='"', escapechar="\\", doublequote=False)
    raw_items = next(reader)
    # csv drops the quotes, so an unquoted NULL and a quoted "NULL" look alike
    quoted = _quoted_positions(inner)
    return [
        item
        for position, item in enumerate(raw_items)
        if not (item.upper() == "NULL" and position not in quoted)
    ]


def _quoted_positions(inner: str) -> set[int]:
    positions: set[int] = set()
    position = 0
    at_start = True
    in_quotes = False
    escaped = False
    for char in inner:
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == '"':
            if at_start:
                positions.add(position)
            in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            position += 1
            at_start = True
            continue
        at_start = False
    return positions


async def resolve_primary_key_columns(
    client: DatabaseClient,
    table: str,
    schema: str | None = None,
) -> list[str]:
    """All primary-key columns of a table, in key order.

    Args:
        client: Database client.
        table: Relation name.
        schema: Optional schema name.  When omitted, the table visible on
            the search path is used.

    Returns:
        Key column names; empty if the table has no primary key.
    """
    sql = PRIMARY_KEY_QUERY + (_SCHEMA_FILTER if schema else _VISIBLE_FILTER)
    params: dict[str, Any] = {"table": table}
    if schema:
        params["schema"] = schema

    rows = await client.query(sql, params)
    if not rows:
        return []
    return parse_pg_array(rows[0].get("pk_cols"))


async def resolve_primary_key(
    client: DatabaseClient,
    table: str,
    schema: str | None = None,
) -> str:
    """The single column used to identify rows of *table*.

    Returns:
        The first primary-key column.

    Raises:
        DatabaseError: If the table has no primary key.

    Example:
        pk = await resolve_primary_key(client, "users", "public")
        # 'id'
    """
    columns = await resolve_primary_key_columns(client, table, schema)
    if not columns:
        raise DatabaseError(
            "Could not find primary key.",
            {"table": table, "schema": schema},
        )

    if len(columns) > 1:
        logger.warning(
            f"Table {schema or '<search_path>'}.{table} has a composite primary key "
            f"({', '.join(columns)}); using '{columns[0]}' only"
        )

    return columns[0]
