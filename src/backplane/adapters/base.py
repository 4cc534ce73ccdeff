"""Database client protocol definition.

Defines the ``DatabaseClient`` Protocol that the catalog layer, the record
service and the mutation applier talk to.  All methods are ``async def``.

Usage:
    from backplane.adapters.base import DatabaseClient

    async def do_work(client: DatabaseClient) -> None:
        rows = await client.query("SELECT schema_name FROM information_schema.schemata")
        await client.insert("users", {"email": "a@example.com"}, schema="public")
        await client.execute('ALTER TABLE "users" ADD COLUMN "age" integer')
        await client.close()
"""

from collections.abc import Collection
from typing import Any, Protocol


class DatabaseClient(Protocol):
    """Async database client over a single logical connection string.

    Table and schema names are plain, unquoted identifiers; implementations
    are responsible for quoting them.  Values are always bound as
    parameters.
    """

    async def query(self, sql: str, params: dict[str, Any] | None = None) -> list[dict]:
        """Run a read-only SQL statement and return every row as a dict.

        Args:
            sql: SQL text with ``:name`` placeholders.
            params: Values for the placeholders.

        Returns:
            List of dicts, one per row.  Empty list if no rows.
        """
        ...

    async def select(
        self,
        table: str,
        schema: str = "public",
        filters: dict[str, Any] | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict]:
        """Select rows from ``schema.table``.

        Args:
            table: Table name.
            schema: Schema name.
            filters: Optional column=value equality filters (AND-ed).
            limit: Optional maximum number of rows.
            offset: Optional number of rows to skip.

        Returns:
            List of dicts, one per row.
        """
        ...

    async def insert(
        self,
        table: str,
        data: dict[str, Any],
        schema: str = "public",
        json_columns: Collection[str] = (),
    ) -> dict:
        """Insert one row and return it as stored (``RETURNING *``).

        Args:
            table: Table name.
            data: Column=value pairs.
            schema: Schema name.
            json_columns: Columns whose list values must be sent as JSON.
        """
        ...

    async def update(
        self,
        table: str,
        data: dict[str, Any],
        filters: dict[str, Any],
        schema: str = "public",
        json_columns: Collection[str] = (),
    ) -> dict | None:
        """Update matching rows and return the first updated row.

        Returns:
            The updated row, or ``None`` if no row matched *filters*.
        """
        ...

    async def delete(
        self,
        table: str,
        filters: dict[str, Any],
        schema: str = "public",
    ) -> dict | None:
        """Delete matching rows and return the first deleted row.

        Returns:
            The deleted row, or ``None`` if no row matched *filters*.
        """
        ...

    async def execute(self, sql: str, params: dict[str, Any] | None = None) -> None:
        """Execute a DDL or other non-query statement in its own transaction."""
        ...

    async def close(self) -> None:
        """Dispose of the connection pool."""
        ...
