"""Generic record CRUD over arbitrary tables.

``RecordService`` treats a table as an opaque bag of columns: records are
plain ``dict`` objects whose keys are validated, on every call, against
the columns the live catalog currently declares for ``schema.table``.
Rows are identified by the table's primary key, recovered from
``pg_index`` (first key column only).

Column policy:

- insert rejects the whole record if any key is not a declared column
- update drops unknown keys (logged) unless ``strict_update_columns`` is
  set, in which case it rejects them like insert; an update left with no
  columns is rejected before any SQL runs

Listing is unbounded unless ``limit``/``offset`` are passed.

Usage:
    from backplane.records import RecordService

    service = RecordService(client)
    row = await service.insert_record("users", {"email": "a@example.com"})
    same = await service.get_record("users", row["id"])
"""

import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from backplane.adapters.base import DatabaseClient
from backplane.classifier import classify_error
from backplane.errors import BackplaneError, NotFoundError, ValidationError
from backplane.schema import catalog
from backplane.schema.models import ColumnRow
from backplane.schema.primary_key import resolve_primary_key

logger = logging.getLogger(__name__)

JSON_TYPES = frozenset({"json", "jsonb"})


@contextmanager
def _classified(action: str) -> Iterator[None]:
    """Re-raise driver failures as classified errors."""
    try:
        yield
    except BackplaneError:
        raise
    except Exception as e:
        logger.error(f"Database failure while {action}: {e}")
        raise classify_error(e, action) from e


def _require_mapping(record: Any) -> Mapping[str, Any]:
    if not isinstance(record, Mapping):
        raise ValidationError("Record must be a JSON object")
    return record


class RecordService:
    """List/get/insert/update/delete over a table named at runtime.

    Args:
        client: Database client, owned by the caller (one per request).
        strict_update_columns: Reject unknown update keys instead of
            dropping them.
    """

    def __init__(self, client: DatabaseClient, strict_update_columns: bool = False) -> None:
        self._client = client
        self._strict_update_columns = strict_update_columns

    async def _whitelist(self, table: str, schema: str) -> dict[str, ColumnRow]:
        rows = await catalog.list_table_columns(self._client, table, schema)
        if not rows:
            raise NotFoundError(f"Table {schema}.{table} not found")
        return {row.column_name: row for row in rows}

    @staticmethod
    def _json_columns(columns: Mapping[str, ColumnRow]) -> set[str]:
        return {name for name, row in columns.items() if row.udt_name in JSON_TYPES}

    @staticmethod
    def _reject_unknown(record: Mapping[str, Any], columns: Mapping[str, ColumnRow], table: str) -> None:
        unknown = [key for key in record if key not in columns]
        if unknown:
            raise ValidationError(
                f"Input does not match table columns of {table}: "
                f"unknown column(s) {', '.join(unknown)}",
                {"unknownColumns": unknown, "expectedColumns": list(columns)},
            )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def list_records(
        self,
        table: str,
        schema: str = "public",
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict]:
        """Every row of the table (unbounded unless *limit* is given)."""
        if (limit is not None and limit < 0) or (offset is not None and offset < 0):
            raise ValidationError("limit and offset must be non-negative")

        with _classified("listing records"):
            return await self._client.select(table, schema=schema, limit=limit, offset=offset)

    async def get_record(self, table: str, record_id: Any, schema: str = "public") -> dict:
        """One row by primary key.

        Raises:
            NotFoundError: If no row has that key.
            DatabaseError: If the table has no primary key.
        """
        with _classified("fetching a record"):
            pk = await resolve_primary_key(self._client, table, schema)
            rows = await self._client.select(table, schema=schema, filters={pk: record_id}, limit=1)

        if not rows:
            raise NotFoundError(f"Record {record_id} not found in {schema}.{table}")
        return rows[0]

    async def insert_record(
        self,
        table: str,
        record: Mapping[str, Any],
        schema: str = "public",
    ) -> dict:
        """Insert one row and return it as stored, server defaults included.

        Raises:
            ValidationError: If any key is not a column of the table; no
                row is written.
            NotFoundError: If the table does not exist.
        """
        record = _require_mapping(record)

        with _classified("inserting a record"):
            columns = await self._whitelist(table, schema)
            self._reject_unknown(record, columns, table)
            return await self._client.insert(
                table,
                dict(record),
                schema=schema,
                json_columns=self._json_columns(columns),
            )

    async def update_record(
        self,
        table: str,
        record_id: Any,
        changes: Mapping[str, Any],
        schema: str = "public",
    ) -> dict:
        """Update one row by primary key and return the updated row.

        Raises:
            ValidationError: If no recognized column remains (or, in strict
                mode, if any key is unknown).
            NotFoundError: If no row has that key.
        """
        changes = _require_mapping(changes)

        with _classified("updating a record"):
            columns = await self._whitelist(table, schema)

            if self._strict_update_columns:
                self._reject_unknown(changes, columns, table)

            data = {key: value for key, value in changes.items() if key in columns}
            dropped = [key for key in changes if key not in columns]
            if dropped:
                logger.warning(
                    f"Ignoring unknown column(s) for {schema}.{table} update: {', '.join(dropped)}"
                )
            if not data:
                raise ValidationError(
                    f"No valid columns to update on {schema}.{table}",
                    {"expectedColumns": list(columns)},
                )

            pk = await resolve_primary_key(self._client, table, schema)
            row = await self._client.update(
                table,
                data,
                {pk: record_id},
                schema=schema,
                json_columns=self._json_columns(columns),
            )

        if row is None:
            raise NotFoundError(f"Record {record_id} not found in {schema}.{table}")
        return row

    async def delete_record(self, table: str, record_id: Any, schema: str = "public") -> dict:
        """Delete one row by primary key and return it.

        Raises:
            NotFoundError: If no row has that key.
        """
        with _classified("deleting a record"):
            pk = await resolve_primary_key(self._client, table, schema)
            row = await self._client.delete(table, {pk: record_id}, schema=schema)

        if row is None:
            raise NotFoundError(f"Record {record_id} not found in {schema}.{table}")
        return row
