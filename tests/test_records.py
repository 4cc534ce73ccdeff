"""Tests for the generic record CRUD service.

The fake client answers the two catalog lookups the service makes (the
per-table column whitelist and the pg_index primary key query); CRUD
calls are plain ``AsyncMock`` methods whose awaits are inspected.
"""

import logging
from typing import Any
from unittest.mock import AsyncMock

import pytest

from backplane.errors import ConnectionError, DatabaseError, NotFoundError, ValidationError
from backplane.records import RecordService


def _column(name: str, position: int, udt: str = "text") -> dict:
    return {
        "table_schema": "public",
        "table_name": "users",
        "column_name": name,
        "data_type": udt,
        "udt_name": udt,
        "is_nullable": "YES",
        "column_default": None,
        "ordinal_position": position,
    }


USER_COLUMNS = [
    _column("id", 1, "uuid"),
    _column("email", 2),
    _column("meta", 3, "jsonb"),
]


def _make_mock_client(
    columns: list[dict] | None = None,
    pk_cols: Any = ("id",),
) -> AsyncMock:
    client = AsyncMock()
    columns = USER_COLUMNS if columns is None else columns

    async def query(sql: str, params: dict | None = None) -> list[dict]:
        if "pg_index" in sql:
            return [{"pk_cols": list(pk_cols) if pk_cols else None}]
        if "information_schema.columns" in sql:
            return columns
        return []

    client.query.side_effect = query
    return client


# ============================================================================
# Reads
# ============================================================================


class TestListRecords:

    @pytest.mark.asyncio
    async def test_unbounded_by_default(self) -> None:
        client = _make_mock_client()
        client.select.return_value = [{"id": "1"}, {"id": "2"}]

        rows = await RecordService(client).list_records("users")

        assert len(rows) == 2
        client.select.assert_awaited_once_with("users", schema="public", limit=None, offset=None)

    @pytest.mark.asyncio
    async def test_paging(self) -> None:
        client = _make_mock_client()
        client.select.return_value = []

        await RecordService(client).list_records("users", "sales", limit=10, offset=20)

        client.select.assert_awaited_once_with("users", schema="sales", limit=10, offset=20)

    @pytest.mark.asyncio
    async def test_negative_limit_rejected(self) -> None:
        client = _make_mock_client()

        with pytest.raises(ValidationError):
            await RecordService(client).list_records("users", limit=-1)
        client.select.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_driver_failure_is_classified(self) -> None:
        client = _make_mock_client()
        client.select.side_effect = OSError("Connection refused")

        with pytest.raises(ConnectionError):
            await RecordService(client).list_records("users")


class TestGetRecord:

    @pytest.mark.asyncio
    async def test_by_primary_key(self) -> None:
        client = _make_mock_client()
        client.select.return_value = [{"id": "42", "email": "a@example.com"}]

        row = await RecordService(client).get_record("users", "42")

        assert row["email"] == "a@example.com"
        client.select.assert_awaited_once_with("users", schema="public", filters={"id": "42"}, limit=1)

    @pytest.mark.asyncio
    async def test_missing_row(self) -> None:
        client = _make_mock_client()
        client.select.return_value = []

        with pytest.raises(NotFoundError, match="Record 42 not found in public.users"):
            await RecordService(client).get_record("users", "42")

    @pytest.mark.asyncio
    async def test_table_without_primary_key(self) -> None:
        client = _make_mock_client(pk_cols=None)

        with pytest.raises(DatabaseError, match="Could not find primary key."):
            await RecordService(client).get_record("logs", "1")
        client.select.assert_not_awaited()


# ============================================================================
# Writes
# ============================================================================


class TestInsertRecord:

    @pytest.mark.asyncio
    async def test_insert_returns_stored_row(self) -> None:
        client = _make_mock_client()
        client.insert.return_value = {"id": "generated", "email": "a@example.com", "meta": None}

        row = await RecordService(client).insert_record("users", {"email": "a@example.com"})

        assert row["id"] == "generated"
        client.insert.assert_awaited_once_with(
            "users",
            {"email": "a@example.com"},
            schema="public",
            json_columns={"meta"},
        )

    @pytest.mark.asyncio
    async def test_unknown_key_rejects_whole_record(self) -> None:
        client = _make_mock_client()

        with pytest.raises(ValidationError) as exc_info:
            await RecordService(client).insert_record(
                "users", {"email": "a@example.com", "nickname": "al"}
            )

        assert exc_info.value.details["unknownColumns"] == ["nickname"]
        assert exc_info.value.status_code == 400
        client.insert.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_table(self) -> None:
        client = _make_mock_client(columns=[])

        with pytest.raises(NotFoundError, match="Table public.ghosts not found"):
            await RecordService(client).insert_record("ghosts", {"x": 1})

    @pytest.mark.asyncio
    async def test_non_object_body(self) -> None:
        client = _make_mock_client()

        with pytest.raises(ValidationError, match="JSON object"):
            await RecordService(client).insert_record("users", ["not", "a", "dict"])

    @pytest.mark.asyncio
    async def test_constraint_violation_is_classified(self) -> None:
        client = _make_mock_client()
        client.insert.side_effect = RuntimeError('duplicate key value violates unique constraint "users_email_key"')

        with pytest.raises(DatabaseError, match="An error occurred while inserting a record"):
            await RecordService(client).insert_record("users", {"email": "a@example.com"})


class TestUpdateRecord:

    @pytest.mark.asyncio
    async def test_unknown_keys_dropped(self, caplog: pytest.LogCaptureFixture) -> None:
        client = _make_mock_client()
        client.update.return_value = {"id": "42", "email": "b@example.com"}

        with caplog.at_level(logging.WARNING, logger="backplane.records"):
            row = await RecordService(client).update_record(
                "users", "42", {"email": "b@example.com", "nickname": "bo"}
            )

        assert row["email"] == "b@example.com"
        client.update.assert_awaited_once_with(
            "users",
            {"email": "b@example.com"},
            {"id": "42"},
            schema="public",
            json_columns={"meta"},
        )
        assert "nickname" in caplog.text

    @pytest.mark.asyncio
    async def test_no_recognized_columns(self) -> None:
        client = _make_mock_client()

        with pytest.raises(ValidationError, match="No valid columns to update"):
            await RecordService(client).update_record("users", "42", {"nickname": "bo"})
        client.update.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_body(self) -> None:
        client = _make_mock_client()

        with pytest.raises(ValidationError):
            await RecordService(client).update_record("users", "42", {})
        client.update.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_strict_mode_rejects_unknown(self) -> None:
        client = _make_mock_client()

        with pytest.raises(ValidationError) as exc_info:
            await RecordService(client, strict_update_columns=True).update_record(
                "users", "42", {"email": "b@example.com", "nickname": "bo"}
            )

        assert exc_info.value.details["unknownColumns"] == ["nickname"]
        client.update.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_row(self) -> None:
        client = _make_mock_client()
        client.update.return_value = None

        with pytest.raises(NotFoundError):
            await RecordService(client).update_record("users", "missing", {"email": "x"})


class TestDeleteRecord:

    @pytest.mark.asyncio
    async def test_returns_deleted_row(self) -> None:
        client = _make_mock_client()
        client.delete.return_value = {"id": "42"}

        row = await RecordService(client).delete_record("users", "42", "public")

        assert row == {"id": "42"}
        client.delete.assert_awaited_once_with("users", {"id": "42"}, schema="public")

    @pytest.mark.asyncio
    async def test_missing_row(self) -> None:
        client = _make_mock_client()
        client.delete.return_value = None

        with pytest.raises(NotFoundError, match="Record 42 not found"):
            await RecordService(client).delete_record("users", "42")
