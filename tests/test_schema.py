"""Tests for catalog queries, primary key resolution and graph assembly.

The database is a fake client whose ``query`` dispatches on a marker
substring of the SQL it receives.
"""

import asyncio
import logging
from typing import Any
from unittest.mock import AsyncMock

import pytest

from backplane.errors import DatabaseError
from backplane.schema import catalog
from backplane.schema.assembler import build_schema_graph, filter_schemas, introspect_database
from backplane.schema.models import (
    ColumnRow,
    ForeignKeyRow,
    PrimaryKeyRow,
    SchemaGraph,
    TableRow,
)
from backplane.schema.mutations import DEFAULT_IGNORED_SCHEMAS
from backplane.schema.primary_key import (
    parse_pg_array,
    resolve_primary_key,
    resolve_primary_key_columns,
)


def _make_mock_client(responses: dict[str, Any]) -> AsyncMock:
    """Fake client; *responses* maps an SQL marker to rows or an exception."""
    client = AsyncMock()

    async def query(sql: str, params: dict | None = None) -> list[dict]:
        for marker, rows in responses.items():
            if marker in sql:
                if isinstance(rows, BaseException):
                    raise rows
                return rows
        return []

    client.query.side_effect = query
    return client


def _column(table: str, name: str, position: int, data_type: str = "text", nullable: str = "YES",
            udt: str | None = None, default: str | None = None, schema: str = "public") -> dict:
    return {
        "table_schema": schema,
        "table_name": table,
        "column_name": name,
        "data_type": data_type,
        "udt_name": udt or data_type,
        "is_nullable": nullable,
        "column_default": default,
        "ordinal_position": position,
    }


USERS_AND_POSTS = {
    "FOREIGN KEY": [
        {
            "fk_name": "posts_author_id_fkey",
            "source_schema": "public",
            "source_table": "posts",
            "source_column": "author_id",
            "target_schema": "public",
            "target_table": "users",
            "target_column": "id",
        }
    ],
    "PRIMARY KEY": [
        {"table_schema": "public", "table_name": "posts", "column_name": "id"},
        {"table_schema": "public", "table_name": "users", "column_name": "id"},
    ],
    "information_schema.schemata": [{"schema_name": "public"}],
    "information_schema.tables": [
        {"table_schema": "public", "table_name": "posts", "table_type": "BASE TABLE"},
        {"table_schema": "public", "table_name": "users", "table_type": "BASE TABLE"},
    ],
    "information_schema.columns": [
        _column("posts", "id", 1, "uuid", "NO", default="gen_random_uuid()"),
        _column("posts", "author_id", 2, "uuid", "NO"),
        _column("posts", "title", 3),
        _column("users", "id", 1, "uuid", "NO", default="gen_random_uuid()"),
        _column("users", "email", 2),
    ],
}


# ============================================================================
# Postgres arrays and primary keys
# ============================================================================


class TestParsePgArray:

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, []),
            (["id", "tenant_id"], ["id", "tenant_id"]),
            (("id",), ["id"]),
            ("{id,tenant_id}", ["id", "tenant_id"]),
            ("{}", []),
            ('{"a,b",c}', ["a,b", "c"]),
            ('{"say \\"hi\\""}', ['say "hi"']),
            ('{NULL,"NULL"}', ["NULL"]),
            ("id", ["id"]),
        ],
    )
    def test_parse(self, value: Any, expected: list[str]) -> None:
        assert parse_pg_array(value) == expected


class TestResolvePrimaryKey:

    @pytest.mark.asyncio
    async def test_schema_filter(self) -> None:
        client = AsyncMock()
        client.query.return_value = [{"pk_cols": ["id"]}]

        assert await resolve_primary_key(client, "users", "public") == "id"

        sql, params = client.query.call_args.args
        assert "indisprimary" in sql
        assert "n.nspname = :schema" in sql
        assert params == {"table": "users", "schema": "public"}

    @pytest.mark.asyncio
    async def test_search_path_without_schema(self) -> None:
        client = AsyncMock()
        client.query.return_value = [{"pk_cols": "{id}"}]

        assert await resolve_primary_key_columns(client, "users") == ["id"]

        sql, params = client.query.call_args.args
        assert "pg_table_is_visible" in sql
        assert params == {"table": "users"}

    @pytest.mark.asyncio
    async def test_no_primary_key(self) -> None:
        client = AsyncMock()
        # array_agg over no rows still yields one row holding NULL
        client.query.return_value = [{"pk_cols": None}]

        with pytest.raises(DatabaseError, match="Could not find primary key."):
            await resolve_primary_key(client, "logs", "public")

    @pytest.mark.asyncio
    async def test_composite_key_uses_first_column(self, caplog: pytest.LogCaptureFixture) -> None:
        client = AsyncMock()
        client.query.return_value = [{"pk_cols": ["tenant_id", "id"]}]

        with caplog.at_level(logging.WARNING, logger="backplane.schema.primary_key"):
            pk = await resolve_primary_key(client, "memberships", "public")

        assert pk == "tenant_id"
        assert "composite primary key" in caplog.text


# ============================================================================
# Catalog queries
# ============================================================================


class TestCatalog:

    @pytest.mark.asyncio
    async def test_schemas_bound_as_list(self) -> None:
        client = _make_mock_client(USERS_AND_POSTS)

        tables = await catalog.list_tables(client, ("public",))

        assert [t.key for t in tables] == ["public.posts", "public.users"]
        assert client.query.call_args.args[1] == {"schemas": ["public"]}

    @pytest.mark.asyncio
    async def test_table_columns_whitelist(self) -> None:
        client = _make_mock_client(USERS_AND_POSTS)

        columns = await catalog.list_table_columns(client, "users", "public")

        assert client.query.call_args.args[1] == {"schema": "public", "table": "users"}
        assert all(isinstance(c, ColumnRow) for c in columns)

    @pytest.mark.asyncio
    async def test_list_indexes(self) -> None:
        client = _make_mock_client(
            {
                "pg_index": [
                    {
                        "index_name": "users_email_idx",
                        "columns": "{email,created_at}",
                        "is_unique": True,
                        "is_primary": False,
                        "method": "btree",
                    },
                    {
                        "index_name": "users_pkey",
                        "columns": ["id"],
                        "is_unique": True,
                        "is_primary": True,
                        "method": "btree",
                    },
                ]
            }
        )

        indexes = await catalog.list_indexes(client, "public", "users")

        assert indexes[0].columns == ["email", "created_at"]
        assert indexes[0].unique and not indexes[0].primary
        assert indexes[1].primary
        assert client.query.call_args.args[1] == {"schema": "public", "table": "users"}

    @pytest.mark.asyncio
    async def test_list_indexes_failure(self) -> None:
        client = _make_mock_client({"pg_index": RuntimeError("permission denied for table pg_index")})

        with pytest.raises(DatabaseError, match="Failed to fetch indexes") as exc_info:
            await catalog.list_indexes(client, "public", "users")

        assert exc_info.value.details == {"originalError": "permission denied for table pg_index"}


# ============================================================================
# Assembly
# ============================================================================


class TestFilterSchemas:

    def test_drops_ignored_and_toast(self) -> None:
        names = ["auth", "cron", "pg_temp_3", "pg_toast_temp_1", "public", "sales"]
        assert filter_schemas(names, DEFAULT_IGNORED_SCHEMAS) == ["public", "sales"]

    def test_empty_ignored_keeps_everything(self) -> None:
        assert filter_schemas(["auth", "public"], ()) == ["auth", "public"]


class TestBuildSchemaGraph:

    def test_table_without_columns_or_key(self) -> None:
        graph = build_schema_graph(
            ["public"],
            [TableRow(table_schema="public", table_name="empty", table_type="BASE TABLE")],
            [],
            [],
            [],
        )
        node = graph.get_node("public.empty")
        assert node is not None
        assert node.columns == []
        assert node.primary_key == []

    def test_composite_key_order_preserved(self) -> None:
        graph = build_schema_graph(
            ["public"],
            [TableRow(table_schema="public", table_name="m", table_type="BASE TABLE")],
            [],
            [
                PrimaryKeyRow(table_schema="public", table_name="m", column_name="tenant_id"),
                PrimaryKeyRow(table_schema="public", table_name="m", column_name="user_id"),
            ],
            [],
        )
        assert graph.get_node("public.m").primary_key == ["tenant_id", "user_id"]

    def test_cross_schema_edge_is_dangling(self) -> None:
        graph = build_schema_graph(
            ["public"],
            [TableRow(table_schema="public", table_name="posts", table_type="BASE TABLE")],
            [ColumnRow.model_validate(_column("posts", "author_id", 1))],
            [],
            [
                ForeignKeyRow(
                    fk_name="posts_author_fkey",
                    source_schema="public",
                    source_table="posts",
                    source_column="author_id",
                    target_schema="auth",
                    target_table="users",
                    target_column="id",
                )
            ],
        )
        assert [e.id for e in graph.dangling_edges()] == ["posts_author_fkey"]
        with pytest.raises(DatabaseError):
            graph.validate_edges()


class TestIntrospectDatabase:

    @pytest.mark.asyncio
    async def test_users_and_posts(self) -> None:
        client = _make_mock_client(USERS_AND_POSTS)

        graph = await introspect_database(client)

        assert graph.schemas == ["public"]
        assert [n.id for n in graph.nodes] == ["public.posts", "public.users"]

        users = graph.get_node("public.users")
        assert [c.name for c in users.columns] == ["id", "email"]
        assert users.primary_key == ["id"]
        assert users.columns[0].nullable is False
        assert users.columns[0].default == "gen_random_uuid()"

        [edge] = graph.edges
        assert edge.id == "posts_author_id_fkey"
        assert edge.source == "public.posts"
        assert edge.source_column == "author_id"
        assert edge.target == "public.users"
        assert edge.target_column == "id"
        assert edge.label == "author_id → id"
        assert graph.dangling_edges() == []

    @pytest.mark.asyncio
    async def test_all_catalog_queries_share_schema_set(self) -> None:
        client = _make_mock_client(USERS_AND_POSTS)

        await introspect_database(client)

        # schemata query plus the four per-schema queries
        assert client.query.await_count == 5
        for call in client.query.call_args_list[1:]:
            assert call.args[1] == {"schemas": ["public"]}

    @pytest.mark.asyncio
    async def test_wire_format(self) -> None:
        client = _make_mock_client(USERS_AND_POSTS)

        data = (await introspect_database(client)).to_dict()

        assert data["nodes"][1]["primaryKey"] == ["id"]
        assert data["nodes"][1]["schema"] == "public"
        assert data["edges"][0]["sourceColumn"] == "author_id"
        assert data["edges"][0]["targetColumn"] == "id"

    @pytest.mark.asyncio
    async def test_no_schemas(self) -> None:
        client = _make_mock_client({"information_schema.schemata": []})

        with pytest.raises(DatabaseError, match="No schemas found in the database"):
            await introspect_database(client)

    @pytest.mark.asyncio
    async def test_only_ignored_schemas(self) -> None:
        client = _make_mock_client({"information_schema.schemata": [{"schema_name": "auth"}]})

        with pytest.raises(DatabaseError, match="No schemas found"):
            await introspect_database(client, DEFAULT_IGNORED_SCHEMAS)

    @pytest.mark.asyncio
    async def test_query_failure_is_wrapped(self) -> None:
        responses = dict(USERS_AND_POSTS)
        responses["FOREIGN KEY"] = RuntimeError("canceling statement due to user request")
        client = _make_mock_client(responses)

        with pytest.raises(DatabaseError) as exc_info:
            await introspect_database(client)

        error = exc_info.value
        assert error.message.startswith("Failed to introspect database structure:")
        assert error.details["errorType"] == "RuntimeError"

    @pytest.mark.asyncio
    async def test_failure_cancels_sibling_queries(self) -> None:
        finished: list[str] = []
        client = AsyncMock()

        async def query(sql: str, params: dict | None = None) -> list[dict]:
            if "information_schema.schemata" in sql:
                return [{"schema_name": "public"}]
            if "information_schema.tables" in sql:
                raise RuntimeError("connection reset")
            await asyncio.sleep(0.05)
            finished.append(sql)
            return []

        client.query.side_effect = query

        with pytest.raises(DatabaseError):
            await introspect_database(client)
        await asyncio.sleep(0.1)

        assert finished == []

    def test_empty_graph(self) -> None:
        assert SchemaGraph().to_dict() == {"schemas": [], "nodes": [], "edges": []}
