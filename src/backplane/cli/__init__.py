"""CLI for schema introspection, column DDL and generic record access.

Usage:
    backplane profiles
    backplane --profile local introspect
    backplane --url postgresql://u:p@localhost:5432/app introspect --json
    backplane indexes --table users
    backplane add-column --table users --name age --type integer --not-null --default 0
    backplane apply --changes changes.json
    backplane records list users --limit 20
    backplane records get users 7b0c...
    backplane records insert users --data '{"email": "a@example.com"}'
    backplane records update users 7b0c... --data '{"email": "b@example.com"}'
    backplane records delete users 7b0c...

Commands:
    profiles    - List profiles from the TOML config
    introspect  - Print the schema graph (tables, keys, foreign keys)
    indexes     - List indexes of one table
    add-column  - Add one column to a table
    apply       - Apply a JSON batch of staged schema changes
    records     - List/get/insert/update/delete rows of any table

The connection comes from --url, else --profile / BACKPLANE_DB_PROFILE,
else BACKPLANE_DATABASE_URL.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

import pydantic
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from backplane.config import get_settings, load_db_config
from backplane.errors import BackplaneError, ValidationError, format_error_response
from backplane.factory import introspect_connection_string, open_connection, resolve_database_url
from backplane.records import RecordService
from backplane.schema.catalog import list_indexes
from backplane.schema.models import SchemaGraph
from backplane.schema.mutations import ColumnDefinition, SchemaChange, add_column, apply_changes

console = Console()

RECORD_ACTIONS = ("list", "get", "insert", "update", "delete")


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _print_error(error: BaseException, verbose: bool) -> None:
    settings = get_settings()
    envelope = format_error_response(error, include_details=verbose and settings.include_error_details)
    body = envelope["error"]
    console.print(f"[bold red]x[/bold red] {body['message']} [dim]({body['code']})[/dim]")
    if "details" in body:
        console.print_json(data=body["details"])


def _parse_json_object(raw: str | None, option: str) -> dict[str, Any]:
    if raw is None:
        raise ValidationError(f"{option} is required for this action")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError(f"{option} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValidationError(f"{option} must be a JSON object")
    return data


def _print_graph(graph: SchemaGraph) -> None:
    tables = Table(title=f"Tables ({', '.join(graph.schemas)})")
    tables.add_column("Table", style="cyan")
    tables.add_column("Type")
    tables.add_column("Primary key")
    tables.add_column("Columns")

    for node in graph.nodes:
        columns = ", ".join(
            f"{c.name} [dim]{c.type}{'' if c.nullable else ' not null'}[/dim]" for c in node.columns
        )
        tables.add_row(node.id, node.type, ", ".join(node.primary_key) or "-", columns)

    console.print(tables)

    if graph.edges:
        edges = Table(title="Foreign keys")
        edges.add_column("Constraint", style="dim")
        edges.add_column("Source")
        edges.add_column("Target")
        edges.add_column("Columns")
        for edge in graph.edges:
            edges.add_row(edge.id, edge.source, edge.target, edge.label)
        console.print(edges)

    dangling = graph.dangling_edges()
    if dangling:
        console.print(
            f"[yellow]{len(dangling)} foreign key(s) point outside the introspected schemas[/yellow]"
        )


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_introspect(args: argparse.Namespace) -> int:
    settings = get_settings()
    url = resolve_database_url(args.url, args.profile, settings)
    console.print("Introspecting database...", style="dim")

    graph = await introspect_connection_string(url, settings=settings)

    if args.json:
        console.print_json(data=graph.to_dict())
    else:
        _print_graph(graph)
    return 0


async def _async_indexes(args: argparse.Namespace) -> int:
    settings = get_settings()
    url = resolve_database_url(args.url, args.profile, settings)
    schema = args.schema or settings.default_schema

    async with open_connection(url, timeout=settings.operation_timeout, settings=settings) as client:
        indexes = await list_indexes(client, schema, args.table)

    if not indexes:
        console.print(f"[yellow]No indexes on {schema}.{args.table}[/yellow]")
        return 0

    table = Table(title=f"Indexes on {schema}.{args.table}")
    table.add_column("Name", style="cyan")
    table.add_column("Columns")
    table.add_column("Method")
    table.add_column("Unique")
    table.add_column("Primary")
    for index in indexes:
        table.add_row(
            index.name,
            ", ".join(index.columns),
            index.method,
            "yes" if index.unique else "",
            "yes" if index.primary else "",
        )
    console.print(table)
    return 0


async def _async_add_column(args: argparse.Namespace) -> int:
    settings = get_settings()
    url = resolve_database_url(args.url, args.profile, settings)
    schema = args.schema or settings.default_schema

    try:
        column = ColumnDefinition(
            name=args.name,
            type=args.type,
            nullable=not args.not_null,
            default_value=args.default,
        )
    except pydantic.ValidationError as e:
        raise ValidationError(
            "Invalid column definition",
            e.errors(include_url=False, include_context=False),
        ) from e

    async with open_connection(url, timeout=settings.operation_timeout, settings=settings) as client:
        await add_column(client, schema, args.table, column)

    console.print(
        f"[bold green]v[/bold green] Added column [cyan]{column.name}[/cyan] "
        f"({column.type}) to {schema}.{args.table}"
    )
    return 0


async def _async_apply(args: argparse.Namespace) -> int:
    settings = get_settings()
    changes_path = Path(args.changes)
    if not changes_path.exists():
        raise ValidationError(f"Changes file not found: {changes_path}")

    try:
        raw = json.loads(changes_path.read_text())
        changes = pydantic.TypeAdapter(list[SchemaChange]).validate_python(raw)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Changes file is not valid JSON: {e}") from e
    except pydantic.ValidationError as e:
        raise ValidationError(
            "Invalid change list",
            e.errors(include_url=False, include_context=False),
        ) from e

    if not changes:
        console.print("[yellow]No changes to apply.[/yellow]")
        return 0

    url = resolve_database_url(args.url, args.profile, settings)
    async with open_connection(url, timeout=settings.operation_timeout, settings=settings) as client:
        graph = await apply_changes(client, changes, settings.ignored_schemas)

    console.print(f"[bold green]v[/bold green] Applied {len(changes)} change(s)")
    if graph is None:
        console.print("[yellow]Schema snapshot could not be refreshed.[/yellow]")
    else:
        console.print(
            f"  Snapshot: {len(graph.nodes)} tables, {len(graph.edges)} foreign keys",
            style="dim",
        )
    return 0


async def _async_records(args: argparse.Namespace) -> int:
    settings = get_settings()
    schema = args.schema or settings.default_schema

    if args.action in ("get", "update", "delete") and args.id is None:
        raise ValidationError(f"records {args.action} needs a record id")
    data = _parse_json_object(args.data, "--data") if args.action in ("insert", "update") else None

    url = resolve_database_url(args.url, args.profile, settings)
    async with open_connection(url, timeout=settings.operation_timeout, settings=settings) as client:
        service = RecordService(client, strict_update_columns=settings.strict_update_columns)

        if args.action == "list":
            result: Any = await service.list_records(
                args.table, schema, limit=args.limit, offset=args.offset
            )
        elif args.action == "get":
            result = await service.get_record(args.table, args.id, schema)
        elif args.action == "insert":
            result = await service.insert_record(args.table, data, schema)
        elif args.action == "update":
            result = await service.update_record(args.table, args.id, data, schema)
        else:
            result = await service.delete_record(args.table, args.id, schema)

    console.print_json(data=result)
    return 0


# ============================================================================
# Sync wrappers
# ============================================================================


def cmd_profiles(args: argparse.Namespace) -> int:
    """List profiles from the TOML config."""
    settings = get_settings()
    try:
        config = load_db_config(settings.config_file)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    if not config.profiles:
        console.print(f"[yellow]No profiles in {settings.config_file}[/yellow]")
        return 0

    table = Table(title="Database Profiles")
    table.add_column("Profile", style="cyan")
    table.add_column("Description")

    active = args.profile or settings.db_profile
    for name, profile in config.profiles.items():
        marker = " [bold green]*[/bold green]" if name == active else ""
        table.add_row(f"{name}{marker}", profile.description)

    console.print(table)
    if active in config.profiles:
        console.print("\n[bold green]*[/bold green] = selected profile")
    return 0


def cmd_introspect(args: argparse.Namespace) -> int:
    """Wraps the async implementation with ``asyncio.run()``."""
    return asyncio.run(_async_introspect(args))


def cmd_indexes(args: argparse.Namespace) -> int:
    """Wraps the async implementation with ``asyncio.run()``."""
    return asyncio.run(_async_indexes(args))


def cmd_add_column(args: argparse.Namespace) -> int:
    """Wraps the async implementation with ``asyncio.run()``."""
    return asyncio.run(_async_add_column(args))


def cmd_apply(args: argparse.Namespace) -> int:
    """Wraps the async implementation with ``asyncio.run()``."""
    return asyncio.run(_async_apply(args))


def cmd_records(args: argparse.Namespace) -> int:
    """Wraps the async implementation with ``asyncio.run()``."""
    return asyncio.run(_async_records(args))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="backplane",
        description="PostgreSQL schema introspection and generic table access",
    )
    parser.add_argument("--url", help="Connection string (overrides profiles)")
    parser.add_argument("--profile", "-p", help="Profile name from the TOML config")
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Debug logging and error details",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # profiles command
    p_profiles = subparsers.add_parser("profiles", help="List available profiles")
    p_profiles.set_defaults(func=cmd_profiles)

    # introspect command
    p_introspect = subparsers.add_parser("introspect", help="Print the schema graph")
    p_introspect.add_argument("--json", action="store_true", help="Print the graph as JSON")
    p_introspect.set_defaults(func=cmd_introspect)

    # indexes command
    p_indexes = subparsers.add_parser("indexes", help="List indexes of a table")
    p_indexes.add_argument("--schema", help="Schema name (default: public)")
    p_indexes.add_argument("--table", required=True, help="Table name")
    p_indexes.set_defaults(func=cmd_indexes)

    # add-column command
    p_add = subparsers.add_parser("add-column", help="Add a column to a table")
    p_add.add_argument("--schema", help="Schema name (default: public)")
    p_add.add_argument("--table", required=True, help="Table name")
    p_add.add_argument("--name", required=True, help="Column name")
    p_add.add_argument("--type", required=True, help="Native column type, e.g. integer, text")
    p_add.add_argument("--not-null", action="store_true", help="Add a NOT NULL constraint")
    p_add.add_argument("--default", help="Default expression, emitted as-is")
    p_add.set_defaults(func=cmd_add_column)

    # apply command
    p_apply = subparsers.add_parser("apply", help="Apply staged schema changes")
    p_apply.add_argument(
        "--changes",
        required=True,
        help="Path to a JSON list of {type, schema, table, column, oldColumn} changes",
    )
    p_apply.set_defaults(func=cmd_apply)

    # records command
    p_records = subparsers.add_parser("records", help="Generic row access on any table")
    p_records.add_argument("action", choices=RECORD_ACTIONS)
    p_records.add_argument("table", help="Table name")
    p_records.add_argument("id", nargs="?", help="Primary key value (get/update/delete)")
    p_records.add_argument("--schema", help="Schema name (default: public)")
    p_records.add_argument("--data", help="JSON object for insert/update")
    p_records.add_argument("--limit", type=int, help="Maximum rows for list")
    p_records.add_argument("--offset", type=int, help="Rows to skip for list")
    p_records.set_defaults(func=cmd_records)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    try:
        return args.func(args)
    except BackplaneError as e:
        _print_error(e, args.verbose)
        return 1


if __name__ == "__main__":
    sys.exit(main())
