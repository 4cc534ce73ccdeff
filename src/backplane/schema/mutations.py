"""Schema mutations -- apply DDL to the live database.

Two entry points:

- ``add_column()``: the single-column ``ALTER TABLE ... ADD COLUMN`` used
  by the column-creation surface.
- ``apply_changes()``: a batch of staged changes (create column, create
  table, update column, drop table) applied in order, followed by a fresh
  introspection of the result.

Column types and ``add_column`` defaults are trusted DDL fragments: they
are emitted verbatim.  Only callers that already proved control of the
connection string reach this module, but anything passed as a type or
default runs as SQL on the target database.  Identifiers (schema, table
and column names) are always quoted.

Usage:
    from backplane.schema.mutations import ColumnDefinition, add_column

    column = ColumnDefinition(name="age", type="integer", nullable=False, defaultValue="0")
    await add_column(client, "public", "users", column)
"""

import logging
import re
from collections.abc import Collection, Sequence
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from backplane.adapters.base import DatabaseClient
from backplane.adapters.postgres import qualified_name, quote_identifier
from backplane.config.settings import DEFAULT_IGNORED_SCHEMAS
from backplane.errors import BackplaneError, DatabaseError, ValidationError
from backplane.schema.assembler import introspect_database
from backplane.schema.models import SchemaGraph

logger = logging.getLogger(__name__)

_EXPRESSION_PATTERN = re.compile(
    r"[()]|\bnow\b|\bcurrent_timestamp\b|\bgen_random_uuid\b|\buuid_generate_v4\b",
    re.IGNORECASE,
)

ChangeType = Literal["CREATE_COLUMN", "CREATE_TABLE", "UPDATE_COLUMN", "DROP_TABLE"]


def looks_like_expression(value: str) -> bool:
    """True for defaults that should be emitted as SQL, not as a string literal.

    Examples:
        >>> looks_like_expression("now()")
        True
        >>> looks_like_expression("pending")
        False
    """
    return bool(_EXPRESSION_PATTERN.search(value))


def default_sql(value: str) -> str:
    """Render a staged default: expressions raw, anything else quoted."""
    value = value.strip()
    if looks_like_expression(value):
        return value
    return "'" + value.replace("'", "''") + "'"


# ------------------------------------------------------------------
# Change models
# ------------------------------------------------------------------


class ColumnDefinition(BaseModel):
    """Column descriptor: name, native type, nullability, optional default.

    Example:
        >>> col = ColumnDefinition(name="email", type="text", nullable=False)
        >>> col.to_sql()
        'email text NOT NULL'
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    type: str = Field(min_length=1)
    nullable: bool = True
    default_value: str | None = Field(default=None, alias="defaultValue")

    @property
    def normalized_default(self) -> str | None:
        """Trimmed default, ``None`` when blank."""
        if self.default_value is None:
            return None
        return self.default_value.strip() or None

    def to_sql(self, raw_default: bool = True) -> str:
        """Column definition fragment for ADD COLUMN / CREATE TABLE.

        Args:
            raw_default: Emit the default verbatim (``True``) or through
                ``default_sql`` (expression raw, otherwise a literal).
        """
        parts = [quote_identifier(self.name), self.type]
        if not self.nullable:
            parts.append("NOT NULL")
        default = self.normalized_default
        if default:
            parts.append(f"DEFAULT {default if raw_default else default_sql(default)}")
        return " ".join(parts)


class SchemaChange(BaseModel):
    """One staged change as produced by the schema editor."""

    model_config = ConfigDict(populate_by_name=True)

    type: ChangeType
    schema_name: str = Field(alias="schema")
    table: str = Field(min_length=1)
    column: ColumnDefinition | None = None
    old_column: ColumnDefinition | None = Field(default=None, alias="oldColumn")

    @property
    def target(self) -> str:
        return qualified_name(self.schema_name, self.table)

    def check(self) -> None:
        """Reject a change that lacks the descriptors its type needs.

        Raises:
            ValidationError: If ``column`` (or ``oldColumn`` for updates)
                is missing.
        """
        if self.type in ("CREATE_COLUMN", "CREATE_TABLE", "UPDATE_COLUMN") and self.column is None:
            raise ValidationError(
                f"{self.type} on {self.schema_name}.{self.table} requires a column"
            )
        if self.type == "UPDATE_COLUMN" and self.old_column is None:
            raise ValidationError(
                f"UPDATE_COLUMN on {self.schema_name}.{self.table} requires oldColumn"
            )

    def to_sql(self) -> list[str]:
        """DDL statements for this change, in execution order."""
        self.check()

        if self.type == "CREATE_COLUMN":
            return [build_add_column_sql(self.schema_name, self.table, self.column)]

        if self.type == "CREATE_TABLE":
            column = self.column
            return [
                f"CREATE TABLE {self.target} ("
                f"{column.to_sql(raw_default=False)}, "
                f"PRIMARY KEY ({quote_identifier(column.name)}))"
            ]

        if self.type == "DROP_TABLE":
            return [f"DROP TABLE {self.target}"]

        return self._update_column_sql()

    def _update_column_sql(self) -> list[str]:
        old, new = self.old_column, self.column
        statements: list[str] = []
        name = quote_identifier(new.name)

        if old.name != new.name:
            statements.append(
                f"ALTER TABLE {self.target} RENAME COLUMN {quote_identifier(old.name)} TO {name}"
            )

        if old.nullable != new.nullable:
            action = "DROP NOT NULL" if new.nullable else "SET NOT NULL"
            statements.append(f"ALTER TABLE {self.target} ALTER COLUMN {name} {action}")

        old_default, new_default = old.normalized_default, new.normalized_default
        if old_default != new_default:
            if new_default:
                statements.append(
                    f"ALTER TABLE {self.target} ALTER COLUMN {name} "
                    f"SET DEFAULT {default_sql(new_default)}"
                )
            else:
                statements.append(f"ALTER TABLE {self.target} ALTER COLUMN {name} DROP DEFAULT")

        return statements


_FAILURE_MESSAGES: dict[str, str] = {
    "CREATE_COLUMN": "Failed to create column",
    "CREATE_TABLE": "Failed to create table",
    "UPDATE_COLUMN": "Failed to update column",
    "DROP_TABLE": "Failed to drop table",
}


# ------------------------------------------------------------------
# Operations
# ------------------------------------------------------------------


def build_add_column_sql(schema: str, table: str, column: ColumnDefinition) -> str:
    """ALTER TABLE ... ADD COLUMN with the default emitted verbatim.

    Example:
        >>> col = ColumnDefinition(name="age", type="integer", nullable=False, defaultValue="0")
        >>> build_add_column_sql("public", "users", col)
        'ALTER TABLE public.users ADD COLUMN age integer NOT NULL DEFAULT 0'
    """
    return f"ALTER TABLE {qualified_name(schema, table)} ADD COLUMN {column.to_sql(raw_default=True)}"


async def add_column(
    client: DatabaseClient,
    schema: str,
    table: str,
    column: ColumnDefinition,
) -> None:
    """Add one column to a live table.

    Raises:
        DatabaseError: If the DDL fails; the driver message is kept in
            ``details``.
    """
    sql = build_add_column_sql(schema, table, column)
    try:
        await client.execute(sql)
    except Exception as e:
        logger.error(f"Failed to create column {column.name} on {schema}.{table}: {e}")
        raise DatabaseError("Failed to create column", {"originalError": str(e)}) from e
    logger.info(f"Added column {column.name} ({column.type}) to {schema}.{table}")


async def apply_changes(
    client: DatabaseClient,
    changes: Sequence[SchemaChange],
    ignored_schemas: Collection[str] = DEFAULT_IGNORED_SCHEMAS,
) -> SchemaGraph | None:
    """Apply staged changes in order, then re-introspect.

    Every change is checked before any DDL runs.  Statements execute one
    at a time, each in its own transaction; the first failure stops the
    batch (earlier changes stay applied).

    Args:
        client: Database client for the target database.
        changes: Staged changes, applied in sequence.
        ignored_schemas: Schemas left out of the refreshed graph.

    Returns:
        The refreshed ``SchemaGraph``, or ``None`` if the refresh failed
        (the failure is logged; the applied changes are not rolled back).

    Raises:
        ValidationError: If a change lacks its column descriptors.
        DatabaseError: If a change's DDL fails.
    """
    for change in changes:
        change.check()

    for change in changes:
        try:
            for sql in change.to_sql():
                await client.execute(sql)
        except BackplaneError:
            raise
        except Exception as e:
            message = _FAILURE_MESSAGES[change.type]
            logger.error(f"{message} ({change.schema_name}.{change.table}): {e}")
            raise DatabaseError(message, {"originalError": str(e)}) from e
        logger.info(f"Applied {change.type} on {change.schema_name}.{change.table}")

    try:
        return await introspect_database(client, ignored_schemas)
    except Exception as e:
        logger.error(f"Failed to refresh schema snapshot: {e}")
        return None
