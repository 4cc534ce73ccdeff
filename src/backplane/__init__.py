"""backplane: live PostgreSQL introspection and generic table CRUD.

Reads a database's catalog into a schema graph (tables, columns, primary
keys, foreign-key edges), serves generic record operations on any table
by name, and applies column-level DDL.

Usage:
    from backplane import introspect_connection_string, open_connection, RecordService
    from backplane import BackplaneError, format_error_response
"""

__version__ = "0.1.0"

# Adapters
from backplane.adapters.base import DatabaseClient
from backplane.adapters.postgres import AsyncPostgresAdapter

# Errors
from backplane.classifier import classify_error
from backplane.errors import (
    BackplaneError,
    ConnectionError,
    DatabaseError,
    NotFoundError,
    ValidationError,
    format_error_response,
)

# Config
from backplane.config import Settings, get_settings, load_db_config

# Factory
from backplane.factory import (
    ProfileNotFoundError,
    introspect_connection_string,
    open_connection,
    resolve_database_url,
    validate_connection_string,
)

# Records
from backplane.records import RecordService

# Schema
from backplane.schema import (
    ColumnDefinition,
    SchemaChange,
    SchemaGraph,
    add_column,
    apply_changes,
    introspect_database,
    list_indexes,
    resolve_primary_key,
)

__all__ = [
    # Adapters
    "DatabaseClient",
    "AsyncPostgresAdapter",
    # Errors
    "BackplaneError",
    "ConnectionError",
    "DatabaseError",
    "NotFoundError",
    "ValidationError",
    "classify_error",
    "format_error_response",
    # Config
    "Settings",
    "get_settings",
    "load_db_config",
    # Factory
    "ProfileNotFoundError",
    "introspect_connection_string",
    "open_connection",
    "resolve_database_url",
    "validate_connection_string",
    # Records
    "RecordService",
    # Schema
    "ColumnDefinition",
    "SchemaChange",
    "SchemaGraph",
    "add_column",
    "apply_changes",
    "introspect_database",
    "list_indexes",
    "resolve_primary_key",
]
