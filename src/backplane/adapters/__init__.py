"""Database adapters package.

Provides the ``DatabaseClient`` Protocol and the async PostgreSQL adapter
implementation.

Usage:
    from backplane.adapters import DatabaseClient, AsyncPostgresAdapter
"""

from backplane.adapters.base import DatabaseClient
from backplane.adapters.postgres import (
    AsyncPostgresAdapter,
    normalize_database_url,
    qualified_name,
    quote_identifier,
)

__all__ = [
    "DatabaseClient",
    "AsyncPostgresAdapter",
    "normalize_database_url",
    "qualified_name",
    "quote_identifier",
]
