"""Schema introspection, primary-key resolution and DDL.

Usage:
    >>> from backplane.schema import introspect_database, SchemaGraph
    >>> from backplane.schema import add_column, ColumnDefinition
"""

from backplane.schema.assembler import build_schema_graph, introspect_database
from backplane.schema.catalog import list_indexes, list_table_columns
from backplane.schema.models import (
    ColumnInfo,
    ForeignKeyEdge,
    IndexInfo,
    SchemaGraph,
    TableNode,
)
from backplane.schema.mutations import (
    ColumnDefinition,
    SchemaChange,
    add_column,
    apply_changes,
)
from backplane.schema.primary_key import resolve_primary_key

__all__ = [
    "build_schema_graph",
    "introspect_database",
    "list_indexes",
    "list_table_columns",
    "ColumnInfo",
    "ForeignKeyEdge",
    "IndexInfo",
    "SchemaGraph",
    "TableNode",
    "ColumnDefinition",
    "SchemaChange",
    "add_column",
    "apply_changes",
    "resolve_primary_key",
]
