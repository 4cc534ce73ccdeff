"""Pydantic models for schema introspection.

This module contains schema-domain models:
- Catalog rows: SchemaRow, TableRow, ColumnRow, PrimaryKeyRow,
  ForeignKeyRow, IndexRow (one per row returned by a catalog query)
- Graph models: ColumnInfo, TableNode, ForeignKeyEdge, SchemaGraph
- IndexInfo (queried on demand per table)

Graph models are immutable value objects rebuilt on every introspection.
Field names are snake_case in Python; ``model_dump(by_alias=True)`` emits
the camelCase wire names (``primaryKey``, ``sourceColumn``, ...).
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from backplane.errors import DatabaseError


def table_key(schema: str, table: str) -> str:
    """Node id for a table: ``schema.table``."""
    return f"{schema}.{table}"


# ============================================================================
# Catalog Rows
# ============================================================================


class SchemaRow(BaseModel):
    schema_name: str


class TableRow(BaseModel):
    table_schema: str
    table_name: str
    table_type: str  # BASE TABLE, VIEW

    @property
    def key(self) -> str:
        return table_key(self.table_schema, self.table_name)


class ColumnRow(BaseModel):
    """One row of ``information_schema.columns``.

    Example:
        >>> row = ColumnRow(table_schema="public", table_name="users",
        ...                 column_name="id", data_type="uuid", udt_name="uuid",
        ...                 is_nullable="NO", ordinal_position=1)
        >>> row.nullable
        False
    """

    table_schema: str
    table_name: str
    column_name: str
    data_type: str
    udt_name: str
    is_nullable: str  # YES, NO
    column_default: str | None = None
    ordinal_position: int

    @property
    def key(self) -> str:
        return table_key(self.table_schema, self.table_name)

    @property
    def nullable(self) -> bool:
        return self.is_nullable == "YES"


class PrimaryKeyRow(BaseModel):
    table_schema: str
    table_name: str
    column_name: str

    @property
    def key(self) -> str:
        return table_key(self.table_schema, self.table_name)


class ForeignKeyRow(BaseModel):
    fk_name: str
    source_schema: str
    source_table: str
    source_column: str
    target_schema: str
    target_table: str
    target_column: str


class IndexRow(BaseModel):
    index_name: str
    columns: list[str] = Field(default_factory=list)
    is_unique: bool = False
    is_primary: bool = False
    method: str = "btree"


# ============================================================================
# Schema Graph
# ============================================================================


class _ValueObject(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class ColumnInfo(_ValueObject):
    """A column as shown on a table node.

    Example:
        >>> col = ColumnInfo(name="id", type="uuid", udt="uuid", nullable=False, position=1)
        >>> col.default is None
        True
    """

    name: str
    type: str  # information_schema data_type
    udt: str  # underlying type name, e.g. int4, varchar
    nullable: bool = True
    default: str | None = None
    position: int


class TableNode(_ValueObject):
    """A table or view, with its columns and primary key."""

    id: str
    schema_name: str = Field(alias="schema")
    name: str
    type: str = "BASE TABLE"
    primary_key: list[str] = Field(default_factory=list, alias="primaryKey")
    columns: list[ColumnInfo] = Field(default_factory=list)

    def has_column(self, name: str) -> bool:
        return any(column.name == name for column in self.columns)


class ForeignKeyEdge(_ValueObject):
    """A foreign-key column mapping between two table nodes."""

    id: str  # constraint name
    source: str
    source_column: str = Field(alias="sourceColumn")
    target: str
    target_column: str = Field(alias="targetColumn")
    label: str = ""


class IndexInfo(_ValueObject):
    name: str
    columns: list[str] = Field(default_factory=list)
    unique: bool = False
    primary: bool = False
    method: str = "btree"


class SchemaGraph(_ValueObject):
    """Complete introspection result.

    Example:
        >>> graph = SchemaGraph(schemas=["public"])
        >>> graph.to_dict()
        {'schemas': ['public'], 'nodes': [], 'edges': []}
    """

    schemas: list[str] = Field(default_factory=list)
    nodes: list[TableNode] = Field(default_factory=list)
    edges: list[ForeignKeyEdge] = Field(default_factory=list)

    def get_node(self, node_id: str) -> TableNode | None:
        """Look up a node by ``schema.table`` id."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def dangling_edges(self) -> list[ForeignKeyEdge]:
        """Edges whose endpoints do not resolve to a node column."""
        nodes = {node.id: node for node in self.nodes}
        dangling: list[ForeignKeyEdge] = []
        for edge in self.edges:
            source = nodes.get(edge.source)
            target = nodes.get(edge.target)
            if (
                source is None
                or target is None
                or not source.has_column(edge.source_column)
                or not target.has_column(edge.target_column)
            ):
                dangling.append(edge)
        return dangling

    def validate_edges(self) -> None:
        """Check every edge before rendering.

        Raises:
            DatabaseError: If any edge references a missing node or column.
        """
        dangling = self.dangling_edges()
        if dangling:
            raise DatabaseError(
                f"Schema graph has {len(dangling)} edge(s) referencing missing tables or columns",
                {"edges": [edge.id for edge in dangling]},
            )

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the camelCase wire names."""
        return self.model_dump(by_alias=True)
