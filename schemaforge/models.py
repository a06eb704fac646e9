"""Data models and type definitions."""

from __future__ import annotations

import copy
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from schemaforge.catalog import ColumnType


@dataclass
class ColumnDefinition:
    """
    Column declaration accumulated by a Blueprint.

    Attributes:
        name: Column name
        type: Abstract column type descriptor
        nullable: Whether column allows NULL values
        default: Literal default, or a zero-argument callable evaluated per row
        unique: Whether column has a UNIQUE constraint
        primary_key: Whether column is the primary key
        auto_increment: Whether the store generates the value
        comment: Column comment
        after: Place column after this one (ALTER only)
        first: Place column first (ALTER only)
    """

    name: str
    type: ColumnType
    nullable: bool = True
    default: Any = None
    unique: bool = False
    primary_key: bool = False
    auto_increment: bool = False
    comment: str | None = None
    after: str | None = None
    first: bool = False

    @property
    def has_default(self) -> bool:
        return self.default is not None

    def default_value(self) -> Any:
        """Evaluate the default (callables are invoked per row)."""
        if callable(self.default):
            return self.default()
        return self.default


class IndexKind(str, Enum):
    """Index flavours a blueprint can declare."""

    REGULAR = "index"
    UNIQUE = "unique"
    COMPOSITE = "composite"
    PARTIAL = "partial"


@dataclass
class IndexDefinition:
    """
    Index declaration.

    Attributes:
        fields: Indexed column names
        name: Index name
        kind: Index flavour
        condition: WHERE predicate (partial indexes only)
    """

    fields: list[str]
    name: str
    kind: IndexKind = IndexKind.REGULAR
    condition: str | None = None

    @property
    def is_unique(self) -> bool:
        return self.kind == IndexKind.UNIQUE


@dataclass
class ForeignKeyConstraint:
    """
    Foreign key constraint.

    Attributes:
        column: Foreign key column in this table
        referenced_table: Parent table being referenced
        referenced_column: Column in parent table (usually PK)
        on_delete: ON DELETE action
        on_update: ON UPDATE action
        name: Constraint name (defaults to fk_<table>_<column> at build time)
    """

    column: str
    referenced_table: str
    referenced_column: str = "id"
    on_delete: str = "CASCADE"
    on_update: str = "CASCADE"
    name: str | None = None

    def constraint_name_for(self, table: str) -> str:
        return self.name or f"fk_{table}_{self.column}"


@dataclass
class TableSchema:
    """
    Compiled table description shared by migrations, models and stores.

    Attributes:
        name: Table name
        columns: Column definitions keyed by name (declaration order)
        indexes: Index definitions
        foreign_keys: Foreign key constraints
    """

    name: str
    columns: dict[str, ColumnDefinition] = field(default_factory=dict)
    indexes: list[IndexDefinition] = field(default_factory=list)
    foreign_keys: list[ForeignKeyConstraint] = field(default_factory=list)

    @property
    def pk_column(self) -> str | None:
        """
        Get primary key column name.

        Returns:
            Primary key column name or None if no PK found
        """
        for col in self.columns.values():
            if col.primary_key:
                return col.name
        return None

    @property
    def pk_is_auto_increment(self) -> bool:
        pk = self.pk_column
        return bool(pk and self.columns[pk].auto_increment)

    @property
    def column_names(self) -> list[str]:
        return list(self.columns)

    def has_column(self, name: str) -> bool:
        return name in self.columns

    def unique_column_sets(self) -> list[tuple[str, ...]]:
        """All column tuples that must be unique (PK, unique columns, unique indexes)."""
        sets: list[tuple[str, ...]] = []
        for col in self.columns.values():
            if col.primary_key or col.unique:
                sets.append((col.name,))
        for index in self.indexes:
            if index.is_unique and tuple(index.fields) not in sets:
                sets.append(tuple(index.fields))
        return sets

    def copy(self) -> TableSchema:
        return copy.deepcopy(self)

    def renamed(self, new_name: str) -> TableSchema:
        return replace(self.copy(), name=new_name)


class TableRegistry:
    """
    Registry of compiled table schemas.

    Single source of truth for column metadata: Schema writes into it as
    blueprints are built, SchemaDetector and SeederOperations read from it.
    """

    def __init__(self, tables: dict[str, TableSchema] | None = None):
        self._tables: dict[str, TableSchema] = dict(tables or {})
        # Bumped on every change; readers caching derived data compare it
        self.version = 0

    def register(self, table: TableSchema) -> None:
        self._tables[table.name] = table
        self.version += 1

    def get(self, name: str) -> TableSchema | None:
        return self._tables.get(name)

    def remove(self, name: str) -> None:
        if self._tables.pop(name, None) is not None:
            self.version += 1

    def rename(self, old: str, new: str) -> None:
        table = self._tables.pop(old, None)
        if table is not None:
            self._tables[new] = table.renamed(new)
            self.version += 1

    def names(self) -> list[str]:
        return list(self._tables)

    def __contains__(self, name: object) -> bool:
        return name in self._tables

    def __len__(self) -> int:
        return len(self._tables)

    @classmethod
    async def from_migrations(cls, migrations: list[type], **options: Any) -> TableRegistry:
        """
        Build a registry by replaying migrations against an in-memory store.

        Args:
            migrations: Ordered Migration subclasses
            **options: Extra keyword arguments for each migration constructor

        Returns:
            TableRegistry holding every table the migrations create
        """
        from schemaforge.backends.memory import MemoryStore

        registry = cls()
        store = MemoryStore()
        for migration_class in migrations:
            migration = migration_class(store, registry=registry, **options)
            await migration.execute("up")
        return registry


# Callable producing a per-row default (e.g. uuid4 string)
DefaultFactory = Callable[[], Any]
