"""Store interface the engine calls into."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Any, TypeVar

from schemaforge.exceptions import ExecutionError, StoreError
from schemaforge.models import (
    ColumnDefinition,
    ForeignKeyConstraint,
    IndexDefinition,
    TableSchema,
)
from schemaforge.query.conditions import Condition

T = TypeVar("T")


@dataclass
class SelectQuery:
    """
    Compiled read request handed to a store.

    Attributes:
        where: Condition tree (None selects every row)
        order: (field, "ASC" | "DESC") pairs applied in order
        limit: Maximum rows to return
        offset: Rows to skip
        columns: Columns to return (None returns all)
    """

    where: Condition | None = None
    order: list[tuple[str, str]] = field(default_factory=list)
    limit: int | None = None
    offset: int | None = None
    columns: list[str] | None = None


class BaseStore(ABC):
    """
    Abstract async relational store.

    Covers the metadata/DDL interface (tables, columns, indexes, constraints)
    and the parameterized DML interface (select/count/insert/update/delete).
    """

    # Whether DDL statements can be rolled back inside transaction()
    supports_transactional_ddl: bool = False

    # Whether add_column honours after/first placement
    supports_column_order: bool = False

    # DDL

    @abstractmethod
    async def create_table(self, table: TableSchema) -> None:
        """Create a table with its columns and primary key (no indexes or FKs)."""

    @abstractmethod
    async def add_column(self, table: str, column: ColumnDefinition) -> None:
        """Add a column to an existing table."""

    @abstractmethod
    async def drop_table(self, name: str, cascade: bool = False) -> None:
        """
        Drop a table.

        Raises:
            TableNotFoundError: If the table does not exist
        """

    @abstractmethod
    async def rename_table(self, old: str, new: str) -> None:
        """Rename a table."""

    @abstractmethod
    async def describe_table(self, name: str) -> TableSchema:
        """
        Describe an existing table.

        Raises:
            TableNotFoundError: If the table does not exist
        """

    @abstractmethod
    async def add_index(self, table: str, index: IndexDefinition) -> None:
        """Create an index."""

    @abstractmethod
    async def drop_index(self, table: str, name: str) -> None:
        """Drop an index by name."""

    @abstractmethod
    async def add_constraint(self, table: str, constraint: ForeignKeyConstraint) -> None:
        """Add a foreign-key constraint."""

    @abstractmethod
    async def referencing_tables(self, table: str) -> list[str]:
        """List tables holding a foreign key that points at this table."""

    # DML

    @abstractmethod
    async def select(self, table: str, query: SelectQuery) -> list[dict[str, Any]]:
        """Return rows matching the query."""

    @abstractmethod
    async def count(
        self, table: str, where: Condition | None = None, distinct: str | None = None
    ) -> int:
        """Count matching rows (or distinct values of one column)."""

    @abstractmethod
    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        """Insert one row and return it with generated values filled in."""

    @abstractmethod
    async def update(
        self, table: str, values: dict[str, Any], where: Condition | None
    ) -> int:
        """Update matching rows; returns the number of rows changed."""

    @abstractmethod
    async def delete(self, table: str, where: Condition | None) -> int:
        """Delete matching rows; returns the number of rows removed."""

    @abstractmethod
    async def truncate(self, table: str, cascade: bool = False) -> None:
        """Remove every row (and rows of referencing tables when cascading)."""

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Async context manager grouping statements in one transaction."""


async def run_statement(
    awaitable: Awaitable[T], table: str, operation: str, column: str | None = None
) -> T:
    """
    Await a DML store call, reporting rejections as ExecutionError.

    Raises:
        ExecutionError: Wrapping the StoreError, with the table, operation and
            offending column
    """
    try:
        return await awaitable
    except StoreError as e:
        raise ExecutionError(
            e.table or table, operation, e, column=e.column or column
        ) from e
