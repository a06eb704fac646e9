"""
Blueprint: accumulate one table's column, index and foreign-key declarations.

Example:
    >>> async def up(schema):
    ...     await schema.create("tags", lambda table: (
    ...         table.id(),
    ...         table.string("name", 255).unique(),
    ...         table.text("description").nullable(),
    ...         table.timestamps(),
    ...     ))
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any
from uuid import uuid4

from schemaforge.backends.base import BaseStore
from schemaforge.catalog import ColumnType
from schemaforge.exceptions import (
    ConstructionError,
    DuplicateForeignKeyError,
    DuplicatePrimaryKeyError,
    ExecutionError,
    InvalidForeignKeyActionError,
    InvalidIndexError,
    MissingPrimaryKeyError,
)
from schemaforge.models import (
    ColumnDefinition,
    ForeignKeyConstraint,
    IndexDefinition,
    IndexKind,
    TableSchema,
)

logger = logging.getLogger(__name__)

VALID_ACTIONS = ("CASCADE", "SET NULL", "RESTRICT", "NO ACTION")


def generate_id() -> str:
    """Default value for id() columns."""
    return str(uuid4())


def _validate_action(action: str) -> str:
    normalized = " ".join(str(action).upper().split())
    if normalized not in VALID_ACTIONS:
        raise InvalidForeignKeyActionError(action, VALID_ACTIONS)
    return normalized


def _as_list(columns: str | Sequence[str]) -> list[str]:
    if isinstance(columns, str):
        return [columns]
    return list(columns)


class ColumnHandle:
    """Modifier handle returned by column declarators."""

    def __init__(self, blueprint: Blueprint, column_name: str):
        self.blueprint = blueprint
        self.column_name = column_name

    @property
    def column(self) -> ColumnDefinition:
        return self.blueprint.columns[self.column_name]

    def nullable(self, value: bool = True) -> ColumnHandle:
        self.column.nullable = value
        return self

    def not_nullable(self) -> ColumnHandle:
        self.column.nullable = False
        return self

    def default(self, value: Any) -> ColumnHandle:
        self.column.default = value
        return self

    def unique(self) -> ColumnHandle:
        self.column.unique = True
        return self

    def index(self, index_name: str | None = None) -> ColumnHandle:
        self.blueprint.index(self.column_name, index_name)
        return self

    def comment(self, text: str) -> ColumnHandle:
        self.column.comment = text
        return self

    def after(self, column: str) -> ColumnHandle:
        self.column.after = column
        return self

    def first(self) -> ColumnHandle:
        self.column.first = True
        return self


class ForeignKeyHandle:
    """
    Constraint handle for ``foreign(column)``.

    The constraint joins the blueprint only once references() is called;
    actions set earlier are kept and applied at that point.
    """

    def __init__(self, blueprint: Blueprint, column_name: str):
        self.blueprint = blueprint
        self.column_name = column_name
        self._pending: dict[str, str | None] = {
            "on_delete": "CASCADE",
            "on_update": "CASCADE",
            "name": None,
        }
        self.constraint: ForeignKeyConstraint | None = None

    def _set(self, key: str, value: str | None) -> None:
        self._pending[key] = value
        if self.constraint is not None:
            setattr(self.constraint, key, value)

    def references(self, table: str, column: str = "id") -> ForeignKeyHandle:
        """
        Register the constraint against ``table.column``.

        Raises:
            DuplicateForeignKeyError: If the column already has a constraint
        """
        for existing in self.blueprint.foreign_keys:
            if existing.column == self.column_name:
                raise DuplicateForeignKeyError(
                    self.blueprint.table_name, self.column_name, existing.referenced_table
                )
        self.constraint = ForeignKeyConstraint(
            column=self.column_name,
            referenced_table=table,
            referenced_column=column,
            on_delete=self._pending["on_delete"],
            on_update=self._pending["on_update"],
            name=self._pending["name"],
        )
        self.blueprint.foreign_keys.append(self.constraint)
        return self

    def on(self, table: str) -> ForeignKeyHandle:
        """Point an already-registered constraint at a different table."""
        if self.constraint is None:
            return self.references(table)
        self.constraint.referenced_table = table
        return self

    def on_delete(self, action: str) -> ForeignKeyHandle:
        self._set("on_delete", _validate_action(action))
        return self

    def on_update(self, action: str) -> ForeignKeyHandle:
        self._set("on_update", _validate_action(action))
        return self

    def constraint_name(self, name: str) -> ForeignKeyHandle:
        self._set("name", name)
        return self

    def cascade(self) -> ForeignKeyHandle:
        self._set("on_delete", "CASCADE")
        self._set("on_update", "CASCADE")
        return self

    def restrict(self) -> ForeignKeyHandle:
        self._set("on_delete", "RESTRICT")
        self._set("on_update", "RESTRICT")
        return self

    def null_on_delete(self) -> ForeignKeyHandle:
        self._set("on_delete", "SET NULL")
        return self


class ForeignIdHandle(ColumnHandle, ForeignKeyHandle):
    """Handle for ``foreign_id(column)``: column modifiers plus constraint methods."""

    def __init__(self, blueprint: Blueprint, column_name: str):
        ColumnHandle.__init__(self, blueprint, column_name)
        ForeignKeyHandle.__init__(self, blueprint, column_name)

    def null_on_delete(self) -> ForeignIdHandle:
        self.column.nullable = True
        ForeignKeyHandle.null_on_delete(self)
        return self


class IndexHandle:
    """Index declarations for one blueprint."""

    def __init__(self, blueprint: Blueprint):
        self.blueprint = blueprint

    def _name(self, prefix: str, columns: list[str], index_name: str | None) -> str:
        return index_name or f"{prefix}_{self.blueprint.table_name}_{'_'.join(columns)}"

    def index(self, columns: str | Sequence[str], index_name: str | None = None) -> IndexHandle:
        fields = _as_list(columns)
        self.blueprint.indexes.append(
            IndexDefinition(fields, self._name("idx", fields, index_name), IndexKind.REGULAR)
        )
        return self

    def unique(self, columns: str | Sequence[str], index_name: str | None = None) -> IndexHandle:
        fields = _as_list(columns)
        self.blueprint.indexes.append(
            IndexDefinition(fields, self._name("uniq", fields, index_name), IndexKind.UNIQUE)
        )
        return self

    def composite(self, columns: Sequence[str], index_name: str | None = None) -> IndexHandle:
        """
        Declare a multi-column index.

        Raises:
            InvalidIndexError: If fewer than two columns are given
        """
        if isinstance(columns, str) or not isinstance(columns, (list, tuple)):
            name = index_name or f"comp_{self.blueprint.table_name}_{columns}"
            raise InvalidIndexError(name, [str(columns)], "columns must be a list")
        fields = list(columns)
        name = self._name("comp", fields, index_name)
        if len(fields) < 2:
            raise InvalidIndexError(name, fields, "composite index requires at least 2 columns")
        self.blueprint.indexes.append(IndexDefinition(fields, name, IndexKind.COMPOSITE))
        return self

    def partial(
        self,
        columns: str | Sequence[str],
        condition: str,
        index_name: str | None = None,
    ) -> IndexHandle:
        fields = _as_list(columns)
        self.blueprint.indexes.append(
            IndexDefinition(
                fields,
                self._name("partial", fields, index_name),
                IndexKind.PARTIAL,
                condition=condition,
            )
        )
        return self

    def drop_index(self, index_name: str) -> IndexHandle:
        self.blueprint.drop_indexes.append(index_name)
        return self


class Blueprint:
    """
    In-memory accumulation of one table's declarations.

    Created per schema-change call and discarded after build()/alter().
    """

    def __init__(
        self,
        table_name: str,
        default_string_length: int = 255,
        timestamp_columns: tuple[str, str] = ("created_at", "updated_at"),
    ):
        self.table_name = table_name
        self.default_string_length = default_string_length
        self.timestamp_columns = timestamp_columns
        self.columns: dict[str, ColumnDefinition] = {}
        self.indexes: list[IndexDefinition] = []
        self.foreign_keys: list[ForeignKeyConstraint] = []
        self.drop_indexes: list[str] = []
        self.index_builder = IndexHandle(self)

    def _add(self, name: str, column_type: ColumnType, **options: Any) -> ColumnHandle:
        self.columns[name] = ColumnDefinition(name=name, type=column_type, **options)
        return ColumnHandle(self, name)

    def _primary(
        self, name: str, column_type: ColumnType, auto_increment: bool, default: Any = None
    ) -> ColumnHandle:
        for existing in self.columns.values():
            if existing.primary_key and existing.name != name:
                raise DuplicatePrimaryKeyError(self.table_name, existing.name, name)
        return self._add(
            name,
            column_type,
            nullable=False,
            primary_key=True,
            auto_increment=auto_increment,
            default=default,
        )

    # Primary keys

    def id(self, column_name: str = "id") -> ColumnHandle:
        """UUID primary key with an engine-generated default."""
        return self._primary(column_name, ColumnType.uuid(), False, default=generate_id)

    def increments(self, column_name: str = "id") -> ColumnHandle:
        return self._primary(column_name, ColumnType.increments(), True)

    def big_increments(self, column_name: str = "id") -> ColumnHandle:
        return self._primary(column_name, ColumnType.big_increments(), True)

    # Strings

    def string(self, column_name: str, length: int | None = None) -> ColumnHandle:
        return self._add(column_name, ColumnType.string(length or self.default_string_length))

    def char(self, column_name: str, length: int = 255) -> ColumnHandle:
        return self._add(column_name, ColumnType.char(length))

    def text(self, column_name: str) -> ColumnHandle:
        return self._add(column_name, ColumnType.text())

    def medium_text(self, column_name: str) -> ColumnHandle:
        return self._add(column_name, ColumnType.medium_text())

    def long_text(self, column_name: str) -> ColumnHandle:
        return self._add(column_name, ColumnType.long_text())

    def uuid(self, column_name: str) -> ColumnHandle:
        return self._add(column_name, ColumnType.uuid())

    def email(self, column_name: str) -> ColumnHandle:
        return self._add(column_name, ColumnType.email())

    def url(self, column_name: str) -> ColumnHandle:
        return self._add(column_name, ColumnType.url())

    # Numbers

    def integer(self, column_name: str) -> ColumnHandle:
        return self._add(column_name, ColumnType.integer())

    def big_integer(self, column_name: str) -> ColumnHandle:
        return self._add(column_name, ColumnType.big_integer())

    def small_integer(self, column_name: str) -> ColumnHandle:
        return self._add(column_name, ColumnType.small_integer())

    def tiny_integer(self, column_name: str) -> ColumnHandle:
        return self._add(column_name, ColumnType.tiny_integer())

    def decimal(self, column_name: str, precision: int = 8, scale: int = 2) -> ColumnHandle:
        return self._add(column_name, ColumnType.decimal(precision, scale))

    def float(
        self, column_name: str, precision: int | None = None, scale: int | None = None
    ) -> ColumnHandle:
        return self._add(column_name, ColumnType.float(precision, scale))

    def double(
        self, column_name: str, precision: int | None = None, scale: int | None = None
    ) -> ColumnHandle:
        return self._add(column_name, ColumnType.double(precision, scale))

    # Booleans and dates

    def boolean(self, column_name: str) -> ColumnHandle:
        return self._add(column_name, ColumnType.boolean(), default=False)

    def date(self, column_name: str) -> ColumnHandle:
        return self._add(column_name, ColumnType.date())

    def date_time(self, column_name: str) -> ColumnHandle:
        return self._add(column_name, ColumnType.date_time())

    def timestamp(self, column_name: str) -> ColumnHandle:
        return self._add(column_name, ColumnType.timestamp())

    def time(self, column_name: str) -> ColumnHandle:
        return self._add(column_name, ColumnType.time())

    def year(self, column_name: str) -> ColumnHandle:
        return self._add(column_name, ColumnType.year())

    def timestamps(self) -> Blueprint:
        """Add NOT NULL creation and update timestamp columns."""
        for name in self.timestamp_columns:
            self._add(name, ColumnType.timestamp(), nullable=False)
        return self

    def soft_deletes(self, column_name: str = "deleted_at") -> Blueprint:
        self._add(column_name, ColumnType.timestamp(), nullable=True)
        return self

    # Special types

    def enum(self, column_name: str, values: Sequence[str]) -> ColumnHandle:
        return self._add(column_name, ColumnType.enum(column_name, values))

    def json(self, column_name: str) -> ColumnHandle:
        return self._add(column_name, ColumnType.json())

    def jsonb(self, column_name: str) -> ColumnHandle:
        return self._add(column_name, ColumnType.jsonb())

    # Foreign keys

    def foreign_id(self, column_name: str, column_type: ColumnType | None = None) -> ForeignIdHandle:
        """Declare a nullable key column; the constraint is added by references()."""
        self.columns[column_name] = ColumnDefinition(
            name=column_name, type=column_type or ColumnType.uuid()
        )
        return ForeignIdHandle(self, column_name)

    def foreign(self, column_name: str) -> ForeignKeyHandle:
        """Declare a constraint on a column declared elsewhere."""
        return ForeignKeyHandle(self, column_name)

    # Indexes

    def index(self, columns: str | Sequence[str], index_name: str | None = None) -> IndexHandle:
        return self.index_builder.index(columns, index_name)

    def unique(self, columns: str | Sequence[str], index_name: str | None = None) -> IndexHandle:
        return self.index_builder.unique(columns, index_name)

    def composite(self, columns: Sequence[str], index_name: str | None = None) -> IndexHandle:
        return self.index_builder.composite(columns, index_name)

    def partial(
        self, columns: str | Sequence[str], condition: str, index_name: str | None = None
    ) -> IndexHandle:
        return self.index_builder.partial(columns, condition, index_name)

    def drop_index(self, index_name: str) -> IndexHandle:
        return self.index_builder.drop_index(index_name)

    # Compilation

    def to_table(self) -> TableSchema:
        """
        Compile declarations into a TableSchema.

        Raises:
            MissingPrimaryKeyError: If no primary key was declared
        """
        table = TableSchema(
            name=self.table_name,
            columns={name: col for name, col in self.columns.items()},
            indexes=list(self.indexes),
            foreign_keys=[self._named(fk) for fk in self.foreign_keys],
        )
        if table.pk_column is None:
            raise MissingPrimaryKeyError(self.table_name)
        return table.copy()

    def apply_to(self, table: TableSchema) -> TableSchema:
        """Merge ALTER declarations into an existing description."""
        merged = table.copy()
        for column in self.columns.values():
            items = list(merged.columns.items())
            entry = (column.name, column)
            if column.first:
                items.insert(0, entry)
            elif column.after and column.after in merged.columns:
                position = [name for name, _ in items].index(column.after) + 1
                items.insert(position, entry)
            else:
                items.append(entry)
            merged.columns = dict(items)
        merged.indexes = [
            i for i in merged.indexes + list(self.indexes) if i.name not in self.drop_indexes
        ]
        merged.foreign_keys.extend(self._named(fk) for fk in self.foreign_keys)
        return merged.copy()

    def _named(self, fk: ForeignKeyConstraint) -> ForeignKeyConstraint:
        return ForeignKeyConstraint(
            column=fk.column,
            referenced_table=fk.referenced_table,
            referenced_column=fk.referenced_column,
            on_delete=fk.on_delete,
            on_update=fk.on_update,
            name=fk.constraint_name_for(self.table_name),
        )

    async def build(self, store: BaseStore) -> TableSchema:
        """
        Compile and execute CREATE TABLE, then indexes, then foreign keys.

        Stages run strictly in that order. A failure in a later stage leaves
        the table and earlier indexes in place; callers wanting all-or-nothing
        wrap the call in ``store.transaction()``.

        Raises:
            ConstructionError: If declarations are invalid
            ExecutionError: If the store rejects a stage
        """
        table = self.to_table()

        logger.info(f"Creating table {self.table_name} ({len(table.columns)} columns)")
        await self._run(store.create_table(table), "create_table")

        for index in table.indexes:
            logger.info(f"Adding index {index.name} on {self.table_name}{index.fields}")
            await self._run(store.add_index(self.table_name, index), "add_index", index.fields[0])

        for fk in table.foreign_keys:
            logger.info(
                f"Adding foreign key {fk.name}: {self.table_name}.{fk.column} -> "
                f"{fk.referenced_table}.{fk.referenced_column}"
            )
            await self._run(store.add_constraint(self.table_name, fk), "add_constraint", fk.column)

        return table

    async def alter(self, store: BaseStore) -> None:
        """Add new columns, then indexes, then constraints, then drop indexes."""
        for column in self.columns.values():
            if column.primary_key:
                raise ConstructionError(
                    f"Cannot add primary key '{column.name}' to existing table "
                    f"'{self.table_name}'"
                )
            logger.info(f"Adding column {self.table_name}.{column.name}")
            await self._run(store.add_column(self.table_name, column), "add_column", column.name)

        for index in self.indexes:
            logger.info(f"Adding index {index.name} on {self.table_name}{index.fields}")
            await self._run(store.add_index(self.table_name, index), "add_index", index.fields[0])

        for fk in self.foreign_keys:
            named = self._named(fk)
            logger.info(f"Adding foreign key {named.name} on {self.table_name}.{fk.column}")
            await self._run(
                store.add_constraint(self.table_name, named), "add_constraint", fk.column
            )

        for name in self.drop_indexes:
            logger.info(f"Dropping index {name} on {self.table_name}")
            await self._run(store.drop_index(self.table_name, name), "drop_index")

    async def _run(self, awaitable, operation: str, column: str | None = None) -> None:
        try:
            await awaitable
        except Exception as e:
            raise ExecutionError(self.table_name, operation, e, column=column) from e
