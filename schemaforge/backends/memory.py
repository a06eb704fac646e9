"""Memory backend - in-process store for testing without database."""

from __future__ import annotations

import copy
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from schemaforge.backends.base import BaseStore, SelectQuery
from schemaforge.catalog import TypeKind
from schemaforge.dependency import DependencyGraph
from schemaforge.exceptions import IntegrityError, StoreError, TableNotFoundError
from schemaforge.models import (
    ColumnDefinition,
    ForeignKeyConstraint,
    IndexDefinition,
    TableSchema,
)
from schemaforge.query.conditions import Condition

logger = logging.getLogger(__name__)


class MemoryStore(BaseStore):
    """
    In-memory store for testing schema and seed logic without database.

    Simulates database behavior:
    - Generates auto-increment primary keys (sequential IDs starting from 1)
    - Applies column defaults and enforces NOT NULL and enum value sets
    - Validates UNIQUE columns and unique indexes (in-memory tracking)
    - Enforces foreign keys, including ON DELETE actions
    - Rolls back DDL and DML on failure inside transaction()

    Use case: Fast unit tests, offline development, prototyping migrations.
    """

    supports_transactional_ddl = True
    supports_column_order = True

    def __init__(self):
        """Initialize memory store with empty state."""
        self._tables: dict[str, TableSchema] = {}
        self._data: dict[str, list[dict[str, Any]]] = {}
        self._sequences: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _table(self, name: str) -> TableSchema:
        if name not in self._tables:
            raise TableNotFoundError(name)
        return self._tables[name]

    def _referencing(self, name: str) -> list[tuple[TableSchema, ForeignKeyConstraint]]:
        refs = []
        for table in self._tables.values():
            for fk in table.foreign_keys:
                if fk.referenced_table == name:
                    refs.append((table, fk))
        return refs

    def _check_columns(self, table: TableSchema, row: dict[str, Any]) -> None:
        unknown = [key for key in row if key not in table.columns]
        if unknown:
            raise StoreError(
                f"Column(s) {', '.join(unknown)} of relation '{table.name}' do not exist",
                table.name,
                unknown[0],
            )

    def _validate_row(
        self,
        table: TableSchema,
        row: dict[str, Any],
        ignore: dict[str, Any] | None = None,
    ) -> None:
        for col in table.columns.values():
            value = row.get(col.name)
            if value is None and not col.nullable:
                raise IntegrityError(
                    table.name,
                    f"null value in column '{col.name}' violates not-null constraint",
                    column=col.name,
                )
            if (
                value is not None
                and col.type.kind == TypeKind.ENUM
                and str(value) not in col.type.values
            ):
                raise IntegrityError(
                    table.name,
                    f"value {value!r} for '{col.name}' not in {list(col.type.values)}",
                    column=col.name,
                )

        for columns in table.unique_column_sets():
            key = tuple(row.get(c) for c in columns)
            if any(v is None for v in key):
                continue
            for other in self._data[table.name]:
                if other is ignore:
                    continue
                if tuple(other.get(c) for c in columns) == key:
                    raise IntegrityError(
                        table.name,
                        f"duplicate key value violates unique constraint on "
                        f"({', '.join(columns)}): {key}",
                        column=columns[0],
                    )

        for fk in table.foreign_keys:
            value = row.get(fk.column)
            if value is None:
                continue
            parents = self._data.get(fk.referenced_table, [])
            if not any(p.get(fk.referenced_column) == value for p in parents):
                raise IntegrityError(
                    table.name,
                    f"insert or update violates foreign key "
                    f"'{fk.constraint_name_for(table.name)}': "
                    f"{fk.column}={value!r} not present in '{fk.referenced_table}'",
                    column=fk.column,
                )

    def _delete_rows(self, table: TableSchema, doomed: list[dict[str, Any]]) -> None:
        if not doomed:
            return
        for child_table, fk in self._referencing(table.name):
            keys = {row.get(fk.referenced_column) for row in doomed}
            children = [
                r for r in self._data[child_table.name] if r.get(fk.column) in keys
            ]
            if not children:
                continue
            action = fk.on_delete.upper()
            if action == "CASCADE":
                self._delete_rows(child_table, children)
            elif action == "SET NULL":
                for child in children:
                    child[fk.column] = None
            else:
                raise IntegrityError(
                    table.name,
                    f"delete violates foreign key "
                    f"'{fk.constraint_name_for(child_table.name)}' "
                    f"on table '{child_table.name}'",
                    column=fk.column,
                )
        ids = {id(row) for row in doomed}
        self._data[table.name] = [r for r in self._data[table.name] if id(r) not in ids]

    def _matching(self, table: str, where: Condition | None) -> list[dict[str, Any]]:
        rows = self._data[self._table(table).name]
        if where is None:
            return list(rows)
        return [row for row in rows if where.matches(row)]

    # ------------------------------------------------------------------
    # DDL
    # ------------------------------------------------------------------

    async def create_table(self, table: TableSchema) -> None:
        if table.name in self._tables:
            raise StoreError(f"Relation '{table.name}' already exists")
        stored = table.copy()
        stored.indexes = []
        stored.foreign_keys = []
        self._tables[table.name] = stored
        self._data[table.name] = []
        self._sequences.setdefault(table.name, 0)
        logger.debug(f"Created in-memory table {table.name}")

    async def add_column(self, table: str, column: ColumnDefinition) -> None:
        schema = self._table(table)
        if column.name in schema.columns:
            raise StoreError(f"Column '{column.name}' of relation '{table}' already exists")

        for row in self._data[table]:
            value = column.default_value()
            if value is None and not column.nullable:
                raise IntegrityError(
                    table,
                    f"column '{column.name}' contains null values",
                    column=column.name,
                )
            row[column.name] = value

        items = list(schema.columns.items())
        entry = (column.name, copy.deepcopy(column))
        if column.first:
            items.insert(0, entry)
        elif column.after and column.after in schema.columns:
            position = [name for name, _ in items].index(column.after) + 1
            items.insert(position, entry)
        else:
            items.append(entry)
        schema.columns = dict(items)

    async def drop_table(self, name: str, cascade: bool = False) -> None:
        self._table(name)
        dependents = [t for t, _ in self._referencing(name) if t.name != name]
        if dependents and not cascade:
            raise IntegrityError(
                name,
                f"cannot drop table because "
                f"{', '.join(sorted({t.name for t in dependents}))} depend on it",
            )
        for table in dependents:
            table.foreign_keys = [
                fk for fk in table.foreign_keys if fk.referenced_table != name
            ]
        del self._tables[name]
        del self._data[name]
        self._sequences.pop(name, None)

    async def rename_table(self, old: str, new: str) -> None:
        schema = self._table(old)
        if new in self._tables:
            raise StoreError(f"Relation '{new}' already exists")
        for table in self._tables.values():
            for fk in table.foreign_keys:
                if fk.referenced_table == old:
                    fk.referenced_table = new
        schema.name = new
        self._tables[new] = self._tables.pop(old)
        self._data[new] = self._data.pop(old)
        self._sequences[new] = self._sequences.pop(old, 0)

    async def describe_table(self, name: str) -> TableSchema:
        return self._table(name).copy()

    async def add_index(self, table: str, index: IndexDefinition) -> None:
        schema = self._table(table)
        missing = [f for f in index.fields if f not in schema.columns]
        if missing:
            raise StoreError(f"Column(s) {', '.join(missing)} do not exist on '{table}'")
        for existing in self._tables.values():
            if any(i.name == index.name for i in existing.indexes):
                raise StoreError(f"Index '{index.name}' already exists")
        if index.is_unique:
            seen: set[tuple] = set()
            for row in self._data[table]:
                key = tuple(row.get(f) for f in index.fields)
                if None not in key and key in seen:
                    raise IntegrityError(
                        table, f"could not create unique index '{index.name}'"
                    )
                seen.add(key)
        schema.indexes.append(copy.deepcopy(index))

    async def drop_index(self, table: str, name: str) -> None:
        schema = self._table(table)
        remaining = [i for i in schema.indexes if i.name != name]
        if len(remaining) == len(schema.indexes):
            raise StoreError(f"Index '{name}' does not exist")
        schema.indexes = remaining

    async def add_constraint(self, table: str, constraint: ForeignKeyConstraint) -> None:
        schema = self._table(table)
        parent = self._table(constraint.referenced_table)
        if constraint.column not in schema.columns:
            raise StoreError(f"Column '{constraint.column}' does not exist on '{table}'")
        if constraint.referenced_column not in parent.columns:
            raise StoreError(
                f"Column '{constraint.referenced_column}' referenced in foreign key "
                f"does not exist on '{parent.name}'"
            )
        stored = copy.deepcopy(constraint)
        stored.name = constraint.constraint_name_for(table)
        if any(fk.name == stored.name for fk in schema.foreign_keys):
            raise StoreError(f"Constraint '{stored.name}' already exists")
        schema.foreign_keys.append(stored)
        try:
            for row in self._data[table]:
                self._validate_row(schema, row, ignore=row)
        except IntegrityError:
            schema.foreign_keys.remove(stored)
            raise

    async def referencing_tables(self, table: str) -> list[str]:
        self._table(table)
        return sorted({t.name for t, _ in self._referencing(table) if t.name != table})

    # ------------------------------------------------------------------
    # DML
    # ------------------------------------------------------------------

    async def select(self, table: str, query: SelectQuery) -> list[dict[str, Any]]:
        rows = self._matching(table, query.where)

        # Stable sorts applied last-key-first; NULLs sort last ascending
        for field_name, direction in reversed(query.order):
            descending = direction.upper() == "DESC"
            rows.sort(
                key=lambda r, f=field_name: (r.get(f) is None, r.get(f)),
                reverse=descending,
            )

        start = query.offset or 0
        end = start + query.limit if query.limit is not None else None
        rows = rows[start:end]

        if query.columns:
            return [{c: row.get(c) for c in query.columns} for row in rows]
        return [dict(row) for row in rows]

    async def count(
        self, table: str, where: Condition | None = None, distinct: str | None = None
    ) -> int:
        rows = self._matching(table, where)
        if distinct:
            return len({row.get(distinct) for row in rows if row.get(distinct) is not None})
        return len(rows)

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        schema = self._table(table)
        self._check_columns(schema, row)

        complete_row: dict[str, Any] = {}
        for col in schema.columns.values():
            if col.name in row:
                complete_row[col.name] = row[col.name]
            elif col.auto_increment:
                # Generate like database IDENTITY
                self._sequences[table] += 1
                complete_row[col.name] = self._sequences[table]
            else:
                complete_row[col.name] = col.default_value()

        pk = schema.pk_column
        if pk and schema.pk_is_auto_increment and isinstance(complete_row.get(pk), int):
            self._sequences[table] = max(self._sequences[table], complete_row[pk])

        self._validate_row(schema, complete_row)
        self._data[table].append(complete_row)
        return dict(complete_row)

    async def update(
        self, table: str, values: dict[str, Any], where: Condition | None
    ) -> int:
        schema = self._table(table)
        self._check_columns(schema, values)
        matched = self._matching(table, where)
        for row in matched:
            candidate = {**row, **values}
            self._validate_row(schema, candidate, ignore=row)
            row.update(values)
        return len(matched)

    async def delete(self, table: str, where: Condition | None) -> int:
        schema = self._table(table)
        doomed = self._matching(table, where)
        self._delete_rows(schema, doomed)
        return len(doomed)

    async def truncate(self, table: str, cascade: bool = False) -> None:
        self._table(table)
        referencing = await self.referencing_tables(table)
        if referencing and not cascade:
            raise IntegrityError(
                table,
                f"cannot truncate a table referenced in a foreign key constraint "
                f"(referenced by {', '.join(referencing)})",
            )
        targets = [table]
        if cascade:
            graph = DependencyGraph.from_tables(list(self._tables.values()))
            targets.extend(graph.get_dependents(table))
        for name in targets:
            self._data[name] = []

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        snapshot = copy.deepcopy((self._tables, self._data, self._sequences))
        try:
            yield
        except BaseException:
            self._tables, self._data, self._sequences = snapshot
            raise

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def get_data(self, table_name: str) -> list[dict[str, Any]]:
        """
        Get in-memory data for inspection.

        Args:
            table_name: Table name

        Returns:
            List of row dicts for the table
        """
        return self._data.get(table_name, [])

    def clear(self) -> None:
        """Clear all tables, data and sequences."""
        self._tables.clear()
        self._data.clear()
        self._sequences.clear()
