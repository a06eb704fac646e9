"""Schema: Blueprint lifecycle against a store (create, alter, drop, rename, exists)."""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import AsyncExitStack
from typing import Any

from schemaforge.backends.base import BaseStore
from schemaforge.exceptions import ExecutionError, is_not_found
from schemaforge.models import TableRegistry
from schemaforge.schema.blueprint import Blueprint

logger = logging.getLogger(__name__)

BlueprintCallback = Callable[[Blueprint], Any]


class Schema:
    """
    Facade migrations use to change tables.

    Args:
        store: Store receiving DDL
        registry: Shared table registry updated after each change
        transactional: Wrap each build in store.transaction() when the store
            supports transactional DDL
        default_string_length: Length for string() columns without one
        timestamp_columns: Column names timestamps() declares

    Example:
        >>> schema = Schema(store, registry)
        >>> await schema.create("tags", lambda table: (
        ...     table.id(),
        ...     table.string("name").unique(),
        ... ))
        >>> await schema.has_table("tags")
        True
    """

    def __init__(
        self,
        store: BaseStore,
        registry: TableRegistry | None = None,
        transactional: bool = False,
        default_string_length: int = 255,
        timestamp_columns: tuple[str, str] = ("created_at", "updated_at"),
    ):
        self.store = store
        self.registry = registry if registry is not None else TableRegistry()
        self.transactional = transactional
        self.default_string_length = default_string_length
        self.timestamp_columns = timestamp_columns

    def blueprint(self, table_name: str) -> Blueprint:
        return Blueprint(table_name, self.default_string_length, self.timestamp_columns)

    async def _in_transaction(self, stack: AsyncExitStack) -> None:
        if self.transactional and self.store.supports_transactional_ddl:
            await stack.enter_async_context(self.store.transaction())
        elif self.transactional:
            logger.warning(
                f"{type(self.store).__name__} does not support transactional DDL; "
                f"building without a transaction"
            )

    async def create(self, table_name: str, callback: BlueprintCallback) -> None:
        """
        Declare and create a table.

        The callback runs synchronously against a fresh Blueprint, then the
        blueprint is built: CREATE TABLE, indexes, foreign keys.
        """
        blueprint = self.blueprint(table_name)
        callback(blueprint)

        async with AsyncExitStack() as stack:
            await self._in_transaction(stack)
            table = await blueprint.build(self.store)

        self.registry.register(table)

    async def table(self, table_name: str, callback: BlueprintCallback) -> None:
        """Alter an existing table with newly declared columns and indexes."""
        blueprint = self.blueprint(table_name)
        callback(blueprint)

        async with AsyncExitStack() as stack:
            await self._in_transaction(stack)
            await blueprint.alter(self.store)

        current = self.registry.get(table_name)
        if current is None:
            current = await self.store.describe_table(table_name)
        self.registry.register(blueprint.apply_to(current))

    async def drop(self, table_name: str, cascade: bool = False) -> None:
        logger.info(f"Dropping table {table_name}")
        try:
            await self.store.drop_table(table_name, cascade=cascade)
        except Exception as e:
            raise ExecutionError(table_name, "drop_table", e) from e
        self.registry.remove(table_name)

    async def drop_if_exists(self, table_name: str, cascade: bool = False) -> None:
        """Drop a table, ignoring only "does not exist" failures."""
        try:
            await self.drop(table_name, cascade=cascade)
        except ExecutionError as e:
            if not is_not_found(e):
                raise
            logger.debug(f"Table {table_name} does not exist, nothing to drop")
            self.registry.remove(table_name)

    async def has_table(self, table_name: str) -> bool:
        """
        Probe existence with a describe call.

        Returns False only for "does not exist" failures; other errors propagate.
        """
        try:
            await self.store.describe_table(table_name)
        except Exception as e:
            if is_not_found(e):
                return False
            raise
        return True

    async def rename(self, old: str, new: str) -> None:
        logger.info(f"Renaming table {old} to {new}")
        try:
            await self.store.rename_table(old, new)
        except Exception as e:
            raise ExecutionError(old, "rename_table", e) from e
        self.registry.rename(old, new)
        for table in (self.registry.get(name) for name in self.registry.names()):
            for fk in table.foreign_keys:
                if fk.referenced_table == old:
                    fk.referenced_table = new
