"""Migrations and the batch-recording migration runner."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

from schemaforge.backends.base import BaseStore, SelectQuery
from schemaforge.exceptions import InvalidMigrationDirectionError, MigrationError
from schemaforge.models import TableRegistry
from schemaforge.query.conditions import Comparison, Operator
from schemaforge.schema.schema import Schema

logger = logging.getLogger(__name__)


class Migration(ABC):
    """
    Base class for migrations.

    Subclasses implement ``up()`` and ``down()`` using ``self.schema``.

    Example:
        >>> class CreateTags(Migration):
        ...     async def up(self):
        ...         await self.schema.create("tags", lambda t: (t.id(), t.string("name")))
        ...
        ...     async def down(self):
        ...         await self.schema.drop_if_exists("tags")
    """

    # Name recorded by the runner (defaults to the class name)
    name: str | None = None

    def __init__(
        self,
        store: BaseStore,
        registry: TableRegistry | None = None,
        **schema_options: Any,
    ):
        self.store = store
        self.schema = Schema(store, registry, **schema_options)

    @classmethod
    def migration_name(cls) -> str:
        return cls.name or cls.__name__

    @abstractmethod
    async def up(self) -> None:
        """Apply the migration."""

    @abstractmethod
    async def down(self) -> None:
        """Reverse the migration."""

    async def execute(self, direction: str = "up") -> None:
        """
        Run the migration in one direction.

        Raises:
            InvalidMigrationDirectionError: If direction is not 'up' or 'down'
        """
        if direction == "up":
            await self.up()
        elif direction == "down":
            await self.down()
        else:
            raise InvalidMigrationDirectionError(direction)


class Migrator:
    """
    Apply and roll back an ordered list of migrations.

    Applied migrations are recorded in a bookkeeping table with the batch
    number they ran in; rollback() reverts the most recent batch.
    """

    def __init__(
        self,
        store: BaseStore,
        migrations: list[type[Migration]],
        registry: TableRegistry | None = None,
        table: str = "schema_migrations",
        **schema_options: Any,
    ):
        self.store = store
        self.migrations = list(migrations)
        self.registry = registry if registry is not None else TableRegistry()
        self.table = table
        self.schema_options = schema_options

        names = [m.migration_name() for m in self.migrations]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise MigrationError(f"Duplicate migration names: {', '.join(duplicates)}")

    async def _ensure_table(self) -> None:
        schema = Schema(self.store, TableRegistry())
        if await schema.has_table(self.table):
            return
        logger.info(f"Creating migrations table {self.table}")
        await schema.create(
            self.table,
            lambda table: (
                table.increments("id"),
                table.string("name").not_nullable().unique(),
                table.integer("batch").not_nullable(),
                table.timestamp("applied_at").not_nullable(),
            ),
        )

    async def applied(self) -> list[dict[str, Any]]:
        """Applied migration records in application order."""
        await self._ensure_table()
        return await self.store.select(self.table, SelectQuery(order=[("id", "ASC")]))

    async def pending(self) -> list[type[Migration]]:
        done = {row["name"] for row in await self.applied()}
        return [m for m in self.migrations if m.migration_name() not in done]

    async def status(self) -> list[dict[str, Any]]:
        """
        Report every known migration.

        Returns:
            One dict per migration: name, applied (bool), batch (or None)
        """
        records = {row["name"]: row for row in await self.applied()}
        return [
            {
                "name": m.migration_name(),
                "applied": m.migration_name() in records,
                "batch": records.get(m.migration_name(), {}).get("batch"),
            }
            for m in self.migrations
        ]

    def _instantiate(self, migration_class: type[Migration]) -> Migration:
        return migration_class(self.store, self.registry, **self.schema_options)

    async def migrate(self) -> list[str]:
        """
        Run all pending migrations as one new batch.

        Returns:
            Names of the migrations that ran
        """
        records = await self.applied()
        pending = await self.pending()
        if not pending:
            logger.info("Nothing to migrate")
            return []

        batch = max((row["batch"] for row in records), default=0) + 1
        ran = []
        for migration_class in pending:
            name = migration_class.migration_name()
            logger.info(f"Migrating: {name} (batch {batch})")
            await self._instantiate(migration_class).execute("up")
            await self.store.insert(
                self.table,
                {"name": name, "batch": batch, "applied_at": datetime.now(timezone.utc)},
            )
            ran.append(name)

        logger.info(f"Migrated {len(ran)} migration(s) in batch {batch}")
        return ran

    async def rollback(self) -> list[str]:
        """
        Revert the last batch in reverse order.

        Returns:
            Names of the migrations that were rolled back

        Raises:
            MigrationError: If a recorded migration is not in the known list
        """
        records = await self.applied()
        if not records:
            logger.info("Nothing to roll back")
            return []

        by_name = {m.migration_name(): m for m in self.migrations}
        batch = max(row["batch"] for row in records)
        last = [row for row in records if row["batch"] == batch]

        reverted = []
        for row in reversed(last):
            migration_class = by_name.get(row["name"])
            if migration_class is None:
                raise MigrationError(
                    f"Migration '{row['name']}' is recorded in batch {batch} "
                    f"but is not in the migration list"
                )
            logger.info(f"Rolling back: {row['name']} (batch {batch})")
            await self._instantiate(migration_class).execute("down")
            await self.store.delete(
                self.table, Comparison("name", Operator.EQ, row["name"])
            )
            reverted.append(row["name"])

        return reverted
