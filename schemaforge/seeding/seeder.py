"""Seeder base class."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

from schemaforge.backends.base import BaseStore
from schemaforge.config import SeedingConfig
from schemaforge.exceptions import FactoryError
from schemaforge.factories.builder import FactoryBuilder
from schemaforge.factories.factory import Factory
from schemaforge.registry import Model, ModelRegistry
from schemaforge.seeding.operations import SeederOperations, SeedResult

logger = logging.getLogger(__name__)


class Seeder(ABC):
    """
    Base class for seeders.

    Subclasses implement ``run()``; ``execute()`` wraps it with timing and
    logging. ``insert()`` routes through SeederOperations.safe_insert() with
    the configured duplicate defaults.

    Example:
        >>> class TagSeeder(Seeder):
        ...     async def run(self):
        ...         await self.insert("tags", [{"name": "Rock"}, {"name": "Jazz"}])
        ...         await self.factory(Song).count(10).create()
        >>>
        >>> await TagSeeder(store, factories=factories).execute()
    """

    def __init__(
        self,
        store: BaseStore,
        factories: FactoryBuilder | None = None,
        settings: SeedingConfig | None = None,
        timestamp_columns: tuple[str, str] = ("created_at", "updated_at"),
    ):
        settings = settings or SeedingConfig()
        self.store = store
        self.factories = factories
        self.timestamp_columns = timestamp_columns
        self.config: dict[str, Any] = {
            "unique_fields": list(settings.default_unique_fields),
            "on_duplicate": settings.on_duplicate,
            "batch_size": settings.batch_size,
            "stop_on_error": settings.stop_on_error,
        }
        self.operations = SeederOperations(
            store, batch_pause=settings.batch_pause, timestamp_columns=timestamp_columns
        )

    @property
    def models(self) -> ModelRegistry | None:
        return self.factories.models if self.factories else None

    @abstractmethod
    async def run(self) -> None:
        """Insert this seeder's rows."""

    async def execute(self) -> None:
        """Run the seeder, logging its duration (failures are logged and re-raised)."""
        name = type(self).__name__
        logger.info(f"Running seeder: {name}")
        started = time.perf_counter()
        try:
            await self.run()
        except Exception as e:
            logger.error(f"Seeder {name} failed: {e}")
            raise
        logger.info(f"Seeder {name} completed in {(time.perf_counter() - started) * 1000:.0f}ms")

    def configure(self, **options: Any) -> Seeder:
        """Override insert() defaults (unique_fields, on_duplicate, batch_size, stop_on_error)."""
        self.config.update(options)
        return self

    async def insert(
        self, table: str, data: dict[str, Any] | list[dict[str, Any]], **options: Any
    ) -> SeedResult:
        """
        Insert with duplicate handling; configured defaults apply unless overridden.

        Default unique fields are narrowed to the columns the table has.
        """
        final = {**self.config, **options}
        if "unique_fields" not in options:
            final["unique_fields"] = await self._default_unique_fields(table)

        result = await self.operations.safe_insert(table, data, **final)
        for errored in result.errors:
            logger.error(f"{table}: {errored.message}")
        return result

    async def insert_if_not_exists(
        self, table: str, data: dict[str, Any] | list[dict[str, Any]], unique_fields: list[str] | None = None
    ) -> SeedResult:
        return await self.operations.insert_if_not_exists(
            table, data, unique_fields or await self._default_unique_fields(table)
        )

    async def upsert(
        self, table: str, data: dict[str, Any] | list[dict[str, Any]], unique_fields: list[str] | None = None
    ) -> SeedResult:
        return await self.operations.upsert(
            table, data, unique_fields or await self._default_unique_fields(table)
        )

    async def _default_unique_fields(self, table: str) -> list[str]:
        """Configured unique fields narrowed to the columns the table has."""
        schema = await self.store.describe_table(table)
        return [f for f in self.config["unique_fields"] if schema.has_column(f)]

    async def truncate(self, table: str, force: bool = False) -> None:
        await self.operations.safe_truncate(table, force=force)

    async def call(self, *seeders: type[Seeder]) -> None:
        """Run other seeders in order, sharing this seeder's store and factories."""
        for seeder_class in seeders:
            seeder = seeder_class(
                self.store, factories=self.factories, timestamp_columns=self.timestamp_columns
            )
            seeder.configure(**self.config)
            await seeder.execute()

    def factory(self, model: type[Model] | str) -> Factory:
        """
        Factory for a model from the attached FactoryBuilder.

        Raises:
            FactoryError: If the seeder was built without factories
        """
        if self.factories is None:
            raise FactoryError(f"{type(self).__name__} was created without a FactoryBuilder")
        return self.factories.get(model)
