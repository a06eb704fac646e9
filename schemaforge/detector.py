"""
Effective model schema detection.

A model's effective schema is the intersection of its ``fillable`` allow-list
with the columns its table's migration compiled into the TableRegistry. The
primary key and timestamp columns are always included.
"""

from __future__ import annotations

import logging

from schemaforge.catalog import ColumnType
from schemaforge.models import ColumnDefinition, TableRegistry

logger = logging.getLogger(__name__)


class SchemaDetector:
    """
    Derive model column schemas from compiled table schemas.

    Args:
        tables: Registry filled by Schema as migrations build tables
        timestamp_columns: Creation and update timestamp column names

    Example:
        >>> detector = SchemaDetector(await TableRegistry.from_migrations(MIGRATIONS))
        >>> list(detector.detect(Tag))
        ['id', 'name', 'description', 'created_at', 'updated_at']
    """

    def __init__(
        self,
        tables: TableRegistry,
        timestamp_columns: tuple[str, str] = ("created_at", "updated_at"),
    ):
        self.tables = tables
        self.timestamp_columns = timestamp_columns
        self._cache: dict[type, dict[str, ColumnDefinition]] = {}
        self._version = tables.version

    def detect(self, model: type) -> dict[str, ColumnDefinition]:
        """
        Compute the effective schema of a model.

        Order: primary key, allow-listed fields (in declaration order), then
        timestamp columns present on the table.

        Args:
            model: Model class (reads ``table_name()``, ``fillable``,
                ``primary_key``, ``incrementing`` and ``timestamps``)

        Returns:
            Column definitions keyed by column name
        """
        if self._version != self.tables.version:
            self.clear_cache()
        if model in self._cache:
            return self._cache[model]

        table_name = model.table_name()
        table = self.tables.get(table_name)
        columns = table.columns if table is not None else {}
        if table is None:
            logger.warning(
                f"No compiled schema for table '{table_name}' ({model.__name__}); "
                f"using permissive column definitions"
            )

        detected: dict[str, ColumnDefinition] = {}

        pk = model.primary_key
        if pk in columns:
            detected[pk] = columns[pk]
        else:
            column_type = ColumnType.increments() if model.incrementing else ColumnType.uuid()
            detected[pk] = ColumnDefinition(
                pk,
                column_type,
                nullable=False,
                primary_key=True,
                auto_increment=model.incrementing,
            )

        for name in model.fillable:
            if name in detected:
                continue
            if name in columns:
                detected[name] = columns[name]
            else:
                logger.warning(
                    f"{model.__name__}.{name} is fillable but missing from table "
                    f"'{table_name}'; assuming a nullable string column"
                )
                detected[name] = ColumnDefinition(name, ColumnType.string())

        for name in self.timestamp_columns:
            if name in columns and name not in detected:
                detected[name] = columns[name]

        self._cache[model] = detected
        return detected

    def foreign_keys(self, model: type) -> dict[str, str]:
        """Map foreign-key columns of the model's table to referenced tables."""
        table = self.tables.get(model.table_name())
        if table is None:
            return {}
        return {fk.column: fk.referenced_table for fk in table.foreign_keys}

    def forget(self, model: type) -> None:
        """Drop the cached schema of one model."""
        self._cache.pop(model, None)

    def clear_cache(self) -> None:
        self._cache.clear()
        self._version = self.tables.version
