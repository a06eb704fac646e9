"""
Duplicate-aware bulk insertion.

Records are processed in fixed-size batches, strictly one after another, so
a record can collide with rows written by an earlier batch of the same run.
Every record's fate is reported as one Outcome in a SeedResult.

Example:
    >>> ops = SeederOperations(store)
    >>> result = await ops.safe_insert(
    ...     "tags",
    ...     [{"name": "Rock"}, {"name": "Jazz"}],
    ...     unique_fields=["name"],
    ...     on_duplicate="skip",
    ... )
    >>> result.summary()
    {'inserted': 2, 'skipped': 0, 'updated': 0, 'errors': 0}
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, ValidationError

from schemaforge.backends.base import BaseStore, SelectQuery
from schemaforge.exceptions import (
    DuplicateEntryError,
    IntegrityError,
    InvalidDuplicatePolicyError,
)
from schemaforge.models import TableSchema
from schemaforge.query.conditions import Comparison, Operator, where_all
from schemaforge.schema.blueprint import generate_id

logger = logging.getLogger(__name__)


class DuplicateStrategy(str, Enum):
    """What to do when a record matches an existing row."""

    SKIP = "skip"
    UPDATE = "update"
    ERROR = "error"


@dataclass
class DuplicatePolicy:
    """
    Duplicate handling configuration for one safe_insert() run.

    Attributes:
        unique_fields: Fields that identify an existing row
        on_duplicate: Strategy applied to matches
        batch_size: Records per batch
        stop_on_error: Abort the run on the first failing record
    """

    unique_fields: list[str] = field(default_factory=list)
    on_duplicate: DuplicateStrategy = DuplicateStrategy.SKIP
    batch_size: int = 100
    stop_on_error: bool = False

    def __post_init__(self):
        try:
            self.on_duplicate = DuplicateStrategy(self.on_duplicate)
        except ValueError:
            raise InvalidDuplicatePolicyError(
                f"Unknown on_duplicate strategy {self.on_duplicate!r}; "
                f"expected one of: {', '.join(s.value for s in DuplicateStrategy)}"
            ) from None
        if self.batch_size < 1:
            raise InvalidDuplicatePolicyError(
                f"batch_size must be >= 1, got {self.batch_size}"
            )
        self.unique_fields = list(self.unique_fields)


# ============================================================================
# Outcomes
# ============================================================================


@dataclass(frozen=True)
class Inserted:
    record: dict[str, Any]
    row: dict[str, Any]


@dataclass(frozen=True)
class Skipped:
    record: dict[str, Any]
    existing: dict[str, Any]
    reason: str = "Duplicate found, skipped"


@dataclass(frozen=True)
class Updated:
    record: dict[str, Any]
    existing: dict[str, Any]
    reason: str = "Duplicate found, updated"


@dataclass(frozen=True)
class Errored:
    record: dict[str, Any]
    error: Exception

    @property
    def message(self) -> str:
        return str(self.error)


Outcome = Union[Inserted, Skipped, Updated, Errored]


@dataclass
class SeedResult:
    """Ordered per-record outcomes of one run."""

    table: str
    outcomes: list[Outcome] = field(default_factory=list)

    @property
    def inserted(self) -> list[Inserted]:
        return [o for o in self.outcomes if isinstance(o, Inserted)]

    @property
    def skipped(self) -> list[Skipped]:
        return [o for o in self.outcomes if isinstance(o, Skipped)]

    @property
    def updated(self) -> list[Updated]:
        return [o for o in self.outcomes if isinstance(o, Updated)]

    @property
    def errors(self) -> list[Errored]:
        return [o for o in self.outcomes if isinstance(o, Errored)]

    def summary(self) -> dict[str, int]:
        return {
            "inserted": len(self.inserted),
            "skipped": len(self.skipped),
            "updated": len(self.updated),
            "errors": len(self.errors),
        }


# ============================================================================
# Operations
# ============================================================================


class SeederOperations:
    """
    Bulk-insert engine with per-record duplicate detection.

    Args:
        store: Target store
        batch_pause: Seconds to sleep between batches
        timestamp_columns: Creation and update timestamp column names
    """

    def __init__(
        self,
        store: BaseStore,
        batch_pause: float = 0.01,
        timestamp_columns: tuple[str, str] = ("created_at", "updated_at"),
    ):
        self.store = store
        self.batch_pause = batch_pause
        self.created_at, self.updated_at = timestamp_columns

    async def safe_insert(
        self,
        table: str,
        data: dict[str, Any] | list[dict[str, Any]],
        policy: DuplicatePolicy | None = None,
        **options: Any,
    ) -> SeedResult:
        """
        Insert records, resolving duplicates per the policy.

        Args:
            table: Target table
            data: One record or a list of records
            policy: Duplicate policy (built from **options when omitted)
            **options: unique_fields, on_duplicate, batch_size, stop_on_error

        Returns:
            SeedResult with one outcome per record

        Raises:
            InvalidDuplicatePolicyError: If the options are invalid
            Exception: The first failure, when stop_on_error is set
        """
        policy = policy or DuplicatePolicy(**options)
        records = [data] if isinstance(data, dict) else list(data)
        schema = await self.store.describe_table(table)
        result = SeedResult(table)

        if policy.unique_fields:
            logger.info(
                f"Duplicate detection enabled for {table} "
                f"(checking: {', '.join(policy.unique_fields)})"
            )

        for start in range(0, len(records), policy.batch_size):
            if start and self.batch_pause:
                await asyncio.sleep(self.batch_pause)
            batch = records[start : start + policy.batch_size]
            logger.debug(f"{table}: batch of {len(batch)} record(s) from #{start}")

            for record in batch:
                try:
                    outcome = await self._process(table, schema, record, policy)
                except Exception as e:
                    if policy.stop_on_error:
                        logger.error(f"{table}: aborting run: {e}")
                        raise
                    logger.warning(f"{table}: record failed: {e}")
                    outcome = Errored(record, e)
                result.outcomes.append(outcome)

        summary = result.summary()
        logger.info(
            f"Processing complete for {table} ({len(records)} records): "
            + ", ".join(f"{k}={v}" for k, v in summary.items())
        )
        return result

    async def find_existing(
        self, table: str, record: dict[str, Any], unique_fields: list[str]
    ) -> dict[str, Any] | None:
        """Row matching the unique fields present on the record (None if none apply)."""
        present = {f: record[f] for f in unique_fields if record.get(f) is not None}
        if not present:
            return None
        rows = await self.store.select(table, SelectQuery(where=where_all(**present), limit=1))
        return rows[0] if rows else None

    async def _process(
        self,
        table: str,
        schema: TableSchema,
        record: dict[str, Any],
        policy: DuplicatePolicy,
    ) -> Outcome:
        existing = await self.find_existing(table, record, policy.unique_fields)
        if existing is None:
            row = await self.store.insert(table, self._prepare(schema, record))
            return Inserted(record, row)

        identifier = self._identifying_field(record, existing, policy.unique_fields)

        if policy.on_duplicate == DuplicateStrategy.SKIP:
            logger.debug(f"Skipping duplicate: {identifier}={record.get(identifier)!r}")
            return Skipped(record, existing)

        if policy.on_duplicate == DuplicateStrategy.UPDATE:
            logger.debug(f"Updating duplicate: {identifier}={record.get(identifier)!r}")
            await self._update(table, schema, record, existing, policy.unique_fields)
            return Updated(record, existing)

        raise DuplicateEntryError(table, identifier, record.get(identifier))

    def _prepare(self, schema: TableSchema, record: dict[str, Any]) -> dict[str, Any]:
        values = dict(record)
        pk = schema.pk_column
        if pk and not schema.pk_is_auto_increment and values.get(pk) is None:
            values[pk] = generate_id()
        now = datetime.now(timezone.utc)
        for column in (self.created_at, self.updated_at):
            if schema.has_column(column) and values.get(column) is None:
                values[column] = now
        return values

    async def _update(
        self,
        table: str,
        schema: TableSchema,
        record: dict[str, Any],
        existing: dict[str, Any],
        unique_fields: list[str],
    ) -> None:
        pk = schema.pk_column
        values = {k: v for k, v in record.items() if k not in (pk, self.created_at)}
        if schema.has_column(self.updated_at):
            values[self.updated_at] = datetime.now(timezone.utc)

        if pk and existing.get(pk) is not None:
            where = Comparison(pk, Operator.EQ, existing[pk])
        else:
            where = where_all(**{f: existing[f] for f in unique_fields if f in existing})
        await self.store.update(table, values, where)

    @staticmethod
    def _identifying_field(
        record: dict[str, Any], existing: dict[str, Any], unique_fields: list[str]
    ) -> str:
        for name in unique_fields:
            if name in record and record[name] == existing.get(name):
                return name
        return next(iter(record), "id")

    # ------------------------------------------------------------------
    # Convenience wrappers
    # ------------------------------------------------------------------

    async def upsert(
        self,
        table: str,
        data: dict[str, Any] | list[dict[str, Any]],
        unique_fields: list[str],
        **options: Any,
    ) -> SeedResult:
        return await self.safe_insert(
            table, data, unique_fields=unique_fields, on_duplicate="update", **options
        )

    async def insert_if_not_exists(
        self,
        table: str,
        data: dict[str, Any] | list[dict[str, Any]],
        unique_fields: list[str],
        **options: Any,
    ) -> SeedResult:
        return await self.safe_insert(
            table, data, unique_fields=unique_fields, on_duplicate="skip", **options
        )

    async def safe_truncate(self, table: str, force: bool = False) -> None:
        """
        Remove every row of a table.

        A table referenced by foreign keys is refused unless forced; a
        forced truncate cascades to the referencing tables.

        Raises:
            IntegrityError: If the table is referenced and force is False
        """
        referencing = [t for t in await self.store.referencing_tables(table) if t != table]
        if referencing:
            logger.warning(
                f"Table '{table}' has foreign key references: {', '.join(referencing)}"
            )
            if not force:
                raise IntegrityError(
                    table,
                    f"Cannot truncate '{table}': referenced by {', '.join(referencing)}. "
                    f"Pass force=True to cascade.",
                )
        await self.store.truncate(table, cascade=bool(referencing))
        logger.info(f"Truncated table: {table}")

    @staticmethod
    def validate_record(record: dict[str, Any], schema: type[BaseModel]) -> list[str]:
        """
        Validate a record against a pydantic model.

        Returns:
            Human-readable error messages (empty when valid)
        """
        try:
            schema.model_validate(record)
        except ValidationError as e:
            return [
                f"Field '{'.'.join(str(p) for p in err['loc'])}': {err['msg']}"
                for err in e.errors()
            ]
        return []
