"""
Lazy, chainable query builder.

Every chain call returns a new builder over a new QuerySpec; nothing touches
the store until a terminal method (execute/get/first/count/...) runs.

Example:
    >>> rows = await (
    ...     QueryBuilder("tags", store)
    ...     .search("rock", ["name", "description"])
    ...     .order_by("name", "ASC")
    ...     .paginate(1, 10)
    ...     .get()
    ... )
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Generator
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from schemaforge.backends.base import BaseStore, SelectQuery, run_statement
from schemaforge.exceptions import (
    ConstructionError,
    InvalidPaginationError,
    UnknownRelationError,
)
from schemaforge.query import conditions
from schemaforge.query.conditions import Comparison, Condition, Operator, and_, escape_like
from schemaforge.query.relations import RelationInclude, parse_includes

if TYPE_CHECKING:
    from psycopg import sql

    from schemaforge.registry import ModelRecord

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass(frozen=True)
class QuerySpec:
    """
    Immutable description of one query.

    Attributes:
        where: Condition tree from where()/or_where()
        search: (term, fields) pair for case-insensitive partial matching
        includes: Relations to eager-load
        order: (field, direction) pairs
        limit: Maximum rows
        offset: Rows to skip
        columns: Columns to return (None returns all)
    """

    where: Condition | None = None
    search: tuple[str, tuple[str, ...]] | None = None
    includes: tuple[RelationInclude, ...] = ()
    order: tuple[tuple[str, str], ...] = ()
    limit: int | None = None
    offset: int | None = None
    columns: tuple[str, ...] | None = None

    def condition(self) -> Condition | None:
        """Where tree combined with the search predicate."""
        if self.search is None:
            return self.where
        term, fields = self.search
        matcher = conditions.Any(
            tuple(Comparison(f, Operator.ILIKE, f"%{escape_like(term)}%") for f in fields)
        )
        return and_(self.where, matcher)

    def to_select(self) -> SelectQuery:
        return SelectQuery(
            where=self.condition(),
            order=list(self.order),
            limit=self.limit,
            offset=self.offset,
            columns=list(self.columns) if self.columns else None,
        )


class QueryBuilder:
    """
    Fluent read/write specification for one table.

    Args:
        table: Table name
        store: Store the query executes against
        model: Optional model record; results are hydrated into model
            instances and with()/include() resolve its declared relations
        spec: Starting spec (builders create these internally)
    """

    def __init__(
        self,
        table: str,
        store: BaseStore,
        model: ModelRecord | None = None,
        spec: QuerySpec | None = None,
    ):
        self.table = table
        self.store = store
        self.model = model
        self.spec = spec or QuerySpec()

    def _with(self, **changes: Any) -> QueryBuilder:
        return QueryBuilder(self.table, self.store, self.model, replace(self.spec, **changes))

    # ------------------------------------------------------------------
    # Conditions
    # ------------------------------------------------------------------

    @staticmethod
    def _condition(field: Any, operator: Any, value: Any) -> Condition:
        if isinstance(field, dict):
            if not field:
                raise ConstructionError("where() mapping must not be empty")
            parts = tuple(Comparison(k, Operator.EQ, v) for k, v in field.items())
            return parts[0] if len(parts) == 1 else conditions.All(parts)
        if isinstance(field, Condition):
            return field
        if operator is _MISSING:
            raise ConstructionError(f"where({field!r}) needs a value")
        if value is _MISSING:
            return Comparison(field, Operator.EQ, operator)
        return Comparison(field, Operator.parse(operator), value)

    def where(self, field: Any, operator: Any = _MISSING, value: Any = _MISSING) -> QueryBuilder:
        """
        Add a condition, ANDed with existing ones.

        Forms:
            where("name", "rock")         equality
            where("age", ">", 18)         operator keyword
            where({"a": 1, "b": 2})       mapping of equalities
        """
        condition = self._condition(field, operator, value)
        return self._with(where=and_(self.spec.where, condition))

    def or_where(
        self, field: Any, operator: Any = _MISSING, value: Any = _MISSING
    ) -> QueryBuilder:
        """
        OR a condition with everything declared so far.

        The existing condition set becomes one branch of a top-level OR;
        with nothing declared yet this behaves like where().
        """
        condition = self._condition(field, operator, value)
        current = self.spec.where
        if current is None:
            return self._with(where=condition)
        if isinstance(current, conditions.Any):
            return self._with(where=conditions.Any(current.conditions + (condition,)))
        return self._with(where=conditions.Any((current, condition)))

    def search(self, term: str, fields: list[str]) -> QueryBuilder:
        """Case-insensitive partial match of term across fields (ORed)."""
        if not fields:
            raise ConstructionError("search() needs at least one field")
        return self._with(search=(str(term), tuple(fields)))

    def when(self, condition: Any, callback: Callable[[QueryBuilder], QueryBuilder]) -> QueryBuilder:
        """Apply callback(builder) only when condition is truthy."""
        if not condition:
            return self
        result = callback(self)
        return result if result is not None else self

    # ------------------------------------------------------------------
    # Shape
    # ------------------------------------------------------------------

    def with_(self, *relations: Any) -> QueryBuilder:
        """Eager-load relations ("name", "name:a,b" or descriptor mappings)."""
        return self._with(includes=self.spec.includes + tuple(parse_includes(relations)))

    include = with_

    def select(self, *columns: str) -> QueryBuilder:
        return self._with(columns=tuple(columns) or None)

    def limit(self, count: int) -> QueryBuilder:
        if count < 0:
            raise ConstructionError(f"limit must be >= 0, got {count}")
        return self._with(limit=int(count))

    def offset(self, count: int) -> QueryBuilder:
        if count < 0:
            raise ConstructionError(f"offset must be >= 0, got {count}")
        return self._with(offset=int(count))

    def paginate(self, page: int = 1, limit: int = 10) -> QueryBuilder:
        """
        1-based pagination: offset = (page - 1) * limit.

        Raises:
            InvalidPaginationError: If page < 1 or limit < 1
        """
        if page < 1 or limit < 1:
            raise InvalidPaginationError(page, limit)
        return self._with(limit=limit, offset=(page - 1) * limit)

    def order_by(self, field: str, direction: str = "ASC") -> QueryBuilder:
        normalized = str(direction).upper()
        if normalized not in ("ASC", "DESC"):
            raise ConstructionError(f"Order direction must be ASC or DESC, got {direction!r}")
        return self._with(order=self.spec.order + ((field, normalized),))

    def order_by_asc(self, field: str) -> QueryBuilder:
        return self.order_by(field, "ASC")

    def order_by_desc(self, field: str) -> QueryBuilder:
        return self.order_by(field, "DESC")

    def latest(self, field: str = "created_at") -> QueryBuilder:
        return self.order_by(field, "DESC")

    def oldest(self, field: str = "created_at") -> QueryBuilder:
        return self.order_by(field, "ASC")

    # ------------------------------------------------------------------
    # Compilation
    # ------------------------------------------------------------------

    def to_sql(self, schema: str = "public") -> tuple[sql.Composed, list]:
        """Compile to a PostgreSQL SELECT and its parameters without executing."""
        from schemaforge.backends.postgres import SqlCompiler

        return SqlCompiler(schema).select(self.table, self.spec.to_select())

    # ------------------------------------------------------------------
    # Terminal operations
    # ------------------------------------------------------------------

    async def execute(self) -> list[Any]:
        """Run the query; every call re-executes against the store."""
        logger.debug(f"Executing query on {self.table}: {self.spec}")
        rows = await run_statement(
            self.store.select(self.table, self.spec.to_select()), self.table, "select"
        )
        if self.model is None:
            if self.spec.includes:
                raise UnknownRelationError(self.spec.includes[0].name, self.table, [])
            return rows
        if self.spec.includes:
            await self.model.load_relations(rows, self.spec.includes)
        return [self.model.hydrate(row) for row in rows]

    async def all(self) -> list[Any]:
        return await self.execute()

    async def get(self) -> list[Any]:
        return await self.execute()

    async def first(self) -> Any | None:
        rows = await self._with(limit=1).execute()
        return rows[0] if rows else None

    async def count(self) -> int:
        return await run_statement(
            self.store.count(self.table, self.spec.condition()), self.table, "count"
        )

    async def count_distinct(self, field: str) -> int:
        return await run_statement(
            self.store.count(self.table, self.spec.condition(), distinct=field),
            self.table,
            "count",
            field,
        )

    async def exists(self) -> bool:
        return await self.count() > 0

    async def pluck(self, field: str) -> list[Any]:
        query = replace(self.spec, columns=(field,), includes=()).to_select()
        rows = await run_statement(self.store.select(self.table, query), self.table, "select", field)
        return [row[field] for row in rows]

    async def update(self, values: dict[str, Any]) -> int:
        """Update matching rows; model timestamps are touched automatically."""
        if self.model is not None:
            values = self.model.with_update_timestamp(values)
        return await run_statement(
            self.store.update(self.table, values, self.spec.condition()), self.table, "update"
        )

    async def delete(self) -> int:
        return await run_statement(
            self.store.delete(self.table, self.spec.condition()), self.table, "delete"
        )

    async def paginate_result(self, page: int = 1, limit: int = 10) -> dict[str, Any]:
        """
        Fetch one page plus totals.

        Returns:
            Dict with data, total, page, limit, total_pages, has_next, has_prev
        """
        data = await self.paginate(page, limit).execute()
        total = await self.count()
        total_pages = math.ceil(total / limit) if total else 0
        return {
            "data": data,
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        }

    def __await__(self) -> Generator[Any, None, list[Any]]:
        return self.execute().__await__()

    def __repr__(self) -> str:
        return f"QueryBuilder(table={self.table!r}, spec={self.spec!r})"
