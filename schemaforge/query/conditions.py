"""
Where-condition tree.

Conditions are immutable nodes that can render parameterized SQL with
``psycopg.sql`` and also evaluate against plain row dicts, so the same
query runs on PostgreSQL and on the in-memory store.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum

from psycopg import sql

logger = logging.getLogger(__name__)


class Operator(str, Enum):
    """Comparison operators accepted by where()."""

    EQ = "="
    NE = "!="
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    LIKE = "like"
    ILIKE = "ilike"
    IN = "in"
    NOT_IN = "not in"

    @classmethod
    def parse(cls, raw: object) -> Operator:
        """
        Normalize an operator keyword.

        Unknown operators fall back to equality instead of raising.

        Examples:
            >>> Operator.parse("LIKE")
            <Operator.LIKE: 'like'>
            >>> Operator.parse("~~")
            <Operator.EQ: '='>
        """
        if isinstance(raw, Operator):
            return raw
        key = " ".join(str(raw).strip().lower().split())
        if key == "<>":
            return cls.NE
        try:
            return cls(key)
        except ValueError:
            logger.debug(f"Unrecognized operator {raw!r}, falling back to '='")
            return cls.EQ


class Condition:
    """Base class for condition tree nodes."""

    def matches(self, row: dict) -> bool:
        raise NotImplementedError

    def to_sql(self) -> tuple[sql.Composable, list]:
        """Render as a SQL fragment plus positional parameters."""
        raise NotImplementedError

    def fields(self) -> set[str]:
        raise NotImplementedError


def escape_like(term: str) -> str:
    """
    Escape LIKE wildcards so the term matches literally.

    Examples:
        >>> escape_like("100%_done")
        '100\\\\%\\\\_done'
    """
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _like_to_regex(pattern: str, ignore_case: bool) -> re.Pattern:
    parts = []
    chars = iter(pattern)
    for char in chars:
        if char == "\\":
            # Backslash escapes the next character, as in PostgreSQL
            parts.append(re.escape(next(chars, "\\")))
        elif char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    flags = re.DOTALL | (re.IGNORECASE if ignore_case else 0)
    return re.compile("".join(parts), flags)


@dataclass(frozen=True)
class Comparison(Condition):
    """Single ``field <op> value`` predicate."""

    field: str
    operator: Operator
    value: object

    def matches(self, row: dict) -> bool:
        actual = row.get(self.field)
        op = self.operator

        if self.value is None and op in (Operator.EQ, Operator.NE):
            return (actual is None) == (op == Operator.EQ)
        if op in (Operator.IN, Operator.NOT_IN):
            found = actual in list(self.value or ())
            return found if op == Operator.IN else actual is not None and not found
        if actual is None:
            return False
        if op in (Operator.LIKE, Operator.ILIKE):
            regex = _like_to_regex(str(self.value), op == Operator.ILIKE)
            return regex.fullmatch(str(actual)) is not None

        try:
            if op == Operator.EQ:
                return actual == self.value
            if op == Operator.NE:
                return actual != self.value
            if op == Operator.GT:
                return actual > self.value
            if op == Operator.GTE:
                return actual >= self.value
            if op == Operator.LT:
                return actual < self.value
            if op == Operator.LTE:
                return actual <= self.value
        except TypeError:
            return False
        return False

    def to_sql(self) -> tuple[sql.Composable, list]:
        column = sql.Identifier(self.field)
        op = self.operator

        if self.value is None and op == Operator.EQ:
            return sql.SQL("{} IS NULL").format(column), []
        if self.value is None and op == Operator.NE:
            return sql.SQL("{} IS NOT NULL").format(column), []
        if op == Operator.IN:
            return sql.SQL("{} = ANY({})").format(column, sql.Placeholder()), [
                list(self.value or ())
            ]
        if op == Operator.NOT_IN:
            return sql.SQL("NOT ({} = ANY({}))").format(column, sql.Placeholder()), [
                list(self.value or ())
            ]

        keyword = {
            Operator.NE: "<>",
            Operator.LIKE: "LIKE",
            Operator.ILIKE: "ILIKE",
        }.get(op, op.value)
        return (
            sql.SQL("{} {} {}").format(column, sql.SQL(keyword), sql.Placeholder()),
            [self.value],
        )

    def fields(self) -> set[str]:
        return {self.field}


@dataclass(frozen=True)
class All(Condition):
    """Logical AND of child conditions (empty means always true)."""

    conditions: tuple[Condition, ...] = ()

    def matches(self, row: dict) -> bool:
        return all(c.matches(row) for c in self.conditions)

    def to_sql(self) -> tuple[sql.Composable, list]:
        return _join(self.conditions, "AND", "TRUE")

    def fields(self) -> set[str]:
        return set().union(*(c.fields() for c in self.conditions))


@dataclass(frozen=True)
class Any(Condition):
    """Logical OR of child conditions (empty means always false)."""

    conditions: tuple[Condition, ...] = ()

    def matches(self, row: dict) -> bool:
        return any(c.matches(row) for c in self.conditions)

    def to_sql(self) -> tuple[sql.Composable, list]:
        return _join(self.conditions, "OR", "FALSE")

    def fields(self) -> set[str]:
        return set().union(*(c.fields() for c in self.conditions))


def _join(
    conditions: tuple[Condition, ...], keyword: str, empty: str
) -> tuple[sql.Composable, list]:
    if not conditions:
        return sql.SQL(empty), []
    if len(conditions) == 1:
        return conditions[0].to_sql()

    fragments = []
    params: list = []
    for condition in conditions:
        fragment, values = condition.to_sql()
        fragments.append(sql.SQL("({})").format(fragment))
        params.extend(values)
    return sql.SQL(f" {keyword} ").join(fragments), params


def where_all(**equals: object) -> All:
    """Shorthand for an AND of equality comparisons."""
    return All(tuple(Comparison(k, Operator.EQ, v) for k, v in equals.items()))


def and_(left: Condition | None, right: Condition) -> Condition:
    """AND two conditions, flattening nested All nodes."""
    if left is None:
        return right
    if isinstance(left, All):
        return All(left.conditions + (right,))
    return All((left, right))
