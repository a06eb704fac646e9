"""Condition trees, relation includes and the chainable query builder."""

from schemaforge.query.conditions import All, Any, Comparison, Condition, Operator
from schemaforge.query.relations import RelationInclude, parse_include

__all__ = [
    "All",
    "Any",
    "Comparison",
    "Condition",
    "Operator",
    "RelationInclude",
    "parse_include",
]
