"""Relation include descriptors for eager loading."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from schemaforge.exceptions import ConstructionError
from schemaforge.query.conditions import Condition, where_all


@dataclass(frozen=True)
class RelationInclude:
    """
    Normalized eager-load request.

    Attributes:
        name: Relation name declared on the model
        fields: Columns to load for related rows (None loads all)
        where: Extra condition on related rows
    """

    name: str
    fields: tuple[str, ...] | None = None
    where: Condition | None = None


def parse_include(spec: Any) -> RelationInclude:
    """
    Normalize one include.

    Accepts ``"relation"``, ``"relation:fieldA,fieldB"``, a RelationInclude,
    or a mapping with ``relation``/``as``, ``fields``/``attributes`` and
    ``where`` keys.

    Examples:
        >>> parse_include("songs:id,title")
        RelationInclude(name='songs', fields=('id', 'title'), where=None)
        >>> parse_include({"relation": "songs", "fields": ["id", "title"]})
        RelationInclude(name='songs', fields=('id', 'title'), where=None)
    """
    if isinstance(spec, RelationInclude):
        return spec

    if isinstance(spec, str):
        name, _, field_part = spec.partition(":")
        fields = tuple(f.strip() for f in field_part.split(",") if f.strip())
        if not name.strip():
            raise ConstructionError(f"Invalid relation include: {spec!r}")
        return RelationInclude(name.strip(), fields or None)

    if isinstance(spec, dict):
        name = spec.get("relation") or spec.get("as")
        if not name:
            raise ConstructionError(
                f"Relation include mapping needs a 'relation' or 'as' key: {spec!r}"
            )
        fields = spec.get("fields") or spec.get("attributes")
        where = spec.get("where")
        if isinstance(where, dict):
            where = where_all(**where)
        return RelationInclude(
            name,
            tuple(fields) if fields else None,
            where,
        )

    raise ConstructionError(f"Unsupported relation include: {spec!r}")


def parse_includes(specs: tuple[Any, ...]) -> list[RelationInclude]:
    """Normalize includes given as varargs, lists, or both."""
    result: list[RelationInclude] = []
    for spec in specs:
        if isinstance(spec, (list, tuple)):
            result.extend(parse_include(s) for s in spec)
        else:
            result.append(parse_include(spec))
    return result
