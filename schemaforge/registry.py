"""
Model layer: model metadata, relations, and the per-model registry.

Models declare read-only metadata as class attributes. A ModelRegistry,
built once at startup, holds one ModelRecord per registered model class;
records carry the store binding and expose the data-access API.

Example:
    >>> class Tag(Model):
    ...     fillable = ("name", "description")
    >>>
    >>> models = ModelRegistry(store, tables)
    >>> tags = models.register(Tag)
    >>> tag = await tags.create({"name": "rock"})
    >>> await tags.query().where("name", "like", "ro%").get()
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, ClassVar

from schemaforge.backends.base import BaseStore, SelectQuery, run_statement
from schemaforge.exceptions import ModelNotRegisteredError, UnknownRelationError
from schemaforge.models import TableRegistry
from schemaforge.query.builder import QueryBuilder
from schemaforge.query.conditions import Comparison, Operator, where_all
from schemaforge.query.relations import RelationInclude
from schemaforge.schema.blueprint import generate_id

if TYPE_CHECKING:
    from schemaforge.detector import SchemaDetector

logger = logging.getLogger(__name__)


def snake_case(name: str) -> str:
    """
    Convert a class name to snake_case.

    Examples:
        >>> snake_case("PlaylistTeam")
        'playlist_team'
    """
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def pluralize(word: str) -> str:
    """Simple English pluralization used for table and relation names."""
    if word.endswith("s"):
        return word
    if word.endswith("y") and not word.endswith(("ay", "ey", "oy", "uy")):
        return word[:-1] + "ies"
    return word + "s"


# Cast name → converter applied by Model.to_dict()
CASTS: dict[str, Callable[[Any], Any]] = {
    "int": int,
    "integer": int,
    "float": float,
    "bool": bool,
    "boolean": bool,
    "str": str,
    "string": str,
    "json": lambda v: json.loads(v) if isinstance(v, str) else v,
    "datetime": lambda v: datetime.fromisoformat(v) if isinstance(v, str) else v,
}


# ============================================================================
# Models
# ============================================================================


class Model:
    """
    Base class for models.

    Class attributes (metadata, never mutated at runtime):
        __table__: Table name (defaults to the pluralized snake_case class name)
        fillable: Allow-listed fields for mass assignment and schema detection
        primary_key: Primary key column
        incrementing: Whether the store generates the key
        timestamps: Whether created_at/updated_at are maintained
        hidden: Fields removed by to_dict()
        casts: Field → cast name (or callable) applied by to_dict()
        relations: Relation name → BelongsTo/HasMany/BelongsToMany

    Instances expose column values as attributes:
        tag.name        # Access column value
        tag.songs       # Access eager-loaded relation
    """

    __table__: ClassVar[str | None] = None
    fillable: ClassVar[tuple[str, ...]] = ()
    primary_key: ClassVar[str] = "id"
    incrementing: ClassVar[bool] = False
    timestamps: ClassVar[bool] = True
    hidden: ClassVar[tuple[str, ...]] = ()
    casts: ClassVar[dict[str, Any]] = {}
    relations: ClassVar[dict[str, Relation]] = {}

    def __init__(self, **attributes: Any):
        object.__setattr__(self, "_data", dict(attributes))
        object.__setattr__(self, "_relations", {})
        object.__setattr__(self, "_exists", False)

    @classmethod
    def table_name(cls) -> str:
        return cls.__table__ or pluralize(snake_case(cls.__name__))

    @classmethod
    def from_row(cls, row: dict[str, Any], relation_names: set[str] | None = None) -> Model:
        """Hydrate a persisted row (relation keys become loaded relations)."""
        data = dict(row)
        loaded = {name: data.pop(name) for name in (relation_names or ()) if name in data}
        instance = cls(**data)
        instance._relations.update(loaded)
        object.__setattr__(instance, "_exists", True)
        return instance

    def __getattr__(self, name: str) -> Any:
        """
        Allow attribute access to column values and loaded relations.

        Raises:
            AttributeError: If neither a column nor a loaded relation exists
        """
        if name.startswith("_"):
            raise AttributeError(f"No attribute '{name}'")
        if name in self._data:
            return self._data[name]
        if name in self._relations:
            return self._relations[name]
        raise AttributeError(f"No column '{name}' on {type(self).__name__}")

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_"):
            object.__setattr__(self, name, value)
        else:
            self._data[name] = value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Model) or type(other) is not type(self):
            return NotImplemented
        key = self.get_key()
        return key is not None and key == other.get_key()

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._data!r})"

    @property
    def exists(self) -> bool:
        return self._exists

    def get(self, name: str, default: Any = None) -> Any:
        return self._data.get(name, default)

    def get_key(self) -> Any:
        return self._data.get(self.primary_key)

    def attributes(self) -> dict[str, Any]:
        return dict(self._data)

    def relation(self, name: str) -> Any:
        return self._relations.get(name)

    def set_relation(self, name: str, value: Any) -> None:
        self._relations[name] = value

    def fill(self, attributes: dict[str, Any] | None = None, **extra: Any) -> Model:
        """Assign only allow-listed attributes; others are ignored."""
        for key, value in {**(attributes or {}), **extra}.items():
            if key in self.fillable:
                self._data[key] = value
            else:
                logger.debug(f"{type(self).__name__}: ignoring non-fillable field {key!r}")
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize, dropping hidden fields and applying casts."""
        result = {}
        for key, value in self._data.items():
            if key in self.hidden:
                continue
            cast = self.casts.get(key)
            if cast is not None and value is not None:
                converter = CASTS.get(cast, cast) if isinstance(cast, str) else cast
                value = converter(value)
            result[key] = value
        for name, value in self._relations.items():
            if isinstance(value, list):
                result[name] = [v.to_dict() if isinstance(v, Model) else v for v in value]
            elif isinstance(value, Model):
                result[name] = value.to_dict()
            else:
                result[name] = value
        return result


# ============================================================================
# Relations
# ============================================================================


def _model_name(model: type[Model] | str) -> str:
    return model if isinstance(model, str) else model.__name__


@dataclass
class Relation:
    """Base relation descriptor; ``model`` may be a class or a registered class name."""

    model: type[Model] | str

    async def eager_load(
        self, owner: ModelRecord, rows: list[dict[str, Any]], include: RelationInclude
    ) -> None:
        raise NotImplementedError

    @staticmethod
    def _narrow(
        query: QueryBuilder, include: RelationInclude, key: str
    ) -> QueryBuilder:
        if include.where is not None:
            query = query.where(include.where)
        if include.fields:
            fields = include.fields if key in include.fields else include.fields + (key,)
            query = query.select(*fields)
        return query


@dataclass
class BelongsTo(Relation):
    """Child row holds ``foreign_key`` pointing at the related row's ``owner_key``."""

    foreign_key: str | None = None
    owner_key: str = "id"

    def key_for(self) -> str:
        return self.foreign_key or f"{snake_case(_model_name(self.model))}_id"

    async def eager_load(self, owner, rows, include) -> None:
        related = owner.registry.record_for(self.model)
        fk = self.key_for()
        keys = list({row.get(fk) for row in rows if row.get(fk) is not None})
        found: dict[Any, Model] = {}
        if keys:
            query = self._narrow(
                related.query().where(self.owner_key, "in", keys), include, self.owner_key
            )
            found = {m.get(self.owner_key): m for m in await query.get()}
        for row in rows:
            row[include.name] = found.get(row.get(fk))


@dataclass
class HasMany(Relation):
    """Related rows hold ``foreign_key`` pointing at this row's ``local_key``."""

    foreign_key: str | None = None
    local_key: str = "id"

    def key_for(self, parent: type[Model]) -> str:
        return self.foreign_key or f"{snake_case(parent.__name__)}_id"

    async def eager_load(self, owner, rows, include) -> None:
        related = owner.registry.record_for(self.model)
        fk = self.key_for(owner.model)
        keys = list({row.get(self.local_key) for row in rows if row.get(self.local_key) is not None})
        grouped: dict[Any, list[Model]] = {}
        if keys:
            query = self._narrow(related.query().where(fk, "in", keys), include, fk)
            for child in await query.get():
                grouped.setdefault(child.get(fk), []).append(child)
        for row in rows:
            row[include.name] = grouped.get(row.get(self.local_key), [])


@dataclass
class BelongsToMany(Relation):
    """Many-to-many through a pivot table."""

    pivot_table: str | None = None
    foreign_pivot_key: str | None = None
    related_pivot_key: str | None = None
    parent_key: str = "id"
    related_key: str = "id"

    def pivot_for(self, parent: type[Model]) -> str:
        return self.pivot_table or (
            f"{snake_case(parent.__name__)}_{pluralize(snake_case(_model_name(self.model)))}"
        )

    def foreign_key_for(self, parent: type[Model]) -> str:
        return self.foreign_pivot_key or f"{snake_case(parent.__name__)}_id"

    def related_key_for(self) -> str:
        return self.related_pivot_key or f"{snake_case(_model_name(self.model))}_id"

    async def eager_load(self, owner, rows, include) -> None:
        related = owner.registry.record_for(self.model)
        pivot = self.pivot_for(owner.model)
        fpk, rpk = self.foreign_key_for(owner.model), self.related_key_for()
        keys = list({row.get(self.parent_key) for row in rows if row.get(self.parent_key) is not None})

        links: list[dict[str, Any]] = []
        if keys:
            links = await run_statement(
                owner.store.select(pivot, SelectQuery(where=Comparison(fpk, Operator.IN, keys))),
                pivot,
                "select",
            )
        related_ids = list({link[rpk] for link in links})
        found: dict[Any, Model] = {}
        if related_ids:
            query = self._narrow(
                related.query().where(self.related_key, "in", related_ids),
                include,
                self.related_key,
            )
            found = {m.get(self.related_key): m for m in await query.get()}

        grouped: dict[Any, list[Model]] = {}
        for link in links:
            if link[rpk] in found:
                grouped.setdefault(link[fpk], []).append(found[link[rpk]])
        for row in rows:
            row[include.name] = grouped.get(row.get(self.parent_key), [])


def belongs_to(model: type[Model] | str, foreign_key: str | None = None, owner_key: str = "id") -> BelongsTo:
    return BelongsTo(model, foreign_key, owner_key)


def has_many(model: type[Model] | str, foreign_key: str | None = None, local_key: str = "id") -> HasMany:
    return HasMany(model, foreign_key, local_key)


def belongs_to_many(
    model: type[Model] | str,
    pivot_table: str | None = None,
    foreign_pivot_key: str | None = None,
    related_pivot_key: str | None = None,
) -> BelongsToMany:
    return BelongsToMany(model, pivot_table, foreign_pivot_key, related_pivot_key)


# ============================================================================
# Registry
# ============================================================================


class ModelRecord:
    """
    Per-model initialization record: store binding plus data-access API.

    Args:
        model: Model class
        registry: Owning ModelRegistry (resolves related models)
    """

    def __init__(self, model: type[Model], registry: ModelRegistry):
        self.model = model
        self.registry = registry

    @property
    def store(self) -> BaseStore:
        return self.registry.store

    @property
    def table(self) -> str:
        return self.model.table_name()

    @property
    def created_at(self) -> str:
        return self.registry.timestamp_columns[0]

    @property
    def updated_at(self) -> str:
        return self.registry.timestamp_columns[1]

    def __repr__(self) -> str:
        return f"ModelRecord({self.model.__name__} -> {self.table})"

    # Query integration

    def query(self) -> QueryBuilder:
        return QueryBuilder(self.table, self.store, self)

    def hydrate(self, row: dict[str, Any]) -> Model:
        return self.model.from_row(row, set(self.model.relations))

    async def load_relations(
        self, rows: list[dict[str, Any]], includes: tuple[RelationInclude, ...]
    ) -> None:
        """
        Eager-load includes into raw rows (one extra query per include).

        Raises:
            UnknownRelationError: If an include names an undeclared relation
        """
        for include in includes:
            relation = self.model.relations.get(include.name)
            if relation is None:
                raise UnknownRelationError(include.name, self.table, list(self.model.relations))
            logger.debug(f"Eager-loading {self.table}.{include.name}")
            await relation.eager_load(self, rows, include)

    def with_update_timestamp(self, values: dict[str, Any]) -> dict[str, Any]:
        if not self.model.timestamps:
            return dict(values)
        return {**values, self.updated_at: datetime.now(timezone.utc)}

    # Persistence

    def _insert_values(self, data: dict[str, Any]) -> dict[str, Any]:
        values = dict(data)
        pk = self.model.primary_key
        if not self.model.incrementing and values.get(pk) is None:
            values[pk] = generate_id()
        if self.model.timestamps:
            now = datetime.now(timezone.utc)
            values.setdefault(self.created_at, now)
            values.setdefault(self.updated_at, now)
        return values

    async def save(self, instance: Model) -> Model:
        """Insert a new instance or update an existing one by primary key."""
        pk = self.model.primary_key
        if instance.exists:
            values = {
                k: v
                for k, v in instance.attributes().items()
                if k not in (pk, self.created_at)
            }
            values = self.with_update_timestamp(values)
            where = Comparison(pk, Operator.EQ, instance.get_key())
            await run_statement(self.store.update(self.table, values, where), self.table, "update")
            instance._data.update(values)
            return instance

        values = self._insert_values(instance.attributes())
        row = await run_statement(self.store.insert(self.table, values), self.table, "insert")
        instance._data.clear()
        instance._data.update(row)
        instance._exists = True
        return instance

    async def create(self, attributes: dict[str, Any] | None = None, **extra: Any) -> Model:
        """Mass-assign allow-listed attributes and insert."""
        instance = self.model().fill(attributes, **extra)
        return await self.save(instance)

    async def create_many(self, records: list[dict[str, Any]]) -> list[Model]:
        return [await self.create(record) for record in records]

    async def find(self, key: Any) -> Model | None:
        return await self.query().where(self.model.primary_key, key).first()

    async def find_by(self, field: str, value: Any) -> Model | None:
        return await self.query().where(field, value).first()

    async def exists(self, **where: Any) -> bool:
        return await self.query().where(where_all(**where)).exists()

    async def delete(self, instance_or_key: Model | Any) -> bool:
        key = instance_or_key.get_key() if isinstance(instance_or_key, Model) else instance_or_key
        deleted = await self.query().where(self.model.primary_key, key).delete()
        if isinstance(instance_or_key, Model):
            instance_or_key._exists = False
        return deleted > 0

    async def paginate(
        self, page: int = 1, limit: int = 10, where: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        query = self.query()
        if where:
            query = query.where(where)
        return await query.paginate_result(page, limit)

    async def search(
        self, term: str, fields: list[str], page: int = 1, limit: int = 10
    ) -> dict[str, Any]:
        return await self.query().search(term, fields).paginate_result(page, limit)

    def _many_to_many(self, relation_name: str | None, related: type[Model]) -> tuple[str, BelongsToMany]:
        if relation_name is not None:
            relation = self.model.relations.get(relation_name)
            if isinstance(relation, BelongsToMany):
                return relation_name, relation
            raise UnknownRelationError(relation_name, self.table, list(self.model.relations))
        for name, relation in self.model.relations.items():
            if isinstance(relation, BelongsToMany) and _model_name(relation.model) == related.__name__:
                return name, relation
        raise UnknownRelationError(
            pluralize(snake_case(related.__name__)), self.table, list(self.model.relations)
        )

    async def attach(
        self,
        instance: Model,
        related: list[Model],
        relation_name: str | None = None,
        pivot: dict[str, Any] | None = None,
    ) -> int:
        """
        Insert pivot rows linking instance to each related model.

        Returns:
            Number of pivot rows inserted
        """
        if not related:
            return 0
        name, relation = self._many_to_many(relation_name, type(related[0]))
        pivot_table = relation.pivot_for(self.model)
        schema = self.registry.tables.get(pivot_table)

        for model in related:
            row = {
                relation.foreign_key_for(self.model): instance.get(relation.parent_key),
                relation.related_key_for(): model.get(relation.related_key),
                **(pivot or {}),
            }
            if schema is not None:
                pk = schema.pk_column
                if pk and pk not in row and not schema.pk_is_auto_increment:
                    row[pk] = generate_id()
                now = datetime.now(timezone.utc)
                for column in self.registry.timestamp_columns:
                    if schema.has_column(column):
                        row.setdefault(column, now)
            await run_statement(self.store.insert(pivot_table, row), pivot_table, "insert")

        loaded = instance.relation(name) or []
        instance.set_relation(name, loaded + list(related))
        logger.debug(f"Attached {len(related)} row(s) to {self.table}.{name} via {pivot_table}")
        return len(related)

    async def first_or_create(
        self, search: dict[str, Any], values: dict[str, Any] | None = None
    ) -> Model:
        existing = await self.query().where(search).first()
        if existing is not None:
            return existing
        return await self.create({**search, **(values or {})})

    async def update_or_create(
        self, search: dict[str, Any], values: dict[str, Any]
    ) -> Model:
        existing = await self.query().where(search).first()
        if existing is None:
            return await self.create({**search, **values})
        existing.fill(values)
        return await self.save(existing)


class ModelRegistry:
    """
    Explicit registry of model records, built once at startup.

    Args:
        store: Store every record is bound to
        tables: Shared table registry (enables schema detection)
        timestamp_columns: Creation and update timestamp column names
    """

    def __init__(
        self,
        store: BaseStore,
        tables: TableRegistry | None = None,
        timestamp_columns: tuple[str, str] = ("created_at", "updated_at"),
    ):
        self.store = store
        self.tables = tables if tables is not None else TableRegistry()
        self.timestamp_columns = timestamp_columns
        self._records: dict[type[Model], ModelRecord] = {}
        self._detector: SchemaDetector | None = None

    def register(self, *models: type[Model]) -> ModelRecord:
        """
        Register model classes.

        Returns:
            Record of the last registered model
        """
        record = None
        for model in models:
            record = self._records.get(model)
            if record is None:
                record = ModelRecord(model, self)
                self._records[model] = record
                logger.debug(f"Registered model {model.__name__} -> {model.table_name()}")
        if record is None:
            raise ValueError("register() needs at least one model class")
        return record

    def record_for(self, model: type[Model] | str) -> ModelRecord:
        """
        Look up the record for a model class or class name.

        Raises:
            ModelNotRegisteredError: If the model was never registered
        """
        if isinstance(model, str):
            for cls, record in self._records.items():
                if cls.__name__ == model:
                    return record
            raise ModelNotRegisteredError(model)
        record = self._records.get(model)
        if record is None:
            raise ModelNotRegisteredError(model.__name__)
        return record

    __getitem__ = record_for

    def __contains__(self, model: object) -> bool:
        return model in self._records

    def __iter__(self) -> Iterator[ModelRecord]:
        return iter(self._records.values())

    @property
    def detector(self) -> SchemaDetector:
        if self._detector is None:
            from schemaforge.detector import SchemaDetector

            self._detector = SchemaDetector(self.tables, self.timestamp_columns)
        return self._detector

    def forget(self, model: type[Model]) -> None:
        """Discard the detected schema of one model so it is recomputed on next use."""
        if self._detector is not None:
            self._detector.forget(model)

    def clear(self) -> None:
        """Discard every detected model schema."""
        if self._detector is not None:
            self._detector.clear_cache()
