"""
Model factories for synthetic entity graphs.

Factories are copy-on-write: every chain method returns a new factory and
never mutates the one it was called on.

Example:
    >>> class NoteFactory(Factory):
    ...     model = Note
    ...
    ...     def definition(self):
    ...         return {"notes": FactoryTypes.sentence()}
    ...
    ...     def short(self):
    ...         return self.state({"notes": "Love this!"})
    >>>
    >>> note = await NoteFactory.new(models=models).for_(user).for_(song).create()
    >>> notes = await NoteFactory.new(models=models).short().count(3).create()
"""

from __future__ import annotations

import inspect
import logging
import random
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from typing import Any, ClassVar

from schemaforge.exceptions import FactoryError
from schemaforge.factories.generators import FakerGenerator
from schemaforge.registry import (
    BelongsTo,
    HasMany,
    Model,
    ModelRecord,
    ModelRegistry,
    pluralize,
    snake_case,
)

logger = logging.getLogger(__name__)


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


@dataclass(frozen=True)
class ParentSpec:
    """Parent relationship declared with for_()."""

    source: Any  # Factory or persisted Model
    relationship: str | None = None
    foreign_key: str | None = None


@dataclass(frozen=True)
class ChildSpec:
    """Child relationship declared with has() or has_attached()."""

    factory: Factory
    relationship: str | None = None
    attached: bool = False
    pivot: dict[str, Any] | Callable[[Model], dict[str, Any]] | None = None


@dataclass(frozen=True)
class FactoryOptions:
    """Immutable factory configuration carried from one chain step to the next."""

    models: ModelRegistry | None = None
    count: int | None = None
    states: tuple[Any, ...] = ()
    parents: tuple[ParentSpec, ...] = ()
    children: tuple[ChildSpec, ...] = ()
    after_making: tuple[Callable, ...] = ()
    after_creating: tuple[Callable, ...] = ()
    recycle: dict[type, tuple[Model, ...]] = field(default_factory=dict)
    expand_relationships: bool = True


class Factory:
    """
    Base model factory.

    Subclasses set ``model`` and usually override ``definition()``. The
    default definition synthesizes values with Faker from the model's
    detected schema, skipping keys, timestamps, foreign keys and columns
    that have a default.
    """

    model: ClassVar[type[Model] | None] = None
    generator: ClassVar[FakerGenerator] = FakerGenerator()

    def __init__(self, options: FactoryOptions | None = None):
        self.options = options or FactoryOptions()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model_name()}, count={self.options.count})"

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def new(
        cls,
        attributes: dict[str, Any] | Callable | None = None,
        models: ModelRegistry | None = None,
    ) -> Factory:
        """Create a factory (optionally with an initial state) and configure() it."""
        factory = cls(FactoryOptions(models=models))
        if attributes:
            factory = factory.state(attributes)
        return factory.configure()

    @classmethod
    def times(cls, count: int, models: ModelRegistry | None = None) -> Factory:
        return cls.new(models=models).count(count)

    def configure(self) -> Factory:
        """Hook for subclasses to add default relationships or callbacks."""
        return self

    def definition(self) -> dict[str, Any]:
        models = self._require_models()
        detector = models.detector
        skip = set(detector.foreign_keys(self.model)) | set(models.timestamp_columns)
        attributes = {}
        for name, column in detector.detect(self.model).items():
            if column.primary_key or column.auto_increment or column.has_default or name in skip:
                continue
            attributes[name] = self.generator.generate(column)
        return attributes

    def _new_instance(self, **changes: Any) -> Factory:
        return type(self)(replace(self.options, **changes))

    @classmethod
    def model_name(cls) -> str:
        return cls.model.__name__ if cls.model is not None else cls.__name__.removesuffix("Factory")

    @property
    def models(self) -> ModelRegistry | None:
        return self.options.models

    def _require_models(self) -> ModelRegistry:
        if self.model is None:
            raise FactoryError(f"{type(self).__name__} does not declare a model class")
        if self.options.models is None:
            raise FactoryError(
                f"{type(self).__name__} has no model registry.\n\n"
                f"Suggestions:\n"
                f"1. {type(self).__name__}.new(models=models)\n"
                f"2. factory.using(models)"
            )
        return self.options.models

    def _record(self) -> ModelRecord:
        return self._require_models().record_for(self.model)

    # ------------------------------------------------------------------
    # Chain methods
    # ------------------------------------------------------------------

    def using(self, models: ModelRegistry) -> Factory:
        return self._new_instance(models=models)

    def count(self, count: int | None) -> Factory:
        """None builds a single entity; n < 1 builds an empty list; n >= 1 a list of n."""
        return self._new_instance(count=count)

    def state(self, state: dict[str, Any] | Callable[[dict[str, Any]], dict[str, Any]]) -> Factory:
        """
        Append a state (a mapping, or a callable receiving the attributes so far).

        States apply in the order they were added.
        """
        return self._new_instance(states=self.options.states + (state,))

    def set(self, key: str, value: Any) -> Factory:
        return self.state({key: value})

    def sequence(self, *values: Any) -> Factory:
        """Cycle through states (mappings or callables) for successive entities."""
        if not values:
            raise FactoryError("sequence() needs at least one value")
        position = 0

        def next_state(attributes: dict[str, Any]) -> dict[str, Any]:
            nonlocal position
            value = values[position % len(values)]
            position += 1
            return value(attributes) if callable(value) else value

        return self.state(next_state)

    def for_(
        self,
        parent: Factory | Model,
        relationship: str | None = None,
        foreign_key: str | None = None,
    ) -> Factory:
        """
        Declare a parent; it is resolved before this entity's attributes.

        Args:
            parent: Parent factory (created or recycled) or a persisted model
            relationship: BelongsTo relation name on this model
            foreign_key: Explicit foreign key column
        """
        spec = ParentSpec(parent, relationship, foreign_key)
        return self._new_instance(parents=self.options.parents + (spec,))

    def has(self, factory: Factory, relationship: str | None = None) -> Factory:
        """Declare children created after this entity is persisted."""
        spec = ChildSpec(factory, relationship)
        return self._new_instance(children=self.options.children + (spec,))

    def has_attached(
        self,
        factory: Factory,
        pivot: dict[str, Any] | Callable[[Model], dict[str, Any]] | None = None,
        relationship: str | None = None,
    ) -> Factory:
        """Declare many-to-many children linked through the pivot table."""
        spec = ChildSpec(factory, relationship, attached=True, pivot=pivot)
        return self._new_instance(children=self.options.children + (spec,))

    def recycle(self, models: Model | Iterable[Model] | dict[type, Iterable[Model]]) -> Factory:
        """Draw related models at random from these instead of creating new rows."""
        pool = dict(self.options.recycle)
        if isinstance(models, dict):
            for model_class, instances in models.items():
                pool[model_class] = pool.get(model_class, ()) + tuple(instances)
        else:
            instances = [models] if isinstance(models, Model) else list(models)
            for instance in instances:
                pool[type(instance)] = pool.get(type(instance), ()) + (instance,)
        return self._new_instance(recycle=pool)

    def after_making(self, callback: Callable[[Model], Any]) -> Factory:
        return self._new_instance(after_making=self.options.after_making + (callback,))

    def after_creating(self, callback: Callable[[Model, Model | None], Any]) -> Factory:
        return self._new_instance(after_creating=self.options.after_creating + (callback,))

    def without_parents(self) -> Factory:
        """Skip for_() parents and leave factory-valued attributes unset."""
        return self._new_instance(expand_relationships=False)

    # ------------------------------------------------------------------
    # Attribute expansion
    # ------------------------------------------------------------------

    def _recycled(self, model_class: type | None) -> Model | None:
        pool = self.options.recycle.get(model_class) if model_class else None
        return random.choice(pool) if pool else None

    def _bind(self, factory: Factory) -> Factory:
        factory = factory.recycle(self.options.recycle)
        if factory.models is None and self.models is not None:
            factory = factory.using(self.models)
        return factory

    def _parent_key(self, spec: ParentSpec, parent_class: type) -> str:
        if spec.foreign_key:
            return spec.foreign_key
        relations = self.model.relations if self.model else {}
        relation = relations.get(spec.relationship) if spec.relationship else None
        if relation is None:
            for candidate in relations.values():
                target = candidate.model if isinstance(candidate.model, str) else candidate.model.__name__
                if isinstance(candidate, BelongsTo) and target == parent_class.__name__:
                    relation = candidate
                    break
        if isinstance(relation, BelongsTo):
            return relation.key_for()
        return f"{snake_case(spec.relationship or parent_class.__name__)}_id"

    async def _resolve_parents(self) -> dict[str, Any]:
        keys: dict[str, Any] = {}
        if not self.options.expand_relationships:
            return keys
        for spec in self.options.parents:
            source = spec.source
            if isinstance(source, Factory):
                parent = self._recycled(source.model)
                if parent is None:
                    parent = await self._bind(source).create_one()
                    logger.debug(f"Created parent {type(parent).__name__} for {self.model_name()}")
            else:
                parent = source
            keys[self._parent_key(spec, type(parent))] = parent.get_key()
        return keys

    async def _expand(self, attributes: dict[str, Any]) -> dict[str, Any]:
        expanded = {}
        for key, value in attributes.items():
            if callable(value) and not isinstance(value, (Factory, type)):
                value = await _resolve(value(attributes))
            if isinstance(value, Factory):
                if not self.options.expand_relationships:
                    value = None
                else:
                    recycled = self._recycled(value.model)
                    value = recycled if recycled is not None else await self._bind(value).create_one()
            if isinstance(value, Model):
                value = value.get_key()
            expanded[key] = value
        return expanded

    async def _attributes(self) -> dict[str, Any]:
        parent_keys = await self._resolve_parents()
        attributes = {**self.definition(), **parent_keys}
        for state in self.options.states:
            result = state(attributes) if callable(state) else state
            attributes = {**attributes, **(await _resolve(result) or {})}
        return await self._expand(attributes)

    # ------------------------------------------------------------------
    # Terminal operations
    # ------------------------------------------------------------------

    async def raw(self, attributes: dict[str, Any] | None = None) -> dict[str, Any] | list[dict[str, Any]]:
        """Expanded attribute mappings without model instances."""
        factory = self.state(attributes) if attributes else self
        count = factory.options.count
        if count is None:
            return await factory._attributes()
        return [await factory._attributes() for _ in range(max(count, 0))]

    async def make(self, attributes: dict[str, Any] | None = None) -> Model | list[Model]:
        """Build unsaved model instances; after_making callbacks run on each."""
        if attributes:
            return await self.state(attributes).make()
        if self.model is None:
            raise FactoryError(f"{type(self).__name__} does not declare a model class")

        count = self.options.count
        if count is not None and count < 1:
            return []
        instances = [self.model(**await self._attributes()) for _ in range(count or 1)]
        for instance in instances:
            for callback in self.options.after_making:
                await _resolve(callback(instance))
        return instances[0] if count is None else instances

    async def make_one(self, attributes: dict[str, Any] | None = None) -> Model:
        return await self.count(None).make(attributes)

    async def create(
        self, attributes: dict[str, Any] | None = None, parent: Model | None = None
    ) -> Model | list[Model]:
        """
        Build and persist entities.

        Children declared with has()/has_attached() are created after each
        entity is saved; after_creating callbacks then run with
        ``(instance, parent)``.
        """
        if attributes:
            return await self.state(attributes).create(parent=parent)

        record = self._record()
        results = await self.make()
        instances = results if isinstance(results, list) else [results]

        for instance in instances:
            await record.save(instance)
            await self._create_children(record, instance)

        for instance in instances:
            for callback in self.options.after_creating:
                await _resolve(callback(instance, parent))

        logger.debug(f"Created {len(instances)} {self.model_name()} instance(s)")
        return results

    async def create_one(self, attributes: dict[str, Any] | None = None) -> Model:
        return await self.count(None).create(attributes)

    async def create_many(
        self,
        records: int | list[dict[str, Any]] | None = None,
        parent: Model | None = None,
    ) -> list[Model]:
        """Create one entity per record mapping (or n entities for an int)."""
        if records is None:
            records = self.options.count if self.options.count is not None else 1
        if isinstance(records, int):
            records = [{} for _ in range(max(records, 0))]
        single = self.count(None)
        return [await single.create(record, parent=parent) for record in records]

    async def _create_children(self, record: ModelRecord, instance: Model) -> None:
        for child in self.options.children:
            factory = self._bind(child.factory)
            if child.attached:
                related = await factory.create_many(parent=instance)
                pivot = child.pivot(instance) if callable(child.pivot) else child.pivot
                await record.attach(instance, related, child.relationship, pivot)
            else:
                foreign_key = self._child_key(child)
                related = await factory.for_(instance, foreign_key=foreign_key).create_many(
                    parent=instance
                )
                name = child.relationship or pluralize(snake_case(factory.model_name()))
                instance.set_relation(name, related)

    def _child_key(self, child: ChildSpec) -> str:
        relation = self.model.relations.get(child.relationship) if child.relationship else None
        if isinstance(relation, HasMany):
            return relation.key_for(self.model)
        return f"{snake_case(self.model.__name__)}_id"
