"""Registry of factory classes per model."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from schemaforge.exceptions import FactoryNotDefinedError
from schemaforge.factories.factory import Factory
from schemaforge.registry import Model, ModelRegistry

logger = logging.getLogger(__name__)


class FactoryBuilder:
    """
    Define and look up factories for registered models.

    Args:
        models: Model registry every produced factory is bound to

    Example:
        >>> factories = FactoryBuilder(models)
        >>> factories.define(Note, NoteFactory)
        >>> factories.define(Tag, {"name": lambda attrs: "Rock"})
        >>> factories.define(Song)  # synthesized from the detected schema
        >>> songs = await factories.factory(Song, 3).create()
    """

    def __init__(self, models: ModelRegistry):
        self.models = models
        self._factories: dict[type[Model], type[Factory]] = {}

    def define(
        self,
        model: type[Model] | str,
        definition: type[Factory] | dict[str, Any] | Callable[[], dict[str, Any]] | None = None,
    ) -> type[Factory]:
        """
        Register a factory for a model.

        Args:
            model: Model class or registered class name
            definition: Factory subclass, an attribute mapping, a callable
                returning one, or None to synthesize values from the schema

        Returns:
            The factory class registered for the model
        """
        model_class = self.models.record_for(model).model

        if isinstance(definition, type) and issubclass(definition, Factory):
            factory_class = definition
            if factory_class.model is None:
                factory_class = type(factory_class.__name__, (factory_class,), {"model": model_class})
        else:
            namespace: dict[str, Any] = {"model": model_class}
            if definition is not None:
                namespace["definition"] = _definition_from(definition)
            factory_class = type(f"{model_class.__name__}Factory", (Factory,), namespace)

        self._factories[model_class] = factory_class
        logger.debug(f"Defined factory {factory_class.__name__} for {model_class.__name__}")
        return factory_class

    def get(self, model: type[Model] | str) -> Factory:
        """
        Fresh factory instance for a model.

        Raises:
            FactoryNotDefinedError: If no factory was defined for the model
        """
        model_class = self.models.record_for(model).model
        factory_class = self._factories.get(model_class)
        if factory_class is None:
            raise FactoryNotDefinedError(model_class.__name__)
        return factory_class.new(models=self.models)

    def factory(self, model: type[Model] | str, count: int | None = None) -> Factory:
        factory = self.get(model)
        return factory.count(count) if count else factory

    def has_factory(self, model: type[Model] | str) -> bool:
        return self.models.record_for(model).model in self._factories

    def defined(self) -> list[str]:
        return [model.__name__ for model in self._factories]

    def reset(self) -> None:
        self._factories.clear()


def _definition_from(definition: dict[str, Any] | Callable[[], dict[str, Any]]):
    def build(self: Factory) -> dict[str, Any]:
        return dict(definition()) if callable(definition) else dict(definition)

    return build
