"""Model factories and Faker helpers."""

from schemaforge.factories.builder import FactoryBuilder
from schemaforge.factories.factory import Factory
from schemaforge.factories.generators import FakerGenerator
from schemaforge.factories.types import FactoryTypes

__all__ = ["Factory", "FactoryBuilder", "FactoryTypes", "FakerGenerator"]
