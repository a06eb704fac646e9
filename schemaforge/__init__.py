"""
schemaforge - Schema Builder, Query Builder and Seeders

Fluent table blueprints and migrations, a lazy chainable query builder, and
factory/seeder tooling with duplicate-aware bulk insertion.
"""

from schemaforge.backends.base import BaseStore
from schemaforge.backends.memory import MemoryStore
from schemaforge.catalog import ColumnType, TypeCatalog, TypeKind
from schemaforge.config import Config
from schemaforge.detector import SchemaDetector
from schemaforge.factories import Factory, FactoryBuilder, FactoryTypes
from schemaforge.models import TableRegistry, TableSchema
from schemaforge.query.builder import QueryBuilder
from schemaforge.registry import (
    Model,
    ModelRecord,
    ModelRegistry,
    belongs_to,
    belongs_to_many,
    has_many,
)
from schemaforge.schema import Blueprint, Migration, Migrator, Schema
from schemaforge.seeding import DuplicatePolicy, Seeder, SeederOperations, SeedResult

__version__ = "0.1.0"

__all__ = [
    "BaseStore",
    "MemoryStore",
    "ColumnType",
    "TypeCatalog",
    "TypeKind",
    "Config",
    "SchemaDetector",
    "Factory",
    "FactoryBuilder",
    "FactoryTypes",
    "TableRegistry",
    "TableSchema",
    "QueryBuilder",
    "Model",
    "ModelRecord",
    "ModelRegistry",
    "belongs_to",
    "belongs_to_many",
    "has_many",
    "Blueprint",
    "Migration",
    "Migrator",
    "Schema",
    "DuplicatePolicy",
    "Seeder",
    "SeederOperations",
    "SeedResult",
]
