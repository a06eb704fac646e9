"""Table blueprints, schema operations and migrations."""

from schemaforge.schema.blueprint import Blueprint
from schemaforge.schema.migration import Migration, Migrator
from schemaforge.schema.schema import Schema

__all__ = ["Blueprint", "Migration", "Migrator", "Schema"]
