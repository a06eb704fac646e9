"""Duplicate-aware bulk insertion and seeders."""

from schemaforge.seeding.operations import (
    DuplicatePolicy,
    DuplicateStrategy,
    Errored,
    Inserted,
    SeederOperations,
    SeedResult,
    Skipped,
    Updated,
)
from schemaforge.seeding.seeder import Seeder

__all__ = [
    "DuplicatePolicy",
    "DuplicateStrategy",
    "Errored",
    "Inserted",
    "SeederOperations",
    "SeedResult",
    "Skipped",
    "Updated",
    "Seeder",
]
