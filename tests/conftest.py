"""Pytest configuration and shared fixtures."""

import os

import pytest

from schemaforge import FactoryBuilder, MemoryStore, Migrator, ModelRegistry, TableRegistry
from sample_app import (
    MIGRATIONS,
    MODELS,
    NoteFactory,
    SongFactory,
    TagFactory,
    UserFactory,
)


@pytest.fixture
def store() -> MemoryStore:
    """Provide an empty in-memory store."""
    return MemoryStore()


@pytest.fixture
async def tables(store: MemoryStore) -> TableRegistry:
    """
    Run the sample migrations against the store.

    Returns the table registry the migrations compiled.
    """
    registry = TableRegistry()
    await Migrator(store, MIGRATIONS, registry=registry).migrate()
    return registry


@pytest.fixture
def models(store: MemoryStore, tables: TableRegistry) -> ModelRegistry:
    """Model registry with User, Song, Tag and Note registered."""
    registry = ModelRegistry(store, tables)
    registry.register(*MODELS)
    return registry


@pytest.fixture
def factories(models: ModelRegistry) -> FactoryBuilder:
    """Factory builder with a factory defined for every sample model."""
    builder = FactoryBuilder(models)
    builder.define("User", UserFactory)
    builder.define("Song", SongFactory)
    builder.define("Tag", TagFactory)
    builder.define("Note", NoteFactory)
    return builder


@pytest.fixture
def database_url() -> str:
    """
    PostgreSQL URL for integration tests.

    Skips the test unless SCHEMAFORGE_TEST_DATABASE_URL is set.
    """
    url = os.environ.get("SCHEMAFORGE_TEST_DATABASE_URL")
    if not url:
        pytest.skip("SCHEMAFORGE_TEST_DATABASE_URL not set")
    return url
