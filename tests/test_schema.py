"""Tests for the Schema facade."""

import pytest

from schemaforge import MemoryStore, Schema, TableRegistry
from schemaforge.exceptions import ExecutionError, StoreError


class FlakyStore(MemoryStore):
    """Store whose metadata calls fail for reasons other than a missing table."""

    async def describe_table(self, name):
        raise StoreError("server closed the connection unexpectedly")


async def test_create_registers_table():
    """create() builds the table and records it in the registry."""
    store = MemoryStore()
    registry = TableRegistry()
    schema = Schema(store, registry)

    await schema.create("tags", lambda table: (table.id(), table.string("name").unique()))

    assert await schema.has_table("tags")
    assert "tags" in registry
    assert registry.get("tags").columns["name"].unique


async def test_has_table_false_for_missing_table():
    schema = Schema(MemoryStore())
    assert await schema.has_table("nope") is False


async def test_has_table_rethrows_other_errors():
    """Only "does not exist" failures mean False."""
    schema = Schema(FlakyStore())

    with pytest.raises(StoreError):
        await schema.has_table("tags")


async def test_drop_if_exists_ignores_missing_table():
    schema = Schema(MemoryStore())
    await schema.drop_if_exists("never_created")


async def test_drop_missing_table_raises():
    schema = Schema(MemoryStore())

    with pytest.raises(ExecutionError) as exc_info:
        await schema.drop("never_created")
    assert exc_info.value.operation == "drop_table"


async def test_drop_refuses_referenced_table_without_cascade():
    """Dropping a parent table is refused while children reference it."""
    store = MemoryStore()
    schema = Schema(store)
    await schema.create("users", lambda table: table.id())
    await schema.create(
        "notes",
        lambda table: (table.id(), table.foreign_id("user_id").references("users")),
    )

    with pytest.raises(ExecutionError):
        await schema.drop("users")

    await schema.drop("users", cascade=True)
    assert not await schema.has_table("users")
    assert (await store.describe_table("notes")).foreign_keys == []


async def test_rename_updates_registry_and_references():
    store = MemoryStore()
    registry = TableRegistry()
    schema = Schema(store, registry)
    await schema.create("users", lambda table: table.id())
    await schema.create(
        "notes",
        lambda table: (table.id(), table.foreign_id("user_id").references("users")),
    )

    await schema.rename("users", "accounts")

    assert await schema.has_table("accounts")
    assert not await schema.has_table("users")
    assert set(registry.names()) == {"accounts", "notes"}
    assert registry.get("notes").foreign_keys[0].referenced_table == "accounts"


async def test_table_alters_existing_table():
    """table() adds columns (honouring after()) and indexes."""
    store = MemoryStore()
    registry = TableRegistry()
    schema = Schema(store, registry)
    await schema.create("songs", lambda table: (table.id(), table.string("title")))

    await schema.table(
        "songs",
        lambda table: (
            table.string("artist").after("id").index(),
            table.integer("duration"),
        ),
    )

    described = await store.describe_table("songs")
    assert described.column_names == ["id", "artist", "title", "duration"]
    assert [index.name for index in described.indexes] == ["idx_songs_artist"]
    assert registry.get("songs").has_column("duration")


async def test_transactional_create_rolls_back_failed_build():
    """With transactional DDL a failed build leaves no table behind."""
    store = MemoryStore()
    schema = Schema(store, transactional=True)

    with pytest.raises(ExecutionError):
        await schema.create(
            "notes",
            lambda table: (table.id(), table.foreign_id("user_id").references("users")),
        )

    assert not await schema.has_table("notes")


async def test_non_transactional_create_keeps_partial_table():
    """Without a transaction the table stays when a later stage fails."""
    store = MemoryStore()
    schema = Schema(store)

    with pytest.raises(ExecutionError):
        await schema.create(
            "notes",
            lambda table: (table.id(), table.foreign_id("user_id").references("users")),
        )

    assert await schema.has_table("notes")
