"""Tests for migrations and the migration runner."""

import pytest

from schemaforge import MemoryStore, Migration, Migrator, Schema, TableRegistry
from schemaforge.exceptions import InvalidMigrationDirectionError, MigrationError
from sample_app import MIGRATIONS, CreateTagsTable, CreateUsersTable


class AddBioToUsers(Migration):
    name = "2024_01_02_add_bio_to_users"

    async def up(self):
        await self.schema.table("users", lambda table: table.text("bio"))

    async def down(self):
        pass


def test_migration_requires_up_and_down():
    class UpOnly(Migration):
        async def up(self):
            pass

    with pytest.raises(TypeError):
        UpOnly(MemoryStore())


async def test_execute_dispatches_direction():
    store = MemoryStore()
    migration = CreateTagsTable(store)

    await migration.execute("up")
    assert await migration.schema.has_table("tags")

    await migration.execute("down")
    assert not await migration.schema.has_table("tags")


async def test_execute_rejects_unknown_direction():
    """An unrecognized direction raises instead of doing nothing."""
    migration = CreateTagsTable(MemoryStore())

    with pytest.raises(InvalidMigrationDirectionError):
        await migration.execute("sideways")


async def test_migrate_records_one_batch():
    store = MemoryStore()
    migrator = Migrator(store, MIGRATIONS)

    ran = await migrator.migrate()

    assert ran == [m.__name__ for m in MIGRATIONS]
    assert await migrator.pending() == []
    assert {row["batch"] for row in await migrator.applied()} == {1}
    assert await migrator.migrate() == []


async def test_second_migrate_is_a_new_batch():
    """Migrations added later run in the next batch."""
    store = MemoryStore()
    await Migrator(store, [CreateUsersTable]).migrate()

    migrator = Migrator(store, [CreateUsersTable, AddBioToUsers])
    assert await migrator.migrate() == ["2024_01_02_add_bio_to_users"]

    status = await migrator.status()
    assert status == [
        {"name": "CreateUsersTable", "applied": True, "batch": 1},
        {"name": "2024_01_02_add_bio_to_users", "applied": True, "batch": 2},
    ]
    assert (await store.describe_table("users")).has_column("bio")


async def test_rollback_reverts_last_batch_in_reverse():
    store = MemoryStore()
    migrator = Migrator(store, MIGRATIONS)
    await migrator.migrate()

    reverted = await migrator.rollback()

    assert reverted == [m.__name__ for m in reversed(MIGRATIONS)]
    assert await migrator.applied() == []
    schema = Schema(store)
    for table in ("users", "songs", "tags", "notes", "song_tags"):
        assert not await schema.has_table(table)
    assert await migrator.rollback() == []


async def test_status_reports_pending():
    store = MemoryStore()
    migrator = Migrator(store, [CreateUsersTable, CreateTagsTable])
    await Migrator(store, [CreateUsersTable]).migrate()

    status = await migrator.status()

    assert status[0]["applied"] is True
    assert status[1] == {"name": "CreateTagsTable", "applied": False, "batch": None}


def test_duplicate_migration_names_are_rejected():
    with pytest.raises(MigrationError):
        Migrator(MemoryStore(), [CreateUsersTable, CreateUsersTable])


async def test_registry_from_migrations():
    """Replaying migrations yields the compiled schema of every table."""
    registry = await TableRegistry.from_migrations(MIGRATIONS)

    assert set(registry.names()) == {"users", "songs", "tags", "notes", "song_tags"}
    notes = registry.get("notes")
    assert [fk.referenced_table for fk in notes.foreign_keys] == ["users", "songs"]
