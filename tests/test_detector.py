"""Tests for model schema detection."""

import logging

from schemaforge import Model, ModelRegistry, Schema, SchemaDetector, TableRegistry
from schemaforge.catalog import TypeKind
from sample_app import MIGRATIONS, Note, Tag


class Counter(Model):
    __table__ = "counters"
    fillable = ("label",)
    incrementing = True


class Tagline(Model):
    __table__ = "tags"
    fillable = ("name", "subtitle")


async def test_primary_key_always_included():
    """The key is detected even though it is not in the allow-list."""
    detector = SchemaDetector(await TableRegistry.from_migrations(MIGRATIONS))

    columns = detector.detect(Tag)

    assert "id" not in Tag.fillable
    assert list(columns) == ["id", "name", "description", "created_at", "updated_at"]
    assert columns["id"].primary_key


async def test_fillable_field_missing_from_table_is_tolerated(caplog):
    """An allow-listed field without a column becomes a nullable string."""
    detector = SchemaDetector(await TableRegistry.from_migrations(MIGRATIONS))

    with caplog.at_level(logging.WARNING):
        columns = detector.detect(Tagline)

    assert columns["subtitle"].type.kind == TypeKind.STRING
    assert columns["subtitle"].nullable
    assert "subtitle" in caplog.text


def test_missing_table_synthesizes_key():
    detector = SchemaDetector(TableRegistry())

    columns = detector.detect(Counter)

    assert columns["id"].auto_increment
    assert columns["id"].type.kind == TypeKind.INCREMENTS
    assert list(columns) == ["id", "label"]


async def test_foreign_keys_and_cache():
    tables = await TableRegistry.from_migrations(MIGRATIONS)
    detector = SchemaDetector(tables)

    assert detector.foreign_keys(Note) == {"user_id": "users", "song_id": "songs"}

    first = detector.detect(Note)
    assert detector.detect(Note) is first
    detector.clear_cache()
    assert detector.detect(Note) is not first


async def test_detection_follows_table_changes(store, tables):
    """Altering, renaming or dropping a table refreshes cached detections."""
    models = ModelRegistry(store, tables)
    schema = Schema(store, tables)

    assert models.detector.detect(Tagline)["subtitle"].type.kind == TypeKind.STRING

    await schema.table("tags", lambda table: table.text("subtitle").nullable())
    assert models.detector.detect(Tagline)["subtitle"].type.kind == TypeKind.TEXT

    await schema.rename("tags", "genres")
    assert models.detector.detect(Tagline)["subtitle"].type.kind == TypeKind.STRING


def test_model_registry_forget_and_clear(store):
    models = ModelRegistry(store)

    first = models.detector.detect(Counter)
    models.forget(Counter)
    second = models.detector.detect(Counter)
    assert second is not first

    models.clear()
    assert models.detector.detect(Counter) is not second
