"""Tests for models, relations and the model registry."""

import pytest

from schemaforge import Model, ModelRegistry
from schemaforge.exceptions import ModelNotRegisteredError, UnknownRelationError
from schemaforge.registry import pluralize, snake_case
from sample_app import Note, Song, Tag, User


class PlaylistTeam(Model):
    fillable = ("name",)


def test_naming_helpers():
    assert snake_case("PlaylistTeam") == "playlist_team"
    assert pluralize("category") == "categories"
    assert pluralize("day") == "days"
    assert pluralize("notes") == "notes"
    assert PlaylistTeam.table_name() == "playlist_teams"


def test_fill_only_assigns_fillable_fields():
    """Mass assignment ignores fields outside the allow-list."""
    user = User().fill({"name": "Ada", "is_admin": True})

    assert user.name == "Ada"
    assert "is_admin" not in user.attributes()
    with pytest.raises(AttributeError):
        user.is_admin


def test_to_dict_hides_and_casts():
    user = User(id="u1", name="Ada", password="secret")
    assert user.to_dict() == {"id": "u1", "name": "Ada"}

    song = Song(id="s1", title="Song", duration="240")
    assert song.to_dict()["duration"] == 240


def test_models_compare_by_key():
    assert User(id="u1") == User(id="u1", name="Ada")
    assert User(id="u1") != User(id="u2")
    assert User() != User()


def test_record_lookup(models):
    assert models.record_for(User).table == "users"
    assert models["Tag"].model is Tag
    assert User in models

    with pytest.raises(ModelNotRegisteredError):
        models.record_for(PlaylistTeam)
    with pytest.raises(ModelNotRegisteredError):
        models.record_for("PlaylistTeam")


async def test_create_generates_key_and_timestamps(models):
    user = await models[User].create({"name": "Ada", "email": "ada@example.com"})

    assert user.exists
    assert isinstance(user.id, str)
    assert user.created_at is not None
    assert user.created_at == user.updated_at
    assert await models[User].find(user.id) == user


async def test_save_updates_existing_instance(models):
    users = models[User]
    user = await users.create({"name": "Ada", "email": "ada@example.com"})
    created_at = user.created_at

    user.name = "Ada Lovelace"
    await users.save(user)

    found = await users.find_by("email", "ada@example.com")
    assert found.name == "Ada Lovelace"
    assert found.created_at == created_at
    assert found.updated_at >= created_at


async def test_first_or_create_and_update_or_create(models):
    tags = models[Tag]

    rock = await tags.first_or_create({"name": "Rock"}, {"description": "Loud"})
    again = await tags.first_or_create({"name": "Rock"}, {"description": "Ignored"})
    assert again == rock
    assert again.description == "Loud"

    updated = await tags.update_or_create({"name": "Rock"}, {"description": "Louder"})
    assert updated == rock
    assert (await tags.find(rock.id)).description == "Louder"
    assert await tags.query().count() == 1


async def test_delete_and_exists(models):
    tags = models[Tag]
    tag = await tags.create({"name": "Jazz"})

    assert await tags.exists(name="Jazz")
    assert await tags.delete(tag)
    assert not tag.exists
    assert not await tags.exists(name="Jazz")


async def test_model_query_hydrates_instances(models):
    await models[Tag].create_many([{"name": "Rock"}, {"name": "Jazz"}])

    tags = await models[Tag].query().order_by("name").get()

    assert [type(tag) for tag in tags] == [Tag, Tag]
    assert [tag.name for tag in tags] == ["Jazz", "Rock"]


async def test_search_and_paginate(models):
    tags = models[Tag]
    await tags.create_many([{"name": f"Rock {i}"} for i in range(5)] + [{"name": "Jazz"}])

    page = await tags.search("rock", ["name"], page=1, limit=2)
    assert page["total"] == 5
    assert len(page["data"]) == 2

    everything = await tags.paginate(page=1, limit=10, where={"name": "Jazz"})
    assert everything["total"] == 1


async def test_eager_loading_relations(models):
    """belongs_to, has_many and belongs_to_many load with one query each."""
    user = await models[User].create({"name": "Ada", "email": "ada@example.com"})
    song = await models[Song].create({"title": "Song"})
    rock = await models[Tag].create({"name": "Rock"})
    await models[Note].create({"notes": "Great", "user_id": user.id, "song_id": song.id})
    await models[Song].attach(song, [rock])

    note = await models[Note].query().with_("user", "song:id,title").first()
    assert note.user == user
    assert note.song.attributes() == {"id": song.id, "title": "Song"}

    loaded = await models[User].query().include("notes").first()
    assert [n.notes for n in loaded.notes] == ["Great"]

    loaded_song = await models[Song].query().with_("tags").first()
    assert [t.name for t in loaded_song.tags] == ["Rock"]

    loaded_tag = await models[Tag].query().with_("songs").first()
    assert [s.title for s in loaded_tag.songs] == ["Song"]


async def test_unknown_relation_raises(models):
    await models[Tag].create({"name": "Rock"})

    with pytest.raises(UnknownRelationError):
        await models[Tag].query().with_("albums").get()


async def test_attach_writes_pivot_rows(models, store):
    song = await models[Song].create({"title": "Song"})
    tags = await models[Tag].create_many([{"name": "Rock"}, {"name": "Jazz"}])

    count = await models[Song].attach(song, tags, pivot={})

    assert count == 2
    pivot_rows = store.get_data("song_tags")
    assert {row["tag_id"] for row in pivot_rows} == {tag.id for tag in tags}
    assert all(row["id"] and row["created_at"] for row in pivot_rows)
    assert song.relation("tags") == tags


def test_registry_requires_models(store):
    with pytest.raises(ValueError):
        ModelRegistry(store).register()
