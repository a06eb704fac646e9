"""Tests for factories, the factory builder and Faker helpers."""

import pytest

from schemaforge import Factory, FactoryBuilder, FactoryTypes
from schemaforge.catalog import ColumnType
from schemaforge.exceptions import FactoryError, FactoryNotDefinedError
from schemaforge.factories.generators import FakerGenerator
from schemaforge.models import ColumnDefinition
from sample_app import Note, NoteFactory, Song, SongFactory, Tag, TagFactory, User, UserFactory


async def test_count_controls_result_shape(models):
    """count(3) gives a list of 3; count(None) a single object; count(0) an empty list."""
    songs = await SongFactory.new(models=models).count(3).create()
    assert isinstance(songs, list)
    assert len(songs) == 3

    song = await SongFactory.new(models=models).count(None).create()
    assert isinstance(song, Song)
    assert song.exists

    assert await SongFactory.new(models=models).count(0).create() == []
    assert await models[Song].query().count() == 4


async def test_state_is_copy_on_write(models):
    base = NoteFactory.new(models=models)
    short = base.short()

    assert short is not base
    assert base.options.states == ()
    assert len(short.options.states) == 1


async def test_states_apply_in_order(models):
    factory = (
        UserFactory.new(models=models)
        .state({"name": "First"})
        .state(lambda attrs: {"name": attrs["name"] + " Second"})
        .set("password", "hunter2")
    )

    attributes = await factory.raw()

    assert attributes["name"] == "First Second"
    assert attributes["password"] == "hunter2"


async def test_note_for_user_and_song(models, store):
    """
    Create a note for a new user and a new song.

    Both parents are created first and their keys land on the note.
    """
    note = await (
        NoteFactory.new(models=models)
        .for_(UserFactory.new())
        .for_(SongFactory.new())
        .create()
    )

    user = await models[User].find(note.user_id)
    song = await models[Song].find(note.song_id)
    assert user is not None
    assert song is not None
    assert len(store.get_data("users")) == 1
    assert len(store.get_data("songs")) == 1
    assert store.get_data("notes")[0]["user_id"] == user.id


async def test_for_existing_model(models):
    user = await UserFactory.new(models=models).create()

    notes = await NoteFactory.new(models=models).for_(user).for_(SongFactory.new()).count(2).create()

    assert {note.user_id for note in notes} == {user.id}
    assert await models[User].query().count() == 1


async def test_recycle_never_creates_second_parent(models):
    """recycle([user]) reuses the pooled user on every create()."""
    user = await UserFactory.new(models=models).create()
    song = await SongFactory.new(models=models).create()
    factory = NoteFactory.new(models=models).for_(UserFactory.new()).for_(song).recycle([user])

    await factory.create()
    await factory.create()

    assert await models[User].query().count() == 1
    assert await models[Note].query().where("user_id", user.id).count() == 2


async def test_empty_recycle_pool_creates_rows(models):
    song = await SongFactory.new(models=models).create()

    await NoteFactory.new(models=models).for_(UserFactory.new()).for_(song).recycle([]).create()

    assert await models[User].query().count() == 1


async def test_has_creates_children_after_parent(models):
    user = await (
        UserFactory.new(models=models)
        .has(NoteFactory.new().for_(SongFactory.new()).count(2))
        .create()
    )

    assert len(user.notes) == 2
    assert all(note.user_id == user.id for note in user.notes)


async def test_has_attached_writes_pivot_rows(models, store):
    song = await SongFactory.new(models=models).has_attached(TagFactory.new().count(3)).create()

    assert len(song.tags) == 3
    assert len(store.get_data("song_tags")) == 3
    loaded = await models[Song].query().with_("tags").first()
    assert {t.id for t in loaded.tags} == {t.id for t in song.tags}


async def test_callbacks(models):
    made = []
    created = []

    await (
        TagFactory.new(models=models)
        .after_making(lambda tag: made.append(tag.exists))
        .after_creating(lambda tag, parent: created.append((tag.exists, parent)))
        .count(2)
        .create()
    )

    assert made == [False, False]
    assert created == [(True, None), (True, None)]


async def test_make_does_not_persist(models):
    tag = await TagFactory.new(models=models).make()

    assert isinstance(tag, Tag)
    assert not tag.exists
    assert tag.description == f"{tag.name} music category"
    assert await models[Tag].query().count() == 0


async def test_sequence_cycles_states(models):
    tags = await (
        TagFactory.new(models=models)
        .sequence({"description": "odd"}, {"description": "even"})
        .count(3)
        .create()
    )

    assert [tag.description for tag in tags] == ["odd", "even", "odd"]


async def test_create_many_from_records(models):
    tags = await TagFactory.new(models=models).create_many([{"name": "Rock"}, {"name": "Jazz"}])

    assert [tag.name for tag in tags] == ["Rock", "Jazz"]


async def test_zero_count_creates_nothing(models):
    """An explicit zero, empty record list or zero-count child creates no rows."""
    assert await TagFactory.new(models=models).count(0).create_many() == []
    assert await TagFactory.new(models=models).create_many([]) == []
    assert await TagFactory.new(models=models).create_many(0) == []

    user = await UserFactory.new(models=models).has(NoteFactory.new().count(0)).create()

    assert user.notes == []
    assert await models[Tag].query().count() == 0
    assert await models[Note].query().count() == 0


async def test_factory_valued_attribute_is_created(models):
    note = await (
        NoteFactory.new(models=models)
        .state({"user_id": UserFactory.new(), "song_id": SongFactory.new()})
        .create()
    )

    assert await models[User].find(note.user_id) is not None


async def test_without_parents_skips_relations(models):
    attributes = await (
        NoteFactory.new(models=models)
        .for_(UserFactory.new())
        .state({"song_id": SongFactory.new()})
        .without_parents()
        .raw()
    )

    assert "user_id" not in attributes
    assert attributes["song_id"] is None
    assert await models[User].query().count() == 0


async def test_factory_without_models_raises():
    with pytest.raises(FactoryError) as exc_info:
        await NoteFactory.new().create()
    assert "Suggestions" in str(exc_info.value)


async def test_builder_defines_factories(models):
    builder = FactoryBuilder(models)
    builder.define(Tag, {"name": "Rock"})
    builder.define(User)

    assert builder.has_factory(Tag)
    assert builder.defined() == ["Tag", "User"]

    tag = await builder.get(Tag).create()
    assert tag.name == "Rock"

    user = await builder.factory(User, 2).create()
    assert len(user) == 2
    assert all(u.email and u.name for u in user)

    with pytest.raises(FactoryNotDefinedError):
        builder.get(Song)

    builder.reset()
    assert builder.defined() == []


async def test_builder_binds_model_to_plain_factory(models):
    class PlainFactory(Factory):
        def definition(self):
            return {"name": "Synth"}

    builder = FactoryBuilder(models)
    factory_class = builder.define(Tag, PlainFactory)

    assert factory_class.model is Tag
    assert (await builder.get("Tag").create()).name == "Synth"


async def test_synthesized_definition_skips_keys_and_timestamps(models):
    """Keys, foreign keys and timestamps are left to the store and relations."""

    class BareNoteFactory(Factory):
        model = Note

    attributes = await BareNoteFactory.new(models=models).raw()

    assert set(attributes) == {"notes"}


def test_generator_uses_column_names_then_types():
    generator = FakerGenerator()

    email = generator.generate(ColumnDefinition("email", ColumnType.string(255)))
    assert "@" in email

    short = generator.generate(ColumnDefinition("name", ColumnType.string(5)))
    assert len(short) <= 5

    status = generator.generate(ColumnDefinition("status", ColumnType.enum("status", ["a", "b"])))
    assert status in ("a", "b")

    assert isinstance(generator.generate(ColumnDefinition("age", ColumnType.integer())), int)


def test_factory_types():
    assert FactoryTypes.random_element(["Rock"]) == "Rock"
    with pytest.raises(ValueError):
        FactoryTypes.random_element([])

    assert FactoryTypes.nullable("x", probability=1.0) is None
    assert FactoryTypes.nullable(lambda: "x", probability=0.0) == "x"

    dependent = FactoryTypes.dependent(["name"], lambda name: name.upper())
    assert dependent({"name": "rock", "other": 1}) == "ROCK"

    assert len(FactoryTypes.random_elements(["a", "b", "c"], count=2)) == 2
    assert FactoryTypes.integer(3, 3) == 3
