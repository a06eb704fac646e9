"""Migrations, models, factories and a seeder shared by the test suite."""

from schemaforge import (
    Factory,
    FactoryTypes,
    Migration,
    Model,
    Seeder,
    belongs_to,
    belongs_to_many,
    has_many,
)


class CreateUsersTable(Migration):
    async def up(self):
        await self.schema.create(
            "users",
            lambda table: (
                table.id(),
                table.string("name").not_nullable(),
                table.string("email").unique(),
                table.string("password").nullable(),
                table.timestamps(),
            ),
        )

    async def down(self):
        await self.schema.drop_if_exists("users")


class CreateSongsTable(Migration):
    async def up(self):
        await self.schema.create(
            "songs",
            lambda table: (
                table.id(),
                table.string("title").not_nullable(),
                table.string("artist").nullable(),
                table.integer("duration").nullable(),
                table.timestamps(),
            ),
        )

    async def down(self):
        await self.schema.drop_if_exists("songs")


class CreateTagsTable(Migration):
    async def up(self):
        await self.schema.create(
            "tags",
            lambda table: (
                table.id(),
                table.string("name", 255).unique(),
                table.text("description").nullable(),
                table.timestamps(),
            ),
        )

    async def down(self):
        await self.schema.drop_if_exists("tags")


class CreateNotesTable(Migration):
    async def up(self):
        def columns(table):
            table.id()
            table.foreign_id("user_id").references("users").cascade()
            table.foreign_id("song_id").references("songs").cascade()
            table.text("notes").nullable()
            table.timestamps()

        await self.schema.create("notes", columns)

    async def down(self):
        await self.schema.drop_if_exists("notes")


class CreateSongTagsTable(Migration):
    async def up(self):
        def columns(table):
            table.id()
            table.foreign_id("song_id").references("songs").cascade()
            table.foreign_id("tag_id").references("tags").cascade()
            table.timestamps()
            table.unique(["song_id", "tag_id"])

        await self.schema.create("song_tags", columns)

    async def down(self):
        await self.schema.drop_if_exists("song_tags")


MIGRATIONS = [
    CreateUsersTable,
    CreateSongsTable,
    CreateTagsTable,
    CreateNotesTable,
    CreateSongTagsTable,
]


class User(Model):
    fillable = ("name", "email", "password")
    hidden = ("password",)
    relations = {"notes": has_many("Note")}


class Song(Model):
    fillable = ("title", "artist", "duration")
    casts = {"duration": "int"}
    relations = {
        "notes": has_many("Note"),
        "tags": belongs_to_many("Tag"),
    }


class Tag(Model):
    fillable = ("name", "description")
    relations = {"songs": belongs_to_many("Song", pivot_table="song_tags")}


class Note(Model):
    fillable = ("notes", "user_id", "song_id")
    relations = {
        "user": belongs_to("User"),
        "song": belongs_to("Song"),
    }


MODELS = [User, Song, Tag, Note]


class UserFactory(Factory):
    model = User

    def definition(self):
        return {
            "name": FactoryTypes.name(),
            "email": FactoryTypes.unique_email(),
            "password": FactoryTypes.password(),
        }


class SongFactory(Factory):
    model = Song

    def definition(self):
        return {
            "title": FactoryTypes.title(),
            "artist": FactoryTypes.name(),
            "duration": FactoryTypes.integer(60, 600),
        }


class TagFactory(Factory):
    model = Tag

    def definition(self):
        return {
            "name": FactoryTypes.slug(),
            "description": FactoryTypes.computed(lambda attrs: f"{attrs['name']} music category"),
        }


class NoteFactory(Factory):
    model = Note

    def definition(self):
        return {"notes": FactoryTypes.sentence()}

    def short(self):
        return self.state({"notes": "Love this!"})


class MusicSeeder(Seeder):
    async def run(self):
        await self.insert("tags", [{"name": "Rock"}, {"name": "Jazz"}])
        await (
            self.factory(Note)
            .for_(self.factory(User))
            .for_(self.factory(Song))
            .count(2)
            .create()
        )
