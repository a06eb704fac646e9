"""Tests for PostgreSQL statement composition and the live store."""

import pytest

from schemaforge.backends.base import SelectQuery
from schemaforge.backends.postgres import PostgresStore, SqlCompiler, column_type_from_pg
from schemaforge.catalog import ColumnType, TypeKind
from schemaforge.models import (
    ColumnDefinition,
    ForeignKeyConstraint,
    IndexDefinition,
    IndexKind,
    TableSchema,
)
from schemaforge.query.conditions import Comparison, Operator


def render(statement):
    return statement.as_string(None)


def test_column_definition():
    compiler = SqlCompiler()

    assert render(
        compiler.column_definition(ColumnDefinition("name", ColumnType.string(100), nullable=False))
    ) == '"name" VARCHAR(100) NOT NULL'

    status = ColumnDefinition(
        "status", ColumnType.enum("status", ["draft", "live"]), default="draft"
    )
    assert render(compiler.column_definition(status)) == (
        """"status" TEXT DEFAULT 'draft' CHECK ("status" IN ('draft', 'live'))"""
    )


def test_identity_key_has_no_default():
    column = ColumnDefinition(
        "id", ColumnType.increments(), nullable=False, primary_key=True, auto_increment=True
    )

    assert render(SqlCompiler().column_definition(column)) == (
        '"id" INTEGER GENERATED BY DEFAULT AS IDENTITY PRIMARY KEY'
    )


def test_create_table_is_schema_qualified():
    table = TableSchema(
        "tags",
        columns={
            "name": ColumnDefinition("name", ColumnType.string(50), nullable=False, unique=True),
        },
    )

    assert render(SqlCompiler("music").create_table(table)) == (
        'CREATE TABLE "music"."tags" ("name" VARCHAR(50) NOT NULL UNIQUE)'
    )


def test_column_comments():
    compiler = SqlCompiler()
    commented = ColumnDefinition("name", ColumnType.string(50), comment="Genre label")

    assert render(compiler.comment_on_column("tags", commented)) == (
        'COMMENT ON COLUMN "public"."tags"."name" IS \'Genre label\''
    )
    assert compiler.comment_on_column("tags", ColumnDefinition("slug", ColumnType.string())) is None


async def test_store_comments_columns_after_create_and_add():
    """COMMENT ON COLUMN follows CREATE TABLE and ADD COLUMN for commented columns."""
    executed = []

    class RecordingStore(PostgresStore):
        async def _execute(self, table, statement, params=None):
            executed.append(render(statement))

    store = RecordingStore(conn=None)
    table = TableSchema(
        "tags",
        columns={
            "name": ColumnDefinition("name", ColumnType.string(50), comment="Genre label"),
            "slug": ColumnDefinition("slug", ColumnType.string(50)),
        },
    )

    await store.create_table(table)
    await store.add_column("tags", ColumnDefinition("note", ColumnType.text(), comment="Free text"))

    assert executed[0].startswith("CREATE TABLE")
    assert executed[1] == 'COMMENT ON COLUMN "public"."tags"."name" IS \'Genre label\''
    assert executed[2].startswith("ALTER TABLE")
    assert executed[3] == 'COMMENT ON COLUMN "public"."tags"."note" IS \'Free text\''
    assert len(executed) == 4


def test_indexes():
    compiler = SqlCompiler()

    unique = IndexDefinition(["song_id", "tag_id"], "uniq_song_tags_song_id_tag_id", IndexKind.UNIQUE)
    assert render(compiler.create_index("song_tags", unique)) == (
        'CREATE UNIQUE INDEX "uniq_song_tags_song_id_tag_id" '
        'ON "public"."song_tags" ("song_id", "tag_id")'
    )

    partial = IndexDefinition(["email"], "partial_users_email", IndexKind.PARTIAL, "deleted_at IS NULL")
    assert render(compiler.create_index("users", partial)).endswith(
        '("email") WHERE deleted_at IS NULL'
    )


def test_add_foreign_key():
    fk = ForeignKeyConstraint("user_id", "users", on_delete="restrict")

    assert render(SqlCompiler().add_foreign_key("notes", fk)) == (
        'ALTER TABLE "public"."notes" ADD CONSTRAINT "fk_notes_user_id" '
        'FOREIGN KEY ("user_id") REFERENCES "public"."users" ("id") '
        "ON DELETE RESTRICT ON UPDATE CASCADE"
    )


def test_dml_keeps_values_out_of_sql():
    compiler = SqlCompiler()
    where = Comparison("name", Operator.EQ, "Rock")

    statement, params = compiler.insert("tags", {"name": "Rock", "meta": {"a": 1}})
    assert render(statement) == (
        'INSERT INTO "public"."tags" ("name", "meta") VALUES (%s, %s) RETURNING *'
    )
    assert params[0] == "Rock"

    statement, params = compiler.update("tags", {"description": "x"}, where)
    assert render(statement) == 'UPDATE "public"."tags" SET "description" = %s WHERE "name" = %s'
    assert params == ["x", "Rock"]

    statement, params = compiler.delete("tags", None)
    assert render(statement) == 'DELETE FROM "public"."tags"'
    assert params == []

    assert render(compiler.truncate("tags", cascade=True)) == 'TRUNCATE TABLE "public"."tags" CASCADE'


def test_select_and_count():
    compiler = SqlCompiler()

    statement, params = compiler.select(
        "tags", SelectQuery(columns=["name"], order=[("name", "desc")], limit=5)
    )
    assert render(statement) == 'SELECT "name" FROM "public"."tags" ORDER BY "name" DESC LIMIT %s'
    assert params == [5]

    statement, params = compiler.count("tags", None, distinct="name")
    assert render(statement) == 'SELECT COUNT(DISTINCT "name") AS count FROM "public"."tags"'


def test_column_type_from_information_schema():
    assert column_type_from_pg("character varying", length=40) == ColumnType.string(40)
    assert column_type_from_pg("numeric", precision=10, scale=2) == ColumnType.decimal(10, 2)
    assert column_type_from_pg("integer", identity=True).kind == TypeKind.INCREMENTS
    assert column_type_from_pg("tsvector").kind == TypeKind.TEXT


@pytest.mark.postgres
async def test_live_round_trip(database_url):
    """Create, fill, describe and drop a table on a real server."""
    store = await PostgresStore.connect(database_url)
    table = TableSchema(
        "schemaforge_probe",
        columns={
            "id": ColumnDefinition(
                "id", ColumnType.increments(), nullable=False, primary_key=True, auto_increment=True
            ),
            "name": ColumnDefinition("name", ColumnType.string(50), nullable=False, unique=True),
        },
    )
    try:
        await store.create_table(table)

        row = await store.insert("schemaforge_probe", {"name": "Rock"})
        assert row["id"] == 1

        described = await store.describe_table("schemaforge_probe")
        assert described.columns["name"].type == ColumnType.string(50)
        assert await store.count("schemaforge_probe") == 1
    finally:
        await store.drop_table("schemaforge_probe", cascade=True)
        await store.close()
