"""PostgreSQL backend - executes composed SQL through psycopg."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg import AsyncConnection, errors, sql
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from schemaforge.backends.base import BaseStore, SelectQuery
from schemaforge.catalog import ColumnType, TypeCatalog, TypeKind
from schemaforge.exceptions import IntegrityError, StoreError, TableNotFoundError
from schemaforge.models import (
    ColumnDefinition,
    ForeignKeyConstraint,
    IndexDefinition,
    IndexKind,
    TableSchema,
)
from schemaforge.query.conditions import Condition

logger = logging.getLogger(__name__)


class SqlCompiler:
    """
    Compose PostgreSQL statements with ``psycopg.sql``.

    DDL methods return ``sql.Composed``; DML methods return the statement plus
    its positional parameters. No values are concatenated into SQL text.
    """

    def __init__(self, schema: str = "public"):
        self.schema = schema

    def table(self, name: str) -> sql.Identifier:
        return sql.Identifier(self.schema, name)

    # DDL

    def column_definition(self, column: ColumnDefinition) -> sql.Composed:
        """
        Render one column clause.

        Examples:
            >>> SqlCompiler().column_definition(
            ...     ColumnDefinition("name", ColumnType.string(100), nullable=False)
            ... ).as_string(None)
            '"name" VARCHAR(100) NOT NULL'
        """
        parts: list[sql.Composable] = [
            sql.Identifier(column.name),
            sql.SQL(TypeCatalog.native(column.type)),
        ]
        if column.primary_key:
            parts.append(sql.SQL("PRIMARY KEY"))
        elif not column.nullable:
            parts.append(sql.SQL("NOT NULL"))
        if column.unique and not column.primary_key:
            parts.append(sql.SQL("UNIQUE"))

        default = self._default(column)
        if default is not None:
            parts.append(sql.SQL("DEFAULT {}").format(default))

        if column.type.kind == TypeKind.ENUM:
            parts.append(
                sql.SQL("CHECK ({} IN ({}))").format(
                    sql.Identifier(column.name),
                    sql.SQL(", ").join(sql.Literal(v) for v in column.type.values),
                )
            )
        return sql.SQL(" ").join(parts)

    def _default(self, column: ColumnDefinition) -> sql.Composable | None:
        if column.default is None or column.auto_increment:
            return None
        if callable(column.default):
            if column.type.kind == TypeKind.UUID:
                return sql.SQL("gen_random_uuid()")
            logger.debug(
                f"Column {column.name}: callable default is applied by the engine, "
                f"not rendered as DDL"
            )
            return None
        if isinstance(column.default, (dict, list)):
            return sql.Literal(json.dumps(column.default))
        return sql.Literal(column.default)

    def create_table(self, table: TableSchema) -> sql.Composed:
        return sql.SQL("CREATE TABLE {} ({})").format(
            self.table(table.name),
            sql.SQL(", ").join(self.column_definition(c) for c in table.columns.values()),
        )

    def comment_on_column(self, table: str, column: ColumnDefinition) -> sql.Composed | None:
        """
        Render COMMENT ON COLUMN, or None when the column has no comment.

        Examples:
            >>> SqlCompiler().comment_on_column(
            ...     "tags", ColumnDefinition("name", ColumnType.string(), comment="Genre")
            ... ).as_string(None)
            'COMMENT ON COLUMN "public"."tags"."name" IS \\'Genre\\''
        """
        if not column.comment:
            return None
        return sql.SQL("COMMENT ON COLUMN {}.{} IS {}").format(
            self.table(table), sql.Identifier(column.name), sql.Literal(column.comment)
        )

    def add_column(self, table: str, column: ColumnDefinition) -> sql.Composed:
        return sql.SQL("ALTER TABLE {} ADD COLUMN {}").format(
            self.table(table), self.column_definition(column)
        )

    def drop_table(self, name: str, cascade: bool = False) -> sql.Composed:
        return sql.SQL("DROP TABLE {}{}").format(
            self.table(name), sql.SQL(" CASCADE" if cascade else "")
        )

    def rename_table(self, old: str, new: str) -> sql.Composed:
        return sql.SQL("ALTER TABLE {} RENAME TO {}").format(
            self.table(old), sql.Identifier(new)
        )

    def create_index(self, table: str, index: IndexDefinition) -> sql.Composed:
        statement = sql.SQL("CREATE {}INDEX {} ON {} ({})").format(
            sql.SQL("UNIQUE " if index.is_unique else ""),
            sql.Identifier(index.name),
            self.table(table),
            sql.SQL(", ").join(sql.Identifier(f) for f in index.fields),
        )
        if index.kind == IndexKind.PARTIAL and index.condition:
            # Partial predicates are authored by migration code, not user input
            statement = sql.SQL("{} WHERE {}").format(statement, sql.SQL(index.condition))
        return statement

    def drop_index(self, name: str) -> sql.Composed:
        return sql.SQL("DROP INDEX {}").format(sql.Identifier(self.schema, name))

    def add_foreign_key(self, table: str, fk: ForeignKeyConstraint) -> sql.Composed:
        return sql.SQL(
            "ALTER TABLE {} ADD CONSTRAINT {} FOREIGN KEY ({}) REFERENCES {} ({}) "
            "ON DELETE {} ON UPDATE {}"
        ).format(
            self.table(table),
            sql.Identifier(fk.constraint_name_for(table)),
            sql.Identifier(fk.column),
            self.table(fk.referenced_table),
            sql.Identifier(fk.referenced_column),
            sql.SQL(fk.on_delete.upper()),
            sql.SQL(fk.on_update.upper()),
        )

    # DML

    def _where(self, where: Condition | None) -> tuple[sql.Composable, list]:
        if where is None:
            return sql.SQL(""), []
        fragment, params = where.to_sql()
        return sql.SQL(" WHERE {}").format(fragment), params

    def select(self, table: str, query: SelectQuery) -> tuple[sql.Composed, list]:
        """
        Render a SELECT.

        Examples:
            >>> stmt, params = SqlCompiler().select(
            ...     "tags", SelectQuery(order=[("name", "ASC")], limit=10, offset=0)
            ... )
            >>> stmt.as_string(None)
            'SELECT * FROM "public"."tags" ORDER BY "name" ASC LIMIT %s OFFSET %s'
        """
        columns = (
            sql.SQL(", ").join(sql.Identifier(c) for c in query.columns)
            if query.columns
            else sql.SQL("*")
        )
        where, params = self._where(query.where)
        statement = sql.SQL("SELECT {} FROM {}{}").format(columns, self.table(table), where)

        if query.order:
            statement = sql.SQL("{} ORDER BY {}").format(
                statement,
                sql.SQL(", ").join(
                    sql.SQL("{} {}").format(
                        sql.Identifier(f), sql.SQL("DESC" if d.upper() == "DESC" else "ASC")
                    )
                    for f, d in query.order
                ),
            )
        if query.limit is not None:
            statement = sql.SQL("{} LIMIT {}").format(statement, sql.Placeholder())
            params.append(query.limit)
        if query.offset is not None:
            statement = sql.SQL("{} OFFSET {}").format(statement, sql.Placeholder())
            params.append(query.offset)
        return statement, params

    def count(
        self, table: str, where: Condition | None, distinct: str | None = None
    ) -> tuple[sql.Composed, list]:
        target = (
            sql.SQL("DISTINCT {}").format(sql.Identifier(distinct))
            if distinct
            else sql.SQL("*")
        )
        clause, params = self._where(where)
        return (
            sql.SQL("SELECT COUNT({}) AS count FROM {}{}").format(
                target, self.table(table), clause
            ),
            params,
        )

    def insert(self, table: str, row: dict[str, Any]) -> tuple[sql.Composed, list]:
        if not row:
            return (
                sql.SQL("INSERT INTO {} DEFAULT VALUES RETURNING *").format(
                    self.table(table)
                ),
                [],
            )
        return (
            sql.SQL("INSERT INTO {} ({}) VALUES ({}) RETURNING *").format(
                self.table(table),
                sql.SQL(", ").join(sql.Identifier(c) for c in row),
                sql.SQL(", ").join(sql.Placeholder() * len(row)),
            ),
            [_adapt(v) for v in row.values()],
        )

    def update(
        self, table: str, values: dict[str, Any], where: Condition | None
    ) -> tuple[sql.Composed, list]:
        assignments = sql.SQL(", ").join(
            sql.SQL("{} = {}").format(sql.Identifier(c), sql.Placeholder()) for c in values
        )
        clause, params = self._where(where)
        return (
            sql.SQL("UPDATE {} SET {}{}").format(self.table(table), assignments, clause),
            [_adapt(v) for v in values.values()] + params,
        )

    def delete(self, table: str, where: Condition | None) -> tuple[sql.Composed, list]:
        clause, params = self._where(where)
        return sql.SQL("DELETE FROM {}{}").format(self.table(table), clause), params

    def truncate(self, table: str, cascade: bool = False) -> sql.Composed:
        return sql.SQL("TRUNCATE TABLE {}{}").format(
            self.table(table), sql.SQL(" CASCADE" if cascade else "")
        )


def _adapt(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return Jsonb(value)
    return value


# information_schema data_type → ColumnType
_FROM_PG = {
    "text": ColumnType.text,
    "uuid": ColumnType.uuid,
    "integer": ColumnType.integer,
    "bigint": ColumnType.big_integer,
    "smallint": ColumnType.small_integer,
    "real": ColumnType.float,
    "double precision": ColumnType.double,
    "boolean": ColumnType.boolean,
    "date": ColumnType.date,
    "timestamp with time zone": ColumnType.timestamp,
    "timestamp without time zone": ColumnType.date_time,
    "time without time zone": ColumnType.time,
    "json": ColumnType.json,
    "jsonb": ColumnType.jsonb,
}


def column_type_from_pg(
    data_type: str,
    length: int | None = None,
    precision: int | None = None,
    scale: int | None = None,
    identity: bool = False,
) -> ColumnType:
    """Map an information_schema column description back to a ColumnType."""
    if identity:
        if data_type == "bigint":
            return ColumnType.big_increments()
        return ColumnType.increments()
    if data_type == "character varying":
        return ColumnType.string(length or 255)
    if data_type == "character":
        return ColumnType.char(length or 1)
    if data_type == "numeric":
        return ColumnType.decimal(precision or 8, scale or 0)
    factory = _FROM_PG.get(data_type)
    return factory() if factory else ColumnType.text()


class PostgresStore(BaseStore):
    """
    Execute DDL and DML against PostgreSQL with an async psycopg connection.

    The connection should be in autocommit mode; ``transaction()`` opens an
    explicit transaction block.
    """

    supports_transactional_ddl = True
    supports_column_order = False

    def __init__(self, conn: AsyncConnection, schema: str = "public"):
        """
        Initialize store.

        Args:
            conn: Async PostgreSQL connection
            schema: Schema name for qualified table names
        """
        self.conn = conn
        self.schema = schema
        self.compiler = SqlCompiler(schema)

    @classmethod
    async def connect(cls, url: str, schema: str = "public") -> PostgresStore:
        conn = await AsyncConnection.connect(url, autocommit=True, row_factory=dict_row)
        return cls(conn, schema)

    async def close(self) -> None:
        await self.conn.close()

    async def _execute(
        self, table: str, statement: sql.Composable, params: list | None = None
    ) -> psycopg.AsyncCursor:
        """Run a statement, translating driver errors to store errors."""
        cur = self.conn.cursor(row_factory=dict_row)
        try:
            await cur.execute(statement, params or None)
        except errors.UndefinedTable as e:
            raise TableNotFoundError(table, self.schema) from e
        except (
            errors.UniqueViolation,
            errors.NotNullViolation,
            errors.ForeignKeyViolation,
            errors.CheckViolation,
        ) as e:
            column = getattr(e.diag, "column_name", None)
            raise IntegrityError(table, str(e).strip(), column=column) from e
        except psycopg.Error as e:
            raise StoreError(str(e).strip(), table, getattr(e.diag, "column_name", None)) from e
        return cur

    # DDL

    async def create_table(self, table: TableSchema) -> None:
        await self._execute(table.name, self.compiler.create_table(table))
        for column in table.columns.values():
            await self._comment(table.name, column)

    async def add_column(self, table: str, column: ColumnDefinition) -> None:
        if column.after or column.first:
            logger.debug(
                f"PostgreSQL cannot place columns; ignoring position of {table}.{column.name}"
            )
        await self._execute(table, self.compiler.add_column(table, column))
        await self._comment(table, column)

    async def _comment(self, table: str, column: ColumnDefinition) -> None:
        statement = self.compiler.comment_on_column(table, column)
        if statement is not None:
            await self._execute(table, statement)

    async def drop_table(self, name: str, cascade: bool = False) -> None:
        await self._execute(name, self.compiler.drop_table(name, cascade))

    async def rename_table(self, old: str, new: str) -> None:
        await self._execute(old, self.compiler.rename_table(old, new))

    async def describe_table(self, name: str) -> TableSchema:
        cur = await self._execute(
            name,
            sql.SQL(
                """
                SELECT
                    c.column_name,
                    c.data_type,
                    c.character_maximum_length,
                    c.numeric_precision,
                    c.numeric_scale,
                    c.is_nullable,
                    c.is_identity,
                    c.column_default,
                    CASE WHEN pk.column_name IS NOT NULL THEN true ELSE false END AS is_pk
                FROM information_schema.columns c
                LEFT JOIN (
                    SELECT kcu.column_name
                    FROM information_schema.table_constraints tc
                    JOIN information_schema.key_column_usage kcu
                      ON tc.constraint_name = kcu.constraint_name
                      AND tc.table_schema = kcu.table_schema
                    WHERE tc.constraint_type = 'PRIMARY KEY'
                      AND tc.table_schema = %s
                      AND tc.table_name = %s
                ) pk ON c.column_name = pk.column_name
                WHERE c.table_schema = %s
                  AND c.table_name = %s
                ORDER BY c.ordinal_position
                """
            ),
            [self.schema, name, self.schema, name],
        )
        rows = await cur.fetchall()
        if not rows:
            raise TableNotFoundError(name, self.schema)

        table = TableSchema(name=name)
        for row in rows:
            identity = row["is_identity"] == "YES"
            column_type = column_type_from_pg(
                row["data_type"],
                row["character_maximum_length"],
                row["numeric_precision"],
                row["numeric_scale"],
                identity,
            )
            table.columns[row["column_name"]] = ColumnDefinition(
                name=row["column_name"],
                type=column_type,
                nullable=row["is_nullable"] == "YES",
                default=row["column_default"],
                primary_key=row["is_pk"],
                auto_increment=identity,
            )

        cur = await self._execute(
            name,
            sql.SQL(
                """
                SELECT i.relname AS name, ix.indisunique AS is_unique,
                       array_agg(a.attname ORDER BY k.ord) AS fields
                FROM pg_index ix
                JOIN pg_class t ON t.oid = ix.indrelid
                JOIN pg_class i ON i.oid = ix.indexrelid
                JOIN pg_namespace n ON n.oid = t.relnamespace
                CROSS JOIN LATERAL unnest(ix.indkey) WITH ORDINALITY AS k(attnum, ord)
                JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = k.attnum
                WHERE n.nspname = %s AND t.relname = %s AND NOT ix.indisprimary
                GROUP BY i.relname, ix.indisunique
                ORDER BY i.relname
                """
            ),
            [self.schema, name],
        )
        for row in await cur.fetchall():
            fields = list(row["fields"])
            if row["is_unique"] and len(fields) == 1 and fields[0] in table.columns:
                table.columns[fields[0]].unique = True
            table.indexes.append(
                IndexDefinition(
                    fields=fields,
                    name=row["name"],
                    kind=IndexKind.UNIQUE if row["is_unique"] else IndexKind.REGULAR,
                )
            )

        cur = await self._execute(
            name,
            sql.SQL(
                """
                SELECT
                    tc.constraint_name,
                    kcu.column_name,
                    ccu.table_name AS foreign_table_name,
                    ccu.column_name AS foreign_column_name,
                    rc.update_rule,
                    rc.delete_rule
                FROM information_schema.table_constraints AS tc
                JOIN information_schema.key_column_usage AS kcu
                  ON tc.constraint_name = kcu.constraint_name
                  AND tc.table_schema = kcu.table_schema
                JOIN information_schema.constraint_column_usage AS ccu
                  ON ccu.constraint_name = tc.constraint_name
                  AND ccu.table_schema = tc.table_schema
                JOIN information_schema.referential_constraints AS rc
                  ON rc.constraint_name = tc.constraint_name
                  AND rc.constraint_schema = tc.table_schema
                WHERE tc.constraint_type = 'FOREIGN KEY'
                  AND tc.table_schema = %s
                  AND tc.table_name = %s
                """
            ),
            [self.schema, name],
        )
        for row in await cur.fetchall():
            table.foreign_keys.append(
                ForeignKeyConstraint(
                    column=row["column_name"],
                    referenced_table=row["foreign_table_name"],
                    referenced_column=row["foreign_column_name"],
                    on_delete=row["delete_rule"],
                    on_update=row["update_rule"],
                    name=row["constraint_name"],
                )
            )
        return table

    async def add_index(self, table: str, index: IndexDefinition) -> None:
        await self._execute(table, self.compiler.create_index(table, index))

    async def drop_index(self, table: str, name: str) -> None:
        await self._execute(table, self.compiler.drop_index(name))

    async def add_constraint(self, table: str, constraint: ForeignKeyConstraint) -> None:
        await self._execute(table, self.compiler.add_foreign_key(table, constraint))

    async def referencing_tables(self, table: str) -> list[str]:
        cur = await self._execute(
            table,
            sql.SQL(
                """
                SELECT DISTINCT tc.table_name
                FROM information_schema.table_constraints AS tc
                JOIN information_schema.constraint_column_usage AS ccu
                  ON ccu.constraint_name = tc.constraint_name
                  AND ccu.table_schema = tc.table_schema
                WHERE tc.constraint_type = 'FOREIGN KEY'
                  AND ccu.table_schema = %s
                  AND ccu.table_name = %s
                  AND tc.table_name <> %s
                ORDER BY tc.table_name
                """
            ),
            [self.schema, table, table],
        )
        return [row["table_name"] for row in await cur.fetchall()]

    # DML

    async def select(self, table: str, query: SelectQuery) -> list[dict[str, Any]]:
        statement, params = self.compiler.select(table, query)
        cur = await self._execute(table, statement, params)
        return list(await cur.fetchall())

    async def count(
        self, table: str, where: Condition | None = None, distinct: str | None = None
    ) -> int:
        statement, params = self.compiler.count(table, where, distinct)
        cur = await self._execute(table, statement, params)
        row = await cur.fetchone()
        return int(row["count"]) if row else 0

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        statement, params = self.compiler.insert(table, row)
        cur = await self._execute(table, statement, params)
        return dict(await cur.fetchone())

    async def update(
        self, table: str, values: dict[str, Any], where: Condition | None
    ) -> int:
        if not values:
            return 0
        statement, params = self.compiler.update(table, values, where)
        cur = await self._execute(table, statement, params)
        return cur.rowcount

    async def delete(self, table: str, where: Condition | None) -> int:
        statement, params = self.compiler.delete(table, where)
        cur = await self._execute(table, statement, params)
        return cur.rowcount

    async def truncate(self, table: str, cascade: bool = False) -> None:
        await self._execute(table, self.compiler.truncate(table, cascade))

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        async with self.conn.transaction():
            yield
