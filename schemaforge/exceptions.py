"""Custom exceptions with helpful error messages."""

from typing import Any


class SchemaForgeError(Exception):
    """Base exception for schemaforge errors."""

    pass


# ============================================================================
# Construction errors (synchronous, fail-fast)
# ============================================================================


class ConstructionError(SchemaForgeError):
    """A schema or query declaration is invalid and cannot be built."""

    pass


class InvalidIndexError(ConstructionError):
    """Index declaration has the wrong shape."""

    def __init__(self, index_name: str, columns: list[str], reason: str):
        self.index_name = index_name
        self.columns = columns
        super().__init__(
            f"Invalid index '{index_name}' on columns {columns}: {reason}\n\n"
            f"Suggestions:\n"
            f"1. Composite indexes need at least 2 columns:\n"
            f"   table.composite(['user_id', 'song_id'])\n"
            f"2. Use table.index('column') for a single-column index"
        )


class InvalidEnumError(ConstructionError):
    """Enum column declared with an empty or repeated value set."""

    def __init__(self, column: str, values: Any):
        self.column = column
        self.values = values
        super().__init__(
            f"Invalid enum values for column '{column}': {values!r}\n\n"
            f"Suggestions:\n"
            f"1. Provide at least one value: table.enum('{column}', ['a', 'b'])\n"
            f"2. Remove repeated values from the list"
        )


class DuplicatePrimaryKeyError(ConstructionError):
    """A second primary key was declared on the same blueprint."""

    def __init__(self, table: str, existing: str, column: str):
        self.table = table
        super().__init__(
            f"Table '{table}' already has primary key '{existing}'; "
            f"cannot declare '{column}' as a second primary key.\n\n"
            f"Suggestions:\n"
            f"1. Keep a single id()/increments()/big_increments() call per table\n"
            f"2. Use table.unique([...]) for an alternate key"
        )


class MissingPrimaryKeyError(ConstructionError):
    """CREATE TABLE blueprint declared no primary key."""

    def __init__(self, table: str):
        self.table = table
        super().__init__(
            f"Table '{table}' has no primary key.\n\n"
            f"Suggestions:\n"
            f"1. Call table.id() for a UUID key\n"
            f"2. Call table.increments() or table.big_increments() for an integer key"
        )


class DuplicateForeignKeyError(ConstructionError):
    """A column was given a second foreign key constraint on the same blueprint."""

    def __init__(self, table: str, column: str, referenced_table: str):
        self.table = table
        self.column = column
        super().__init__(
            f"Column '{table}.{column}' already references '{referenced_table}'.\n\n"
            f"Suggestions:\n"
            f"1. Call references() once per foreign key column\n"
            f"2. Use .on('other_table') to change the referenced table"
        )


class InvalidForeignKeyActionError(ConstructionError):
    """ON DELETE / ON UPDATE action is not supported."""

    def __init__(self, action: str, valid: tuple[str, ...]):
        super().__init__(
            f"Invalid referential action '{action}'. "
            f"Must be one of: {', '.join(valid)}"
        )


class InvalidPaginationError(ConstructionError):
    """Page or page size outside the accepted range."""

    def __init__(self, page: int, limit: int):
        self.page = page
        self.limit = limit
        super().__init__(
            f"Invalid pagination page={page}, limit={limit}: "
            f"page and limit must both be >= 1 (pages are 1-based)"
        )


class InvalidDuplicatePolicyError(ConstructionError):
    """Duplicate policy has an unknown strategy or a bad batch size."""

    pass


# ============================================================================
# Store and execution errors
# ============================================================================


class StoreError(SchemaForgeError):
    """The relational store rejected an operation."""

    def __init__(self, message: str, table: str | None = None, column: str | None = None):
        self.table = table
        self.column = column
        super().__init__(message)


class TableNotFoundError(StoreError):
    """Table does not exist in the store."""

    def __init__(self, table: str, schema: str | None = None):
        self.schema = schema
        where = f" in schema '{schema}'" if schema else ""
        super().__init__(
            f"Table '{table}' does not exist{where}.\n\n"
            f"Suggestions:\n"
            f"1. Check table name spelling\n"
            f"2. Run pending migrations: schemaforge migrate\n"
            f"3. Use Schema.has_table('{table}') before touching optional tables",
            table,
        )


class IntegrityError(StoreError):
    """Unique, NOT NULL or foreign-key rule violated."""

    def __init__(self, table: str, message: str, column: str | None = None):
        super().__init__(f"Integrity violation on '{table}': {message}", table, column)


class ExecutionError(SchemaForgeError):
    """A DDL or DML operation failed; keeps the table/column/operation context."""

    def __init__(
        self,
        table: str,
        operation: str,
        cause: BaseException,
        column: str | None = None,
    ):
        self.table = table
        self.operation = operation
        self.column = column
        self.cause = cause
        target = f"{table}.{column}" if column else table
        super().__init__(f"{operation} failed on '{target}': {cause}")


def is_not_found(error: BaseException) -> bool:
    """
    Check whether an error means "table does not exist".

    Follows ``ExecutionError`` causes, then falls back to message matching for
    errors raised by foreign drivers.
    """
    current: BaseException | None = error
    while current is not None:
        if isinstance(current, TableNotFoundError):
            return True
        if isinstance(current, ExecutionError):
            current = current.cause
            continue
        message = str(current).lower()
        return ("table" in message or "relation" in message) and (
            "does not exist" in message
            or "doesn't exist" in message
            or "not found" in message
            or "no such table" in message
        )
    return False


# ============================================================================
# Seeding errors
# ============================================================================


class DuplicateEntryError(SchemaForgeError):
    """Record collides with an existing row under on_duplicate='error'."""

    def __init__(self, table: str, field: str, value: Any):
        self.table = table
        self.field = field
        self.value = value
        super().__init__(
            f"Duplicate entry for '{table}': {field}={value!r} already exists.\n\n"
            f"Suggestions:\n"
            f"1. Use on_duplicate='skip' to keep the existing row\n"
            f"2. Use on_duplicate='update' to overwrite non-key fields"
        )


# ============================================================================
# Migration errors
# ============================================================================


class MigrationError(SchemaForgeError):
    """Migration could not be run."""

    pass


class InvalidMigrationDirectionError(MigrationError):
    """Direction is neither 'up' nor 'down'."""

    def __init__(self, direction: str):
        self.direction = direction
        super().__init__(
            f"Invalid migration direction: {direction!r}. Expected 'up' or 'down'."
        )


# ============================================================================
# Query errors
# ============================================================================


class QueryError(SchemaForgeError):
    """Query could not be executed as specified."""

    pass


class UnknownRelationError(QueryError):
    """Eager-load requested a relation the model does not declare."""

    def __init__(self, relation: str, table: str, available: list[str]):
        self.relation = relation
        available_str = ", ".join(sorted(available)) or "(none)"
        super().__init__(
            f"Relation '{relation}' is not declared for '{table}'.\n\n"
            f"Available relations: {available_str}\n\n"
            f"Suggestions:\n"
            f"1. Declare it in the model's relations mapping\n"
            f"2. Check relation name spelling in with_()/include()"
        )


# ============================================================================
# Model and factory errors
# ============================================================================


class FactoryError(SchemaForgeError):
    """Factory could not build or persist an entity."""

    pass


class ModelNotRegisteredError(FactoryError):
    """Model class was never registered with the ModelRegistry."""

    def __init__(self, model_name: str):
        super().__init__(
            f"Model '{model_name}' is not registered.\n\n"
            f"Suggestions:\n"
            f"1. Register it at startup: models.register({model_name})\n"
            f"2. Pass models= to Factory.new() or call factory.using(models)"
        )


class FactoryNotDefinedError(FactoryError):
    """No factory was defined for the model."""

    def __init__(self, model_name: str):
        super().__init__(
            f"No factory defined for model '{model_name}'.\n\n"
            f"Suggestions:\n"
            f"1. factories.define({model_name}, {model_name}Factory)\n"
            f"2. factories.define({model_name}) to synthesize from the schema"
        )
