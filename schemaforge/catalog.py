"""
Column type catalog.

Maps abstract column-type descriptors (string, decimal, enum, json, ...) to
PostgreSQL types and to the Python types values are expected to carry.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from schemaforge.exceptions import InvalidEnumError


class TypeKind(str, Enum):
    """Abstract column kinds understood by the blueprint."""

    STRING = "string"
    CHAR = "char"
    TEXT = "text"
    MEDIUM_TEXT = "medium_text"
    LONG_TEXT = "long_text"
    UUID = "uuid"
    EMAIL = "email"
    URL = "url"
    INTEGER = "integer"
    BIG_INTEGER = "big_integer"
    SMALL_INTEGER = "small_integer"
    TINY_INTEGER = "tiny_integer"
    INCREMENTS = "increments"
    BIG_INCREMENTS = "big_increments"
    DECIMAL = "decimal"
    FLOAT = "float"
    DOUBLE = "double"
    BOOLEAN = "boolean"
    DATE = "date"
    DATE_TIME = "date_time"
    TIMESTAMP = "timestamp"
    TIME = "time"
    YEAR = "year"
    ENUM = "enum"
    JSON = "json"
    JSONB = "jsonb"


@dataclass(frozen=True)
class ColumnType:
    """
    Immutable column type descriptor.

    Attributes:
        kind: Abstract type kind
        length: Maximum length for string/char kinds
        precision: Total digits for decimal/float kinds
        scale: Fractional digits for decimal/float kinds
        values: Allowed values for enum kind
    """

    kind: TypeKind
    length: int | None = None
    precision: int | None = None
    scale: int | None = None
    values: tuple[str, ...] = ()

    # String types

    @classmethod
    def string(cls, length: int = 255) -> ColumnType:
        return cls(TypeKind.STRING, length=length)

    @classmethod
    def char(cls, length: int = 255) -> ColumnType:
        return cls(TypeKind.CHAR, length=length)

    @classmethod
    def text(cls) -> ColumnType:
        return cls(TypeKind.TEXT)

    @classmethod
    def medium_text(cls) -> ColumnType:
        return cls(TypeKind.MEDIUM_TEXT)

    @classmethod
    def long_text(cls) -> ColumnType:
        return cls(TypeKind.LONG_TEXT)

    @classmethod
    def uuid(cls) -> ColumnType:
        return cls(TypeKind.UUID)

    @classmethod
    def email(cls) -> ColumnType:
        return cls(TypeKind.EMAIL, length=255)

    @classmethod
    def url(cls) -> ColumnType:
        return cls(TypeKind.URL, length=2048)

    # Numeric types

    @classmethod
    def integer(cls) -> ColumnType:
        return cls(TypeKind.INTEGER)

    @classmethod
    def big_integer(cls) -> ColumnType:
        return cls(TypeKind.BIG_INTEGER)

    @classmethod
    def small_integer(cls) -> ColumnType:
        return cls(TypeKind.SMALL_INTEGER)

    @classmethod
    def tiny_integer(cls) -> ColumnType:
        return cls(TypeKind.TINY_INTEGER)

    @classmethod
    def increments(cls) -> ColumnType:
        return cls(TypeKind.INCREMENTS)

    @classmethod
    def big_increments(cls) -> ColumnType:
        return cls(TypeKind.BIG_INCREMENTS)

    @classmethod
    def decimal(cls, precision: int = 8, scale: int = 2) -> ColumnType:
        return cls(TypeKind.DECIMAL, precision=precision, scale=scale)

    @classmethod
    def float(cls, precision: int | None = None, scale: int | None = None) -> ColumnType:
        return cls(TypeKind.FLOAT, precision=precision, scale=scale)

    @classmethod
    def double(cls, precision: int | None = None, scale: int | None = None) -> ColumnType:
        return cls(TypeKind.DOUBLE, precision=precision, scale=scale)

    # Date types

    @classmethod
    def date(cls) -> ColumnType:
        return cls(TypeKind.DATE)

    @classmethod
    def date_time(cls) -> ColumnType:
        return cls(TypeKind.DATE_TIME)

    @classmethod
    def timestamp(cls) -> ColumnType:
        return cls(TypeKind.TIMESTAMP)

    @classmethod
    def time(cls) -> ColumnType:
        return cls(TypeKind.TIME)

    @classmethod
    def year(cls) -> ColumnType:
        return cls(TypeKind.YEAR)

    # Special types

    @classmethod
    def boolean(cls) -> ColumnType:
        return cls(TypeKind.BOOLEAN)

    @classmethod
    def enum(cls, column: str, values: list[str] | tuple[str, ...]) -> ColumnType:
        """
        Enum descriptor with validated value set.

        Raises:
            InvalidEnumError: If values is empty, not a sequence, or has repeats
        """
        if isinstance(values, str) or not isinstance(values, (list, tuple)):
            raise InvalidEnumError(column, values)
        if not values or len(set(values)) != len(values):
            raise InvalidEnumError(column, values)
        return cls(TypeKind.ENUM, values=tuple(str(v) for v in values))

    @classmethod
    def json(cls) -> ColumnType:
        return cls(TypeKind.JSON)

    @classmethod
    def jsonb(cls) -> ColumnType:
        return cls(TypeKind.JSONB)

    @property
    def is_auto_increment(self) -> bool:
        return self.kind in (TypeKind.INCREMENTS, TypeKind.BIG_INCREMENTS)

    @property
    def is_textual(self) -> bool:
        return TypeCatalog.python_type(self) is str


class TypeCatalog:
    """Translate ColumnType descriptors to store-native types."""

    # Kind → PostgreSQL type (parameterized kinds handled in native())
    POSTGRES_TYPES = {
        TypeKind.TEXT: "TEXT",
        TypeKind.MEDIUM_TEXT: "TEXT",
        TypeKind.LONG_TEXT: "TEXT",
        TypeKind.UUID: "UUID",
        TypeKind.INTEGER: "INTEGER",
        TypeKind.BIG_INTEGER: "BIGINT",
        TypeKind.SMALL_INTEGER: "SMALLINT",
        TypeKind.TINY_INTEGER: "SMALLINT",
        TypeKind.INCREMENTS: "INTEGER GENERATED BY DEFAULT AS IDENTITY",
        TypeKind.BIG_INCREMENTS: "BIGINT GENERATED BY DEFAULT AS IDENTITY",
        TypeKind.FLOAT: "REAL",
        TypeKind.DOUBLE: "DOUBLE PRECISION",
        TypeKind.BOOLEAN: "BOOLEAN",
        TypeKind.DATE: "DATE",
        TypeKind.DATE_TIME: "TIMESTAMPTZ",
        TypeKind.TIMESTAMP: "TIMESTAMPTZ",
        TypeKind.TIME: "TIME",
        TypeKind.YEAR: "SMALLINT",
        TypeKind.ENUM: "TEXT",
        TypeKind.JSON: "JSON",
        TypeKind.JSONB: "JSONB",
    }

    # Kind → Python value type
    PYTHON_TYPES: dict[TypeKind, type] = {
        TypeKind.STRING: str,
        TypeKind.CHAR: str,
        TypeKind.TEXT: str,
        TypeKind.MEDIUM_TEXT: str,
        TypeKind.LONG_TEXT: str,
        TypeKind.UUID: str,
        TypeKind.EMAIL: str,
        TypeKind.URL: str,
        TypeKind.ENUM: str,
        TypeKind.INTEGER: int,
        TypeKind.BIG_INTEGER: int,
        TypeKind.SMALL_INTEGER: int,
        TypeKind.TINY_INTEGER: int,
        TypeKind.INCREMENTS: int,
        TypeKind.BIG_INCREMENTS: int,
        TypeKind.YEAR: int,
        TypeKind.DECIMAL: Decimal,
        TypeKind.FLOAT: float,
        TypeKind.DOUBLE: float,
        TypeKind.BOOLEAN: bool,
        TypeKind.DATE: date,
        TypeKind.DATE_TIME: datetime,
        TypeKind.TIMESTAMP: datetime,
        TypeKind.TIME: time,
        TypeKind.JSON: dict,
        TypeKind.JSONB: dict,
    }

    @classmethod
    def native(cls, column_type: ColumnType) -> str:
        """
        Get the PostgreSQL type for a descriptor.

        Examples:
            >>> TypeCatalog.native(ColumnType.string(100))
            'VARCHAR(100)'
            >>> TypeCatalog.native(ColumnType.decimal(10, 2))
            'NUMERIC(10, 2)'
        """
        kind = column_type.kind
        if kind in (TypeKind.STRING, TypeKind.EMAIL, TypeKind.URL):
            return f"VARCHAR({column_type.length or 255})"
        if kind == TypeKind.CHAR:
            return f"CHAR({column_type.length or 255})"
        if kind == TypeKind.DECIMAL:
            return f"NUMERIC({column_type.precision}, {column_type.scale})"
        if kind == TypeKind.FLOAT and column_type.precision:
            return f"FLOAT({column_type.precision})"
        return cls.POSTGRES_TYPES[kind]

    @classmethod
    def python_type(cls, column_type: ColumnType) -> type:
        """Get the Python type values of this column carry."""
        return cls.PYTHON_TYPES.get(column_type.kind, str)

    @classmethod
    def accepts(cls, column_type: ColumnType, value: Any) -> bool:
        """Check whether a Python value fits the descriptor (None always fits)."""
        if value is None:
            return True
        if column_type.kind == TypeKind.ENUM:
            return str(value) in column_type.values
        if column_type.kind in (TypeKind.JSON, TypeKind.JSONB):
            return isinstance(value, (dict, list, str, int, float, bool))
        if column_type.kind == TypeKind.UUID:
            return isinstance(value, (str, UUID))
        expected = cls.python_type(column_type)
        if expected is float:
            return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)
        if expected is Decimal:
            return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)
        if expected is int:
            return isinstance(value, int) and not isinstance(value, bool)
        if expected is date:
            return isinstance(value, date)
        if expected is str and column_type.length and isinstance(value, str):
            return len(value) <= column_type.length
        return isinstance(value, expected)
