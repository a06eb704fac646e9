"""Tests for column type descriptors and the type catalog."""

from decimal import Decimal

import pytest

from schemaforge.catalog import ColumnType, TypeCatalog, TypeKind
from schemaforge.exceptions import InvalidEnumError


def test_native_types_for_parameterized_kinds():
    """Length, precision and scale are rendered into the native type."""
    assert TypeCatalog.native(ColumnType.string(100)) == "VARCHAR(100)"
    assert TypeCatalog.native(ColumnType.char(2)) == "CHAR(2)"
    assert TypeCatalog.native(ColumnType.decimal(10, 2)) == "NUMERIC(10, 2)"
    assert TypeCatalog.native(ColumnType.email()) == "VARCHAR(255)"


def test_native_types_for_fixed_kinds():
    """Fixed kinds map straight to PostgreSQL types."""
    assert TypeCatalog.native(ColumnType.uuid()) == "UUID"
    assert TypeCatalog.native(ColumnType.boolean()) == "BOOLEAN"
    assert TypeCatalog.native(ColumnType.timestamp()) == "TIMESTAMPTZ"
    assert TypeCatalog.native(ColumnType.jsonb()) == "JSONB"
    assert "IDENTITY" in TypeCatalog.native(ColumnType.increments())


def test_auto_increment_kinds():
    """Only increments types are generated by the store."""
    assert ColumnType.increments().is_auto_increment
    assert ColumnType.big_increments().is_auto_increment
    assert not ColumnType.integer().is_auto_increment


def test_textual_kinds():
    assert ColumnType.text().is_textual
    assert ColumnType.enum("status", ["a", "b"]).is_textual
    assert not ColumnType.integer().is_textual


def test_enum_requires_values():
    """An empty enum value set is a construction error."""
    with pytest.raises(InvalidEnumError):
        ColumnType.enum("status", [])


def test_accepts_checks_python_values():
    """accepts() matches values against the descriptor's Python type."""
    assert TypeCatalog.accepts(ColumnType.integer(), 5)
    assert not TypeCatalog.accepts(ColumnType.integer(), "5")
    assert TypeCatalog.accepts(ColumnType.decimal(), Decimal("1.50"))
    assert TypeCatalog.accepts(ColumnType.string(), None)

    status = ColumnType.enum("status", ["draft", "published"])
    assert TypeCatalog.accepts(status, "draft")
    assert not TypeCatalog.accepts(status, "deleted")


def test_python_type_lookup():
    assert TypeCatalog.python_type(ColumnType.boolean()) is bool
    assert TypeCatalog.python_type(ColumnType.big_integer()) is int
    assert ColumnType.json().kind == TypeKind.JSON
