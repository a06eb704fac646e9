"""Faker-based value generator for factory definitions."""

from datetime import timezone
from typing import Any

from faker import Faker

from schemaforge.catalog import TypeKind
from schemaforge.models import ColumnDefinition

fake = Faker()


def _short_text(f: Faker, column: ColumnDefinition) -> str:
    length = column.type.length or 255
    if length < 5:
        return f.pystr(min_chars=1, max_chars=length)
    return f.text(max_nb_chars=min(length, 50))


class FakerGenerator:
    """Generate realistic column values using the Faker library."""

    # Column name → Faker method mapping
    COLUMN_MAPPINGS = {
        "email": lambda f: f.email(),
        "first_name": lambda f: f.first_name(),
        "last_name": lambda f: f.last_name(),
        "name": lambda f: f.name(),
        "username": lambda f: f.user_name(),
        "password": lambda f: f.password(length=12),
        "title": lambda f: f.sentence(nb_words=4).rstrip("."),
        "slug": lambda f: f.slug(),
        "company": lambda f: f.company(),
        "phone": lambda f: f.phone_number(),
        "phone_number": lambda f: f.phone_number(),
        "address": lambda f: f.address(),
        "street": lambda f: f.street_address(),
        "city": lambda f: f.city(),
        "state": lambda f: f.state(),
        "country": lambda f: f.country(),
        "zip": lambda f: f.zipcode(),
        "zipcode": lambda f: f.zipcode(),
        "url": lambda f: f.url(),
        "description": lambda f: f.text(max_nb_chars=200),
        "bio": lambda f: f.text(max_nb_chars=300),
    }

    # Type-based fallbacks
    TYPE_FALLBACKS = {
        TypeKind.STRING: _short_text,
        TypeKind.CHAR: _short_text,
        TypeKind.TEXT: lambda f, c: f.paragraph(),
        TypeKind.MEDIUM_TEXT: lambda f, c: f.paragraph(nb_sentences=8),
        TypeKind.LONG_TEXT: lambda f, c: "\n\n".join(f.paragraphs(nb=3)),
        TypeKind.UUID: lambda f, c: f.uuid4(),
        TypeKind.EMAIL: lambda f, c: f.email(),
        TypeKind.URL: lambda f, c: f.url(),
        TypeKind.INTEGER: lambda f, c: f.random_int(min=1, max=1000),
        TypeKind.BIG_INTEGER: lambda f, c: f.random_int(min=1, max=100000),
        TypeKind.SMALL_INTEGER: lambda f, c: f.random_int(min=1, max=100),
        TypeKind.TINY_INTEGER: lambda f, c: f.random_int(min=0, max=127),
        TypeKind.DECIMAL: lambda f, c: f.pydecimal(
            left_digits=(c.type.precision or 8) - (c.type.scale or 2),
            right_digits=c.type.scale or 2,
            positive=True,
        ),
        TypeKind.FLOAT: lambda f, c: f.pyfloat(min_value=0, max_value=10000),
        TypeKind.DOUBLE: lambda f, c: f.pyfloat(min_value=0, max_value=10000),
        TypeKind.BOOLEAN: lambda f, c: f.boolean(),
        TypeKind.DATE: lambda f, c: f.date_this_year(),
        TypeKind.DATE_TIME: lambda f, c: f.date_time_this_year(tzinfo=timezone.utc),
        TypeKind.TIMESTAMP: lambda f, c: f.date_time_this_year(tzinfo=timezone.utc),
        TypeKind.TIME: lambda f, c: f.time_object(),
        TypeKind.YEAR: lambda f, c: int(f.year()),
        TypeKind.ENUM: lambda f, c: f.random_element(c.type.values),
        TypeKind.JSON: lambda f, c: f.pydict(nb_elements=3, value_types=[str, int]),
        TypeKind.JSONB: lambda f, c: f.pydict(nb_elements=3, value_types=[str, int]),
    }

    def __init__(self, faker: Faker | None = None):
        self.faker = faker or fake

    def generate(self, column: ColumnDefinition) -> Any:
        """
        Generate a value for a column based on name, then type.

        Unique columns draw from Faker's unique proxy so repeated values
        are not produced within one run.
        """
        source = self.faker.unique if column.unique else self.faker
        kind = column.type.kind

        # Enum and length constraints win over name mapping
        if kind != TypeKind.ENUM and column.name in self.COLUMN_MAPPINGS:
            value = self.COLUMN_MAPPINGS[column.name](source)
            if isinstance(value, str) and column.type.length:
                value = value[: column.type.length]
            return value

        if kind in self.TYPE_FALLBACKS:
            return self.TYPE_FALLBACKS[kind](source, column)

        # Default: text
        return source.text(max_nb_chars=50)
