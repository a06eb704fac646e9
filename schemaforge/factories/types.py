"""
Faker helpers for factory definitions.

Plain values are evaluated when the definition runs; ``computed`` and
``dependent`` return callables that the factory resolves against the other
attributes of the row being built.

Example:
    >>> class TagFactory(Factory):
    ...     model = Tag
    ...
    ...     def definition(self):
    ...         return {
    ...             "name": FactoryTypes.random_element(["Rock", "Pop", "Jazz"]),
    ...             "description": FactoryTypes.computed(
    ...                 lambda attrs: f"{attrs['name']} music category"
    ...             ),
    ...         }
"""

from collections.abc import Callable, Sequence
from datetime import timedelta, timezone
from typing import Any

from schemaforge.factories.generators import fake


class FactoryTypes:
    """Namespace of value helpers backed by a shared Faker instance."""

    # People and contact

    @staticmethod
    def name() -> str:
        return fake.name()

    @staticmethod
    def first_name() -> str:
        return fake.first_name()

    @staticmethod
    def last_name() -> str:
        return fake.last_name()

    @staticmethod
    def email() -> str:
        return fake.email()

    @staticmethod
    def unique_email() -> str:
        return fake.unique.email()

    @staticmethod
    def username() -> str:
        return fake.user_name()

    @staticmethod
    def password(length: int = 8) -> str:
        return fake.password(length=length)

    @staticmethod
    def phone_number() -> str:
        return fake.phone_number()

    @staticmethod
    def city() -> str:
        return fake.city()

    @staticmethod
    def company() -> str:
        return fake.company()

    # Text

    @staticmethod
    def sentence(words: int = 6) -> str:
        return fake.sentence(nb_words=words)

    @staticmethod
    def paragraph(sentences: int = 5) -> str:
        return fake.paragraph(nb_sentences=sentences)

    @staticmethod
    def words(count: int = 3) -> str:
        return " ".join(fake.words(nb=count))

    @staticmethod
    def slug(words: int = 3) -> str:
        return fake.slug(" ".join(fake.words(nb=words)))

    @classmethod
    def title(cls) -> str:
        return cls.words(3).title()

    @classmethod
    def content(cls) -> str:
        return cls.paragraph(3)

    @classmethod
    def short_description(cls) -> str:
        return cls.sentence(8)

    @classmethod
    def long_description(cls) -> str:
        return cls.paragraph(5)

    # Numbers, dates and identifiers

    @staticmethod
    def integer(minimum: int = 1, maximum: int = 1000) -> int:
        return fake.random_int(min=minimum, max=maximum)

    @staticmethod
    def boolean(chance_of_true: int = 50) -> bool:
        return fake.boolean(chance_of_getting_true=chance_of_true)

    @staticmethod
    def past_date(years: int = 1):
        return fake.date_time_between(start_date=f"-{years}y", end_date="now", tzinfo=timezone.utc)

    @staticmethod
    def recent_date(days: int = 30):
        return fake.date_time_between(
            start_date=timedelta(days=-days), end_date="now", tzinfo=timezone.utc
        )

    @staticmethod
    def uuid() -> str:
        return fake.uuid4()

    @staticmethod
    def url() -> str:
        return fake.url()

    # Collections

    @staticmethod
    def random_element(values: Sequence[Any]) -> Any:
        """
        Pick one element.

        Raises:
            ValueError: If values is empty
        """
        if not values:
            raise ValueError("random_element requires a non-empty sequence")
        return fake.random_element(list(values))

    @staticmethod
    def random_elements(values: Sequence[Any], count: int = 1) -> list[Any]:
        return fake.random_elements(list(values), length=count, unique=True)

    enum = random_element

    @classmethod
    def nullable(cls, value: Any, probability: float = 0.5) -> Any:
        """Return None with the given probability, else the value (called if callable)."""
        if fake.random.random() < probability:
            return None
        return value() if callable(value) else value

    # Deferred values

    @staticmethod
    def computed(callback: Callable[[dict[str, Any]], Any]) -> Callable[[dict[str, Any]], Any]:
        """Value derived from the row's other attributes at expansion time."""
        return callback

    @staticmethod
    def dependent(
        dependencies: Sequence[str], callback: Callable[..., Any]
    ) -> Callable[[dict[str, Any]], Any]:
        """Like computed(), but receives only the named attributes as keywords."""

        def resolve(attributes: dict[str, Any]) -> Any:
            return callback(**{dep: attributes.get(dep) for dep in dependencies})

        return resolve

    @classmethod
    def timestamps(cls) -> dict[str, Any]:
        return {"created_at": cls.past_date(), "updated_at": cls.recent_date()}
