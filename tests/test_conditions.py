"""Tests for the where-condition tree."""

from schemaforge.query.conditions import All, Any, Comparison, Operator, and_, where_all


def test_operator_parse_normalizes_keywords():
    assert Operator.parse("LIKE") == Operator.LIKE
    assert Operator.parse("not   IN") == Operator.NOT_IN
    assert Operator.parse("<>") == Operator.NE
    assert Operator.parse(">=") == Operator.GTE


def test_unknown_operator_falls_back_to_equality():
    """Unrecognized operators do not raise."""
    assert Operator.parse("~~") == Operator.EQ
    assert Operator.parse("between") == Operator.EQ


def test_comparison_matches_rows():
    row = {"name": "Rock Anthem", "age": 30, "deleted_at": None}

    assert Comparison("age", Operator.GT, 18).matches(row)
    assert not Comparison("age", Operator.LT, 18).matches(row)
    assert Comparison("name", Operator.ILIKE, "%rock%").matches(row)
    assert not Comparison("name", Operator.LIKE, "%rock%").matches(row)
    assert Comparison("age", Operator.IN, [10, 30]).matches(row)
    assert Comparison("age", Operator.NOT_IN, [10, 20]).matches(row)
    assert Comparison("deleted_at", Operator.EQ, None).matches(row)
    assert not Comparison("deleted_at", Operator.NE, None).matches(row)


def test_comparison_against_null_column_is_false():
    """NULL compares false for ordering and pattern operators."""
    row = {"age": None}
    assert not Comparison("age", Operator.GT, 1).matches(row)
    assert not Comparison("age", Operator.LIKE, "%").matches(row)


def test_and_flattens_nested_all():
    first = Comparison("age", Operator.GT, 18)
    second = Comparison("age", Operator.LT, 65)
    third = Comparison("name", Operator.EQ, "x")

    combined = and_(and_(first, second), third)

    assert combined == All((first, second, third))
    assert and_(None, first) is first


def test_any_and_all_evaluate():
    rock = Comparison("name", Operator.EQ, "Rock")
    jazz = Comparison("name", Operator.EQ, "Jazz")

    assert Any((rock, jazz)).matches({"name": "Jazz"})
    assert not All((rock, jazz)).matches({"name": "Jazz"})
    assert All(()).matches({})
    assert not Any(()).matches({})


def test_sql_rendering():
    """Conditions render placeholders and keep values as parameters."""
    condition = All(
        (
            Comparison("age", Operator.GT, 18),
            Any((Comparison("name", Operator.ILIKE, "%rock%"), Comparison("id", Operator.IN, [1, 2]))),
        )
    )

    fragment, params = condition.to_sql()

    assert fragment.as_string(None) == (
        '("age" > %s) AND (("name" ILIKE %s) OR ("id" = ANY(%s)))'
    )
    assert params == [18, "%rock%", [1, 2]]


def test_null_comparisons_render_is_null():
    fragment, params = Comparison("deleted_at", Operator.EQ, None).to_sql()
    assert fragment.as_string(None) == '"deleted_at" IS NULL'
    assert params == []


def test_where_all_fields():
    condition = where_all(name="Rock", slug="rock")
    assert condition.fields() == {"name", "slug"}
    assert condition.matches({"name": "Rock", "slug": "rock"})
