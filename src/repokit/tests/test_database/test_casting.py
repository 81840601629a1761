import uuid
from datetime import date, datetime
from decimal import Decimal

import pytest

from repokit.database.casting import cast_attributes, coerce_value
from repokit.exceptions.base import InvalidFieldError
from repokit.tests.test_fixtures.models import Author, Post


class TestCastAttributes:

    def test_coerces_through_column_types(self):
        cast = cast_attributes(Post, {"title": 42, "views": "7", "published_on": "2024-02-29"})
        assert cast == {"title": "42", "views": 7, "published_on": date(2024, 2, 29)}

    def test_input_is_not_mutated(self):
        raw = {"name": "Ada", "age": "36"}
        cast_attributes(Author, raw)
        assert raw == {"name": "Ada", "age": "36"}

    def test_unknown_keys_are_reported_sorted(self):
        """
        Behavior:
            - Every unknown key is reported at once, in sorted order.
        """
        with pytest.raises(InvalidFieldError) as exc_info:
            cast_attributes(Author, {"zodiac": "leo", "name": "Ada", "alias": "A"})
        assert exc_info.value.fields == ["alias", "zodiac"]

    def test_uncoercible_values_pass_through(self):
        cast = cast_attributes(Post, {"views": "many", "published_on": "not a date"})
        assert cast == {"views": "many", "published_on": "not a date"}

    def test_none_is_kept(self):
        assert cast_attributes(Author, {"age": None}) == {"age": None}

    def test_relationship_values_pass_through(self):
        author = Author(name="Ada", email="ada@example.com")
        cast = cast_attributes(Post, {"author": author})
        assert cast["author"] is author
        # the blank instance never joined the collection
        assert author.posts == []


class TestCoerceValue:

    @pytest.mark.parametrize(
        "target, value, expected",
        [
            (int, "12", 12),
            (int, " -3 ", -3),
            (int, 4.0, 4),
            (int, 4.5, 4.5),
            (int, True, True),
            (float, "1.5", 1.5),
            (float, 2, 2.0),
            (Decimal, "9.99", Decimal("9.99")),
            (str, 10, "10"),
            (bool, "yes", True),
            (bool, "off", False),
            (bool, 1, True),
            (bool, "maybe", "maybe"),
            (date, "2020-01-02", date(2020, 1, 2)),
            (datetime, "2020-01-02T03:04:05", datetime(2020, 1, 2, 3, 4, 5)),
            (date, "02/01/2020", "02/01/2020"),
            (None, "anything", "anything"),
        ],
    )
    def test_coercion(self, target, value, expected):
        result = coerce_value(target, value)
        assert result == expected
        assert type(result) is type(expected)

    def test_uuid(self):
        value = uuid.uuid4()
        assert coerce_value(uuid.UUID, str(value)) == value
        assert coerce_value(uuid.UUID, "nope") == "nope"
