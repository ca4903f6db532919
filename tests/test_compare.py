"""
Tests for the condition evaluator.

Coercion helpers are tested on their own, independently of the router.
"""

import math

import pytest
from sheetflow.compare import (
    compare,
    parse_number,
    to_comparable_number,
    to_comparable_string,
)


class TestComparableString:

    @pytest.mark.parametrize("value, expected", [
        (True, "true"),
        (False, "false"),
        (None, "null"),
        (100, "100"),
        (100.0, "100"),
        (2.5, "2.5"),
        ("Yes", "Yes"),
    ])
    def test_rendering(self, value, expected):
        assert to_comparable_string(value) == expected


class TestComparableNumber:

    def test_numbers_and_bools(self):
        assert to_comparable_number(3) == 3.0
        assert to_comparable_number(True) == 1.0
        assert to_comparable_number(False) == 0.0

    def test_numeric_strings(self):
        assert to_comparable_number("18") == 18.0
        assert to_comparable_number(" -2.5 ") == -2.5
        assert to_comparable_number("1e3") == 1000.0

    @pytest.mark.parametrize("value", ["abc", "", "  ", None, "nan", "inf", "1,5"])
    def test_non_numeric_is_nan(self, value):
        assert math.isnan(to_comparable_number(value))

    def test_parse_number_types(self):
        assert parse_number("42") == 42
        assert isinstance(parse_number("42"), int)
        assert isinstance(parse_number("4.0"), float)
        assert parse_number("four") is None


class TestCompare:
    """Test compare(op, left, right)."""

    def test_equality_is_stringly(self):
        """true == "true" holds because both sides are stringified."""
        assert compare("==", True, "true")
        assert compare("==", 100, "100")
        assert not compare("==", True, "yes")

    def test_inequality(self):
        assert compare("!=", "A", "B")
        assert not compare("!=", False, "false")

    def test_ordering(self):
        assert compare(">=", "18", 18)
        assert compare(">", 19, "18")
        assert compare("<", "2", "10")
        assert compare("<=", 15, "15")
        assert not compare(">=", 15, "18")

    def test_nan_comparisons_are_false(self):
        """Every ordering against NaN is False, in both directions."""
        for op in ("<", "<=", ">", ">="):
            assert not compare(op, "abc", 1)
            assert not compare(op, 1, "abc")
            assert not compare(op, None, 0)

    def test_unknown_operator(self):
        assert not compare("=~", "a", "a")
        assert not compare("", "a", "a")
