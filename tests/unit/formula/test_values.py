"""Unit tests for value coercion rules."""

import math
from datetime import date, datetime, timezone

import pytest

from gridformula.formula.values import (
    compare,
    format_number,
    ieee_divide,
    is_truthy,
    normalize_number,
    parse_number_literal,
    strict_equals,
    to_number,
    to_text,
)


class TestToNumber:
    """Tests for numeric coercion."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, 0),
            (True, 1),
            (False, 0),
            (7, 7),
            (2.5, 2.5),
            ("42", 42),
            ("  3.5 ", 3.5),
            ("", 0),
            ("1e3", 1000),
            ("0x1F", 31),
            ("-Infinity", -math.inf),
            ([], 0),
            (["5"], 5),
        ],
    )
    def test_coercible_values(self, value, expected):
        """Test values with a numeric reading."""
        assert to_number(value) == expected

    @pytest.mark.parametrize("value", ["abc", "1,000", [1, 2], {"a": 1}, object()])
    def test_non_numeric_values_are_nan(self, value):
        """Test values without a numeric reading."""
        assert math.isnan(to_number(value))

    def test_dates_are_epoch_millis(self):
        """Test date coercion."""
        assert to_number(date(1970, 1, 2)) == 86_400_000
        assert to_number(datetime(1970, 1, 1, 0, 0, 1, tzinfo=timezone.utc)) == 1000


class TestToText:
    """Tests for string coercion."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, ""),
            ("abc", "abc"),
            (True, "true"),
            (False, "false"),
            (3, "3"),
            (3.0, "3"),
            (0.5, "0.5"),
            (float("nan"), "NaN"),
            (math.inf, "Infinity"),
            (-math.inf, "-Infinity"),
            ([1, "a", None], "1,a,"),
            (date(2024, 1, 15), "2024-01-15"),
        ],
    )
    def test_to_text(self, value, expected):
        """Test string forms of formula values."""
        assert to_text(value) == expected

    def test_mapping_serializes_as_json(self):
        """Test mapping coercion."""
        assert to_text({"a": 1}) == '{"a":1}'


class TestTruthiness:
    """Tests for is_truthy."""

    @pytest.mark.parametrize("value", [None, False, 0, 0.0, float("nan"), ""])
    def test_falsy(self, value):
        """Test falsy values."""
        assert is_truthy(value) is False

    @pytest.mark.parametrize("value", [True, 1, -0.5, "0", "false", [], {}, [0]])
    def test_truthy(self, value):
        """Test truthy values, including empty containers."""
        assert is_truthy(value) is True


class TestEquality:
    """Tests for strict equality and comparison."""

    def test_same_kind_compares_by_value(self):
        """Test equal values of one kind."""
        assert strict_equals(1, 1.0)
        assert strict_equals("a", "a")
        assert strict_equals(None, None)
        assert strict_equals(True, True)

    def test_different_kinds_never_equal(self):
        """Test that there is no cross-type coercion."""
        assert not strict_equals(1, "1")
        assert not strict_equals(1, True)
        assert not strict_equals(0, None)
        assert not strict_equals("", None)

    def test_nan_not_equal_to_itself(self):
        """Test NaN equality."""
        nan = float("nan")
        assert not strict_equals(nan, nan)

    def test_containers_compare_by_identity(self):
        """Test list equality."""
        items = [1]
        assert strict_equals(items, items)
        assert not strict_equals([1], [1])

    def test_compare_strings_lexicographically(self):
        """Test string ordering."""
        assert compare("<", "apple", "banana")
        assert compare("<", "10", "9")

    def test_compare_mixed_numerically(self):
        """Test mixed ordering coerces to numbers."""
        assert compare("<", "9", 10)
        assert compare(">=", None, 0)
        assert compare("<=", True, 1)

    def test_compare_nan_is_false(self):
        """Test that NaN never orders."""
        assert not compare("<", "abc", 1)
        assert not compare(">=", "abc", 1)


class TestNumbers:
    """Tests for number helpers."""

    def test_parse_number_literal(self):
        """Test longest-prefix parsing."""
        assert parse_number_literal("12") == 12
        assert parse_number_literal("1.5") == 1.5
        assert parse_number_literal("1.2.3") == 1.2
        assert parse_number_literal("3.") == 3
        assert isinstance(parse_number_literal("4"), int)

    def test_normalize_number(self):
        """Test integral floats become ints."""
        assert isinstance(normalize_number(6.0), int)
        assert normalize_number(2.5) == 2.5
        assert math.isinf(normalize_number(math.inf))

    def test_large_numbers_stay_floats(self):
        """Test that values past 2**53 are kept as floats."""
        assert isinstance(normalize_number(2.0**60), float)
        assert normalize_number(2**60) == float(2**60)
        assert normalize_number(10**400) == math.inf
        assert normalize_number(-(10**400)) == -math.inf
        assert isinstance(normalize_number(2**53), int)
        assert to_number(10**400) == math.inf

    def test_ieee_divide(self):
        """Test zero divisors."""
        assert ieee_divide(1, 0) == math.inf
        assert ieee_divide(-1, 0) == -math.inf
        assert math.isnan(ieee_divide(0, 0))
        assert ieee_divide(7, 2) == 3.5

    def test_format_number(self):
        """Test number rendering."""
        assert format_number(10) == "10"
        assert format_number(2.0) == "2"
        assert format_number(0.1 + 0.2) == "0.30000000000000004"
