"""Tests for the sandbox value model and coercions."""

import math

import pytest

from jsfold.errors import EvaluationError
from jsfold.sandbox.values import (
    UNDEFINED,
    JSArray,
    JSObject,
    binary_operation,
    loose_equals,
    number_to_radix,
    number_to_string,
    strict_equals,
    to_boolean,
    to_int32,
    to_number,
    to_string,
    type_of,
)


class TestCoercions:
    """Tests for ToNumber, ToString and ToBoolean."""

    def test_to_number(self):
        """Strings, booleans, null and undefined convert like JavaScript."""
        assert to_number("  42 ") == 42.0
        assert to_number("0x1f") == 31.0
        assert to_number("") == 0.0
        assert to_number(True) == 1.0
        assert to_number(None) == 0.0
        assert math.isnan(to_number(UNDEFINED))
        assert math.isnan(to_number("12px"))

    def test_number_to_string(self):
        assert number_to_string(5.0) == "5"
        assert number_to_string(0.1) == "0.1"
        assert number_to_string(-2.5) == "-2.5"
        assert number_to_string(1e21) == "1e+21"
        assert number_to_string(1e-7) == "1e-7"
        assert number_to_string(math.inf) == "Infinity"
        assert number_to_string(math.nan) == "NaN"

    def test_number_to_string_beyond_exact_integers(self):
        """Integers past 2**53 print their shortest round-trip digits."""
        assert number_to_string(2.0 ** 53) == "9007199254740992"
        assert number_to_string(2.0 ** 64) == "18446744073709552000"
        assert number_to_string(123456789012345680000.0) == "123456789012345680000"

    def test_number_to_radix(self):
        assert number_to_radix(255.0, 16) == "ff"
        assert number_to_radix(-8.0, 2) == "-1000"

    def test_number_to_radix_fractions(self):
        assert number_to_radix(0.5, 2) == "0.1"
        assert number_to_radix(3.75, 2) == "11.11"
        assert number_to_radix(255.5, 16) == "ff.8"
        assert number_to_radix(-2.25, 2) == "-10.01"

    def test_number_to_radix_large_integer(self):
        assert number_to_radix(2.0 ** 60, 16) == "1000000000000000"

    def test_to_string_of_objects(self):
        assert to_string(JSArray(["a", 1.0, None])) == "a,1,"
        assert to_string(JSObject()) == "[object Object]"

    def test_to_boolean(self):
        assert to_boolean("0") is True
        assert to_boolean("") is False
        assert to_boolean(0.0) is False
        assert to_boolean(math.nan) is False
        assert to_boolean(JSObject()) is True

    def test_type_of(self):
        assert type_of(None) == "object"
        assert type_of(UNDEFINED) == "undefined"
        assert type_of(1.0) == "number"

    def test_to_int32_wraps(self):
        assert to_int32(2.0 ** 31) == -(2 ** 31)
        assert to_int32(-1.0) == -1


class TestEquality:
    """Tests for == and ===."""

    def test_strict_equals(self):
        assert strict_equals(1.0, 1.0)
        assert not strict_equals(1.0, "1")
        assert not strict_equals(math.nan, math.nan)
        assert strict_equals(None, None)

    def test_loose_equals(self):
        assert loose_equals(1.0, "1")
        assert loose_equals(None, UNDEFINED)
        assert loose_equals(True, 1.0)
        assert not loose_equals(None, 0.0)
        assert loose_equals(JSArray([1.0]), "1")


class TestBinaryOperation:
    """Tests for binary_operation."""

    def test_addition_concatenates_strings(self):
        assert binary_operation("+", "a", 1.0) == "a1"
        assert binary_operation("+", 1.0, 2.0) == 3.0

    def test_arithmetic(self):
        assert binary_operation("-", "5", 2.0) == 3.0
        assert binary_operation("*", 4.0, 2.5) == 10.0
        assert binary_operation("/", 1.0, 0.0) == math.inf
        assert binary_operation("/", -1.0, 0.0) == -math.inf
        assert math.isnan(binary_operation("/", 0.0, 0.0))

    def test_shift_uses_int32(self):
        assert binary_operation("<<", 1.0, 4.0) == 16.0
        assert binary_operation("<<", 1.0, 31.0) == -2147483648.0
        assert binary_operation("<<", 1.0, 32.0) == 1.0

    def test_comparison_operators(self):
        assert binary_operation("===", "a", "a") is True
        assert binary_operation("!==", 1.0, "1") is True
        assert binary_operation("!=", 1.0, "1") is False

    def test_unknown_operator(self):
        with pytest.raises(EvaluationError):
            binary_operation("instanceof", 1.0, 2.0)
