"""Tests for the binary folder."""

import pytest

from jsfold.errors import UnsupportedOperatorError
from jsfold.rules import BinaryFolder


class TestBinaryFolder:
    """Tests for BinaryFolder."""

    @pytest.mark.parametrize(
        "source, expected",
        [
            ("x = 'a' + 'b';", "x = 'ab';"),
            ("x = 1 + '2';", "x = '12';"),
            ("x = '' + 18446744073709552000;", "x = '18446744073709552000';"),
            ("x = 7 - 10;", "x = -3;"),
            ("x = 6 * 7;", "x = 42;"),
            ("x = 1 / 4;", "x = 0.25;"),
            ("x = 1 << 4;", "x = 16;"),
            ("x = 1 == '1';", "x = true;"),
            ("x = 1 === '1';", "x = false;"),
            ("x = null != 0;", "x = true;"),
            ("x = 'a' !== 'a';", "x = false;"),
        ],
    )
    def test_folds_literal_operands(self, apply_rules, assert_same_program, source, expected):
        code, _ = apply_rules(source, BinaryFolder())

        assert_same_program(code, expected)

    def test_folds_nested_expressions_inside_out(self, apply_rules, assert_same_program):
        code, context = apply_rules("x = 'a' + 'b' + 'c' + (2 * 3);", BinaryFolder())

        assert_same_program(code, "x = 'abc6';")
        assert context.stats["binary_folded"] == 4

    def test_negative_operands(self, apply_rules, assert_same_program):
        code, _ = apply_rules("x = -2 * -3;", BinaryFolder())

        assert_same_program(code, "x = 6;")

    def test_special_numbers(self, apply_rules, assert_same_program):
        code, _ = apply_rules("x = 1 / 0; y = 0 / 0;", BinaryFolder())

        assert_same_program(code, "x = Infinity; y = NaN;")

    def test_non_literal_operands_are_kept(self, apply_rules, assert_same_program):
        source = "x = a + 1;"
        code, context = apply_rules(source, BinaryFolder())

        assert_same_program(code, source)
        assert context.stats["binary_folded"] == 0

    def test_unsupported_operator_aborts(self, apply_rules):
        with pytest.raises(UnsupportedOperatorError) as info:
            apply_rules("x = 5 % 2;", BinaryFolder())

        assert info.value.operator == "%"
        assert "unhandled operator(%)" in str(info.value)

    def test_unsupported_operator_with_non_literals_is_ignored(self, apply_rules, assert_same_program):
        source = "x = a % b;"
        code, _ = apply_rules(source, BinaryFolder())

        assert_same_program(code, source)
