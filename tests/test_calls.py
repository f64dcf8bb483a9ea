"""Tests for the call simplifier."""

import pytest

from jsfold.rules import BinaryFolder, CallSimplifier, DeclarationSimplifier
from jsfold.rules.calls import binary_wrapper
from jsfold.core.parser import parse_program


def function_node(source: str):
    return parse_program(f"({source})").body[0].expression


class TestBinaryWrapper:
    """Tests for binary_wrapper function."""

    @pytest.mark.parametrize(
        "source, expected",
        [
            ("function (a, b) { return a + b; }", ("+", False)),
            ("function (a, b) { return b - a; }", ("-", True)),
            ("(a, b) => a << b", ("<<", False)),
            ("(a, b) => { return a === b; }", ("===", False)),
        ],
    )
    def test_recognized(self, source, expected):
        assert binary_wrapper(function_node(source)) == expected

    @pytest.mark.parametrize(
        "source",
        [
            "function (a, b) { log(a); return a + b; }",
            "function (a) { return a + a; }",
            "function (a, b) { return a + 1; }",
            "function (a, b, c) { return a + b; }",
            "function (a, b) { return a(b); }",
            "function (a, a) { return a + a; }",
        ],
    )
    def test_rejected(self, source):
        assert binary_wrapper(function_node(source)) is None


class TestSandboxCalls:
    """Tests for calls answered by the sandbox."""

    def test_builtin_member_call(self, apply_rules, assert_same_program):
        code, context = apply_rules("x = String.fromCharCode(72, 105);", CallSimplifier())

        assert_same_program(code, "x = 'Hi';")
        assert context.stats["calls_evaluated"] == 1

    def test_builtin_function_call(self, apply_rules, assert_same_program):
        code, _ = apply_rules("x = parseInt('ff', 16);", CallSimplifier())

        assert_same_program(code, "x = 255;")

    def test_literal_receiver(self, apply_rules, assert_same_program):
        code, _ = apply_rules("x = 'a,b'.split(',');", CallSimplifier())

        assert_same_program(code, "x = ['a', 'b'];")

    def test_declared_function_is_hoisted(self, apply_rules, assert_same_program):
        source = "function k(n) { return n * 2; } x = k(21);"
        code, context = apply_rules(source, CallSimplifier())

        assert_same_program(code, "function k(n) { return n * 2; } x = 42;")
        assert context.sandbox.registered_count == 1

    def test_dependencies_are_hoisted(self, apply_rules, assert_same_program):
        source = "function a(n) { return b(n) + 1; } function b(n) { return n * 2; } x = a(3);"
        code, context = apply_rules(source, CallSimplifier())

        assert_same_program(code, "function a(n) { return b(n) + 1; } function b(n) { return n * 2; } x = 7;")
        assert context.sandbox.registered_count == 2

    def test_registered_declarator_is_callable(self, apply_rules, assert_same_program):
        source = "var d = function (c) { return String.fromCharCode(c); }; x = d(0x68) + '\\x69';"
        code, _ = apply_rules(source, DeclarationSimplifier(), BinaryFolder(), CallSimplifier())

        assert_same_program(code, "x = 'hi';")

    def test_reassigned_function_is_not_hoisted(self, apply_rules, assert_same_program):
        source = "function k() { return 1; } k = other; x = k();"
        code, context = apply_rules(source, CallSimplifier())

        assert_same_program(code, source)
        assert context.sandbox.registered_count == 0

    def test_unknown_local_argument_is_kept(self, apply_rules, assert_same_program):
        source = "var code = read(); x = String.fromCharCode(code);"
        code, _ = apply_rules(source, CallSimplifier())

        assert_same_program(code, source)

    @pytest.mark.parametrize(
        "source",
        [
            "x = Math.random();",
            "x = Date.now();",
            "x = JSON.stringify({a: 1});",
            "console.log('hi');",
        ],
    )
    def test_gated_calls_are_kept(self, apply_rules, assert_same_program, source):
        code, context = apply_rules(source, CallSimplifier())

        assert_same_program(code, source)
        assert context.stats["calls_evaluated"] == 0

    def test_nondeterministic_function_is_not_hoisted(self, apply_rules, assert_same_program):
        source = "function stamp() { return Date.now(); } x = stamp();"
        code, context = apply_rules(source, CallSimplifier())

        assert_same_program(code, source)
        assert context.sandbox.registered_count == 0

    def test_undefined_result_is_kept(self, apply_rules, assert_same_program):
        source = "function noop() {} x = noop();"
        code, context = apply_rules(source, CallSimplifier())

        assert_same_program(code, source)
        assert context.stats["calls_kept"] == 1

    def test_throwing_call_is_kept(self, apply_rules, assert_same_program):
        source = "function boom() { throw 'no'; } x = boom();"
        code, _ = apply_rules(source, CallSimplifier())

        assert_same_program(code, source)


class TestWrapperInlining:
    """Tests for inlining object-literal operator wrappers."""

    def test_inlines_wrapper(self, apply_rules, assert_same_program):
        source = "var o = {'add': function (a, b) { return a + b; }}; x = o['add'](p, q);"
        code, context = apply_rules(source, CallSimplifier())

        assert_same_program(code, "var o = {'add': function (a, b) { return a + b; }}; x = p + q;")
        assert context.stats["wrappers_inlined"] == 1

    def test_inlined_wrapper_is_folded(self, apply_rules, assert_same_program):
        source = "var o = {mul: (a, b) => a * b}; x = o.mul(6, 7);"
        code, _ = apply_rules(source, BinaryFolder(), CallSimplifier())

        assert_same_program(code, "var o = {mul: (a, b) => a * b}; x = 42;")

    def test_swapped_parameters(self, apply_rules, assert_same_program):
        source = "var o = {sub: function (a, b) { return b - a; }}; x = o.sub(p, q);"
        code, _ = apply_rules(source, CallSimplifier())

        assert_same_program(code, "var o = {sub: function (a, b) { return b - a; }}; x = q - p;")

    def test_swapped_parameters_with_side_effects_are_kept(self, apply_rules, assert_same_program):
        source = "var o = {sub: function (a, b) { return b - a; }}; x = o.sub(f(), g());"
        code, _ = apply_rules(source, CallSimplifier())

        assert_same_program(code, source)

    def test_last_property_wins(self, apply_rules, assert_same_program):
        source = (
            "var o = {f: function (a, b) { return a + b; }, f: function (a, b) { return a * b; }};"
            " x = o.f(p, q);"
        )
        code, _ = apply_rules(source, CallSimplifier())

        assert code.rstrip().endswith("x = p * q;")

    def test_reassigned_object_is_kept(self, apply_rules, assert_same_program):
        source = "var o = {f: function (a, b) { return a + b; }}; o = other; x = o.f(p, q);"
        code, _ = apply_rules(source, CallSimplifier())

        assert_same_program(code, source)

    def test_non_wrapper_method_is_kept(self, apply_rules, assert_same_program):
        source = "var o = {f: function (a, b) { return a + b + 1; }}; x = o.f(p, q);"
        code, _ = apply_rules(source, CallSimplifier())

        assert_same_program(code, source)
