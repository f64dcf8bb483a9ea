"""Tests for the declaration simplifier."""

from jsfold.rules import BinaryFolder, DeclarationSimplifier


class TestLiteralInlining:
    """Tests for inlining constant literal declarations."""

    def test_inlines_every_reference(self, apply_rules, assert_same_program):
        code, context = apply_rules("var a = 5; f(a, a);", DeclarationSimplifier())

        assert_same_program(code, "f(5, 5);")
        assert context.stats["literals_inlined"] == 2
        assert context.stats["declarations_removed"] == 1

    def test_unreferenced_constant_is_removed(self, apply_rules, assert_same_program):
        code, _ = apply_rules("const unused = 'x'; go();", DeclarationSimplifier())

        assert_same_program(code, "go();")

    def test_reassigned_binding_is_kept(self, apply_rules, assert_same_program):
        source = "var a = 5; a = 6; f(a);"
        code, context = apply_rules(source, DeclarationSimplifier())

        assert_same_program(code, source)
        assert context.stats["declarations_removed"] == 0

    def test_updated_binding_is_kept(self, apply_rules, assert_same_program):
        source = "let n = 0; n++; f(n);"
        code, _ = apply_rules(source, DeclarationSimplifier())

        assert_same_program(code, source)

    def test_negative_and_string_literals(self, apply_rules, assert_same_program):
        code, _ = apply_rules("var n = -1, s = 'x'; f(n, s);", DeclarationSimplifier())

        assert_same_program(code, "f(-1, 'x');")

    def test_nested_scope_shadowing(self, apply_rules, assert_same_program):
        """Only references bound to the removed declaration are replaced."""
        source = "var a = 1; function g(a) { return a; } g(a);"
        code, _ = apply_rules(source, DeclarationSimplifier())

        assert_same_program(code, "function g(a) { return a; } g(1);")

    def test_non_literal_init_is_kept(self, apply_rules, assert_same_program):
        source = "var a = b; f(a);"
        code, _ = apply_rules(source, DeclarationSimplifier())

        assert_same_program(code, source)

    def test_constant_then_fold(self, apply_rules, assert_same_program):
        code, _ = apply_rules(
            "const a = 2; const b = a + 3;",
            DeclarationSimplifier(),
            BinaryFolder(),
        )

        assert_same_program(code, "const b = 5;")


class TestFunctionRegistration:
    """Tests for hoisting program-level function declarators into the sandbox."""

    def test_registers_and_removes(self, apply_rules, assert_same_program):
        code, context = apply_rules(
            "var twice = function (x) { return x * 2; }; run();",
            DeclarationSimplifier(),
        )

        assert_same_program(code, "run();")
        assert context.stats["functions_registered"] == 1
        assert context.sandbox.is_builtin("twice")

    def test_arrow_functions_are_registered(self, apply_rules, assert_same_program):
        code, context = apply_rules("const inc = (x) => x + 1;", DeclarationSimplifier())

        assert_same_program(code, "")
        assert context.sandbox.registered_count == 1

    def test_nested_function_declarators_are_kept(self, apply_rules, assert_same_program):
        source = "function outer() { var inner = function () { return 1; }; return inner; }"
        code, context = apply_rules(source, DeclarationSimplifier())

        assert_same_program(code, source)
        assert context.stats["functions_registered"] == 0

    def test_unsupported_function_is_kept(self, apply_rules, assert_same_program):
        source = "var make = function () { return new Thing(); };"
        code, context = apply_rules(source, DeclarationSimplifier())

        assert_same_program(code, source)
        assert not context.sandbox.is_builtin("make")
