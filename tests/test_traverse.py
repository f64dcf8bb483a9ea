"""Tests for node paths and the traversal."""

import pytest
from esprima import nodes

from jsfold.core.generator import generate_code
from jsfold.core.nodes import make_literal
from jsfold.core.parser import parse_javascript
from jsfold.core.traverse import NodePath, Traversal


def collect(source, node_type, phase="enter"):
    """Parse ``source`` and return (result, traversal, paths of node_type)."""
    result = parse_javascript(source)
    traversal = Traversal(result.analysis)
    seen = []
    register = traversal.on_enter if phase == "enter" else traversal.on_exit
    register([node_type], seen.append)
    traversal.run()
    return result, traversal, seen


class TestTraversalOrder:
    """Tests for visiting order and scopes."""

    def test_enter_is_preorder_and_exit_is_postorder(self):
        result = parse_javascript("f(a + b);")
        traversal = Traversal(result.analysis)
        events = []
        traversal.on_enter(["CallExpression", "BinaryExpression"], lambda p: events.append(("enter", p.node.type)))
        traversal.on_exit(["CallExpression", "BinaryExpression"], lambda p: events.append(("exit", p.node.type)))
        traversal.run()

        assert events == [
            ("enter", "CallExpression"),
            ("enter", "BinaryExpression"),
            ("exit", "BinaryExpression"),
            ("exit", "CallExpression"),
        ]

    def test_handlers_run_in_registration_order(self):
        result = parse_javascript("x;")
        traversal = Traversal(result.analysis)
        order = []
        traversal.on_enter(["Identifier"], lambda p: order.append("first"))
        traversal.on_enter(["Identifier"], lambda p: order.append("second"))
        traversal.run()

        assert order == ["first", "second"]

    def test_paths_carry_their_scope(self):
        _, _, seen = collect("var a; function f() { var b; }", "VariableDeclarator")

        assert seen[0].scope.is_program
        assert seen[1].scope.kind == "function"


class TestReplace:
    """Tests for NodePath.replace_with and replace_with_multiple."""

    def test_replacement_is_revisited(self):
        """A replaced node is visited again so its own handlers can fire."""
        result = parse_javascript("var x = 1 + 2 + 3;")
        traversal = Traversal(result.analysis)

        def fold(path):
            left, right = path.node.left, path.node.right
            if left.type == "Literal" and right.type == "Literal":
                path.replace_with(make_literal(left.value + right.value))

        traversal.on_exit(["BinaryExpression"], fold)
        traversal.run()

        assert generate_code(result.program).strip() == "var x = 6;"

    def test_replacement_is_registered_in_scope(self):
        result = parse_javascript("var a = 1; f();")
        traversal = Traversal(result.analysis)

        def swap(path):
            if path.node.callee.name == "f":
                path.replace_with(nodes.CallExpression(nodes.Identifier("g"), [nodes.Identifier("a")]))

        traversal.on_exit(["CallExpression"], swap)
        traversal.run()

        (a,) = [b for b in result.all_bindings if b.name == "a"]
        assert len(a.references) == 1

    def test_replace_with_multiple_in_list(self):
        result = parse_javascript("a(); b(); c();")
        traversal = Traversal(result.analysis)
        visited = []

        def split(path):
            visited.append(path.node.expression.callee.name)
            if path.node.expression.callee.name == "b":
                path.replace_with_multiple([
                    nodes.ExpressionStatement(nodes.CallExpression(nodes.Identifier("b1"), [])),
                    nodes.ExpressionStatement(nodes.CallExpression(nodes.Identifier("b2"), [])),
                ])

        traversal.on_exit(["ExpressionStatement"], split)
        traversal.run()

        assert generate_code(result.program).split() == ["a();", "b1();", "b2();", "c();"]
        assert visited == ["a", "b", "c"]

    def test_cannot_replace_root(self):
        result = parse_javascript("x;")
        root = NodePath(result.program, scope=result.root_scope, hub=result.analysis)

        with pytest.raises(RuntimeError):
            root.replace_with(nodes.EmptyStatement())


class TestRemove:
    """Tests for NodePath.remove."""

    def test_removing_last_declarator_removes_declaration(self):
        result = parse_javascript("var a = 1; use();")
        traversal = Traversal(result.analysis)
        traversal.on_enter(["VariableDeclarator"], lambda p: p.remove())
        traversal.run()

        assert generate_code(result.program).strip() == "use();"
        assert not any(b.name == "a" for b in result.all_bindings)

    def test_removing_one_of_several_declarators(self):
        result = parse_javascript("var a = 1, b = 2;")
        traversal = Traversal(result.analysis)

        def drop_a(path):
            if path.node.id.name == "a":
                path.remove()

        traversal.on_enter(["VariableDeclarator"], drop_a)
        traversal.run()

        assert generate_code(result.program).strip() == "var b = 2;"

    def test_removed_statement_in_single_slot_becomes_empty(self):
        result = parse_javascript("if (x) y();")
        traversal = Traversal(result.analysis)
        traversal.on_exit(["ExpressionStatement"], lambda p: p.remove() if p.key == "consequent" else None)
        traversal.run()

        assert result.program.body[0].consequent.type == "EmptyStatement"

    def test_removed_references_stop_counting(self):
        result = parse_javascript("var a = 1; use(a);")
        traversal = Traversal(result.analysis)
        traversal.on_exit(["ExpressionStatement"], lambda p: p.remove())
        traversal.run()

        (a,) = [b for b in result.all_bindings if b.name == "a"]
        assert a.references == []

    def test_detached_path_cannot_be_removed_twice(self):
        result, _, seen = collect("x;", "ExpressionStatement")
        path = seen[0]
        path.remove()

        assert not path.is_attached()
        with pytest.raises(RuntimeError):
            path.remove()
