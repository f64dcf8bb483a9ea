"""Node kinds, child fields and node construction helpers for esprima trees."""

import json
import math
import re
from typing import Any, Iterator, Optional, Union

from esprima import nodes
from esprima.nodes import Node

from jsfold.errors import UnsupportedValueError
from jsfold.sandbox.values import (
    UNDEFINED,
    JSArray,
    JSFunction,
    JSObject,
    NativeFunction,
    number_to_string,
    to_js_value,
)

# Child fields per node type, in source order. Traversal and scope crawling
# only descend through these.
VISITOR_KEYS: dict[str, tuple[str, ...]] = {
    "Program": ("body",),
    "ExpressionStatement": ("expression",),
    "BlockStatement": ("body",),
    "EmptyStatement": (),
    "DebuggerStatement": (),
    "WithStatement": ("object", "body"),
    "ReturnStatement": ("argument",),
    "LabeledStatement": ("label", "body"),
    "BreakStatement": ("label",),
    "ContinueStatement": ("label",),
    "IfStatement": ("test", "consequent", "alternate"),
    "SwitchStatement": ("discriminant", "cases"),
    "SwitchCase": ("test", "consequent"),
    "ThrowStatement": ("argument",),
    "TryStatement": ("block", "handler", "finalizer"),
    "CatchClause": ("param", "body"),
    "WhileStatement": ("test", "body"),
    "DoWhileStatement": ("body", "test"),
    "ForStatement": ("init", "test", "update", "body"),
    "ForInStatement": ("left", "right", "body"),
    "ForOfStatement": ("left", "right", "body"),
    "FunctionDeclaration": ("id", "params", "body"),
    "VariableDeclaration": ("declarations",),
    "VariableDeclarator": ("id", "init"),
    "ClassDeclaration": ("id", "superClass", "body"),
    "ClassExpression": ("id", "superClass", "body"),
    "ClassBody": ("body",),
    "MethodDefinition": ("key", "value"),
    "ThisExpression": (),
    "Super": (),
    "ArrayExpression": ("elements",),
    "ObjectExpression": ("properties",),
    "Property": ("key", "value"),
    "FunctionExpression": ("id", "params", "body"),
    "ArrowFunctionExpression": ("params", "body"),
    "UnaryExpression": ("argument",),
    "UpdateExpression": ("argument",),
    "BinaryExpression": ("left", "right"),
    "LogicalExpression": ("left", "right"),
    "AssignmentExpression": ("left", "right"),
    "ConditionalExpression": ("test", "consequent", "alternate"),
    "CallExpression": ("callee", "arguments"),
    "NewExpression": ("callee", "arguments"),
    "MemberExpression": ("object", "property"),
    "SequenceExpression": ("expressions",),
    "TemplateLiteral": ("quasis", "expressions"),
    "TaggedTemplateExpression": ("tag", "quasi"),
    "TemplateElement": (),
    "SpreadElement": ("argument",),
    "RestElement": ("argument",),
    "YieldExpression": ("argument",),
    "AwaitExpression": ("argument",),
    "AssignmentPattern": ("left", "right"),
    "ArrayPattern": ("elements",),
    "ObjectPattern": ("properties",),
    "MetaProperty": ("meta", "property"),
    "Identifier": (),
    "Literal": (),
    "ImportDeclaration": ("specifiers", "source"),
    "ImportSpecifier": ("local", "imported"),
    "ImportDefaultSpecifier": ("local",),
    "ImportNamespaceSpecifier": ("local",),
    "ExportNamedDeclaration": ("declaration", "specifiers", "source"),
    "ExportDefaultDeclaration": ("declaration",),
    "ExportAllDeclaration": ("source",),
    "ExportSpecifier": ("local", "exported"),
}

FUNCTION_TYPES = frozenset({"FunctionDeclaration", "FunctionExpression", "ArrowFunctionExpression"})

_IDENTIFIER_NAME = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*\Z")


def is_node(value: Any) -> bool:
    """Whether a value is an esprima AST node."""
    return isinstance(value, Node)


def child_keys(node: Node) -> tuple[str, ...]:
    """Child field names of a node, in source order."""
    keys = VISITOR_KEYS.get(node.type)
    if keys is not None:
        return keys
    # Node kinds outside the table: scan attributes holding nodes.
    return tuple(
        key for key, value in vars(node).items()
        if is_node(value) or (isinstance(value, list) and any(is_node(item) for item in value))
    )


def iter_children(node: Node) -> Iterator[Node]:
    """Yield the direct child nodes of a node."""
    for key in child_keys(node):
        value = getattr(node, key, None)
        if isinstance(value, list):
            for item in value:
                if is_node(item):
                    yield item
        elif is_node(value):
            yield value


def walk(node: Node, skip_functions: bool = False) -> Iterator[Node]:
    """Yield a node and all of its descendants, depth first."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        if skip_functions and current is not node and current.type in FUNCTION_TYPES:
            continue
        stack.extend(reversed(list(iter_children(current))))


def clone(value: Any) -> Any:
    """Deep copy a node (or list of nodes) so it can be inserted twice."""
    if isinstance(value, list):
        return [clone(item) for item in value]
    if isinstance(value, dict):
        return dict(value)
    if not is_node(value):
        return value
    copied = value.__class__.__new__(value.__class__)
    for key, item in vars(value).items():
        vars(copied)[key] = clone(item)
    return copied


def is_literal(node: Optional[Node]) -> bool:
    """Whether a node denotes a fixed primitive value.

    Covers string, number, boolean and null literals, plus a unary minus
    applied to a numeric literal (how negative numbers are written).
    """
    if node is None:
        return False
    if node.type == "Literal":
        return getattr(node, "regex", None) is None
    if node.type == "UnaryExpression" and node.operator == "-":
        argument = node.argument
        return (
            argument.type == "Literal"
            and getattr(argument, "regex", None) is None
            and isinstance(argument.value, (int, float))
            and not isinstance(argument.value, bool)
        )
    return False


def literal_value(node: Node) -> Any:
    """JavaScript value of a node for which ``is_literal`` holds."""
    if node.type == "UnaryExpression":
        return -to_js_value(node.argument.value)
    return to_js_value(node.value)


def identifier_name(node: Optional[Node]) -> Optional[str]:
    """Name of an identifier node, ``None`` for anything else."""
    if node is not None and node.type == "Identifier":
        return node.name
    return None


def property_name(member: Node) -> Optional[str]:
    """Statically known property name of a member expression."""
    prop = member.property
    if not getattr(member, "computed", False):
        return identifier_name(prop)
    if prop.type == "Literal" and isinstance(prop.value, str):
        return prop.value
    return None


def property_key(prop: Node) -> Optional[str]:
    """Statically known key of an object literal property."""
    key = prop.key
    if not getattr(prop, "computed", False) and key.type == "Identifier":
        return key.name
    if key.type == "Literal" and getattr(key, "regex", None) is None:
        value = to_js_value(key.value)
        if isinstance(value, str):
            return value
        if isinstance(value, float):
            return number_to_string(value)
    return None


def make_literal(value: Union[str, int, float, bool, None]) -> Node:
    """Build a literal node for a primitive Python value."""
    if value is None:
        return nodes.Literal(None, "null")
    if isinstance(value, bool):
        return nodes.Literal(value, "true" if value else "false")
    if isinstance(value, str):
        return nodes.Literal(value, json.dumps(value))
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return nodes.Literal(value, number_to_string(float(value)))


def value_to_node(value: Any) -> Node:
    """Build the AST node that evaluates to a JavaScript value.

    Raises:
        UnsupportedValueError: for functions and other values with no literal form
    """
    if value is UNDEFINED:
        return nodes.Identifier("undefined")
    if value is None or isinstance(value, (bool, str)):
        return make_literal(value)
    if isinstance(value, (int, float)):
        number = float(value)
        if math.isnan(number):
            return nodes.Identifier("NaN")
        if number < 0 or (number == 0 and math.copysign(1.0, number) < 0):
            return nodes.UnaryExpression("-", value_to_node(-number))
        if math.isinf(number):
            return nodes.Identifier("Infinity")
        return make_literal(number)
    if isinstance(value, (JSFunction, NativeFunction)):
        raise UnsupportedValueError(f"cannot turn function {value.name or '<anonymous>'} into a node")
    if isinstance(value, JSArray):
        return nodes.ArrayExpression([value_to_node(item) for item in value.elements])
    if isinstance(value, JSObject):
        properties = []
        for key, item in value.properties.items():
            key_node = nodes.Identifier(key) if _IDENTIFIER_NAME.match(key) else make_literal(key)
            properties.append(nodes.Property("init", key_node, False, value_to_node(item), False, False))
        return nodes.ObjectExpression(properties)
    raise UnsupportedValueError(f"don't know how to turn {value!r} into a node")


def pattern_names(pattern: Optional[Node]) -> list[str]:
    """Names bound by a declaration target (identifier or destructuring pattern)."""
    if pattern is None:
        return []
    if pattern.type == "Identifier":
        return [pattern.name]
    if pattern.type == "ArrayPattern":
        return [name for element in pattern.elements for name in pattern_names(element)]
    if pattern.type == "ObjectPattern":
        return [name for prop in pattern.properties for name in pattern_names(getattr(prop, "value", None) or prop)]
    if pattern.type == "AssignmentPattern":
        return pattern_names(pattern.left)
    if pattern.type == "RestElement":
        return pattern_names(pattern.argument)
    return []
