"""Replace calls with their values, or inline binary-operator wrapper functions."""

import logging
from typing import Optional

from esprima import nodes
from esprima.nodes import Node

from jsfold.core.analyzer import Binding
from jsfold.core.nodes import (
    is_literal,
    property_key,
    property_name,
    value_to_node,
    walk,
)
from jsfold.core.traverse import NodePath
from jsfold.errors import EvaluationError, UnsupportedValueError
from jsfold.rules.base import Rule, RuleContext
from jsfold.sandbox.environment import NO_VALUE
from jsfold.sandbox.values import UNDEFINED, is_callable

logger = logging.getLogger(__name__)

_FUNCTION_EXPRESSIONS = ("FunctionExpression", "ArrowFunctionExpression")


def _is_function_declaration(node: Node) -> bool:
    if node.type == "FunctionDeclaration":
        return True
    return (
        node.type == "VariableDeclarator"
        and node.init is not None
        and node.init.type in _FUNCTION_EXPRESSIONS
    )


def binary_wrapper(function: Node) -> Optional[tuple[str, bool]]:
    """Recognize ``function (a, b) { return a OP b; }``.

    Returns:
        ``(operator, swapped)`` where ``swapped`` means the body reads the
        second parameter first, or None for any other function
    """
    if function.type not in _FUNCTION_EXPRESSIONS:
        return None
    params = function.params
    if len(params) != 2 or any(param.type != "Identifier" for param in params):
        return None
    first, second = params[0].name, params[1].name
    if first == second:
        return None

    body = function.body
    if body.type == "BlockStatement":
        if len(body.body) != 1 or body.body[0].type != "ReturnStatement":
            return None
        body = body.body[0].argument
    if body is None or body.type != "BinaryExpression":
        return None

    left, right = body.left, body.right
    if left.type != "Identifier" or right.type != "Identifier":
        return None
    if (left.name, right.name) == (first, second):
        return body.operator, False
    if (left.name, right.name) == (second, first):
        return body.operator, True
    return None


def _is_simple(node: Node) -> bool:
    return is_literal(node) or node.type == "Identifier"


class CallSimplifier(Rule):
    """Evaluate calls the sandbox can answer, or inline operator wrappers.

    Three callee shapes are handled:

    - ``f(...)``: a sandbox global, or a function declared in the program
      (hoisted into the sandbox on first use);
    - ``'literal'.method(...)``;
    - ``obj.f(...)``: a sandbox global object, or an object literal whose
      property ``f`` only wraps a binary operator, in which case the call
      becomes that operator applied to the arguments.
    """

    name = "calls"
    description = "Evaluate deterministic calls and inline operator wrappers"
    priority = 30
    node_types = ("CallExpression",)

    def exit(self, path: NodePath, context: RuleContext) -> None:
        callee = path.node.callee
        if callee.type == "Identifier":
            self._identifier_call(path, context)
        elif callee.type == "MemberExpression":
            target = callee.object
            if is_literal(target):
                self._evaluate(path, context)
            elif target.type == "Identifier":
                self._member_call(path, context)

    # -- case A ---------------------------------------------------------------

    def _identifier_call(self, path: NodePath, context: RuleContext) -> None:
        name = path.node.callee.name
        binding = path.get_binding(name)
        if binding is None:
            if context.sandbox.is_builtin(name):
                self._evaluate(path, context)
            return
        if self._register(binding, context, set()):
            self._evaluate(path, context)

    def _register(self, binding: Binding, context: RuleContext, seen: set[int]) -> bool:
        """Hoist a function binding, and the functions it calls, into the sandbox."""
        declaration = binding.path.node
        if id(declaration) in seen:
            return True
        seen.add(id(declaration))
        if not _is_function_declaration(declaration) or not binding.constant:
            return False

        body = declaration if declaration.type == "FunctionDeclaration" else declaration.init
        for node in walk(body):
            if node.type != "Identifier":
                continue
            dependency = context.analysis.reference_binding(node)
            if dependency is None or dependency is binding:
                continue
            if _is_function_declaration(dependency.path.node) and dependency.path.node is not declaration:
                self._register(dependency, context, seen)

        try:
            return context.sandbox.register(declaration, binding.name, binding.path.to_string())
        except EvaluationError as e:
            logger.debug("Could not register %s: %s", binding.name, e)
            return False

    # -- case C ---------------------------------------------------------------

    def _member_call(self, path: NodePath, context: RuleContext) -> None:
        callee = path.node.callee
        object_name = callee.object.name
        binding = path.get_binding(object_name)
        if binding is None:
            if context.sandbox.is_builtin(object_name):
                self._evaluate(path, context)
            return

        declaration = binding.path.node
        if declaration.type != "VariableDeclarator" or not binding.constant:
            return
        if declaration.init is None or declaration.init.type != "ObjectExpression":
            return
        key = property_name(callee)
        if key is None:
            return

        function = None
        for prop in declaration.init.properties:
            if prop.type == "Property" and property_key(prop) == key:
                function = prop.value
        if function is None:
            return
        wrapper = binary_wrapper(function)
        args = path.node.arguments
        if wrapper is None or len(args) != 2 or any(arg.type == "SpreadElement" for arg in args):
            return

        operator, swapped = wrapper
        left, right = args
        if swapped:
            # Reordering would change the order of side effects.
            if not (_is_simple(left) and _is_simple(right)):
                return
            left, right = right, left
        path.replace_with(nodes.BinaryExpression(operator, left, right))
        context.record("wrappers_inlined")

    # -- evaluation -----------------------------------------------------------

    def _reads_unknown_local(self, path: NodePath, context: RuleContext) -> bool:
        """Whether the call reads a binding the sandbox holds no value for."""
        inner = {id(node) for node in walk(path.node)}
        for node in walk(path.node):
            if node.type != "Identifier":
                continue
            binding = context.analysis.reference_binding(node)
            if binding is None or id(binding.path.node) in inner:
                continue
            if not context.sandbox.is_registered(binding.path.node):
                return True
        return False

    def _evaluate(self, path: NodePath, context: RuleContext) -> None:
        if self._reads_unknown_local(path, context):
            return
        source = path.to_string()
        value = context.sandbox.evaluate(path.node, source)
        if value is NO_VALUE or value is UNDEFINED or value is None or is_callable(value):
            context.record("calls_kept")
            return
        try:
            replacement = value_to_node(value)
        except UnsupportedValueError as e:
            logger.debug("Kept %s: %s", source, e)
            context.record("calls_kept")
            return
        path.replace_with(replacement)
        context.record("calls_evaluated")
        logger.debug("Evaluated %s", source)
