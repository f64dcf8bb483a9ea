"""Fold binary expressions whose operands are both literals."""

from jsfold.core.nodes import is_literal, literal_value, value_to_node
from jsfold.core.traverse import NodePath
from jsfold.errors import UnsupportedOperatorError
from jsfold.rules.base import Rule, RuleContext
from jsfold.sandbox.values import binary_operation

FOLDABLE_OPERATORS = frozenset({"+", "-", "*", "/", "<<", "==", "===", "!=", "!=="})


class BinaryFolder(Rule):
    """Replace ``'a' + 'b'`` with ``'ab'``, ``1 << 4`` with ``16`` and so on.

    Runs on exit, so nested expressions fold from the inside out. Literal
    operands under an operator outside ``FOLDABLE_OPERATORS`` abort the run.
    """

    name = "binary"
    description = "Constant-fold binary expressions over literals"
    priority = 20
    node_types = ("BinaryExpression",)

    def exit(self, path: NodePath, context: RuleContext) -> None:
        node = path.node
        if not (is_literal(node.left) and is_literal(node.right)):
            return
        if node.operator not in FOLDABLE_OPERATORS:
            raise UnsupportedOperatorError("BinaryExpression", node.operator, path.to_string())

        result = binary_operation(node.operator, literal_value(node.left), literal_value(node.right))
        path.replace_with(value_to_node(result))
        context.record("binary_folded")
