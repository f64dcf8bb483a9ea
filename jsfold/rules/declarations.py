"""Inline constant literal declarations and hoist top-level function declarators."""

import logging

from jsfold.core.nodes import FUNCTION_TYPES, is_literal, literal_value, value_to_node
from jsfold.core.traverse import NodePath
from jsfold.errors import EvaluationError
from jsfold.rules.base import Rule, RuleContext

logger = logging.getLogger(__name__)


class DeclarationSimplifier(Rule):
    """Remove declarators whose value is known everywhere it is used.

    ``var a = 5;`` with ``a`` never reassigned has every read of ``a``
    replaced by ``5`` before the declarator is dropped. A function assigned
    at program level is moved into the sandbox, where later calls to it can
    be evaluated.
    """

    name = "declarations"
    description = "Inline constant literals and register top-level functions"
    priority = 10
    node_types = ("VariableDeclarator",)

    def enter(self, path: NodePath, context: RuleContext) -> None:
        node = path.node
        if node.id.type != "Identifier" or node.init is None:
            return
        declaration = path.parent_path
        if declaration is not None and declaration.key == "left":
            return

        if is_literal(node.init):
            self._inline_literal(path, context)
        elif node.init.type in FUNCTION_TYPES - {"FunctionDeclaration"} and path.scope.is_program:
            self._register_function(path, context)

    def _inline_literal(self, path: NodePath, context: RuleContext) -> None:
        name = path.node.id.name
        binding = path.get_binding(name)
        if binding is None or binding.path.node is not path.node or not binding.constant:
            return

        value = literal_value(path.node.init)
        references = binding.references
        for reference in references:
            reference.replace_with(value_to_node(value))
        path.remove()
        context.record("literals_inlined", len(references))
        context.record("declarations_removed")
        logger.debug("Inlined %s into %d reference(s)", name, len(references))

    def _register_function(self, path: NodePath, context: RuleContext) -> None:
        name = path.node.id.name
        try:
            context.sandbox.register(path.node, name)
        except EvaluationError as e:
            logger.debug("Kept %s, the sandbox rejected it: %s", name, e)
            return
        path.remove()
        context.record("functions_registered")
        context.record("declarations_removed")
