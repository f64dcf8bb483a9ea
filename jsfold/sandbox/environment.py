"""Per-run evaluation environment shared by the rewrite rules."""

import logging
from typing import Any, Optional

from esprima.nodes import Node

from jsfold.errors import EvaluationError
from jsfold.sandbox.interpreter import Environment, Interpreter
from jsfold.sandbox.purity import PurityGate

logger = logging.getLogger(__name__)


class _NoValue:
    def __repr__(self) -> str:
        return "NO_VALUE"


# Returned by Sandbox.evaluate when nothing may be substituted.
NO_VALUE = _NoValue()


class Sandbox:
    """Interpreter globals plus the registry of hoisted declarations.

    A declaration is registered at most once, keyed by the identity of its
    AST node, so two functions sharing a name in different scopes never
    collide in the registry. The global name points at whichever of them
    was registered or re-registered last.
    """

    def __init__(
        self,
        gate: Optional[PurityGate] = None,
        max_steps: int = 100_000,
        max_call_depth: int = 200,
    ):
        self.gate = gate or PurityGate()
        self.interpreter = Interpreter(max_steps=max_steps, max_call_depth=max_call_depth)
        self._registered: dict[int, tuple[Node, Any]] = {}

    def is_builtin(self, name: str) -> bool:
        """Whether a name resolves in the sandbox globals (built-in or registered)."""
        return self.interpreter.is_global(name)

    def is_registered(self, declaration: Node) -> bool:
        entry = self._registered.get(id(declaration))
        return entry is not None and entry[0] is declaration

    @property
    def registered_count(self) -> int:
        return len(self._registered)

    def register(self, declaration: Node, name: str, source: Optional[str] = None) -> bool:
        """Hoist a declaration into the sandbox globals.

        Args:
            declaration: FunctionDeclaration, or VariableDeclarator with an initializer
            name: global name to bind
            source: text of the declaration; when given, the purity gate must pass

        Returns:
            True if the declaration is (now or already) registered

        Raises:
            EvaluationError: the interpreter rejects the declaration
        """
        entry = self._registered.get(id(declaration))
        if entry is not None and entry[0] is declaration:
            # Rebind the name, another declaration may have taken it since.
            self.interpreter.define_global(name, entry[1])
            return True
        if source is not None and not self.gate.may_substitute(source):
            logger.debug("Purity gate refused registration of %s", name)
            return False

        self.interpreter.validate(declaration)
        if declaration.type == "FunctionDeclaration":
            value = self.interpreter.make_function(declaration)
        elif declaration.type == "VariableDeclarator" and declaration.init is not None:
            value = self.interpreter.evaluate(declaration.init)
        else:
            raise EvaluationError(f"cannot register {declaration.type} {name}")

        self.interpreter.define_global(name, value)
        self._registered[id(declaration)] = (declaration, value)
        logger.debug("Registered %s (%s)", name, declaration.type)
        return True

    def evaluate(self, node: Node, source: str) -> Any:
        """Evaluate an expression if the purity gate allows substituting its value.

        Returns:
            The JavaScript value, or ``NO_VALUE`` when gated out or evaluation failed
        """
        if not self.gate.may_substitute(source):
            logger.debug("Purity gate kept %s", source)
            return NO_VALUE
        try:
            self.interpreter.validate(node)
            return self.interpreter.evaluate(node)
        except EvaluationError as e:
            logger.debug("Evaluation of %s failed: %s", source, e)
            return NO_VALUE

    def scratch_environment(self) -> Environment:
        return self.interpreter.scratch_environment()
