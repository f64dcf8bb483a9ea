"""Undo control-flow flattening of ``for``/``switch`` dispatch loops.

A flattened loop looks like::

    for (var state = 2; ;) {
        switch (state) {
            case 1: b(); state = 3; continue;
            case 2: a(); state = 1; continue;
            case 3: c(); state = 0; break;
        }
    }

and is rewritten to ``a(); b(); c();`` by running the dispatch variable
through the sandbox and recording which case bodies execute.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from esprima.nodes import Node

from jsfold.core.generator import generate_code
from jsfold.core.nodes import (
    clone,
    identifier_name,
    is_literal,
    literal_value,
    pattern_names,
    walk,
)
from jsfold.core.traverse import NodePath
from jsfold.errors import EvaluationError
from jsfold.rules.base import Rule, RuleContext
from jsfold.sandbox.interpreter import Environment
from jsfold.sandbox.values import strict_equals, to_boolean

logger = logging.getLogger(__name__)

_EXITS = ("BreakStatement", "ContinueStatement", "ReturnStatement", "ThrowStatement")


class Abort(Exception):
    """The loop does not have the supported shape; leave it as written."""


@dataclass
class CasePlan:
    statements: list[Node]
    updates: list[Node]
    terminal: Optional[str] = None  # "break", "continue" or None when the case just ends
    emitted: bool = False


def dispatch_variables(init: Node) -> set[str]:
    """Names declared or assigned by a ``for`` initializer."""
    if init.type == "VariableDeclaration":
        return {name for declarator in init.declarations for name in pattern_names(declarator.id)}
    expressions = init.expressions if init.type == "SequenceExpression" else [init]
    names = set()
    for expression in expressions:
        if expression.type == "AssignmentExpression":
            names.update(pattern_names(expression.left))
    return names


def _assigned_names(expression: Node) -> Optional[list[str]]:
    """Targets of an assignment/update expression (or a sequence of them)."""
    if expression.type == "SequenceExpression":
        names = []
        for item in expression.expressions:
            targets = _assigned_names(item)
            if targets is None:
                return None
            names.extend(targets)
        return names
    if expression.type == "AssignmentExpression":
        name = identifier_name(expression.left)
        return [name] if name is not None else None
    if expression.type == "UpdateExpression":
        name = identifier_name(expression.argument)
        return [name] if name is not None else None
    return None


def _writes_to(node: Node, names: set[str]) -> bool:
    for child in walk(node):
        if child.type == "AssignmentExpression" and identifier_name(child.left) in names:
            return True
        if child.type == "UpdateExpression" and identifier_name(child.argument) in names:
            return True
    return False


def _mentions(node: Node, names: set[str]) -> bool:
    return any(child.type == "Identifier" and child.name in names for child in walk(node))


class LoopUnflattener(Rule):
    """Replace a switch-dispatch ``for`` loop with the case bodies it runs, in order."""

    name = "loops"
    description = "Reverse control-flow flattening of for/switch dispatch loops"
    priority = 40
    node_types = ("ForStatement",)

    def exit(self, path: NodePath, context: RuleContext) -> None:
        node = path.node
        shape = self._match_shape(node)
        if shape is None:
            return
        switch, trailing_break = shape
        try:
            statements = self._unflatten(path, switch, trailing_break, context)
        except Abort as e:
            logger.debug("Left flattened loop in place: %s", e)
            context.record("loops_kept")
            return
        except EvaluationError as e:
            logger.debug("Could not run dispatch loop: %s", e)
            context.record("loops_kept")
            return
        path.replace_with_multiple(statements)
        context.record("loops_unflattened")

    @staticmethod
    def _match_shape(node: Node) -> Optional[tuple[Node, bool]]:
        if node.init is None:
            return None
        body = node.body
        if body.type == "SwitchStatement":
            return body, False
        if body.type != "BlockStatement" or not body.body or body.body[0].type != "SwitchStatement":
            return None
        rest = body.body[1:]
        if not rest:
            return body.body[0], False
        if len(rest) == 1 and rest[0].type == "BreakStatement" and rest[0].label is None:
            return body.body[0], True
        return None

    def _unflatten(self, path: NodePath, switch: Node, trailing_break: bool, context: RuleContext) -> list[Node]:
        node = path.node
        names = dispatch_variables(node.init)
        if not names:
            raise Abort("initializer declares no dispatch variable")
        self._check_outside_uses(path, names, context)

        for part in (node.init, node.test, node.update, switch.discriminant):
            if part is not None and not context.gate.is_deterministic(generate_code(part)):
                raise Abort("dispatch depends on a nondeterministic value")

        cases = switch.cases
        if any(case.test is None for case in cases):
            raise Abort("default case")
        if not all(is_literal(case.test) for case in cases):
            raise Abort("non-literal case test")
        tests = [literal_value(case.test) for case in cases]

        interpreter = context.sandbox.interpreter
        env = context.sandbox.scratch_environment()
        if node.init.type == "VariableDeclaration":
            interpreter.execute(node.init, env)
        else:
            interpreter.evaluate(node.init, env)

        plans: dict[int, CasePlan] = {}
        output: list[Node] = []
        dispatches = 0
        while True:
            if node.test is not None and not to_boolean(interpreter.evaluate(node.test, env)):
                break
            value = interpreter.evaluate(switch.discriminant, env)
            if dispatches and not to_boolean(value):
                break
            index = self._find_case(tests, value)
            if index is None:
                if dispatches and trailing_break:
                    break
                raise Abort(f"no case matches {value!r}")

            dispatches += 1
            if dispatches > context.config.max_dispatch_steps:
                raise Abort(f"more than {context.config.max_dispatch_steps} dispatches")

            plan = plans.get(index)
            if plan is None:
                plan = plans[index] = self._plan_case(cases, index, names, context)
            if plan.emitted:
                output.extend(clone(statement) for statement in plan.statements)
            else:
                output.extend(plan.statements)
                plan.emitted = True
            self._run_updates(plan.updates, env, context)
            if trailing_break and plan.terminal != "continue":
                break
            if node.update is not None:
                interpreter.evaluate(node.update, env)

        logger.debug("Unflattened loop over %s in %d dispatches", ", ".join(sorted(names)), dispatches)
        return output

    @staticmethod
    def _find_case(tests: list[Any], value: Any) -> Optional[int]:
        for index, test in enumerate(tests):
            if strict_equals(value, test):
                return index
        return None

    @staticmethod
    def _check_outside_uses(path: NodePath, names: set[str], context: RuleContext) -> None:
        inner = {id(child) for child in walk(path.node)}
        scope = context.analysis.scope_of(path.node) or path.scope
        for name in names:
            binding = scope.get_binding(name) if scope is not None else None
            if binding is None:
                continue
            for reference in binding.references:
                if id(reference.node) not in inner:
                    raise Abort(f"{name} is read after the loop")

    def _plan_case(self, cases: list[Node], index: int, names: set[str], context: RuleContext) -> CasePlan:
        """Split a case body into emitted statements and dispatch updates."""
        body = list(cases[index].consequent)
        if not body:
            raise Abort("empty case falls through")
        last = body[-1]
        terminal = None
        if last.type in ("BreakStatement", "ContinueStatement") and last.label is None:
            terminal = "continue" if last.type == "ContinueStatement" else "break"
            body = body[:-1]
        elif index != len(cases) - 1:
            raise Abort("case falls through")

        statements, updates = [], []
        for statement in body:
            if any(child.type in _EXITS for child in walk(statement, skip_functions=True)):
                raise Abort("case body has more than one exit")
            targets = None
            if statement.type == "ExpressionStatement":
                targets = _assigned_names(statement.expression)
            if targets and set(targets) <= names:
                if not context.gate.is_deterministic(generate_code(statement)):
                    raise Abort("dispatch update depends on a nondeterministic value")
                updates.append(statement)
            elif _writes_to(statement, names) or _mentions(statement, names):
                raise Abort("case body uses a dispatch variable")
            else:
                statements.append(statement)
        return CasePlan(statements, updates, terminal)

    @staticmethod
    def _run_updates(updates: list[Node], env: Environment, context: RuleContext) -> None:
        for statement in updates:
            context.sandbox.interpreter.execute(statement, env)
