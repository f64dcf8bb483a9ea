"""Step-limited interpreter for a JavaScript subset over esprima trees.

The interpreter evaluates the same AST the rewrite rules mutate, so no
source text is ever handed to a host-language ``eval``. Every node visit
costs one step; a top-level ``evaluate``/``execute`` call fails with
``StepLimitExceeded`` once the budget is spent, which bounds loops smuggled
into evaluated code.
"""

import logging
from typing import Any, Callable, Optional

from esprima.nodes import Node

from jsfold.core.nodes import FUNCTION_TYPES, walk
from jsfold.errors import EvaluationError, JSException, StepLimitExceeded
from jsfold.sandbox.builtins import get_property, make_globals, put_property
from jsfold.sandbox.values import (
    UNDEFINED,
    JSArray,
    JSFunction,
    JSObject,
    NativeFunction,
    binary_operation,
    is_callable,
    strict_equals,
    throw_error,
    to_boolean,
    to_int32,
    to_js_value,
    to_number,
    to_property_key,
    to_string,
    type_of,
)

logger = logging.getLogger(__name__)

_THIS = "this"


class _BreakSignal(Exception):
    pass


class _ContinueSignal(Exception):
    pass


class _ReturnSignal(Exception):
    def __init__(self, value: Any):
        super().__init__()
        self.value = value


class Environment:
    """Variable bindings of one scope during evaluation.

    ``captures_globals`` marks the environment that receives assignments to
    undeclared names (sloppy-mode implicit globals). The interpreter's global
    environment captures them; scratch environments handed out by
    ``Interpreter.scratch_environment`` capture them too, so probing code
    cannot leak names into the globals.
    """

    def __init__(
        self,
        parent: Optional["Environment"] = None,
        function_scope: bool = False,
        captures_globals: bool = False,
    ):
        self.parent = parent
        self.vars: dict[str, Any] = {}
        self.function_scope = function_scope or parent is None
        self.captures_globals = captures_globals or parent is None

    def find(self, name: str) -> Optional["Environment"]:
        env: Optional[Environment] = self
        while env is not None:
            if name in env.vars:
                return env
            env = env.parent
        return None

    def has(self, name: str) -> bool:
        return self.find(name) is not None

    def lookup(self, name: str) -> Any:
        env = self.find(name)
        if env is None:
            raise throw_error("ReferenceError", f"{name} is not defined")
        return env.vars[name]

    def declare(self, name: str, value: Any) -> None:
        self.vars[name] = value

    def assign(self, name: str, value: Any) -> None:
        env = self.find(name)
        if env is None:
            env = self
            while not env.captures_globals:
                env = env.parent
        env.vars[name] = value

    def var_scope(self) -> "Environment":
        env = self
        while not env.function_scope:
            env = env.parent
        return env


class Interpreter:
    """Evaluate esprima expression and statement nodes."""

    def __init__(self, max_steps: int = 100_000, max_call_depth: int = 200):
        self.max_steps = max_steps
        self.max_call_depth = max_call_depth
        self.global_env = Environment()
        for name, value in make_globals().items():
            self.global_env.declare(name, value)
        self._steps = 0
        self._depth = 0

        self._expressions: dict[str, Callable[[Node, Environment], Any]] = {
            "Literal": self._literal,
            "Identifier": self._identifier,
            "ThisExpression": self._this,
            "ArrayExpression": self._array,
            "ObjectExpression": self._object,
            "FunctionExpression": self._function,
            "ArrowFunctionExpression": self._function,
            "UnaryExpression": self._unary,
            "UpdateExpression": self._update,
            "BinaryExpression": self._binary,
            "LogicalExpression": self._logical,
            "ConditionalExpression": self._conditional,
            "AssignmentExpression": self._assignment,
            "SequenceExpression": self._sequence,
            "MemberExpression": self._member,
            "CallExpression": self._call_expression,
            "TemplateLiteral": self._template,
        }
        self._statements: dict[str, Callable[[Node, Environment], None]] = {
            "ExpressionStatement": self._expression_statement,
            "VariableDeclaration": self._variable_declaration,
            "FunctionDeclaration": self._function_declaration,
            "BlockStatement": self._block,
            "EmptyStatement": self._empty,
            "IfStatement": self._if,
            "ReturnStatement": self._return,
            "ForStatement": self._for,
            "WhileStatement": self._while,
            "DoWhileStatement": self._do_while,
            "BreakStatement": self._break,
            "ContinueStatement": self._continue,
            "SwitchStatement": self._switch,
            "ThrowStatement": self._throw,
            "TryStatement": self._try,
        }
        self._auxiliary = frozenset({
            "Property", "SwitchCase", "CatchClause", "VariableDeclarator",
            "TemplateElement", "AssignmentPattern", "RestElement", "SpreadElement",
        })

    # -- public API -----------------------------------------------------------

    def evaluate(self, node: Node, env: Optional[Environment] = None) -> Any:
        """Evaluate an expression with a fresh step budget."""
        return self._run(self._expression, node, env)

    def execute(self, node: Node, env: Optional[Environment] = None) -> None:
        """Execute a statement (or a declarator) with a fresh step budget."""
        if node.type == "VariableDeclarator":
            self._run(self._declarator, node, env)
        else:
            self._run(self._statement, node, env)

    def scratch_environment(self) -> Environment:
        """Environment for probing code without touching the globals."""
        return Environment(self.global_env, function_scope=True, captures_globals=True)

    def is_global(self, name: str) -> bool:
        return name in self.global_env.vars

    def define_global(self, name: str, value: Any) -> None:
        self.global_env.declare(name, value)

    def make_function(self, node: Node, env: Optional[Environment] = None) -> JSFunction:
        name = node.id.name if getattr(node, "id", None) is not None else ""
        return JSFunction(node, env or self.global_env, name)

    def validate(self, node: Node) -> None:
        """Reject subtrees the interpreter cannot run.

        Raises:
            EvaluationError: naming the first unsupported construct
        """
        for child in walk(node):
            kind = child.type
            if kind in FUNCTION_TYPES and (getattr(child, "generator", False) or getattr(child, "isAsync", False)):
                raise EvaluationError("generator and async functions are not supported")
            if kind == "Literal" and getattr(child, "regex", None) is not None:
                raise EvaluationError("regular expression literals are not supported")
            if kind in ("BreakStatement", "ContinueStatement") and child.label is not None:
                raise EvaluationError("labelled jumps are not supported")
            if kind not in self._expressions and kind not in self._statements and kind not in self._auxiliary:
                raise EvaluationError(f"{kind} is not supported by the sandbox")

    def call(self, function: Any, this: Any, args: list[Any]) -> Any:
        """Invoke a sandbox function value."""
        if isinstance(function, NativeFunction):
            return function.impl(self, this, args)
        if not isinstance(function, JSFunction):
            raise throw_error("TypeError", f"{to_string(type_of(function))} is not a function")
        if self._depth >= self.max_call_depth:
            raise StepLimitExceeded(f"call depth exceeded {self.max_call_depth}")

        node = function.node
        env = Environment(function.env, function_scope=True)
        if not function.is_arrow:
            env.declare(_THIS, this)
            env.declare("arguments", JSArray(args))
            if node.type == "FunctionExpression" and function.name:
                env.declare(function.name, function)
        self._bind_params(node.params, args, env)

        self._depth += 1
        try:
            if node.body.type != "BlockStatement":
                return self._expression(node.body, env)
            self._hoist(node.body.body, env)
            try:
                for statement in node.body.body:
                    self._statement(statement, env)
            except _ReturnSignal as signal:
                return signal.value
            return UNDEFINED
        finally:
            self._depth -= 1

    # -- plumbing -------------------------------------------------------------

    def _run(self, handler: Callable[[Node, Environment], Any], node: Node, env: Optional[Environment]) -> Any:
        self._steps = 0
        self._depth = 0
        try:
            return handler(node, env or self.global_env)
        except (_BreakSignal, _ContinueSignal, _ReturnSignal):
            raise EvaluationError("control flow escaped the evaluated code")
        except RecursionError:
            raise StepLimitExceeded("recursion limit reached")

    def _tick(self) -> None:
        self._steps += 1
        if self._steps > self.max_steps:
            raise StepLimitExceeded(f"evaluation exceeded {self.max_steps} steps")

    def _expression(self, node: Node, env: Environment) -> Any:
        self._tick()
        handler = self._expressions.get(node.type)
        if handler is None:
            raise EvaluationError(f"{node.type} is not supported by the sandbox")
        return handler(node, env)

    def _statement(self, node: Node, env: Environment) -> None:
        self._tick()
        handler = self._statements.get(node.type)
        if handler is None:
            raise EvaluationError(f"{node.type} is not supported by the sandbox")
        handler(node, env)

    def _hoist(self, statements: list[Node], env: Environment) -> None:
        for statement in statements:
            if statement.type == "FunctionDeclaration":
                env.var_scope().declare(statement.id.name, self.make_function(statement, env))

    def _bind_params(self, params: list[Node], args: list[Any], env: Environment) -> None:
        for index, param in enumerate(params):
            value = args[index] if index < len(args) else UNDEFINED
            if param.type == "Identifier":
                env.declare(param.name, value)
            elif param.type == "AssignmentPattern" and param.left.type == "Identifier":
                if value is UNDEFINED:
                    value = self._expression(param.right, env)
                env.declare(param.left.name, value)
            elif param.type == "RestElement" and param.argument.type == "Identifier":
                env.declare(param.argument.name, JSArray(args[index:]))
            else:
                raise EvaluationError(f"{param.type} parameters are not supported")

    # -- expressions ----------------------------------------------------------

    def _literal(self, node: Node, env: Environment) -> Any:
        if getattr(node, "regex", None) is not None:
            raise EvaluationError("regular expression literals are not supported")
        return to_js_value(node.value)

    def _identifier(self, node: Node, env: Environment) -> Any:
        return env.lookup(node.name)

    def _this(self, node: Node, env: Environment) -> Any:
        owner = env.find(_THIS)
        return owner.vars[_THIS] if owner is not None else UNDEFINED

    def _array(self, node: Node, env: Environment) -> JSArray:
        elements: list[Any] = []
        for element in node.elements:
            if element is None:
                elements.append(UNDEFINED)
            elif element.type == "SpreadElement":
                spread = self._expression(element.argument, env)
                if not isinstance(spread, JSArray):
                    raise EvaluationError("spreading non-arrays is not supported")
                elements.extend(spread.elements)
            else:
                elements.append(self._expression(element, env))
        return JSArray(elements)

    def _object(self, node: Node, env: Environment) -> JSObject:
        result = JSObject()
        for prop in node.properties:
            if prop.type != "Property" or prop.kind != "init":
                raise EvaluationError("only plain object properties are supported")
            key_node = prop.key
            if getattr(prop, "computed", False):
                key = to_property_key(self._expression(key_node, env))
            elif key_node.type == "Identifier":
                key = key_node.name
            else:
                key = to_property_key(self._literal(key_node, env))
            result.put(key, self._expression(prop.value, env))
        return result

    def _function(self, node: Node, env: Environment) -> JSFunction:
        if getattr(node, "generator", False) or getattr(node, "isAsync", False):
            raise EvaluationError("generator and async functions are not supported")
        return self.make_function(node, env)

    def _unary(self, node: Node, env: Environment) -> Any:
        operator = node.operator
        if operator == "typeof":
            argument = node.argument
            if argument.type == "Identifier" and not env.has(argument.name):
                return "undefined"
            return type_of(self._expression(argument, env))
        if operator == "delete":
            return self._delete(node.argument, env)
        value = self._expression(node.argument, env)
        if operator == "-":
            return -to_number(value)
        if operator == "+":
            return to_number(value)
        if operator == "!":
            return not to_boolean(value)
        if operator == "~":
            return float(to_int32(~to_int32(value)))
        if operator == "void":
            return UNDEFINED
        raise EvaluationError(f"unary operator {operator} is not supported")

    def _delete(self, target: Node, env: Environment) -> bool:
        if target.type != "MemberExpression":
            return True
        obj = self._expression(target.object, env)
        if isinstance(obj, JSObject):
            return obj.delete(self._member_key(target, env))
        return True

    def _update(self, node: Node, env: Environment) -> float:
        old = to_number(self._read_target(node.argument, env))
        new = old + 1 if node.operator == "++" else old - 1
        self._write_target(node.argument, new, env)
        return new if node.prefix else old

    def _binary(self, node: Node, env: Environment) -> Any:
        left = self._expression(node.left, env)
        right = self._expression(node.right, env)
        return binary_operation(node.operator, left, right)

    def _logical(self, node: Node, env: Environment) -> Any:
        left = self._expression(node.left, env)
        if node.operator == "&&":
            return self._expression(node.right, env) if to_boolean(left) else left
        if node.operator == "||":
            return left if to_boolean(left) else self._expression(node.right, env)
        if node.operator == "??":
            return self._expression(node.right, env) if left is UNDEFINED or left is None else left
        raise EvaluationError(f"logical operator {node.operator} is not supported")

    def _conditional(self, node: Node, env: Environment) -> Any:
        if to_boolean(self._expression(node.test, env)):
            return self._expression(node.consequent, env)
        return self._expression(node.alternate, env)

    def _assignment(self, node: Node, env: Environment) -> Any:
        operator = node.operator
        if operator == "=":
            value = self._expression(node.right, env)
        elif operator in ("&&=", "||=", "??="):
            current = self._read_target(node.left, env)
            keep = {
                "&&=": not to_boolean(current),
                "||=": to_boolean(current),
                "??=": current is not UNDEFINED and current is not None,
            }[operator]
            if keep:
                return current
            value = self._expression(node.right, env)
        else:
            current = self._read_target(node.left, env)
            value = binary_operation(operator[:-1], current, self._expression(node.right, env))
        self._write_target(node.left, value, env)
        return value

    def _read_target(self, target: Node, env: Environment) -> Any:
        if target.type == "Identifier":
            return env.lookup(target.name)
        if target.type == "MemberExpression":
            return self._member(target, env)
        raise EvaluationError(f"cannot assign to {target.type}")

    def _write_target(self, target: Node, value: Any, env: Environment) -> None:
        if target.type == "Identifier":
            env.assign(target.name, value)
        elif target.type == "MemberExpression":
            obj = self._expression(target.object, env)
            put_property(obj, self._member_key(target, env), value)
        else:
            raise EvaluationError(f"cannot assign to {target.type}")

    def _sequence(self, node: Node, env: Environment) -> Any:
        value = UNDEFINED
        for expression in node.expressions:
            value = self._expression(expression, env)
        return value

    def _member_key(self, node: Node, env: Environment) -> str:
        if getattr(node, "computed", False):
            return to_property_key(self._expression(node.property, env))
        return node.property.name

    def _member(self, node: Node, env: Environment) -> Any:
        obj = self._expression(node.object, env)
        return get_property(obj, self._member_key(node, env))

    def _call_expression(self, node: Node, env: Environment) -> Any:
        callee = node.callee
        if callee.type == "MemberExpression":
            this = self._expression(callee.object, env)
            function = get_property(this, self._member_key(callee, env))
        else:
            this = UNDEFINED
            function = self._expression(callee, env)
        args: list[Any] = []
        for argument in node.arguments:
            if argument.type == "SpreadElement":
                spread = self._expression(argument.argument, env)
                if not isinstance(spread, JSArray):
                    raise EvaluationError("spreading non-arrays is not supported")
                args.extend(spread.elements)
            else:
                args.append(self._expression(argument, env))
        if not is_callable(function):
            raise throw_error("TypeError", f"{to_string(type_of(function))} is not a function")
        return self.call(function, this, args)

    def _template(self, node: Node, env: Environment) -> str:
        parts: list[str] = []
        for index, quasi in enumerate(node.quasis):
            value = quasi.value
            cooked = value.get("cooked") if isinstance(value, dict) else getattr(value, "cooked", None)
            if cooked is None:
                raise EvaluationError("template with invalid escape sequence")
            parts.append(cooked)
            if index < len(node.expressions):
                parts.append(to_string(self._expression(node.expressions[index], env)))
        return "".join(parts)

    # -- statements -----------------------------------------------------------

    def _expression_statement(self, node: Node, env: Environment) -> None:
        self._expression(node.expression, env)

    def _variable_declaration(self, node: Node, env: Environment) -> None:
        target = env.var_scope() if node.kind == "var" else env
        for declarator in node.declarations:
            self._declarator(declarator, env, target)

    def _declarator(self, node: Node, env: Environment, target: Optional[Environment] = None) -> None:
        if node.id.type != "Identifier":
            raise EvaluationError("destructuring declarations are not supported")
        target = target or env.var_scope()
        name = node.id.name
        if node.init is not None:
            target.declare(name, self._expression(node.init, env))
        elif name not in target.vars:
            target.declare(name, UNDEFINED)

    def _function_declaration(self, node: Node, env: Environment) -> None:
        env.var_scope().declare(node.id.name, self.make_function(node, env))

    def _block(self, node: Node, env: Environment) -> None:
        inner = Environment(env)
        self._hoist(node.body, inner)
        for statement in node.body:
            self._statement(statement, inner)

    def _empty(self, node: Node, env: Environment) -> None:
        return None

    def _if(self, node: Node, env: Environment) -> None:
        if to_boolean(self._expression(node.test, env)):
            self._statement(node.consequent, env)
        elif node.alternate is not None:
            self._statement(node.alternate, env)

    def _return(self, node: Node, env: Environment) -> None:
        value = UNDEFINED if node.argument is None else self._expression(node.argument, env)
        raise _ReturnSignal(value)

    def _loop_body(self, body: Node, env: Environment) -> bool:
        """Run one iteration; return False when the loop should stop."""
        try:
            self._statement(body, env)
        except _BreakSignal:
            return False
        except _ContinueSignal:
            pass
        return True

    def _for(self, node: Node, env: Environment) -> None:
        loop_env = Environment(env)
        if node.init is not None:
            if node.init.type == "VariableDeclaration":
                self._statement(node.init, loop_env)
            else:
                self._expression(node.init, loop_env)
        while node.test is None or to_boolean(self._expression(node.test, loop_env)):
            if not self._loop_body(node.body, loop_env):
                break
            if node.update is not None:
                self._expression(node.update, loop_env)

    def _while(self, node: Node, env: Environment) -> None:
        while to_boolean(self._expression(node.test, env)):
            if not self._loop_body(node.body, env):
                break

    def _do_while(self, node: Node, env: Environment) -> None:
        while True:
            if not self._loop_body(node.body, env):
                break
            if not to_boolean(self._expression(node.test, env)):
                break

    def _break(self, node: Node, env: Environment) -> None:
        if node.label is not None:
            raise EvaluationError("labelled break is not supported")
        raise _BreakSignal()

    def _continue(self, node: Node, env: Environment) -> None:
        if node.label is not None:
            raise EvaluationError("labelled continue is not supported")
        raise _ContinueSignal()

    def _switch(self, node: Node, env: Environment) -> None:
        value = self._expression(node.discriminant, env)
        cases = node.cases
        start = None
        for index, case in enumerate(cases):
            if case.test is not None and strict_equals(value, self._expression(case.test, env)):
                start = index
                break
        if start is None:
            start = next((i for i, case in enumerate(cases) if case.test is None), None)
        if start is None:
            return
        inner = Environment(env)
        try:
            for case in cases[start:]:
                for statement in case.consequent:
                    self._statement(statement, inner)
        except _BreakSignal:
            pass

    def _throw(self, node: Node, env: Environment) -> None:
        raise JSException(self._expression(node.argument, env))

    def _try(self, node: Node, env: Environment) -> None:
        try:
            self._statement(node.block, env)
        except JSException as exc:
            if node.handler is None:
                raise
            catch_env = Environment(env)
            param = node.handler.param
            if param is not None:
                if param.type != "Identifier":
                    raise EvaluationError("destructuring catch parameters are not supported")
                catch_env.declare(param.name, exc.value)
            self._statement(node.handler.body, catch_env)
        finally:
            if node.finalizer is not None:
                self._statement(node.finalizer, env)
