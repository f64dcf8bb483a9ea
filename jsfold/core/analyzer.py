"""Scope and binding analysis for esprima trees.

The crawl runs in two passes. The first creates scopes and declares every
binding (``var`` and parameters in the enclosing function, ``let``/``const``
and function declarations in the enclosing block). The second resolves each
identifier to the binding it reads or writes. Subtrees inserted later by the
rewrite rules are crawled the same way through ``register_subtree``.
"""

import itertools
import logging
from dataclasses import dataclass, field
from typing import Iterator, Optional

from esprima.nodes import Node

from jsfold.core.nodes import FUNCTION_TYPES, child_keys, is_node, pattern_names
from jsfold.core.traverse import NodePath

logger = logging.getLogger(__name__)

BINDING_KINDS = ("var", "let", "const", "hoisted", "param", "local", "catch")

_BLOCK_SCOPES = {
    "BlockStatement": "block",
    "ForStatement": "for",
    "ForInStatement": "for",
    "ForOfStatement": "for",
    "SwitchStatement": "switch",
    "CatchClause": "catch",
}

# Identifier roles while crawling.
_READ, _WRITE, _DECLARE, _SKIP = "read", "write", "declare", "skip"
_PATTERN_TYPES = ("ArrayPattern", "ObjectPattern", "AssignmentPattern", "RestElement")


@dataclass(eq=False)
class Binding:
    """A declared name: where it is declared, read and written."""
    name: str
    kind: str
    path: NodePath = field(repr=False)
    scope: "Scope" = field(repr=False)
    _references: dict[int, NodePath] = field(default_factory=dict, repr=False)
    _violations: dict[int, NodePath] = field(default_factory=dict, repr=False)

    @property
    def references(self) -> list[NodePath]:
        """Read sites still attached to the tree."""
        return [path for path in self._references.values() if path.is_attached()]

    @property
    def constant_violations(self) -> list[NodePath]:
        """Write sites after the declaration still attached to the tree."""
        return [path for path in self._violations.values() if path.is_attached()]

    @property
    def constant(self) -> bool:
        return not self.constant_violations

    def add_reference(self, path: NodePath) -> None:
        self._references[id(path.node)] = path

    def add_violation(self, path: NodePath) -> None:
        self._violations[id(path.node)] = path


@dataclass(eq=False)
class Scope:
    """A lexical scope. ``uid`` 0 is the program scope."""
    uid: int
    kind: str
    node: Node = field(repr=False)
    parent: Optional["Scope"] = field(default=None, repr=False)
    bindings: dict[str, Binding] = field(default_factory=dict, repr=False)
    children: list["Scope"] = field(default_factory=list, repr=False)

    @property
    def is_program(self) -> bool:
        return self.uid == 0

    @property
    def is_function(self) -> bool:
        return self.kind in ("program", "function")

    def function_parent(self) -> "Scope":
        """Nearest enclosing function (or program) scope, self included."""
        scope = self
        while not scope.is_function:
            scope = scope.parent
        return scope

    def get_binding(self, name: str) -> Optional[Binding]:
        scope: Optional[Scope] = self
        while scope is not None:
            binding = scope.bindings.get(name)
            if binding is not None:
                return binding
            scope = scope.parent
        return None

    def remove_binding(self, name: str) -> None:
        self.bindings.pop(name, None)

    def walk(self) -> Iterator["Scope"]:
        yield self
        for child in self.children:
            yield from child.walk()


class ScopeAnalysis:
    """Scope tree of a program plus the indexes rules query while mutating it."""

    def __init__(self, program: Node):
        self.program = program
        self._uids = itertools.count()
        self._scopes: dict[int, tuple[Node, Scope]] = {}
        self._declarations: dict[int, Binding] = {}
        self._references: dict[int, tuple[Node, Binding]] = {}
        self.root_scope = self._new_scope("program", program, None)
        root = NodePath(program, scope=self.root_scope, hub=self)
        self._declare(root, self.root_scope)
        self._resolve(root, _READ)

    # -- queries --------------------------------------------------------------

    @property
    def scopes(self) -> list[Scope]:
        return list(self.root_scope.walk())

    @property
    def bindings(self) -> list[Binding]:
        return [binding for scope in self.scopes for binding in scope.bindings.values()]

    def scope_of(self, node: Node) -> Optional[Scope]:
        """Scope created by a node, if it creates one."""
        entry = self._scopes.get(id(node))
        if entry is not None and entry[0] is node:
            return entry[1]
        return None

    def binding_of_declaration(self, node: Node) -> Optional[Binding]:
        binding = self._declarations.get(id(node))
        if binding is not None and binding.path.node is node:
            return binding
        return None

    def reference_binding(self, identifier: Node) -> Optional[Binding]:
        """Binding an identifier node reads, if it is a resolved reference."""
        entry = self._references.get(id(identifier))
        if entry is not None and entry[0] is identifier:
            return entry[1]
        return None

    def register_subtree(self, path: NodePath) -> None:
        """Crawl a node inserted by a rewrite: declare, then resolve references."""
        self._declare(path, path.scope)
        self._resolve(path, _READ)

    # -- scope creation -------------------------------------------------------

    def _new_scope(self, kind: str, node: Node, parent: Optional[Scope]) -> Scope:
        scope = Scope(next(self._uids), kind, node, parent)
        if parent is not None:
            parent.children.append(scope)
        self._scopes[id(node)] = (node, scope)
        return scope

    def _scope_created_by(self, path: NodePath, outer: Scope) -> Optional[Scope]:
        node = path.node
        existing = self.scope_of(node)
        if existing is not None:
            return existing
        if node.type in FUNCTION_TYPES:
            return self._new_scope("function", node, outer)
        kind = _BLOCK_SCOPES.get(node.type)
        if kind is None:
            return None
        # A function body or catch body shares the scope of its owner.
        if node.type == "BlockStatement" and path.parent is not None:
            parent_type = path.parent.type
            if parent_type in FUNCTION_TYPES or parent_type == "CatchClause":
                return None
        return self._new_scope(kind, node, outer)

    def _children(self, path: NodePath, scope: Scope) -> Iterator[NodePath]:
        node = path.node
        inner = self.scope_of(node) or scope
        for key in child_keys(node):
            value = getattr(node, key, None)
            child_scope = scope if (node.type == "FunctionDeclaration" and key == "id") else inner
            if isinstance(value, list):
                for item in list(value):
                    if is_node(item):
                        yield path.child(key, item, listed=True, scope=child_scope)
            elif is_node(value):
                yield path.child(key, value, scope=child_scope)

    # -- pass 1: declarations -------------------------------------------------

    def _declare_name(self, scope: Scope, name: str, kind: str, path: NodePath) -> None:
        existing_for_node = self.binding_of_declaration(path.node)
        if existing_for_node is not None and existing_for_node.name == name:
            existing_for_node.path = path
            return
        binding = scope.bindings.get(name)
        if binding is not None:
            # Redeclaration; the later declaration writes the name again.
            binding.add_violation(path)
            return
        binding = Binding(name, kind, path, scope)
        scope.bindings[name] = binding
        self._declarations[id(path.node)] = binding

    def _declare(self, path: NodePath, scope: Scope) -> None:
        stack = [(path, scope)]
        while stack:
            current, outer = stack.pop()
            node = current.node
            own = self._scope_created_by(current, outer)

            if node.type == "VariableDeclaration":
                target = outer.function_parent() if node.kind == "var" else outer
                for_left = current.key == "left" and current.parent is not None \
                    and current.parent.type in ("ForInStatement", "ForOfStatement")
                for index, declarator in enumerate(node.declarations):
                    declarator_path = current.child("declarations", declarator, listed=True, scope=outer)
                    for name in pattern_names(declarator.id):
                        self._declare_name(target, name, node.kind, declarator_path)
                        if for_left:
                            target.bindings[name].add_violation(declarator_path)
            elif node.type == "FunctionDeclaration" and node.id is not None:
                self._declare_name(outer, node.id.name, "hoisted", current)
            elif node.type == "ClassDeclaration" and node.id is not None:
                self._declare_name(outer, node.id.name, "let", current)
            elif node.type == "CatchClause" and node.param is not None:
                param_path = current.child("param", node.param, scope=own)
                for name in pattern_names(node.param):
                    self._declare_name(own, name, "catch", param_path)

            if node.type in FUNCTION_TYPES:
                if node.type == "FunctionExpression" and node.id is not None:
                    self._declare_name(own, node.id.name, "local", current.child("id", node.id, scope=own))
                for param in node.params:
                    param_path = current.child("params", param, listed=True, scope=own)
                    for name in pattern_names(param):
                        self._declare_name(own, name, "param", param_path)

            stack.extend(reversed([(child, child.scope) for child in self._children(current, outer)]))

    # -- pass 2: references ---------------------------------------------------

    def _add_reference(self, path: NodePath, role: str) -> None:
        binding = path.scope.get_binding(path.node.name) if path.scope is not None else None
        if binding is None:
            return
        if role == _WRITE:
            binding.add_violation(path)
            return
        previous = self._references.get(id(path.node))
        if previous is not None and previous[0] is path.node and previous[1] is not binding:
            previous[1]._references.pop(id(path.node), None)
        binding.add_reference(path)
        self._references[id(path.node)] = (path.node, binding)

    @staticmethod
    def _child_role(node: Node, key: str, child: Node, role: str) -> str:
        kind = node.type
        if role in (_DECLARE, _WRITE):
            if kind == "AssignmentPattern":
                return _READ if key == "right" else role
            if kind == "Property":
                if key == "key":
                    return _READ if getattr(node, "computed", False) else _SKIP
                return role
            if kind == "MemberExpression":
                return _READ
            if kind in _PATTERN_TYPES or kind == "Identifier":
                return role
            return _READ

        if kind == "VariableDeclarator":
            return _DECLARE if key == "id" else _READ
        if kind in FUNCTION_TYPES:
            if key == "id":
                return _SKIP
            if key == "params":
                return _DECLARE
            return _READ
        if kind in ("ClassDeclaration", "ClassExpression") and key == "id":
            return _SKIP
        if kind == "CatchClause" and key == "param":
            return _DECLARE
        if kind == "AssignmentExpression" and key == "left":
            return _WRITE
        if kind == "UpdateExpression":
            return _WRITE
        if kind in ("ForInStatement", "ForOfStatement") and key == "left":
            return _READ if child.type == "VariableDeclaration" else _WRITE
        if kind == "MemberExpression" and key == "property":
            return _READ if getattr(node, "computed", False) else _SKIP
        if kind in ("Property", "MethodDefinition") and key == "key":
            return _READ if getattr(node, "computed", False) else _SKIP
        if kind in ("LabeledStatement", "BreakStatement", "ContinueStatement") and key == "label":
            return _SKIP
        if kind == "MetaProperty":
            return _SKIP
        return _READ

    def _resolve(self, path: NodePath, role: str) -> None:
        stack = [(path, role)]
        while stack:
            current, current_role = stack.pop()
            node = current.node
            if current_role == _SKIP:
                continue
            if node.type == "Identifier":
                if current_role in (_READ, _WRITE):
                    self._add_reference(current, current_role)
                continue
            children = [
                (child, self._child_role(node, child.key, child.node, current_role))
                for child in self._children(current, current.scope)
            ]
            stack.extend(reversed(children))


def analyze_scopes(program: Node) -> ScopeAnalysis:
    """Build the scope tree and binding indexes for a parsed program."""
    analysis = ScopeAnalysis(program)
    logger.debug(
        "Analyzed %d scopes with %d bindings",
        len(analysis.scopes),
        len(analysis.bindings),
    )
    return analysis


def describe_bindings(analysis: ScopeAnalysis) -> list[dict]:
    """Flat summary of every binding, for reporting."""
    rows = []
    for scope in analysis.scopes:
        for binding in scope.bindings.values():
            rows.append({
                "scope": scope.uid,
                "scope_kind": scope.kind,
                "name": binding.name,
                "kind": binding.kind,
                "references": len(binding.references),
                "constant": binding.constant,
            })
    return rows
