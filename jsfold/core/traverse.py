"""Mutable node paths and the visitor traversal the rewrite rules run in.

A ``NodePath`` records where a node sits: its parent path, the field of the
parent holding it and whether that field is a list. Positions inside lists
are found by identity on every mutation, so paths stay valid while siblings
are inserted or removed.
"""

import logging
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from esprima import nodes
from esprima.nodes import Node

from jsfold.core.nodes import child_keys, is_node, pattern_names

if TYPE_CHECKING:
    from jsfold.core.analyzer import Binding, Scope, ScopeAnalysis

logger = logging.getLogger(__name__)

Handler = Callable[["NodePath"], None]

# How often one slot may be re-visited after replacements before the
# traversal moves on.
MAX_REQUEUES = 50


class NodePath:
    """Position of a node in the tree plus the mutations allowed on it.

    ``scope`` is the scope the node is evaluated in. For nodes that create a
    scope (functions, blocks, loops, catch clauses) their own scope is
    available from ``hub.scope_of(node)``.
    """

    def __init__(
        self,
        node: Node,
        parent_path: Optional["NodePath"] = None,
        key: Optional[str] = None,
        listed: bool = False,
        scope: Optional["Scope"] = None,
        hub: Optional["ScopeAnalysis"] = None,
    ):
        self.node = node
        self.parent_path = parent_path
        self.key = key
        self.listed = listed
        self.scope = scope
        self.hub = hub
        self.removed = False

    def __repr__(self) -> str:
        return f"NodePath({self.node.type}, key={self.key!r})"

    @property
    def parent(self) -> Optional[Node]:
        return self.parent_path.node if self.parent_path is not None else None

    @property
    def container(self):
        """The list or parent node holding this node."""
        if self.parent_path is None:
            return None
        if self.listed:
            return getattr(self.parent_path.node, self.key)
        return self.parent_path.node

    def _index(self) -> int:
        for index, item in enumerate(self.container):
            if item is self.node:
                return index
        return -1

    def _holds_node(self) -> bool:
        if self.parent_path is None:
            return True
        if self.listed:
            return self._index() >= 0
        return getattr(self.parent_path.node, self.key, None) is self.node

    def is_attached(self) -> bool:
        """Whether the node is still reachable from the root through this path."""
        if self.removed:
            return False
        path: Optional[NodePath] = self
        while path is not None and path.parent_path is not None:
            if not path._holds_node():
                return False
            path = path.parent_path
        return True

    def child(self, key: str, node: Node, listed: bool = False, scope: Optional["Scope"] = None) -> "NodePath":
        return NodePath(node, self, key, listed, scope or self.scope, self.hub)

    def to_string(self) -> str:
        """Source text of the node."""
        from jsfold.core.generator import generate_code

        return generate_code(self.node)

    def get_binding(self, name: str) -> Optional["Binding"]:
        return self.scope.get_binding(name) if self.scope is not None else None

    # -- mutations ------------------------------------------------------------

    def _check_attached(self, action: str) -> None:
        if not self.is_attached():
            raise RuntimeError(f"cannot {action} a detached {self.node.type}")

    def replace_with(self, replacement: Node) -> None:
        """Put ``replacement`` where this node was; the path now points at it."""
        self._check_attached("replace")
        if self.parent_path is None:
            raise RuntimeError("cannot replace the root node")
        parent = self.parent_path.node
        if self.listed:
            self.container[self._index()] = replacement
        else:
            setattr(parent, self.key, replacement)
            if parent.type == "Property" and self.key == "value" and getattr(parent, "shorthand", False):
                parent.shorthand = False
        self.node = replacement
        if self.hub is not None:
            self.hub.register_subtree(self)

    def replace_with_multiple(self, replacements: list[Node]) -> None:
        """Splice several statements in place of this one.

        In a list the new nodes are spliced in and this path is retired;
        in a single-node slot they are wrapped in a block.
        """
        self._check_attached("replace")
        if not self.listed:
            self.replace_with(nodes.BlockStatement(list(replacements)))
            return
        container = self.container
        index = self._index()
        container[index:index + 1] = list(replacements)
        self.removed = True
        if self.hub is not None:
            for replacement in replacements:
                self.hub.register_subtree(self.parent_path.child(self.key, replacement, listed=True))

    def remove(self) -> None:
        """Detach the node from the tree.

        Removing the last declarator of a declaration removes the declaration
        too; a slot that cannot be empty receives an empty statement.
        """
        self._check_attached("remove")
        parent_path = self.parent_path
        if parent_path is None:
            raise RuntimeError("cannot remove the root node")
        parent = parent_path.node

        if self.node.type == "VariableDeclarator" and self.scope is not None:
            for name in pattern_names(self.node.id):
                binding = self.scope.get_binding(name)
                if binding is not None and binding.path.node is self.node:
                    binding.scope.remove_binding(name)

        if self.listed:
            del self.container[self._index()]
            self.removed = True
            if parent.type == "VariableDeclaration" and not parent.declarations:
                parent_path.remove()
            return

        if parent.type == "ForStatement" and self.key in ("init", "test", "update"):
            setattr(parent, self.key, None)
        elif self.key in ("alternate", "finalizer", "handler") or (parent.type == "ReturnStatement" and self.key == "argument"):
            setattr(parent, self.key, None)
        elif self.node.type.endswith("Statement") or self.node.type.endswith("Declaration"):
            setattr(parent, self.key, nodes.EmptyStatement())
        else:
            raise RuntimeError(f"cannot remove {self.node.type} from {parent.type}.{self.key}")
        self.removed = True


class Traversal:
    """Depth-first visitor run with Babel-like enter/exit semantics.

    Handlers for a node type run in registration order. When a handler
    replaces the node, the remaining handlers are skipped and the new node is
    visited from scratch, so one rule can fold what another produced.
    """

    def __init__(self, analysis: "ScopeAnalysis"):
        self.analysis = analysis
        self._enter: dict[str, list[Handler]] = {}
        self._exit: dict[str, list[Handler]] = {}
        self.visited = 0

    def on_enter(self, node_types: Iterable[str], handler: Handler) -> None:
        for node_type in node_types:
            self._enter.setdefault(node_type, []).append(handler)

    def on_exit(self, node_types: Iterable[str], handler: Handler) -> None:
        for node_type in node_types:
            self._exit.setdefault(node_type, []).append(handler)

    def run(self) -> None:
        root = NodePath(self.analysis.program, scope=self.analysis.root_scope, hub=self.analysis)
        self._visit(root)

    def _run_handlers(self, handlers: list[Handler], path: NodePath, node: Node) -> bool:
        """Run handlers until one of them changes the node; report whether one did."""
        for handler in handlers:
            handler(path)
            if path.removed or path.node is not node:
                return True
        return False

    def _visit(self, path: NodePath) -> None:
        for _ in range(MAX_REQUEUES):
            node = path.node
            self.visited += 1
            if self._run_handlers(self._enter.get(node.type, ()), path, node):
                if path.removed:
                    return
                continue
            self._visit_children(path)
            if not path.is_attached():
                return
            if self._run_handlers(self._exit.get(node.type, ()), path, node):
                if path.removed:
                    return
                continue
            return
        logger.debug("Giving up re-visiting %s after %d replacements", path.node.type, MAX_REQUEUES)

    def _visit_children(self, path: NodePath) -> None:
        node = path.node
        inner_scope = self.analysis.scope_of(node) or path.scope
        for key in child_keys(node):
            value = getattr(node, key, None)
            scope = self._child_scope(node, key, path.scope, inner_scope)
            if isinstance(value, list):
                index = 0
                while index < len(value):
                    item = value[index]
                    if not is_node(item):
                        index += 1
                        continue
                    before = len(value)
                    self._visit(path.child(key, item, listed=True, scope=scope))
                    if getattr(node, key, None) is not value:
                        break
                    index += 1 + len(value) - before
            elif is_node(value):
                self._visit(path.child(key, value, scope=scope))
            if path.node is not node or not path.is_attached():
                return

    @staticmethod
    def _child_scope(node: Node, key: str, outer: "Scope", inner: "Scope") -> "Scope":
        # A declared function's name lives in the enclosing scope.
        if node.type == "FunctionDeclaration" and key == "id":
            return outer
        return inner
