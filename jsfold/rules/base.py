"""Base rewrite rule interface."""

from abc import ABC
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional

from jsfold.config import Config
from jsfold.core.analyzer import ScopeAnalysis
from jsfold.core.traverse import NodePath, Traversal
from jsfold.sandbox.environment import Sandbox


@dataclass
class RuleContext:
    """State shared by the rules during one run."""
    sandbox: Sandbox
    analysis: ScopeAnalysis
    config: Config = field(default_factory=Config)
    stats: Counter = field(default_factory=Counter)

    @property
    def gate(self):
        return self.sandbox.gate

    def record(self, event: str, count: int = 1) -> None:
        self.stats[event] += count


class Rule(ABC):
    """Abstract base class for rewrite rules.

    A rule names the node types it handles and overrides ``enter`` and/or
    ``exit``. Handlers mutate the tree through the path they receive and
    leave the node untouched when no legal rewrite exists.
    """

    name: str = "base_rule"
    description: str = "Base rule class"
    priority: int = 100  # Lower priority runs first
    node_types: tuple[str, ...] = ()

    def enter(self, path: NodePath, context: RuleContext) -> None:
        """Called before the node's children are visited."""

    def exit(self, path: NodePath, context: RuleContext) -> None:
        """Called after the node's children are visited."""

    def should_run(self, context: RuleContext) -> bool:
        """Determine if this rule should run.

        Args:
            context: Current run context

        Returns:
            True if the rule is not disabled in the configuration
        """
        return self.name not in context.config.disabled_rules

    def _overrides(self, method: str) -> bool:
        return getattr(type(self), method) is not getattr(Rule, method)


class RuleChain:
    """Manages a chain of rules applied in a single traversal."""

    def __init__(self, rules: Optional[list[Rule]] = None):
        self.rules: list[Rule] = []
        for rule in rules or []:
            self.add_rule(rule)

    def add_rule(self, rule: Rule) -> "RuleChain":
        """Add a rule to the chain.

        Args:
            rule: Rule to add

        Returns:
            Self for chaining
        """
        self.rules.append(rule)
        # Stable sort, so equal priorities keep registration order
        self.rules.sort(key=lambda r: r.priority)
        return self

    def run(self, context: RuleContext) -> RuleContext:
        """Traverse the analyzed program once with every enabled rule.

        Args:
            context: Run context holding the analysis and sandbox

        Returns:
            The same context, with stats filled in
        """
        traversal = Traversal(context.analysis)
        for rule in self.rules:
            if not rule.should_run(context):
                continue
            if rule._overrides("enter"):
                traversal.on_enter(rule.node_types, lambda path, r=rule: r.enter(path, context))
            if rule._overrides("exit"):
                traversal.on_exit(rule.node_types, lambda path, r=rule: r.exit(path, context))
        traversal.run()
        context.record("nodes_visited", traversal.visited)
        return context
