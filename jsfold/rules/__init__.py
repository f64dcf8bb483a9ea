"""Rewrite rules for jsfold."""

from jsfold.rules.base import Rule, RuleChain, RuleContext
from jsfold.rules.binary import BinaryFolder
from jsfold.rules.calls import CallSimplifier
from jsfold.rules.declarations import DeclarationSimplifier
from jsfold.rules.loops import LoopUnflattener


def default_rules() -> list[Rule]:
    """The four rules in the order they run on each node."""
    return [DeclarationSimplifier(), BinaryFolder(), CallSimplifier(), LoopUnflattener()]


__all__ = [
    "Rule",
    "RuleChain",
    "RuleContext",
    "DeclarationSimplifier",
    "BinaryFolder",
    "CallSimplifier",
    "LoopUnflattener",
    "default_rules",
]
