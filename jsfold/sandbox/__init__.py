"""Sandboxed evaluation of JavaScript expressions."""

from jsfold.sandbox.environment import NO_VALUE, Sandbox
from jsfold.sandbox.interpreter import Interpreter
from jsfold.sandbox.purity import PurityGate

__all__ = ["NO_VALUE", "Sandbox", "Interpreter", "PurityGate"]
