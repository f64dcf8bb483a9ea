"""Exception hierarchy for jsfold."""

from typing import Any


class DeobfuscationError(Exception):
    """Base class for all jsfold errors."""


class ParseError(DeobfuscationError):
    """Source text could not be parsed into an AST."""

    def __init__(self, message: str, line: int = 0, column: int = 0):
        super().__init__(message)
        self.line = line
        self.column = column


class UnsupportedOperatorError(DeobfuscationError):
    """A binary operator with literal operands that the folder cannot handle.

    Fatal for the run: it means the rule set is incomplete for the input.
    """

    def __init__(self, node_type: str, operator: str, source: str):
        super().__init__(f"unhandled operator({operator}) in {node_type}({source})!")
        self.node_type = node_type
        self.operator = operator
        self.source = source


class EvaluationError(DeobfuscationError):
    """The sandbox could not compute a value. Recoverable per node."""


class StepLimitExceeded(EvaluationError):
    """Evaluation ran past the configured step or call-depth limit."""


class JSException(EvaluationError):
    """A JavaScript-level exception raised by evaluated code."""

    def __init__(self, value: Any, message: str = ""):
        super().__init__(message or f"uncaught JavaScript exception: {value!r}")
        self.value = value


class UnsupportedValueError(DeobfuscationError):
    """A computed value has no AST literal representation."""
