"""Core AST functionality: parsing, scope analysis, traversal and code generation."""

from jsfold.core.analyzer import Binding, Scope, ScopeAnalysis, analyze_scopes
from jsfold.core.parser import ParseResult, parse_javascript
from jsfold.core.generator import decode_escapes, generate_code
from jsfold.core.traverse import NodePath, Traversal

__all__ = [
    "analyze_scopes",
    "parse_javascript",
    "generate_code",
    "decode_escapes",
    "Binding",
    "NodePath",
    "ParseResult",
    "Scope",
    "ScopeAnalysis",
    "Traversal",
]
