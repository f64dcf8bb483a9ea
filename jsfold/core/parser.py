"""JavaScript AST parsing using esprima."""

from dataclasses import dataclass
from pathlib import Path

import esprima
from esprima.error_handler import Error as EsprimaError
from esprima.nodes import Node

from jsfold.core.analyzer import Binding, Scope, ScopeAnalysis, analyze_scopes
from jsfold.errors import ParseError


@dataclass
class ParseResult:
    """Result of parsing JavaScript code."""
    source_code: str
    lines: list[str]
    program: Node
    analysis: ScopeAnalysis

    @property
    def root_scope(self) -> Scope:
        return self.analysis.root_scope

    @property
    def scopes(self) -> list[Scope]:
        return self.analysis.scopes

    @property
    def all_bindings(self) -> list[Binding]:
        return self.analysis.bindings


def parse_program(source_code: str) -> Node:
    """Parse script source into an esprima ``Program`` node.

    Raises:
        ParseError: with the position esprima reports
    """
    try:
        return esprima.parseScript(source_code, {"loc": True})
    except EsprimaError as e:
        raise ParseError(
            getattr(e, "description", None) or str(e),
            line=getattr(e, "lineNumber", 0) or 0,
            column=getattr(e, "column", 0) or 0,
        ) from e


def parse_javascript(source_code: str) -> ParseResult:
    """Parse JavaScript code and crawl its scopes and bindings.

    Args:
        source_code: The JavaScript source code to parse

    Returns:
        ParseResult holding the mutable tree and its scope analysis
    """
    program = parse_program(source_code)
    return ParseResult(
        source_code=source_code,
        lines=source_code.splitlines(),
        program=program,
        analysis=analyze_scopes(program),
    )


def parse_file(path: Path) -> ParseResult:
    """Read and parse a JavaScript file."""
    return parse_javascript(Path(path).read_text(encoding="utf-8"))
