"""Pytest configuration and fixtures."""

from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from jsfold.config import Config
from jsfold.core.generator import generate_code
from jsfold.core.nodes import is_node
from jsfold.core.parser import parse_javascript, parse_program
from jsfold.pipeline import build_sandbox
from jsfold.rules import RuleChain, RuleContext
from jsfold.sandbox.values import to_js_value

_IGNORED_FIELDS = {"loc", "range", "raw"}


def ast_shape(value: Any) -> Any:
    """Comparable form of a tree: node types and values, no positions or raw text."""
    if isinstance(value, list):
        return [ast_shape(item) for item in value]
    if is_node(value):
        fields = {
            key: ast_shape(item)
            for key, item in vars(value).items()
            if key not in _IGNORED_FIELDS
        }
        if value.type == "Literal":
            fields["value"] = to_js_value(value.value)
        return value.type, sorted(fields.items())
    return value


def same_program(actual: str, expected: str) -> bool:
    """Whether two sources parse to the same tree."""
    return ast_shape(parse_program(actual)) == ast_shape(parse_program(expected))


@pytest.fixture
def fixtures_dir() -> Path:
    """Return path to test fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def obfuscated_sample(fixtures_dir: Path) -> str:
    """Return contents of obfuscated sample file."""
    return (fixtures_dir / "obfuscated_sample.js").read_text(encoding="utf-8")


@pytest.fixture
def config() -> Config:
    """Default configuration, unaffected by .env files."""
    return Config(_env_file=None)


@pytest.fixture
def assert_same_program() -> Callable[[str, str], None]:
    """Assert that generated code matches the expected source structurally."""

    def check(actual: str, expected: str) -> None:
        assert same_program(actual, expected), f"\n--- got ---\n{actual}\n--- expected ---\n{expected}"

    return check


@pytest.fixture
def apply_rules(config: Config) -> Callable[..., tuple[str, RuleContext]]:
    """Run the given rules over a source string; return the new source and the context."""

    def run(source: str, *rules, run_config: Optional[Config] = None) -> tuple[str, RuleContext]:
        active = run_config or config
        parse_result = parse_javascript(source)
        context = RuleContext(sandbox=build_sandbox(active), analysis=parse_result.analysis, config=active)
        RuleChain(list(rules)).run(context)
        return generate_code(parse_result.program), context

    return run


@pytest.fixture
def simple_code() -> str:
    """Return simple JavaScript code for testing."""
    return """
var a = 1;
var b = 2;
function add(x, y) {
    return x + y;
}
var result = add(a, b);
"""


@pytest.fixture
def nested_scope_code() -> str:
    """Return code with nested scopes for testing."""
    return """
var outer = "value";

function process(data) {
    var temp = data.split("");
    for (let i = 0; i < temp.length; i++) {
        const ch = temp[i];
    }
    return function transform(item) {
        var result = item.toUpperCase();
        return result;
    };
}

try {
    process(outer);
} catch (err) {
    outer = err;
}
"""
