"""Code generation, escape decoding and output formatting."""

import logging
import re
from pathlib import Path

import escodegen
import jsbeautifier
from esprima.nodes import Node
from rich.console import Console

console = Console()
logger = logging.getLogger(__name__)

_ESCAPE_RUN = re.compile(
    r"\\\\"
    r"|\\u(d[89ab][0-9a-f]{2})\\u(d[c-f][0-9a-f]{2})"
    r"|\\u([0-9a-f]{4})"
    r"|\\x([0-9a-f]{2})",
    re.IGNORECASE,
)

# Characters that change meaning when written bare inside a string,
# template or regular expression literal.
_KEEP_ESCAPED = set("'\"`\\$/.*+?()[]{}|^")
_LINE_TERMINATORS = {"\n", "\r", "\u2028", "\u2029"}


def generate_code(node: Node) -> str:
    """Print an esprima tree (or any subtree) as JavaScript source."""
    return escodegen.generate(node)


def _is_safe(char: str) -> bool:
    if char in _KEEP_ESCAPED or char in _LINE_TERMINATORS:
        return False
    return char.isprintable() or char == " "


def _decode_match(match: re.Match) -> str:
    text = match.group(0)
    if text == "\\\\":
        return text
    high, low, unit, byte = match.groups()
    if high is not None:
        code = 0x10000 + ((int(high, 16) - 0xD800) << 10) + (int(low, 16) - 0xDC00)
    else:
        code = int(unit if unit is not None else byte, 16)
    if 0xD800 <= code <= 0xDFFF:
        return text
    char = chr(code)
    return char if _is_safe(char) else text


def decode_escapes(code: str) -> str:
    """Replace ``\\uXXXX`` and ``\\xXX`` escapes with the characters they denote.

    Escaped backslashes are skipped as a unit so ``\\\\u0041`` stays as
    written. Quotes, backslashes, line terminators, control characters and
    regular expression metacharacters remain escaped.
    """
    return _ESCAPE_RUN.sub(_decode_match, code)


def format_code(code: str, indent_size: int = 2) -> str:
    """Pretty print JavaScript source with jsbeautifier."""
    options = jsbeautifier.default_options()
    options.indent_size = indent_size
    return jsbeautifier.beautify(code, options)


def save_output(
    code: str,
    output_path: Path,
    create_dirs: bool = True,
) -> None:
    """Save code to file.

    Args:
        code: Source code to save
        output_path: Path to save to
        create_dirs: Whether to create parent directories
    """
    if create_dirs:
        output_path.parent.mkdir(parents=True, exist_ok=True)

    output_path.write_text(code, encoding="utf-8")
    logger.debug("Wrote %d characters to %s", len(code), output_path)
    console.print(f"[green]Saved output to: {output_path}[/green]")
