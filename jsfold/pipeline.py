"""End-to-end deobfuscation: text to tree, rules, and back to text."""

import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from rich.console import Console
from tqdm import tqdm

from jsfold.config import Config
from jsfold.core.generator import decode_escapes, format_code, generate_code, save_output
from jsfold.core.parser import parse_javascript
from jsfold.debug import debug_log
from jsfold.rules import RuleChain, RuleContext, default_rules
from jsfold.sandbox.environment import Sandbox
from jsfold.sandbox.purity import PurityGate

console = Console()
logger = logging.getLogger(__name__)


@dataclass
class DeobfuscationResult:
    """Rewritten source plus counters describing what the rules did."""
    code: str
    stats: Counter = field(default_factory=Counter)


def build_sandbox(config: Config) -> Sandbox:
    """A fresh sandbox for one run."""
    gate = PurityGate(config.nondeterministic_markers, config.preserve_raw_markers)
    return Sandbox(gate, max_steps=config.max_eval_steps, max_call_depth=config.max_call_depth)


def deobfuscate_source(source_code: str, config: Optional[Config] = None) -> DeobfuscationResult:
    """Deobfuscate JavaScript source text.

    Args:
        source_code: Obfuscated JavaScript
        config: Configuration, defaults to ``Config()``

    Returns:
        DeobfuscationResult with the rewritten code

    Raises:
        ParseError: the source is not valid JavaScript
        UnsupportedOperatorError: literal operands under an operator the folder cannot handle
    """
    config = config or Config()
    parse_result = parse_javascript(source_code)
    context = RuleContext(
        sandbox=build_sandbox(config),
        analysis=parse_result.analysis,
        config=config,
    )
    RuleChain(default_rules()).run(context)

    code = generate_code(parse_result.program)
    if config.decode_escapes:
        code = decode_escapes(code)
    if config.beautify:
        code = format_code(code, config.indent_size)

    context.stats["functions_in_sandbox"] = context.sandbox.registered_count
    return DeobfuscationResult(code=code, stats=context.stats)


def default_output_path(file_path: Path, config: Config) -> Path:
    return config.output_dir / file_path.name


def process_file(
    file_path: Path,
    config: Config,
    output_path: Optional[Path] = None,
) -> dict:
    """Process a single JavaScript file.

    Args:
        file_path: Path to JavaScript file
        config: Configuration
        output_path: Optional output path, defaults to ``<output_dir>/<file name>``

    Returns:
        Processing statistics
    """
    debug_log("info", f"Starting processing file: {file_path}")
    started = time.perf_counter()

    source_code = file_path.read_text(encoding="utf-8")
    result = deobfuscate_source(source_code, config)

    target = output_path or default_output_path(file_path, config)
    save_output(result.code, target)

    stats = {
        "file": str(file_path),
        "output": str(target),
        "input_chars": len(source_code),
        "output_chars": len(result.code),
        "seconds": round(time.perf_counter() - started, 3),
        **dict(result.stats),
    }
    debug_log("info", f"Finished processing file: {file_path}", stats)
    return stats


def process_directory(
    dir_path: Path,
    config: Config,
    output_dir: Optional[Path] = None,
) -> list[dict]:
    """Process all JavaScript files in a directory.

    Args:
        dir_path: Path to directory
        config: Configuration
        output_dir: Optional output directory, defaults to ``config.output_dir``

    Returns:
        List of processing statistics for each file
    """
    js_files = sorted(
        f for f in dir_path.rglob("*.js")
        # Skip node_modules and minified files
        if "node_modules" not in f.parts and ".min." not in f.name
    )
    console.print(f"[blue]Found {len(js_files)} JavaScript files in {dir_path}[/blue]")

    debug_log("info", f"Processing directory: {dir_path}", {
        "js_files_count": len(js_files),
        "js_files": [str(f) for f in js_files[:10]],  # First 10 files
    })

    target_dir = output_dir or config.output_dir
    results = []
    for js_file in tqdm(js_files, desc="Deobfuscating", unit="file", disable=not js_files):
        out_path = target_dir / js_file.relative_to(dir_path)
        try:
            results.append(process_file(js_file, config, out_path))
        except Exception as e:
            console.print(f"[red]Error processing {js_file}: {e}[/red]")
            logger.debug("Failed on %s", js_file, exc_info=True)
            results.append({"file": str(js_file), "error": str(e)})

    return results
