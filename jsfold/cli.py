"""CLI interface for jsfold."""

import logging
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from jsfold import __version__, debug
from jsfold.config import RULE_NAMES, Config
from jsfold.core.analyzer import describe_bindings
from jsfold.core.parser import parse_file
from jsfold.debug import close_debug_logger, debug_log, setup_console_logging, setup_debug_logger
from jsfold.errors import DeobfuscationError
from jsfold.pipeline import process_directory, process_file
from jsfold.rules import default_rules

console = Console()

SUMMARY_COUNTERS = (
    ("literals_inlined", "Inlined"),
    ("binary_folded", "Folded"),
    ("calls_evaluated", "Calls"),
    ("wrappers_inlined", "Wrappers"),
    ("loops_unflattened", "Loops"),
)

RULE_HELP = "Disable a rule (repeatable). " + "; ".join(f"{rule.name}: {rule.description}" for rule in default_rules())


@click.group()
@click.version_option(version=__version__)
def main():
    """jsfold - JavaScript deobfuscation by constant folding and unflattening."""
    pass


@main.command()
@click.argument("input_path", type=click.Path(exists=True, path_type=Path))
@click.option("-o", "--output", "output_path", type=click.Path(path_type=Path), help="Output file/directory path")
@click.option("--beautify", is_flag=True, help="Pretty print the output")
@click.option("--no-decode", is_flag=True, help="Keep \\uXXXX / \\xXX escapes as generated")
@click.option("--skip-rule", "skip_rules", multiple=True, type=click.Choice(RULE_NAMES), help=RULE_HELP)
@click.option("--max-steps", type=int, help="Node visits allowed per sandbox evaluation")
@click.option("--debug", "debug_enabled", is_flag=True, help="Enable debug logging to file")
@click.option("--debug-file", type=click.Path(path_type=Path), help="Debug log file path (default: jsfold_debug_TIMESTAMP.log)")
@click.option("-v", "--verbose", is_flag=True, help="Show rule activity in the terminal")
def deobfuscate(
    input_path: Path,
    output_path: Optional[Path],
    beautify: bool,
    no_decode: bool,
    skip_rules: tuple[str, ...],
    max_steps: Optional[int],
    debug_enabled: bool,
    debug_file: Optional[Path],
    verbose: bool,
):
    """Deobfuscate JavaScript code.

    INPUT_PATH can be a JavaScript file or directory containing JS files.
    Output goes to dist/<name> unless -o is given.
    """
    # Setup debug logger if requested
    if debug_enabled:
        setup_debug_logger(debug_file)
        console.print(f"[yellow]Debug logging enabled: {debug.debug_log_file}[/yellow]")
    if verbose:
        setup_console_logging(logging.DEBUG)

    # Only override .env values if CLI args are explicitly provided
    config_kwargs = {}
    if beautify:
        config_kwargs["beautify"] = True
    if no_decode:
        config_kwargs["decode_escapes"] = False
    if skip_rules:
        config_kwargs["disabled_rules"] = list(skip_rules)
    if max_steps is not None:
        config_kwargs["max_eval_steps"] = max_steps

    try:
        config = Config(**config_kwargs)
    except ValidationError as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        raise SystemExit(1)

    debug_log("info", "Configuration loaded", config.model_dump(mode="json"))

    try:
        if input_path.is_file():
            results = [process_file(input_path, config, output_path)]
        else:
            results = process_directory(input_path, config, output_path)
    except (DeobfuscationError, OSError) as e:
        console.print(f"[red]Error: {e}[/red]")
        debug_log("error", "Processing failed", {"file": str(input_path), "error": str(e)})
        raise SystemExit(1)

    # Print summary
    table = Table(title="Processing Summary")
    table.add_column("File")
    for _, title in SUMMARY_COUNTERS:
        table.add_column(title, justify="right")
    table.add_column("Status")

    for r in results:
        status = "✓" if "error" not in r else "✗"
        table.add_row(
            r.get("file", "unknown"),
            *(str(r.get(key, 0)) for key, _ in SUMMARY_COUNTERS),
            status,
        )

    console.print(table)

    debug_log("info", "Processing complete", {"results": results})

    if debug_enabled:
        console.print(f"\n[yellow]Debug log saved to: {debug.debug_log_file}[/yellow]")
        close_debug_logger()

    if any("error" in r for r in results):
        raise SystemExit(1)


@main.command()
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def analyze(input_path: Path):
    """Analyze JavaScript file and show its scopes and bindings."""
    try:
        parse_result = parse_file(input_path)
    except DeobfuscationError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise SystemExit(1)

    rows = describe_bindings(parse_result.analysis)
    console.print(f"[blue]File:[/blue] {input_path}")
    console.print(f"[blue]Total scopes:[/blue] {len(parse_result.scopes)}")
    console.print(f"[blue]Total bindings:[/blue] {len(rows)}")

    table = Table(title="Bindings")
    table.add_column("Scope", justify="right")
    table.add_column("Name")
    table.add_column("Kind")
    table.add_column("References", justify="right")
    table.add_column("Constant")
    for row in rows:
        table.add_row(
            f"{row['scope']} ({row['scope_kind']})",
            row["name"],
            row["kind"],
            str(row["references"]),
            "yes" if row["constant"] else "no",
        )
    console.print(table)


if __name__ == "__main__":
    main()
