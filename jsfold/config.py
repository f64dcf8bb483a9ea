"""Configuration management for jsfold."""

from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from jsfold.sandbox.purity import DEFAULT_NONDETERMINISTIC_MARKERS, DEFAULT_PRESERVE_RAW_MARKERS

# Load .env from multiple locations
# 1. Current working directory
load_dotenv()
# 2. Project directory (where this package is installed)
_package_dir = Path(__file__).parent
load_dotenv(_package_dir.parent / ".env")
# 3. Home directory config
load_dotenv(Path.home() / ".config" / "jsfold" / ".env")

RULE_NAMES = ("declarations", "binary", "calls", "loops")


class Config(BaseSettings):
    """Configuration for jsfold."""

    # Output Settings
    output_dir: Path = Field(default=Path("dist"), description="Directory deobfuscated files are written to")
    decode_escapes: bool = Field(default=True, description="Decode \\uXXXX and \\xXX escapes in the output")
    beautify: bool = Field(default=False, description="Pretty print the output with jsbeautifier")
    indent_size: int = Field(default=2, ge=1, description="Indent width used when beautifying")

    # Sandbox Settings
    max_eval_steps: int = Field(default=100_000, ge=1, description="Node visits allowed per evaluation")
    max_call_depth: int = Field(default=200, ge=1, description="Nested calls allowed per evaluation")
    max_dispatch_steps: int = Field(default=10_000, ge=1, description="Case dispatches allowed per flattened loop")

    # Rule Settings
    disabled_rules: list[str] = Field(default_factory=list, description="Rules to skip")
    nondeterministic_markers: list[str] = Field(
        default_factory=lambda: list(DEFAULT_NONDETERMINISTIC_MARKERS),
        description="Text that makes an expression unsafe to evaluate",
    )
    preserve_raw_markers: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PRESERVE_RAW_MARKERS),
        description="Text that keeps an expression as written even if it evaluates",
    )

    model_config = {
        "env_prefix": "JSFOLD_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("disabled_rules", mode="before")
    @classmethod
    def split_rule_names(cls, v: Any) -> Any:
        """Accept a comma separated string as well as a list."""
        if isinstance(v, str):
            v = [name.strip() for name in v.split(",") if name.strip()]
        return v

    @field_validator("disabled_rules")
    @classmethod
    def check_rule_names(cls, v: list[str]) -> list[str]:
        unknown = sorted(set(v) - set(RULE_NAMES))
        if unknown:
            raise ValueError(f"unknown rule(s): {', '.join(unknown)}; expected {', '.join(RULE_NAMES)}")
        return v
