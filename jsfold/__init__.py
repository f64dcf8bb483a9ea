"""jsfold - JavaScript deobfuscation by constant folding, call evaluation and loop unflattening."""

__version__ = "0.1.0"
__author__ = "jsfold"

from jsfold.config import Config
from jsfold.core.parser import parse_javascript
from jsfold.core.generator import generate_code
from jsfold.pipeline import DeobfuscationResult, deobfuscate_source, process_directory, process_file

__all__ = [
    "__version__",
    "Config",
    "DeobfuscationResult",
    "deobfuscate_source",
    "parse_javascript",
    "generate_code",
    "process_file",
    "process_directory",
]
