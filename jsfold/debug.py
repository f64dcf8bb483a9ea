"""Debug log file and structured debug messages."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler

# Debug logger
debug_logger: Optional[logging.Logger] = None
debug_log_file: Optional[Path] = None


def setup_debug_logger(log_path: Optional[Path] = None) -> logging.Logger:
    """Setup debug logger for detailed logging.

    The file handler is attached to the ``jsfold`` logger, so messages from
    every module end up in the same file as ``debug_log`` payloads.
    """
    global debug_logger, debug_log_file

    if log_path is None:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_path = Path(f"jsfold_debug_{timestamp}.log")

    debug_log_file = log_path

    package_logger = logging.getLogger("jsfold")
    package_logger.setLevel(logging.DEBUG)

    # Clear existing file handlers
    package_logger.handlers = [h for h in package_logger.handlers if not isinstance(h, logging.FileHandler)]

    # File handler
    fh = logging.FileHandler(log_path, encoding='utf-8')
    fh.setLevel(logging.DEBUG)

    # Detailed format
    formatter = logging.Formatter(
        '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    fh.setFormatter(formatter)
    package_logger.addHandler(fh)

    debug_logger = logging.getLogger("jsfold.debug")
    return debug_logger


def setup_console_logging(level: int = logging.INFO) -> None:
    """Mirror ``jsfold`` log records to the terminal through rich."""
    package_logger = logging.getLogger("jsfold")
    if any(isinstance(h, RichHandler) for h in package_logger.handlers):
        return
    handler = RichHandler(level=level, show_path=False, markup=False)
    package_logger.addHandler(handler)
    if package_logger.level == logging.NOTSET or package_logger.level > level:
        package_logger.setLevel(level)


def debug_log(level: str, message: str, data: dict = None):
    """Log debug message with optional structured data."""
    if debug_logger is None:
        return

    log_func = getattr(debug_logger, level.lower(), debug_logger.info)

    if data:
        data_str = json.dumps(data, ensure_ascii=False, indent=2, default=str)
        log_func(f"{message}\n{data_str}")
    else:
        log_func(message)


def close_debug_logger() -> None:
    """Detach and close the debug file handler."""
    global debug_logger, debug_log_file
    package_logger = logging.getLogger("jsfold")
    for handler in list(package_logger.handlers):
        if isinstance(handler, logging.FileHandler):
            package_logger.removeHandler(handler)
            handler.close()
    debug_logger = None
    debug_log_file = None
