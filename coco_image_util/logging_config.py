"""
Logging configuration for the CoCo Disk Image Utility.

Diagnostics (short image reads, clamped byte counts, free-granule
mismatches) go to stderr through the package logger so they never mix
with listing output on stdout.
"""

import logging
import sys
from typing import TextIO

# Log levels for the application
QUIET = logging.WARNING
NORMAL = logging.INFO
VERBOSE = logging.DEBUG

logger = logging.getLogger('coco_image_util')


class ColorFormatter(logging.Formatter):
    """
    Formatter that colors records by level on a terminal.

    In non-verbose mode warnings and errors keep a 'WARNING:' / 'ERROR:'
    prefix while informational messages are printed bare.
    """

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m',
    }

    def __init__(self, fmt: str | None = None, use_colors: bool = True,
                 stream: TextIO | None = None, prefix_levels: bool = True):
        super().__init__(fmt)
        self.stream = stream if stream is not None else sys.stderr
        self.use_colors = use_colors and self._supports_color()
        self.prefix_levels = prefix_levels

    def _supports_color(self) -> bool:
        """Check if the output stream is a color-capable terminal."""
        if sys.platform == 'win32':
            import os
            try:
                return os.isatty(self.stream.fileno()) and 'TERM' in os.environ
            except (AttributeError, OSError, ValueError):
                return False
        isatty = getattr(self.stream, 'isatty', None)
        return bool(isatty and isatty())

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)

        if self.prefix_levels and record.levelno >= logging.WARNING:
            message = f"{record.levelname}: {message}"

        if self.use_colors and record.levelname in self.COLORS:
            return f"{self.COLORS[record.levelname]}{message}{self.COLORS['RESET']}"

        return message


def setup_logging(
    level: int = NORMAL,
    stream: TextIO | None = None,
    use_colors: bool = True,
    format_string: str | None = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Logging level (QUIET, NORMAL, or VERBOSE)
        stream: Output stream (defaults to stderr)
        use_colors: Whether to use colored output
        format_string: Custom format string (optional)
    """
    if stream is None:
        stream = sys.stderr

    verbose = level <= logging.DEBUG
    if format_string is None:
        # Verbose mode names the emitting module
        format_string = '%(levelname)s: %(name)s: %(message)s' if verbose else '%(message)s'

    logger.handlers.clear()

    handler = logging.StreamHandler(stream)
    handler.setFormatter(ColorFormatter(format_string, use_colors, stream,
                                        prefix_levels=not verbose))

    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False


def get_logger(name: str | None = None) -> logging.Logger:
    """
    Get a logger for a specific module.

    Args:
        name: Module name, either dotted (``coco_image_util.chain``) or
              bare (``chain``). Uses the package logger if not specified.

    Returns:
        Logger instance
    """
    if name is None:
        return logger
    if name.startswith(logger.name + '.'):
        name = name[len(logger.name) + 1:]
    return logger.getChild(name)


setup_logging()
