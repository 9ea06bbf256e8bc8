"""
Logging configuration for Ticker Viewer.

Console output (optionally coloured) and an optional rotating log file. When the
TUI owns the terminal, run with console=False and a log file instead.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class ColoredFormatter(logging.Formatter):
    """Formatter with ANSI colours on the level name."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
        "RESET": "\033[0m",
    }

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.COLORS['RESET']}"
        result = super().format(record)
        # Other handlers share the record
        record.levelname = levelname
        return result


def setup_logging(
    level: Optional[str] = None,
    log_file: Optional[str] = None,
    console: bool = True,
    color: Optional[bool] = None,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
) -> logging.Logger:
    """
    Configure the ticker_viewer logger.

    Args:
        level: Log level name; defaults to $TICKER_VIEWER_LOG_LEVEL or INFO
        log_file: Path to a rotating log file (None = no file logging)
        console: Log to stderr
        color: Colour console output; defaults to stderr being a TTY
        max_bytes: Log file size before rotation
        backup_count: Rotated files to keep

    Returns:
        The configured "ticker_viewer" logger
    """
    level_name = (level or os.getenv("TICKER_VIEWER_LOG_LEVEL", "INFO")).upper()
    logger = logging.getLogger("ticker_viewer")
    logger.setLevel(getattr(logging, level_name, logging.INFO))
    logger.handlers.clear()
    logger.propagate = False

    if console:
        handler = logging.StreamHandler(sys.stderr)
        use_color = sys.stderr.isatty() if color is None else color
        formatter_cls = ColoredFormatter if use_color else logging.Formatter
        handler.setFormatter(formatter_cls(DEFAULT_FORMAT))
        logger.addHandler(handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        file_handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
        logger.addHandler(file_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger
