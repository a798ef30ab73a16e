# gguf_insights/logging.py
"""
Logging setup using Loguru.

The library itself stays silent (``logger.disable("gguf_insights")`` at import
time); applications opt in through :func:`configure_logging`.
"""
from __future__ import annotations

import sys

from loguru import logger

PACKAGE = "gguf_insights"


def configure_logging(*, debug: bool = False, serialize: bool = False) -> None:
    """Install the stderr sink and enable gguf_insights log records.

    Args:
        debug: Enable verbose debug logging (parse timings, estimate breakdowns).
        serialize: Emit JSON lines instead of the human-readable format.
    """
    logger.remove()
    logger.enable(PACKAGE)
    level = "DEBUG" if debug else "INFO"
    fmt = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> "
        "| <level>{level: <8}</level> "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> "
        "- <level>{message}</level>"
    )
    logger.add(
        sys.stderr,
        level=level,
        format=fmt,
        serialize=serialize,
        backtrace=debug,
        diagnose=debug,
    )
