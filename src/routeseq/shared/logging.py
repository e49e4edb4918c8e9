from __future__ import annotations

import sys

from loguru import logger

_FORMAT = (
    "<green>{time:HH:mm:ss}</green> <level>{level: <7}</level> "
    "<cyan>{extra[op]}</cyan> {message}"
)


def setup_logging(level: str = "INFO") -> None:
    """Route loguru output to a single stderr sink at ``level``."""
    logger.remove()
    logger.configure(extra={"op": "-"})
    logger.add(sys.stderr, level=level.upper(), format=_FORMAT, backtrace=False)
