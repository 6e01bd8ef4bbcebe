"""Loguru sink setup for the bridge process."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger  # type: ignore[import-untyped]


LOG_FORMAT = (
    '<green>{time:YYYY-MM-DD HH:mm:ss}</green> | '
    '<level>{level: <8}</level> | '
    '<cyan>{name}</cyan> - <level>{message}</level>'
)


def configure_logging(debug: bool = False, log_file: str | Path | None = None) -> None:
    """Replace loguru's default sink with the bridge's sinks.

    Args:
        debug: Log at DEBUG level instead of INFO.
        log_file: Optional path for an additional rotating file sink.
    """
    level = 'DEBUG' if debug else 'INFO'
    logger.remove()
    logger.add(sys.stderr, level=level, format=LOG_FORMAT)
    if log_file:
        logger.add(
            str(log_file),
            level=level,
            rotation='10 MB',
            retention=3,
            format=LOG_FORMAT,
            colorize=False,
        )
    logger.debug(f'Logging configured at {level}')
