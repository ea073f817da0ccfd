"""
Logging configuration for Takeout Importer.

Provides a consistent loguru logger across all modules: a rotating file
sink for the full debug trail plus a console sink for the operator.
"""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

from loguru import logger


# Default log directory
LOG_DIR = Path('./logs')

LOG_FORMAT = '{time:YYYY-MM-DD HH:mm:ss} | {level:<8} | {name}:{function}:{line} | {message}'


def setup_logging(log_dir: Path | None = None, console_level: str = 'WARNING') -> Any:
    """Set up the loguru sinks.

    Args:
        log_dir: Directory for log files. Defaults to ./logs
        console_level: Minimum level echoed to stderr

    Returns:
        The configured loguru logger
    """
    if log_dir is None:
        log_dir = LOG_DIR

    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / 'takeout_importer.log'

    # Remove default handler and add file handler
    logger.remove()
    logger.add(
        log_path,
        rotation='5 MB',
        retention='30 days',
        compression='gz',
        format=LOG_FORMAT,
        level='DEBUG',
    )
    logger.add(
        sys.stderr,
        level=console_level,
        format='{level}: {message}',
    )
    return logger


__all__ = ['logger', 'setup_logging', 'LOG_DIR']
