"""Logging configuration for the proxy server.

This module provides centralized logging configuration using Loguru.
It logs to stderr and, when asked, to a rotating log file.
"""

import sys
from pathlib import Path

from loguru import logger

LOG_DIR = Path.home() / ".socks5-relay" / "logs"
DEFAULT_LOG_FILE = LOG_DIR / "relay.log"

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def configure_logging(level: str = "INFO", log_file: Path | None = None) -> None:
    """Replace the default Loguru handler with the proxy's sinks.

    Args:
        level: Minimum level for the stderr sink
        log_file: Optional file sink, rotated at 10 MB and kept for a week
    """
    logger.remove()

    logger.add(
        sys.stderr,
        format=CONSOLE_FORMAT,
        level=level.upper(),
        backtrace=True,
        diagnose=False,
    )

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            rotation="10 MB",
            retention="1 week",
            compression="zip",
            format=FILE_FORMAT,
            level="DEBUG",
            backtrace=True,
            diagnose=False,
            enqueue=True,
        )


__all__ = ["configure_logging", "DEFAULT_LOG_FILE", "LOG_DIR", "logger"]
