"""Logging setup.

Every module logs through the loguru ``logger`` re-exported here. Call
``setup_logging`` once at startup to replace loguru's default stderr sink.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional, Union

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level:<8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | "
    "{name}:{function}:{line} - {message}"
)


def _file_handler(path: Path, *, level: str, retention: str) -> dict:
    return {
        "sink": path,
        "level": level,
        "format": FILE_FORMAT,
        "rotation": "10 MB",
        "retention": retention,
        "encoding": "utf-8",
    }


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Union[str, Path]] = None,
) -> None:
    """Configure console and optional file sinks."""
    level = level.upper()
    handlers: list[dict] = [
        {
            "sink": sys.stderr,
            "level": level,
            "format": CONSOLE_FORMAT,
            "colorize": True,
        }
    ]

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        error_log_file = log_file.with_name(f"{log_file.stem}_error{log_file.suffix}")
        handlers.append(_file_handler(log_file, level=level, retention="30 days"))
        handlers.append(_file_handler(error_log_file, level="ERROR", retention="90 days"))

    logger.configure(handlers=handlers)


__all__ = ["setup_logging", "logger"]
