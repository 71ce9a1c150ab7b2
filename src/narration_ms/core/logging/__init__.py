"""
narration-ms Structured Logging.

    - Numeric log levels (1-4) for simple configuration
    - Colored console output
    - JSONL file output with rotation
    - Request ID correlation across coroutines

Log Levels:
    1 = MINIMAL  - startup, shutdown, failed requests
    2 = NORMAL   - request lifecycle, retries, analytics (default)
    3 = VERBOSE  - per-stage timing
    4 = DEBUG    - internal state

Configuration:
    export NARRATION_MS_LOG_LEVEL=3
    export NARRATION_MS_NO_COLOR=1

    In settings.yaml:
        logging:
          level: 2
          log_dir: logs
          jsonl_file: narration-ms.jsonl

Usage:
    from narration_ms.core.logging import get_logger, info, warn

    log = get_logger("narration-ms.mymodule")
    info(log, "request_started", chars=150, voice_id="21m00Tcm4TlvDq8ikWAM")
    warn(log, "retrying", attempt=1, delay_ms=1000)
    verbose(log, "stage", event="requesting", seconds=0.412)
"""
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from . import colors
from .colors import Colors, colorize, get_tag_color, supports_color
from .context import (
    get_level,
    get_level_name,
    get_log_config,
    get_request_id,
    is_configured,
    read_logging_config,
    set_configured,
    set_level,
    set_log_config,
    set_request_id,
)
from .formatters import ColoredConsoleFormatter, JsonlFormatter
from .levels import LEVEL_MAP, LEVEL_NAMES, LogLevel, coerce_level


def configure_logging(level: Optional[int | str | LogLevel] = None, force: bool = False) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level (1-4, level name, or LogLevel)
        force: Reconfigure even if already configured
    """
    if is_configured() and not force:
        return

    colors.USE_COLORS = supports_color()

    log_config = read_logging_config()
    set_log_config(log_config)

    current_level = coerce_level(level or log_config.get("level", LogLevel.NORMAL))
    set_level(current_level)
    python_level = LEVEL_MAP.get(current_level, logging.INFO)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG - 10)  # handlers filter
    root.handlers = []

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(python_level)
    console.setFormatter(ColoredConsoleFormatter())
    root.addHandler(console)

    log_dir = log_config.get("log_dir")
    if log_dir:
        jsonl_file = log_config.get("jsonl_file", "narration-ms.jsonl")
        max_bytes = int(log_config.get("rotate_max_bytes", 10 * 1024 * 1024))
        backup_count = int(log_config.get("rotate_backup_count", 5))

        Path(log_dir).mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            Path(log_dir) / str(jsonl_file),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
            delay=True,
        )
        file_handler.setLevel(logging.DEBUG - 10)
        file_handler.setFormatter(JsonlFormatter())
        root.addHandler(file_handler)

    set_configured(True)


def _log(
    logger: logging.Logger,
    level: int,
    tag: str,
    msg: str,
    numeric_level: int = 2,
    **fields: Any
) -> None:
    if numeric_level > get_level():
        return

    event = fields.pop("event", None)
    seconds = fields.pop("seconds", None)
    logger.log(
        level,
        msg,
        extra={
            "tag": tag,
            "request_id": get_request_id(),
            "event": event,
            "seconds": seconds,
            "extra_data": fields or None,
            "numeric_level": numeric_level,
        },
    )


def get_logger(name: str = "narration-ms") -> logging.Logger:
    """Get a logger, configuring logging on first use."""
    configure_logging()
    return logging.getLogger(name)


def info(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Level 2 (NORMAL)."""
    _log(logger, logging.INFO, "INFO", msg, numeric_level=2, **fields)


def warn(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Level 2 (NORMAL)."""
    _log(logger, logging.WARNING, "WARN", msg, numeric_level=2, **fields)


def error(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Level 1 (MINIMAL)."""
    _log(logger, logging.ERROR, "ERROR", msg, numeric_level=1, **fields)


def success(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Level 2 (NORMAL)."""
    _log(logger, logging.INFO, "SUCCESS", msg, numeric_level=2, **fields)


def fail(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Level 1 (MINIMAL)."""
    _log(logger, logging.ERROR, "FAIL", msg, numeric_level=1, **fields)


def verbose(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Level 3 (VERBOSE)."""
    _log(logger, logging.DEBUG, "INFO", msg, numeric_level=3, **fields)


def debug(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Level 4 (DEBUG)."""
    _log(logger, logging.DEBUG - 5, "DEBUG", msg, numeric_level=4, **fields)


__all__ = [
    "LogLevel",
    "LEVEL_MAP",
    "LEVEL_NAMES",
    "coerce_level",
    "Colors",
    "supports_color",
    "colorize",
    "get_tag_color",
    "get_request_id",
    "set_request_id",
    "get_level",
    "set_level",
    "get_level_name",
    "get_log_config",
    "set_log_config",
    "JsonlFormatter",
    "ColoredConsoleFormatter",
    "configure_logging",
    "get_logger",
    "info",
    "warn",
    "error",
    "success",
    "fail",
    "verbose",
    "debug",
]
