"""
Request Context and Logging State.

The request id lives in a ContextVar so every coroutine serving a request
tags its log lines with the same id, even while other requests interleave
on the event loop. Level and configuration are process-wide.

Environment Variables:
    - NARRATION_MS_SETTINGS: settings file read for the ``logging`` section
    - NARRATION_MS_LOG_LEVEL: level override (1-4 or name)
    - NARRATION_MS_LOG_DIR: directory for the JSONL log file
    - NARRATION_MS_JSONL_FILE: JSONL filename
    - NARRATION_MS_LOG_ROTATE_BYTES / NARRATION_MS_LOG_ROTATE_BACKUP
"""
from __future__ import annotations

import os
from contextvars import ContextVar
from typing import Any, Dict

from .levels import LEVEL_NAMES, LogLevel

# "-" marks log lines emitted outside any request
_request_id: ContextVar[str] = ContextVar("request_id", default="-")

_configured: bool = False
_log_config: Dict[str, Any] = {}
_current_level: LogLevel = LogLevel.NORMAL


def get_request_id() -> str:
    """Return the request id bound to the current context, or "-"."""
    return _request_id.get()


def set_request_id(rid: str) -> None:
    """Bind a request id to the current context."""
    _request_id.set(rid)


def get_level() -> LogLevel:
    return _current_level


def set_level(level: LogLevel) -> None:
    global _current_level
    _current_level = level


def get_level_name() -> str:
    return LEVEL_NAMES.get(_current_level, "NORMAL")


def is_configured() -> bool:
    return _configured


def set_configured(value: bool) -> None:
    global _configured
    _configured = value


def get_log_config() -> Dict[str, Any]:
    return _log_config


def set_log_config(config: Dict[str, Any]) -> None:
    global _log_config
    _log_config = config


def _env_int(name: str) -> int | None:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def read_logging_config() -> Dict[str, Any]:
    """
    Resolve the logging configuration.

    Priority (highest first): environment variables, the ``logging``
    section of the settings file, built-in defaults.
    """
    cfg: Dict[str, Any] = {}

    settings_path = os.getenv("NARRATION_MS_SETTINGS", "config/settings.yaml")
    try:
        from narration_ms.core.config import load_settings
        settings = load_settings(settings_path)
        cfg.update(settings.raw.get("logging", {}) or {})
    except Exception:
        # No readable settings file: run on defaults and env overrides
        pass

    if os.getenv("NARRATION_MS_LOG_LEVEL"):
        cfg["level"] = os.environ["NARRATION_MS_LOG_LEVEL"]
    if os.getenv("NARRATION_MS_LOG_DIR"):
        cfg["log_dir"] = os.environ["NARRATION_MS_LOG_DIR"]
    if os.getenv("NARRATION_MS_JSONL_FILE"):
        cfg["jsonl_file"] = os.environ["NARRATION_MS_JSONL_FILE"]

    rotate_bytes = _env_int("NARRATION_MS_LOG_ROTATE_BYTES")
    if rotate_bytes is not None:
        cfg["rotate_max_bytes"] = rotate_bytes
    rotate_backup = _env_int("NARRATION_MS_LOG_ROTATE_BACKUP")
    if rotate_backup is not None:
        cfg["rotate_backup_count"] = rotate_backup

    return cfg
