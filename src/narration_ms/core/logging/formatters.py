"""
Log Formatters for JSON and Console Output.

    JsonlFormatter: one JSON object per line, for the rotating log file.
    ColoredConsoleFormatter: human-readable line for the terminal.

Output Examples:
    JSONL (file):
        {"ts":"2026-01-15T14:30:05+00:00","level":2,"tag":"WARN","message":"retrying","request_id":"abc123","extra":{"attempt":1,"delay_ms":1000}}

    Console (colored):
        14:30:05 [ WARN  ] (abc123) retrying attempt=1 delay_ms=1000 cause=status 503

Field Colors:
    - seconds: green < 0.1s, yellow < 1.0s, red otherwise
    - attempt: cyan on the first retry, yellow after
    - status_code: green 2xx/3xx, yellow 4xx, red 5xx
    - efficiency_ratio: green < 1.0 (faster than real time), yellow otherwise
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict

from . import colors
from .colors import Colors, get_tag_color


def _paint(text: str, color: str) -> str:
    # Read the flag at call time so tests can toggle it
    if not colors.USE_COLORS:
        return text
    return f"{color}{text}{Colors.RESET}"


class JsonlFormatter(logging.Formatter):
    """
    Format log records as JSON Lines.

    Keys: ``ts``, ``level`` (numeric 1-4), ``tag``, ``message``,
    ``request_id`` and, when present, ``event``, ``seconds``, ``extra``.
    """

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).astimezone().isoformat()

        payload: Dict[str, Any] = {
            "ts": ts,
            "level": getattr(record, "numeric_level", 2),
            "tag": getattr(record, "tag", record.levelname),
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }

        event = getattr(record, "event", None)
        if event:
            payload["event"] = event

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            payload["seconds"] = seconds

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            payload["extra"] = extra_data

        # default=str keeps enums and exceptions in extra fields serializable
        return json.dumps(payload, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """
    Format log records for the terminal.

    Output Format:
        HH:MM:SS [ TAG   ] (rid) message event=... key=value 0.123s
    """

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tag = getattr(record, "tag", record.levelname)
        rid = getattr(record, "request_id", "-")

        parts = [
            _paint(ts, Colors.DIM),
            _paint(f"[{tag:^7}]", get_tag_color(tag)),
        ]
        if rid != "-":
            parts.append(_paint(f"({rid})", Colors.DIM + Colors.CYAN))
        parts.append(record.getMessage())

        event = getattr(record, "event", None)
        if event:
            parts.append(_paint(f"event={event}", Colors.BLUE))

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            if seconds < 0.1:
                time_color = Colors.GREEN
            elif seconds < 1.0:
                time_color = Colors.YELLOW
            else:
                time_color = Colors.RED
            parts.append(_paint(f"{seconds:.3f}s", time_color))

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            for k, v in extra_data.items():
                parts.append(_paint(f"{k}={v}", self._field_color(k, v)))

        return " ".join(parts)

    def _field_color(self, key: str, value: Any) -> str:
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            return Colors.DIM

        if key == "attempt":
            return Colors.CYAN if value <= 1 else Colors.YELLOW

        if key == "status_code":
            if value < 400:
                return Colors.GREEN
            if value < 500:
                return Colors.YELLOW
            return Colors.RED

        if key == "efficiency_ratio":
            return Colors.GREEN if value < 1.0 else Colors.YELLOW

        if key == "delay_ms":
            return Colors.MAGENTA

        return Colors.DIM
