"""
Log Formatters for JSON and Console Output.

    JsonlFormatter: one JSON object per line, for the rotating log file.
    ColoredConsoleFormatter: human-readable colored lines for the terminal.

Output Examples:
    JSONL (file):
        {"ts":"2026-01-15T14:30:05+00:00","level":2,"tag":"INFO","message":"synth_ok","request_id":"abc123","extra":{"service":"google"}}

    Console (colored):
        14:30:05 [ INFO  ] (abc123) synth_ok service=google chars=42 0.412s
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict

from .colors import Colors, colorize, get_tag_color


class JsonlFormatter(logging.Formatter):
    """
    Format log records as JSON Lines for file output.

    Output Format:
        {
            "ts": "2026-01-15T14:30:05+00:00",   # ISO timestamp with timezone
            "level": 2,                          # Numeric level (1-4)
            "tag": "INFO",                       # Log tag
            "message": "synth_ok",               # Log message
            "request_id": "abc123",              # Request correlation ID
            "event": "quota",                    # Optional event type
            "seconds": 0.5,                      # Optional timing
            "extra": {"key": "value"}            # Optional extra fields
        }
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

        return json.dumps(payload, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """
    Format log records with ANSI colors for console output.

    Output Format:
        HH:MM:SS [ TAG   ] (rid) message key=value 0.123s
    """

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tag = getattr(record, "tag", record.levelname)
        rid = getattr(record, "request_id", "-")
        msg = record.getMessage()

        ts_str = colorize(ts, Colors.DIM)
        tag_str = colorize(f"[{tag:^7}]", get_tag_color(tag))
        rid_str = colorize(f"({rid})", Colors.DIM + Colors.CYAN) if rid != "-" else ""

        parts = [ts_str, tag_str]
        if rid_str:
            parts.append(rid_str)
        parts.append(msg)

        event = getattr(record, "event", None)
        if event:
            parts.append(colorize(f"event={event}", Colors.BLUE))

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            if seconds < 0.5:
                time_color = Colors.GREEN
            elif seconds < 3.0:
                time_color = Colors.YELLOW
            else:
                time_color = Colors.RED
            parts.append(colorize(f"{seconds:.3f}s", time_color))

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            for k, v in extra_data.items():
                parts.append(colorize(f"{k}={v}", self._field_color(k, v)))

        return " ".join(parts)

    def _field_color(self, key: str, value: Any) -> str:
        """
        Pick a color for an extra field.

        Quota fields turn yellow past 80% of their limit and red once
        exhausted; the serving provider is highlighted.
        """
        if key == "usage_ratio" and isinstance(value, (int, float)):
            if value < 0.8:
                return Colors.CYAN
            elif value < 1.0:
                return Colors.YELLOW
            else:
                return Colors.RED

        if key == "remaining" and isinstance(value, (int, float)):
            return Colors.RED if value <= 0 else Colors.CYAN

        if key in ("service", "provider"):
            return Colors.MAGENTA

        return Colors.DIM
