"""
Request Context and Configuration State for Logging.

The request id lives in a ContextVar so that every log line emitted
while handling one HTTP request carries the same id, including lines
from the quota store, rate limiter and providers.

Environment Variables:
    - READTEXT_MS_LOG_LEVEL: Override log level (1-4 or name)
    - READTEXT_MS_LOG_DIR: Directory for the JSONL log file
    - READTEXT_MS_JSONL_FILE: JSONL filename
    - READTEXT_MS_LOG_ROTATE_BYTES: Max log file size
    - READTEXT_MS_LOG_ROTATE_BACKUP: Number of backup files
"""
from __future__ import annotations

import os
from contextvars import ContextVar
from typing import Any, Dict

from .levels import LogLevel

# "-" outside of a request
_request_id: ContextVar[str] = ContextVar("request_id", default="-")

_configured: bool = False
_current_level: LogLevel = LogLevel.NORMAL


def get_request_id() -> str:
    """Get current request ID from context ("-" if not set)."""
    return _request_id.get()


def set_request_id(rid: str) -> None:
    """Set request ID in context for log correlation."""
    _request_id.set(rid)


def get_level() -> LogLevel:
    return _current_level


def set_level(level: LogLevel) -> None:
    global _current_level
    _current_level = level


def is_configured() -> bool:
    return _configured


def set_configured(value: bool) -> None:
    global _configured
    _configured = value


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
    Read logging configuration from the settings file and environment.

    Priority (highest first):
        1. Environment variables (READTEXT_MS_LOG_LEVEL, ...)
        2. `logging` section of the settings YAML
        3. Defaults

    Returns:
        Dictionary with resolved logging configuration.
    """
    from readtext_ms.core.config import ConfigValidationError, load_settings

    cfg: Dict[str, Any] = {}

    settings_path = os.getenv("READTEXT_MS_SETTINGS", "config/settings.yaml")
    try:
        settings = load_settings(settings_path)
        cfg.update(settings.raw.get("logging", {}) or {})
    except (OSError, ConfigValidationError):
        # Unreadable settings fall back to defaults; config errors surface later
        pass

    if os.getenv("READTEXT_MS_LOG_LEVEL"):
        cfg["level"] = os.environ["READTEXT_MS_LOG_LEVEL"]
    if os.getenv("READTEXT_MS_LOG_DIR"):
        cfg["log_dir"] = os.environ["READTEXT_MS_LOG_DIR"]
    if os.getenv("READTEXT_MS_JSONL_FILE"):
        cfg["jsonl_file"] = os.environ["READTEXT_MS_JSONL_FILE"]

    rotate_bytes = _env_int("READTEXT_MS_LOG_ROTATE_BYTES")
    if rotate_bytes is not None:
        cfg["rotate_max_bytes"] = rotate_bytes
    rotate_backup = _env_int("READTEXT_MS_LOG_ROTATE_BACKUP")
    if rotate_backup is not None:
        cfg["rotate_backup_count"] = rotate_backup

    return cfg
