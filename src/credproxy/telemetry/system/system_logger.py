"""System logger for operational events.

Everything that is not a decision goes here: misconfigured policies, store
outages, failed audit writes, failed metadata lookups, approval lifecycle.
Messages are dicts with an "event" key so the file output stays queryable.

Destinations:
- stderr: INFO and above, one human-readable line per event
- <log_dir>/system.jsonl: WARNING and above, added by configure_system_logger_file()
"""

from __future__ import annotations

__all__ = [
    "ConsoleFormatter",
    "configure_system_logger_file",
    "get_system_logger",
    "reset_system_logger",
]

import logging
import sys
from pathlib import Path

from credproxy.constants import APP_NAME
from credproxy.utils.logging.iso_formatter import ISO8601Formatter
from credproxy.utils.logging.logger_setup import ensure_secure_log_directory

# Correlation fields appended to console lines when present
_CONSOLE_CONTEXT_FIELDS: tuple[str, ...] = ("policy_id", "request_id", "store")


class ConsoleFormatter(logging.Formatter):
    """Human-readable console lines: "LEVEL: message [policy_id=... request_id=...]"."""

    def format(self, record: logging.LogRecord) -> str:
        if not isinstance(record.msg, dict):
            return f"{record.levelname}: {record.getMessage()}"
        data = record.msg
        text = data.get("message") or data.get("event", "")
        context = " ".join(f"{k}={data[k]}" for k in _CONSOLE_CONTEXT_FIELDS if data.get(k))
        return f"{record.levelname}: {text} [{context}]" if context else f"{record.levelname}: {text}"


_system_logger: logging.Logger | None = None
_file_handler: logging.FileHandler | None = None
_file_path: Path | None = None


def get_system_logger() -> logging.Logger:
    """Return the process-wide system logger, creating it on first use.

    Example:
        >>> logger = get_system_logger()
        >>> logger.warning({"event": "policy_configuration_error", "policy_id": "p1"})
    """
    global _system_logger

    if _system_logger is not None:
        return _system_logger

    logger = logging.getLogger(f"{APP_NAME}.system")
    logger.setLevel(logging.INFO)
    logger.propagate = False
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.INFO)
    stderr_handler.setFormatter(ConsoleFormatter())
    logger.addHandler(stderr_handler)

    _system_logger = logger
    return logger


def configure_system_logger_file(log_path: Path) -> None:
    """Send WARNING+ system events to a JSONL file.

    Calling again with the same path is a no-op; a different path replaces
    the previous file handler.

    Args:
        log_path: Path to system.jsonl.

    Raises:
        OSError: If the log directory or file cannot be created.
    """
    global _file_handler, _file_path

    if _file_path == log_path and _file_handler is not None:
        return

    logger = get_system_logger()
    ensure_secure_log_directory(log_path)
    handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    handler.setLevel(logging.WARNING)
    handler.setFormatter(ISO8601Formatter())

    if _file_handler is not None:
        logger.removeHandler(_file_handler)
        _file_handler.close()
    logger.addHandler(handler)
    _file_handler, _file_path = handler, log_path


def reset_system_logger() -> None:
    """Close every handler and forget the singleton (used between tests)."""
    global _system_logger, _file_handler, _file_path

    if _system_logger is not None:
        for handler in _system_logger.handlers:
            handler.close()
        _system_logger.handlers.clear()
    _system_logger = None
    _file_handler = None
    _file_path = None
