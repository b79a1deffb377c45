"""Factories for JSONL file loggers."""

from __future__ import annotations

__all__ = [
    "ensure_secure_log_directory",
    "setup_jsonl_logger",
]

import logging
from pathlib import Path

from credproxy.utils.file_helpers import set_secure_permissions
from credproxy.utils.logging.iso_formatter import ISO8601Formatter


def ensure_secure_log_directory(log_file: Path) -> None:
    """Create the parent directory of a log file, owner-only (0o700).

    Raises:
        OSError: If the directory cannot be created.
    """
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise OSError(f"Cannot create log directory {log_file.parent}: {e}") from e
    set_secure_permissions(log_file.parent, is_directory=True)


def setup_jsonl_logger(
    logger_name: str,
    log_file: Path,
    log_level: int = logging.INFO,
) -> logging.Logger:
    """Configure a non-propagating logger that appends JSONL to one file.

    Re-running for the same logger name replaces its handlers, so a logger
    never writes to two files. The file is owner read/write only (0o600)
    because decision records identify credentials and applications.

    Args:
        logger_name: Logger name (e.g., "credproxy.audit.decisions").
        log_file: Destination file.
        log_level: Minimum level written.

    Returns:
        The configured logger.

    Raises:
        OSError: If the directory or file cannot be created.
    """
    ensure_secure_log_directory(log_file)

    logger = logging.getLogger(logger_name)
    logger.setLevel(log_level)
    logger.propagate = False
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()

    handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    handler.setLevel(log_level)
    handler.setFormatter(ISO8601Formatter())
    logger.addHandler(handler)
    set_secure_permissions(log_file)
    return logger
