"""Logging utilities and helpers.

This package provides logging infrastructure for credproxy:
- iso_formatter: ISO 8601 timestamp formatting for JSONL logs
- logger_setup: Factory functions for creating configured loggers
- logging_helpers: Serialization, sanitization and hashing utilities

Import directly from submodules to avoid circular imports:
    from credproxy.utils.logging.logger_setup import setup_jsonl_logger
"""

__all__: list[str] = []  # Direct submodule imports required (see docstring)
