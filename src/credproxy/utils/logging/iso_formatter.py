"""JSONL formatter shared by the audit trail and the system log file."""

from __future__ import annotations

__all__ = ["ISO8601Formatter"]

import json
import logging
from datetime import UTC, datetime


class ISO8601Formatter(logging.Formatter):
    """One JSON object per record, led by "time" (UTC, millisecond precision) and "level".

    Dict messages are merged into the object as-is. Plain strings become
    {"message": ...}; a string that already holds a JSON object is parsed
    so pre-serialized events are not double-encoded.

    Example line:
        {"time": "2025-01-15T12:00:00.123Z", "level": "INFO", "event": "policy_decision", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=UTC).isoformat(timespec="milliseconds")
        payload = self._payload(record)
        return json.dumps(
            {"time": timestamp.replace("+00:00", "Z"), "level": record.levelname, **payload},
            default=str,
        )

    @staticmethod
    def _payload(record: logging.LogRecord) -> dict:
        msg = record.msg
        if isinstance(msg, dict):
            return msg
        text = record.getMessage()
        if text.startswith("{"):
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError:
                parsed = None
            if isinstance(parsed, dict):
                return parsed
        return {"message": text}
