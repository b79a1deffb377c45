"""Logging helper utilities.

Provides generic utilities for telemetry logging:
- Event serialization (audit event model_dump with consistent options)
- Sanitization (log injection prevention)
- Hashing of sensitive identifiers and request parameters
"""

from __future__ import annotations

__all__ = [
    "hash_parameters",
    "hash_sensitive_id",
    "sanitize_for_logging",
    "serialize_audit_event",
]

import hashlib
import json
from typing import Any

from pydantic import BaseModel


# ============================================================================
# Event Serialization
# ============================================================================


def serialize_audit_event(event: BaseModel) -> dict[str, Any]:
    """Serialize a Pydantic event model for audit logging.

    Provides consistent serialization for all audit events:
    - Excludes the 'time' field (added by ISO8601Formatter at log time)
    - Excludes None values for cleaner logs
    - Uses JSON mode so enums and datetimes become plain strings

    Args:
        event: Pydantic model instance (e.g., DecisionEvent).

    Returns:
        dict: Serialized event data ready for logging.

    Example:
        >>> event = DecisionEvent(status="DENIED", operation="sign", ...)
        >>> serialize_audit_event(event)
        {"status": "DENIED", "operation": "sign", ...}
    """
    return event.model_dump(mode="json", exclude={"time"}, exclude_none=True)


# ============================================================================
# Sanitization
# ============================================================================


def sanitize_for_logging(value: Any) -> str:
    """Sanitize values for safe JSONL logging.

    Prevents log injection by escaping newlines and control characters.
    Operation names and resource paths are caller-controlled, so they must
    not be able to break the JSONL format or inject fake log entries.

    Args:
        value: Value to sanitize (e.g., operation name, resource path).

    Returns:
        str: Sanitized string safe for JSONL logging.

    Example:
        >>> sanitize_for_logging("/aws/secrets\\ninjected")
        '/aws/secrets\\\\ninjected'
    """
    if not isinstance(value, str):
        value = str(value)
    return value.replace("\n", "\\n").replace("\r", "\\r").replace("\t", "\\t")


# ============================================================================
# Sensitive Data Hashing
# ============================================================================


def hash_sensitive_id(value: str | None, prefix_length: int = 8) -> str:
    """Hash a sensitive ID for logging while preserving some identifiability.

    Creates a shortened hash that allows log correlation without exposing
    the full identifier (e.g., approval tokens, which grant access on resume).

    Args:
        value: The sensitive ID to hash.
        prefix_length: Number of hex characters to keep (default: 8).

    Returns:
        str: Hashed value in format "sha256:<prefix>".
    """
    if not value:
        return "sha256:empty"
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()
    return f"sha256:{digest[:prefix_length]}"


def hash_parameters(parameters: dict[str, Any]) -> str:
    """Hash operation parameters for the audit trail.

    Parameters may carry secrets-adjacent data (amounts, addresses, payloads),
    so only a stable digest is logged. Keys are sorted for determinism.

    Args:
        parameters: Operation parameters from the request.

    Returns:
        str: Digest in format "sha256:<hex>".
    """
    canonical = json.dumps(parameters, sort_keys=True, default=str, separators=(",", ":"))
    return "sha256:" + hashlib.sha256(canonical.encode("utf-8")).hexdigest()
