"""Pydantic model for decision audit events (audit/decisions.jsonl).

IMPORTANT: The 'time' field is Optional[str] = None because:
- Model instances are created WITHOUT timestamps (time=None)
- ISO8601Formatter adds the timestamp during log serialization
- Logged events ALWAYS have a 'time' field in ISO 8601 format

Request parameters are never logged verbatim; only their SHA-256 digest is
recorded so that two identical requests can be correlated. Approval tokens
are hashed for the same reason.
"""

from __future__ import annotations

__all__ = [
    "DecisionEvent",
    "TraceSummary",
]

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class TraceSummary(BaseModel):
    """One examined policy, as recorded in the audit trail."""

    policy_id: str
    scope: str
    outcome: str
    error: Literal["configuration"] | None = None

    model_config = ConfigDict(extra="forbid")


class DecisionEvent(BaseModel):
    """
    One LIVE evaluation (audit/decisions.jsonl).
    """

    time: str | None = Field(
        None,
        description="ISO 8601 timestamp, added by formatter during serialization",
    )

    event: Literal["policy_decision"] = "policy_decision"
    status: Literal["APPROVED", "DENIED", "PENDING"]
    matched_policy_id: str | None = None
    reason: str
    configuration_error: bool = False

    # --- request ---
    request_id: str
    credential_id: str
    application_id: str
    plugin_type: str | None = None
    operation: str
    resource: str | None = None
    parameters_hash: str
    source_ip: str | None = None
    request_time: str

    # --- approval ---
    approval_token_hash: str | None = None

    # --- cascade ---
    policies_evaluated: int = 0
    trace: list[TraceSummary] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")
