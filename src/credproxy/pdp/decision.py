"""Enums for policy evaluation outcomes.

These values define the vocabulary shared by handlers, the evaluator and
callers:

- Outcome: what a single policy handler says about a request
- VerdictStatus: the aggregated verdict of a whole cascade
- EvaluationMode: LIVE (side effects) or SIMULATE (side-effect free)
- ApprovalDecision: what an external approver decided for a PENDING request
"""

from __future__ import annotations

__all__ = [
    "ApprovalDecision",
    "EvaluationMode",
    "Outcome",
    "VerdictStatus",
]

from enum import Enum


class Outcome(str, Enum):
    """Result of evaluating one policy against one request.

    Attributes:
        NOT_APPLICABLE: The policy's conditions do not pertain to the request.
        ALLOW: The policy does not object. The cascade continues.
        DENY: The policy vetoes the request. The cascade stops.
        PENDING: A human must decide. The cascade stops.
    """

    NOT_APPLICABLE = "not_applicable"
    ALLOW = "allow"
    DENY = "deny"
    PENDING = "pending"

    @property
    def is_terminal(self) -> bool:
        """True if this outcome stops the cascade."""
        return self in (Outcome.DENY, Outcome.PENDING)


class VerdictStatus(str, Enum):
    """Final verdict for an operation request.

    Inherits from str for easy serialization and comparison.
    """

    ALLOWED = "ALLOWED"
    DENIED = "DENIED"
    PENDING = "PENDING"

    @property
    def wire_value(self) -> str:
        """Status as used by audit logs and the dashboard (APPROVED/DENIED/PENDING)."""
        if self is VerdictStatus.ALLOWED:
            return "APPROVED"
        return self.value


class EvaluationMode(str, Enum):
    """How an evaluation treats side effects.

    Attributes:
        LIVE: Counter reservations are kept on ALLOWED, audit is emitted,
            approval tokens are issued.
        SIMULATE: Counters are read but never written, no audit, no tokens.
    """

    LIVE = "live"
    SIMULATE = "simulate"


class ApprovalDecision(str, Enum):
    """Decision attached to a pending approval by an external approver.

    EXPIRED is the synthetic decision a caller uses to turn a stale PENDING
    request into a DENY; the engine has no timer of its own.
    """

    APPROVED = "approved"
    DENIED = "denied"
    EXPIRED = "expired"
