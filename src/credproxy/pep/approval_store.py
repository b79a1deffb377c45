"""Store for PENDING evaluations awaiting a manual approval.

When a MANUAL_APPROVAL policy returns PENDING in LIVE mode, the evaluator
opens a ticket here and hands its token to the caller. An external approver
later resolves the ticket; the caller then re-invokes evaluation with the
token, the cascade runs again from the start and the MANUAL_APPROVAL policy
short-circuits to ALLOW or DENY.

Security considerations:
- Tokens are unguessable (secrets.token_urlsafe)
- A resolved ticket only applies to a request with the same fingerprint
  (credential, application, plugin type, operation, parameters)
- A ticket is consumed by the LIVE evaluation that used it (one-shot)
- In-memory store - tickets don't persist across restarts
- The store never expires tickets; expires_at is a hint for the caller,
  who expresses expiry by resolving with ApprovalDecision.EXPIRED
"""

from __future__ import annotations

__all__ = [
    "ApprovalTicket",
    "PendingApprovalStore",
]

import secrets
import threading
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from credproxy.constants import APPROVAL_TOKEN_BYTES, DEFAULT_APPROVAL_EXPIRATION_MINUTES
from credproxy.exceptions import ApprovalAlreadyResolvedError, UnknownApprovalTokenError
from credproxy.pdp.decision import ApprovalDecision
from credproxy.telemetry.system.system_logger import get_system_logger
from credproxy.utils.logging.logging_helpers import hash_sensitive_id

if TYPE_CHECKING:
    from credproxy.context.request import OperationRequest


@dataclass(frozen=True)
class ApprovalTicket:
    """A resumable PENDING evaluation.

    Attributes:
        token: Resumable token handed to the caller.
        policy_id: MANUAL_APPROVAL policy that asked for the approval.
        request_fingerprint: OperationRequest.fingerprint() of the parked request.
        request_id: Original request ID for audit trail.
        credential_id: Credential the request uses.
        operation: Operation awaiting approval.
        approvers: Approvers named by the policy (informational).
        created_at: When the ticket was opened.
        expires_at: When the caller should treat the ticket as expired.
        decision: Approver decision, None while pending.
        resolved_at: When the decision was recorded.
    """

    token: str
    policy_id: str
    request_fingerprint: str
    request_id: str
    credential_id: str
    operation: str
    approvers: tuple[str, ...]
    created_at: datetime
    expires_at: datetime
    decision: ApprovalDecision | None = None
    resolved_at: datetime | None = None

    @property
    def is_resolved(self) -> bool:
        return self.decision is not None

    def is_expired(self, now: datetime | None = None) -> bool:
        """True if the caller-facing expiry time has passed."""
        return (now or datetime.now(UTC)) >= self.expires_at


class PendingApprovalStore:
    """Thread-safe in-memory store of approval tickets.

    At most one unresolved ticket exists per (request fingerprint, policy);
    re-evaluating a still-pending request returns the same token.
    """

    def __init__(self, default_expiration_minutes: int = DEFAULT_APPROVAL_EXPIRATION_MINUTES) -> None:
        """Initialize the store.

        Args:
            default_expiration_minutes: Expiry hint for policies that do not
                set expirationMinutes.
        """
        self._default_expiration_minutes = default_expiration_minutes
        self._tickets: dict[str, ApprovalTicket] = {}
        self._open: dict[tuple[str, str], str] = {}
        self._lock = threading.Lock()

    def open(
        self,
        request: "OperationRequest",
        policy_id: str,
        *,
        expiration_minutes: int | None = None,
        approvers: tuple[str, ...] = (),
    ) -> ApprovalTicket:
        """Open (or reuse) a ticket for a PENDING request.

        Args:
            request: The parked request.
            policy_id: MANUAL_APPROVAL policy that returned PENDING.
            expiration_minutes: Expiry hint (store default when None).
            approvers: Approvers named by the policy.

        Returns:
            The open ticket for this request and policy.
        """
        fingerprint = request.fingerprint()
        key = (fingerprint, policy_id)
        minutes = expiration_minutes or self._default_expiration_minutes

        with self._lock:
            existing_token = self._open.get(key)
            if existing_token is not None:
                return self._tickets[existing_token]

            now = datetime.now(UTC)
            ticket = ApprovalTicket(
                token=secrets.token_urlsafe(APPROVAL_TOKEN_BYTES),
                policy_id=policy_id,
                request_fingerprint=fingerprint,
                request_id=request.request_id,
                credential_id=request.credential_id,
                operation=request.operation,
                approvers=tuple(approvers),
                created_at=now,
                expires_at=now + timedelta(minutes=minutes),
            )
            self._tickets[ticket.token] = ticket
            self._open[key] = ticket.token

        get_system_logger().info(
            {
                "event": "approval_requested",
                "message": f"Manual approval required for {request.operation}",
                "request_id": request.request_id,
                "policy_id": policy_id,
                "token": hash_sensitive_id(ticket.token),
            }
        )
        return ticket

    def resolve(self, token: str, decision: ApprovalDecision | str) -> ApprovalTicket:
        """Record an approver's decision.

        Args:
            token: Token from the PENDING result.
            decision: APPROVED, DENIED or EXPIRED.

        Returns:
            The resolved ticket.

        Raises:
            UnknownApprovalTokenError: If no ticket exists for the token.
            ApprovalAlreadyResolvedError: If the ticket already has a decision.
            ValueError: If decision is not a valid ApprovalDecision.
        """
        decision = ApprovalDecision(decision)
        with self._lock:
            ticket = self._tickets.get(token)
            if ticket is None:
                raise UnknownApprovalTokenError("Unknown approval token", token=token)
            if ticket.is_resolved:
                raise ApprovalAlreadyResolvedError(
                    f"Approval already resolved as {ticket.decision.value}",  # type: ignore[union-attr]
                    token=token,
                )
            resolved = replace(ticket, decision=decision, resolved_at=datetime.now(UTC))
            self._tickets[token] = resolved
            self._open.pop((ticket.request_fingerprint, ticket.policy_id), None)

        get_system_logger().info(
            {
                "event": "approval_resolved",
                "message": f"Approval {decision.value} for {resolved.operation}",
                "request_id": resolved.request_id,
                "policy_id": resolved.policy_id,
                "decision": decision.value,
                "token": hash_sensitive_id(token),
            }
        )
        return resolved

    def get(self, token: str) -> ApprovalTicket | None:
        with self._lock:
            return self._tickets.get(token)

    def grant_for(self, token: str, request: "OperationRequest") -> ApprovalTicket | None:
        """Return the resolved ticket if it applies to this request.

        Returns:
            The ticket, or None if the token is unknown, still pending, or
            was issued for a different request.
        """
        with self._lock:
            ticket = self._tickets.get(token)
        if ticket is None or not ticket.is_resolved:
            return None
        if ticket.request_fingerprint != request.fingerprint():
            get_system_logger().warning(
                {
                    "event": "approval_token_mismatch",
                    "message": "Approval token presented for a different request",
                    "request_id": request.request_id,
                    "policy_id": ticket.policy_id,
                    "token": hash_sensitive_id(token),
                }
            )
            return None
        return ticket

    def consume(self, token: str) -> None:
        """Remove a resolved ticket after a LIVE evaluation used it."""
        with self._lock:
            ticket = self._tickets.pop(token, None)
            if ticket is not None:
                self._open.pop((ticket.request_fingerprint, ticket.policy_id), None)

    def list_pending(self) -> list[ApprovalTicket]:
        """Snapshot of unresolved tickets, oldest first."""
        with self._lock:
            pending = [t for t in self._tickets.values() if not t.is_resolved]
        return sorted(pending, key=lambda t: t.created_at)

    def clear(self) -> None:
        with self._lock:
            self._tickets.clear()
            self._open.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._tickets)
