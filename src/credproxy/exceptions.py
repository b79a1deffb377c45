"""Custom exceptions for credproxy.

This module contains all custom exceptions used throughout the package.
Exceptions are organized into three categories:

Per-policy errors (evaluation continues, fail-closed):
    - PolicyConfigurationError: A policy's config does not validate

Evaluation failures (no trustworthy verdict, surfaced to the caller):
    - StoreUnavailableError: Base for backing store outages
    - PolicyStoreUnavailableError: Policy Store lookup failed
    - CounterStoreUnavailableError: Counter Store round-trip failed

Approval errors (reported to the ResolveApproval caller only):
    - UnknownApprovalTokenError: Token was never issued
    - ApprovalAlreadyResolvedError: Token already carries a decision

Usage:
    from credproxy.exceptions import PolicyConfigurationError, StoreUnavailableError
"""

from __future__ import annotations

__all__ = [
    "ApprovalAlreadyResolvedError",
    "ApprovalError",
    "ConfigurationError",
    "CounterStoreUnavailableError",
    "CredproxyError",
    "PolicyConfigurationError",
    "PolicyStoreUnavailableError",
    "StoreUnavailableError",
    "UnknownApprovalTokenError",
]


class CredproxyError(Exception):
    """Base exception for all credproxy errors."""


# =============================================================================
# Per-policy errors (converted to DENY for the offending policy)
# =============================================================================


class PolicyConfigurationError(CredproxyError):
    """A policy's config payload does not validate against its type.

    Raised by validate_policy() when a policy is saved. During evaluation the
    same failure is caught per policy and turned into a DENY, so a broken
    policy can never widen access.

    Attributes:
        policy_id: ID of the misconfigured policy (None for unsaved drafts).
        message: Human-readable description of what is wrong.
    """

    def __init__(self, message: str, *, policy_id: str | None = None) -> None:
        """Initialize PolicyConfigurationError.

        Args:
            message: Human-readable description of what is wrong.
            policy_id: ID of the misconfigured policy.
        """
        self.policy_id = policy_id
        self.message = message
        prefix = f"Policy {policy_id!r}: " if policy_id else ""
        super().__init__(f"{prefix}{message}")

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return f"PolicyConfigurationError({self.message!r}, policy_id={self.policy_id!r})"


# =============================================================================
# Evaluation failures (the engine cannot determine a verdict)
# =============================================================================


class StoreUnavailableError(CredproxyError):
    """A backing store could not be reached during evaluation.

    This is deliberately NOT a DENIED verdict. Callers must be able to tell
    "access is not allowed" apart from "the system could not determine whether
    access is allowed". Either way the credentialed operation must not run.

    Attributes:
        store: Which store failed ("policy" or "counter").
    """

    store: str = "unknown"


class PolicyStoreUnavailableError(StoreUnavailableError):
    """Policy Store lookup failed; no scope may be silently skipped."""

    store = "policy"


class CounterStoreUnavailableError(StoreUnavailableError):
    """Counter Store round-trip failed for a stateful policy."""

    store = "counter"


# =============================================================================
# Approval errors
# =============================================================================


class ApprovalError(CredproxyError):
    """Base exception for approval resume failures.

    Attributes:
        token: The approval token the caller supplied.
    """

    def __init__(self, message: str, *, token: str) -> None:
        self.token = token
        super().__init__(message)


class UnknownApprovalTokenError(ApprovalError):
    """No pending approval exists for the given token."""


class ApprovalAlreadyResolvedError(ApprovalError):
    """The approval token already carries a decision."""


# =============================================================================
# Engine configuration
# =============================================================================


class ConfigurationError(CredproxyError):
    """Engine configuration is invalid or incomplete.

    Raised when:
    - Config file does not exist
    - Config file contains invalid JSON
    - Config file fails Pydantic validation
    - A configured backend (e.g., redis) cannot be constructed
    """
