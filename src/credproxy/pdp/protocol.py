"""Protocols for the collaborators the evaluator consumes.

The evaluator depends only on these structural interfaces. Shipped
implementations live in credproxy.pips (stores, metadata) and
credproxy.telemetry.audit (audit emitter); deployments can supply their own
without inheriting from our code.

Thread-safety:
    Every implementation must be safe for concurrent calls. Counter Store
    updates must be atomic at the store (increment-and-read), never a
    read followed by a separate write.
"""

from __future__ import annotations

__all__ = [
    "AuditEmitter",
    "CounterStore",
    "MetadataResolver",
    "PolicyStore",
]

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from credproxy.context.request import OperationRequest
    from credproxy.pdp.policy import Policy, ScopeLevel
    from credproxy.pdp.result import EvaluationResult


@runtime_checkable
class PolicyStore(Protocol):
    """Lookup of policy definitions by scope and target."""

    def list_active_policies(self, level: "ScopeLevel", target: str | None) -> list["Policy"]:
        """Return the active policies for one scope bucket.

        Args:
            level: Scope level to look up.
            target: Plugin type (PLUGIN), credential id (CREDENTIAL) or None
                (GLOBAL).

        Returns:
            Policies in any order; the evaluator sorts them.

        Raises:
            PolicyStoreUnavailableError: If the store cannot be reached.
        """
        ...


@runtime_checkable
class CounterStore(Protocol):
    """Atomic key-value counters for COUNT_BASED and RATE_LIMITING."""

    def increment_and_get(self, key: str, window_seconds: int | None = None) -> int:
        """Atomically increment a counter and return the new value.

        Args:
            key: Counter key.
            window_seconds: Expire the key this many seconds after it is
                created. None keeps it forever.

        Raises:
            CounterStoreUnavailableError: If the store cannot be reached.
        """
        ...

    def get(self, key: str) -> int:
        """Return the current value (0 for unknown or expired keys).

        Raises:
            CounterStoreUnavailableError: If the store cannot be reached.
        """
        ...

    def decrement(self, key: str) -> int:
        """Atomically decrement a counter (compensation for an aborted reservation).

        Raises:
            CounterStoreUnavailableError: If the store cannot be reached.
        """
        ...


@runtime_checkable
class AuditEmitter(Protocol):
    """Receives the outcome of every LIVE evaluation.

    Fire-and-forget: the evaluator logs and swallows any exception raised
    here. A failed record never changes a verdict.
    """

    def record(self, request: "OperationRequest", result: "EvaluationResult") -> None: ...


@runtime_checkable
class MetadataResolver(Protocol):
    """Read-only, best-effort metadata lookups.

    Returning None is always acceptable; missing metadata degrades the
    trace's readability, never correctness.
    """

    def plugin_type_for(self, credential_id: str) -> str | None: ...

    def credential_name(self, credential_id: str) -> str | None: ...

    def plugin_name(self, plugin_type: str) -> str | None: ...
