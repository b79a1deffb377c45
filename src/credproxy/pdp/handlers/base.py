"""Handler contract shared by all policy types.

A handler is a plain function:

    handler(policy, config, request, ctx) -> HandlerResult

It receives the policy, its already-validated typed config, the request and
a HandlerContext, and returns an Outcome with a human-readable detail.
Stateful handlers (COUNT_BASED, RATE_LIMITING) also return the counter
reservations they made, so the evaluator can release them if the cascade
does not end in ALLOWED.
"""

from __future__ import annotations

__all__ = [
    "ApprovalGrant",
    "HandlerContext",
    "HandlerFn",
    "HandlerResult",
    "Reservation",
]

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from credproxy.pdp.decision import ApprovalDecision, EvaluationMode, Outcome

if TYPE_CHECKING:
    from credproxy.context.request import OperationRequest
    from credproxy.pdp.policy import Policy
    from credproxy.pdp.protocol import CounterStore


@dataclass(frozen=True, slots=True)
class Reservation:
    """One counter increment made during a LIVE evaluation.

    Kept when the verdict is ALLOWED, released with a decrement otherwise.
    """

    key: str
    policy_id: str


@dataclass(frozen=True, slots=True)
class ApprovalGrant:
    """A resolved approval the caller is resuming with."""

    policy_id: str
    decision: ApprovalDecision


@dataclass(frozen=True, slots=True)
class HandlerContext:
    """Per-evaluation inputs beyond the policy and the request.

    Attributes:
        mode: LIVE handlers may reserve quota, SIMULATE handlers only read.
        counters: Counter Store (None if the deployment has none).
        prior_staged: Reservations made earlier in this cascade.
        approval: Resolved approval for this request, if resuming.
    """

    mode: EvaluationMode
    counters: "CounterStore | None" = None
    prior_staged: tuple[Reservation, ...] = ()
    approval: ApprovalGrant | None = None

    @property
    def live(self) -> bool:
        return self.mode is EvaluationMode.LIVE


@dataclass(frozen=True, slots=True)
class HandlerResult:
    """Outcome of one handler call."""

    outcome: Outcome
    detail: str
    staged: tuple[Reservation, ...] = ()

    @classmethod
    def allow(cls, detail: str, staged: tuple[Reservation, ...] = ()) -> HandlerResult:
        return cls(Outcome.ALLOW, detail, staged)

    @classmethod
    def deny(cls, detail: str) -> HandlerResult:
        return cls(Outcome.DENY, detail)

    @classmethod
    def not_applicable(cls, detail: str) -> HandlerResult:
        return cls(Outcome.NOT_APPLICABLE, detail)

    @classmethod
    def pending(cls, detail: str) -> HandlerResult:
        return cls(Outcome.PENDING, detail)


HandlerFn = Callable[["Policy", Any, "OperationRequest", HandlerContext], HandlerResult]
