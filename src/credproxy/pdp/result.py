"""Evaluation results and per-policy trace entries."""

from __future__ import annotations

__all__ = [
    "EvaluationResult",
    "TraceEntry",
]

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from credproxy.pdp.decision import EvaluationMode, Outcome, VerdictStatus
from credproxy.pdp.policy import PolicyType, ScopeLevel


class TraceEntry(BaseModel):
    """What one policy said about one request.

    Attributes:
        policy_id: ID of the examined policy.
        policy_name: Display name of the policy.
        type: Policy type.
        scope: Scope level the policy was evaluated in.
        target: Plugin type or credential id (None for GLOBAL).
        target_name: Display name of the target, best-effort.
        priority: Policy priority.
        outcome: Handler outcome.
        detail: Human-readable explanation.
        error: "configuration" when the outcome came from a misconfigured
            policy or a handler failure rather than from the rule itself.
    """

    policy_id: str
    policy_name: str
    type: PolicyType
    scope: ScopeLevel
    target: str | None = None
    target_name: str | None = None
    priority: int = 0
    outcome: Outcome
    detail: str
    error: Literal["configuration"] | None = None

    model_config = ConfigDict(frozen=True)


class EvaluationResult(BaseModel):
    """Verdict of a cascade plus the trace that produced it.

    Attributes:
        status: ALLOWED, DENIED or PENDING.
        matched_policy_id: Policy that decided the verdict. None means no
            policy objected and the default verdict applied.
        reason: Human-readable explanation.
        mode: LIVE or SIMULATE.
        trace: Every policy examined, in evaluation order.
        approval_token: Resumable token, set for PENDING in LIVE mode.
        configuration_error: True when the deciding policy was misconfigured.
    """

    status: VerdictStatus
    matched_policy_id: str | None = None
    reason: str
    mode: EvaluationMode = EvaluationMode.LIVE
    trace: list[TraceEntry] = Field(default_factory=list)
    approval_token: str | None = None
    configuration_error: bool = False

    model_config = ConfigDict(frozen=True)

    @property
    def allowed(self) -> bool:
        return self.status is VerdictStatus.ALLOWED

    @property
    def denied(self) -> bool:
        return self.status is VerdictStatus.DENIED

    @property
    def pending(self) -> bool:
        return self.status is VerdictStatus.PENDING
