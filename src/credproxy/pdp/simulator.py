"""Policy simulator - preview verdicts without side effects.

Runs the same evaluator in SIMULATE mode, so stateless policy types produce
exactly the verdict LIVE evaluation would, and stateful types are judged
against the current stored counters without changing them. No counter is
written, no approval token is issued and no audit record is emitted.

Draft policies can be spliced in before they are saved:
- A draft with the id of a stored policy replaces it (even if the draft
  moves it to another scope)
- A draft with a new id is added to its declared scope bucket
- Ordering within a bucket follows the normal priority/id rule
- Invalid drafts still simulate; their configuration error shows up in
  the trace as a DENY with error="configuration"
"""

from __future__ import annotations

__all__ = [
    "PolicyOverride",
    "PolicySimulator",
]

from collections.abc import Iterable, Sequence

from credproxy.context.request import OperationRequest
from credproxy.pdp.decision import EvaluationMode
from credproxy.pdp.engine import PolicyEvaluator, PolicySource
from credproxy.pdp.policy import Policy, ScopeLevel
from credproxy.pdp.protocol import PolicyStore
from credproxy.pdp.result import EvaluationResult

PolicyOverride = Policy | Sequence[Policy] | None


def _normalize_overrides(policy_override: PolicyOverride) -> list[Policy]:
    if policy_override is None:
        return []
    if isinstance(policy_override, Policy):
        return [policy_override]
    return list(policy_override)


def _spliced_source(store: PolicyStore, overrides: list[Policy]) -> PolicySource:
    """Policy lookup that merges drafts into the stored buckets."""
    override_ids = {p.id for p in overrides}

    def source(level: ScopeLevel, target: str | None) -> list[Policy]:
        merged = {p.id: p for p in store.list_active_policies(level, target) if p.id not in override_ids}
        for draft in overrides:
            if draft.level is level and draft.target == target:
                merged[draft.id] = draft
        return list(merged.values())

    return source


class PolicySimulator:
    """Side-effect free evaluation with optional draft policies.

    Attributes:
        evaluator: Evaluator shared with the LIVE path.
    """

    def __init__(self, evaluator: PolicyEvaluator) -> None:
        self.evaluator = evaluator

    def simulate(self, request: OperationRequest, policy_override: PolicyOverride = None) -> EvaluationResult:
        """Evaluate a request without side effects.

        Args:
            request: Real or hypothetical request.
            policy_override: Draft policy (or policies) to splice in.

        Returns:
            EvaluationResult in SIMULATE mode with a full trace.

        Raises:
            StoreUnavailableError: If a store could not be reached.
        """
        overrides = _normalize_overrides(policy_override)
        source = _spliced_source(self.evaluator.policy_store, overrides) if overrides else None
        return self.evaluator.evaluate(request, EvaluationMode.SIMULATE, policy_source=source)

    def simulate_many(
        self,
        requests: Iterable[OperationRequest],
        policy_override: PolicyOverride = None,
    ) -> list[EvaluationResult]:
        """Simulate a batch of requests (e.g., recent traffic) against the same drafts."""
        overrides = _normalize_overrides(policy_override)
        return [self.simulate(request, overrides) for request in requests]
