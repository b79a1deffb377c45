"""Policy Service - the engine's external surface.

Three operations are exposed to the surrounding credential proxy:

- evaluate(): gate check before a credentialed operation runs (LIVE)
- simulate(): operator-facing policy testing, never on the live path
- resolve_approval(): record an approver's decision for a PENDING request

Usage:
    service = create_policy_service(EngineConfig.load_from_file(path))

    result = service.evaluate(request)
    if result.pending:
        # park the request, hand result.approval_token to the approver UI
        ...
    # later, after service.resolve_approval(token, "approved"):
    result = service.evaluate(request, approval_token=token)
"""

from __future__ import annotations

__all__ = [
    "PolicyService",
    "create_policy_service",
]

from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path

import redis

from credproxy.config import EngineConfig
from credproxy.context.request import OperationRequest
from credproxy.exceptions import ApprovalAlreadyResolvedError, ConfigurationError
from credproxy.pdp.decision import ApprovalDecision, EvaluationMode
from credproxy.pdp.engine import PolicyEvaluator
from credproxy.pdp.protocol import AuditEmitter, CounterStore, MetadataResolver, PolicyStore
from credproxy.pdp.result import EvaluationResult
from credproxy.pdp.simulator import PolicyOverride, PolicySimulator
from credproxy.pep.approval_store import ApprovalTicket, PendingApprovalStore
from credproxy.pips.counter_store import InMemoryCounterStore
from credproxy.pips.policy_store import InMemoryPolicyStore, JsonFilePolicyStore
from credproxy.pips.redis_counter_store import RedisCounterStore
from credproxy.telemetry.audit.decision_logger import DecisionAuditEmitter
from credproxy.telemetry.system.system_logger import configure_system_logger_file


class PolicyService:
    """Facade over the evaluator, the simulator and the approval store.

    Attributes:
        evaluator: LIVE/SIMULATE evaluator.
        simulator: Draft-aware simulator sharing the evaluator.
    """

    def __init__(self, evaluator: PolicyEvaluator, simulator: PolicySimulator | None = None) -> None:
        self.evaluator = evaluator
        self.simulator = simulator or PolicySimulator(evaluator)

    @property
    def approvals(self) -> PendingApprovalStore:
        return self.evaluator.approvals

    def evaluate(self, request: OperationRequest, *, approval_token: str | None = None) -> EvaluationResult:
        """Gate check for a credentialed operation.

        Args:
            request: The operation request.
            approval_token: Token of a resolved approval when resuming.

        Returns:
            LIVE EvaluationResult.

        Raises:
            StoreUnavailableError: No verdict could be determined; the
                operation must not run.
        """
        return self.evaluator.evaluate(request, EvaluationMode.LIVE, approval_token=approval_token)

    def simulate(self, request: OperationRequest, policy_override: PolicyOverride = None) -> EvaluationResult:
        """Preview a verdict without side effects (see PolicySimulator)."""
        return self.simulator.simulate(request, policy_override)

    def simulate_many(
        self,
        requests: Iterable[OperationRequest],
        policy_override: PolicyOverride = None,
    ) -> list[EvaluationResult]:
        return self.simulator.simulate_many(requests, policy_override)

    def resolve_approval(self, token: str, decision: ApprovalDecision | str) -> ApprovalTicket:
        """Record an approver's decision.

        Raises:
            UnknownApprovalTokenError: If the token was never issued.
            ApprovalAlreadyResolvedError: If the token already has a decision.
        """
        return self.approvals.resolve(token, decision)

    def pending_approvals(self) -> list[ApprovalTicket]:
        return self.approvals.list_pending()

    def expire_stale_approvals(self, now: datetime | None = None) -> list[ApprovalTicket]:
        """Resolve every pending ticket past its expiry as EXPIRED.

        The engine has no timer; callers run this periodically if they want
        stale requests to turn into denials on resume.

        Returns:
            Tickets that were expired by this call.
        """
        now = now or datetime.now(UTC)
        expired = []
        for ticket in self.approvals.list_pending():
            if ticket.is_expired(now):
                try:
                    expired.append(self.approvals.resolve(ticket.token, ApprovalDecision.EXPIRED))
                except ApprovalAlreadyResolvedError:
                    continue  # Resolved concurrently by an approver
        return expired


def _build_counter_store(config: EngineConfig) -> CounterStore:
    settings = config.counter_store
    if settings.backend == "memory":
        return InMemoryCounterStore()
    try:
        return RedisCounterStore.from_url(
            settings.redis_url or "",
            key_prefix=settings.key_prefix,
            socket_timeout=settings.socket_timeout_seconds,
        )
    except (ValueError, redis.RedisError) as e:
        raise ConfigurationError(f"Cannot create Redis counter store: {e}") from e


def create_policy_service(
    config: EngineConfig | None = None,
    *,
    policy_store: PolicyStore | None = None,
    counter_store: CounterStore | None = None,
    audit_emitter: AuditEmitter | None = None,
    metadata: MetadataResolver | None = None,
) -> PolicyService:
    """Build a PolicyService from configuration.

    Explicit collaborators take precedence over the configured ones.

    Args:
        config: Engine configuration (defaults when None).
        policy_store: Policy Store (else policy_file, else in-memory).
        counter_store: Counter Store (else the configured backend).
        audit_emitter: Audit Emitter (else JSONL if audit is enabled).
        metadata: Metadata resolver for plugin types and display names.

    Returns:
        Ready-to-use PolicyService.

    Raises:
        ConfigurationError: If a configured backend cannot be created.
    """
    config = config or EngineConfig()

    if config.logging.system_log_file:
        try:
            configure_system_logger_file(config.logging.system_log_path)
        except OSError as e:
            raise ConfigurationError(f"Cannot open system log: {e}") from e

    if policy_store is None:
        if config.policy_file:
            try:
                policy_store = JsonFilePolicyStore(Path(config.policy_file).expanduser())
            except (FileNotFoundError, ValueError) as e:
                raise ConfigurationError(str(e)) from e
        else:
            policy_store = InMemoryPolicyStore()

    if counter_store is None:
        counter_store = _build_counter_store(config)

    if audit_emitter is None and config.logging.audit_enabled:
        try:
            audit_emitter = DecisionAuditEmitter.for_log_dir(config.logging.log_path)
        except OSError as e:
            raise ConfigurationError(f"Cannot open audit log: {e}") from e

    evaluator = PolicyEvaluator(
        policy_store,
        counter_store,
        audit_emitter=audit_emitter,
        approvals=PendingApprovalStore(config.approvals.default_expiration_minutes),
        metadata=metadata,
        default_verdict=config.default_verdict,
        validation_cache_size=config.validation_cache_size,
    )
    return PolicyService(evaluator)
