"""Policy evaluator - run the scope cascade for an operation request.

This module provides the PolicyEvaluator class that evaluates requests
against layered policies to produce ALLOWED/DENIED/PENDING verdicts.

Evaluation flow:
1. Fetch active policies per scope: GLOBAL → PLUGIN → CREDENTIAL
2. Within a scope: priority descending, then id ascending
3. Validate each policy's config (cached); invalid → DENY, stop
4. Dispatch to the type handler:
   - NOT_APPLICABLE, ALLOW → continue
   - DENY, PENDING → stop
5. Nothing stopped the cascade → default verdict (allow unless configured)
6. LIVE only: settle counter reservations, open an approval ticket for
   PENDING, emit audit

Design principles:
1. Scope order is fixed: broader scopes veto before narrower ones run
2. Deny wins and short-circuits; an ALLOW never short-circuits
3. Fail closed: a broken policy denies, it is never skipped
4. A store outage is an error, not a verdict (StoreUnavailableError)
5. Quota is only consumed by requests that end ALLOWED

Stage/commit:
Stateful handlers increment eagerly and hand back a Reservation. _settle()
is the commit point: reservations are kept if the verdict is ALLOWED and
released (decremented) otherwise. Nothing is rolled back after it.
"""

from __future__ import annotations

__all__ = [
    "DefaultVerdict",
    "PolicyEvaluator",
    "PolicySource",
]

import json
import threading
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal

from credproxy.constants import DEFAULT_VALIDATION_CACHE_SIZE
from credproxy.context.request import OperationRequest
from credproxy.exceptions import (
    PolicyConfigurationError,
    PolicyStoreUnavailableError,
    StoreUnavailableError,
)
from credproxy.pdp.configs import PolicyConfig, parse_policy_config
from credproxy.pdp.decision import EvaluationMode, Outcome, VerdictStatus
from credproxy.pdp.handlers import (
    ApprovalGrant,
    HandlerContext,
    HandlerResult,
    Reservation,
    get_handler,
)
from credproxy.pdp.policy import SCOPE_ORDER, Policy, PolicyType, ScopeLevel, policy_sort_key
from credproxy.pdp.protocol import AuditEmitter, CounterStore, MetadataResolver, PolicyStore
from credproxy.pdp.result import EvaluationResult, TraceEntry
from credproxy.pep.approval_store import PendingApprovalStore
from credproxy.telemetry.system.system_logger import get_system_logger

DefaultVerdict = Literal["allow", "deny"]

# Lookup used for one evaluation: (level, target) -> policies
PolicySource = Callable[[ScopeLevel, str | None], list[Policy]]


@dataclass(frozen=True, slots=True)
class _Verdict:
    """Where the cascade stopped (or didn't)."""

    status: VerdictStatus
    reason: str
    policy: Policy | None = None
    config: PolicyConfig | None = None
    configuration_error: bool = False


class PolicyEvaluator:
    """Cascading policy evaluator.

    Stateless per request: all shared mutable state lives in the Counter
    Store, the approval store and the validation cache, each of which is
    safe for concurrent use. evaluate() may be called from any number of
    threads at once.

    Attributes:
        default_verdict: Verdict when no policy denies ("allow" or "deny").
        approvals: Store of pending manual approvals.
    """

    def __init__(
        self,
        policy_store: PolicyStore,
        counter_store: CounterStore | None = None,
        *,
        audit_emitter: AuditEmitter | None = None,
        approvals: PendingApprovalStore | None = None,
        metadata: MetadataResolver | None = None,
        default_verdict: DefaultVerdict = "allow",
        validation_cache_size: int = DEFAULT_VALIDATION_CACHE_SIZE,
    ) -> None:
        """Initialize the evaluator.

        Args:
            policy_store: Lookup of active policies per scope.
            counter_store: Atomic counters for COUNT_BASED / RATE_LIMITING.
            audit_emitter: Receives every LIVE result (optional).
            approvals: Pending approval store (a private one when None).
            metadata: Display names for the trace (optional).
            default_verdict: Verdict when no policy objects.
            validation_cache_size: Max cached config validation results.
        """
        if default_verdict not in ("allow", "deny"):
            raise ValueError(f"default_verdict must be 'allow' or 'deny', got {default_verdict!r}")
        self._policy_store = policy_store
        self._counters = counter_store
        self._audit = audit_emitter
        self._metadata = metadata
        self.approvals = approvals if approvals is not None else PendingApprovalStore()
        self.default_verdict: DefaultVerdict = default_verdict

        self._cache_size = validation_cache_size
        self._validation_cache: OrderedDict[tuple[Any, ...], PolicyConfig | PolicyConfigurationError] = (
            OrderedDict()
        )
        self._cache_lock = threading.Lock()

    # =========================================================================
    # Public API
    # =========================================================================

    @property
    def policy_store(self) -> PolicyStore:
        """The Policy Store this evaluator reads from."""
        return self._policy_store

    def evaluate(
        self,
        request: OperationRequest,
        mode: EvaluationMode = EvaluationMode.LIVE,
        *,
        approval_token: str | None = None,
        policy_source: PolicySource | None = None,
    ) -> EvaluationResult:
        """Evaluate a request against the policy cascade.

        Args:
            request: The operation request.
            mode: LIVE (reserve quota, audit, tokens) or SIMULATE (read-only).
            approval_token: Token of a resolved approval when resuming a
                PENDING request. The cascade restarts from the beginning.
            policy_source: Replaces the Policy Store lookup for this call
                (used by the simulator to splice in draft policies).

        Returns:
            EvaluationResult with verdict and trace.

        Raises:
            StoreUnavailableError: If the Policy Store or Counter Store could
                not be reached. No verdict is produced.
        """
        live = mode is EvaluationMode.LIVE
        grant = self._lookup_grant(approval_token, request)
        source = policy_source or self._policy_store.list_active_policies

        trace: list[TraceEntry] = []
        staged: list[Reservation] = []

        try:
            verdict = self._run_cascade(request, mode, source, grant, trace, staged)
        except StoreUnavailableError as e:
            if live:
                self._release(staged, request)
            get_system_logger().error(
                {
                    "event": "store_unavailable",
                    "message": f"Evaluation aborted, {e.store} store unavailable: {e}",
                    "request_id": request.request_id,
                    "store": e.store,
                    "error_type": type(e).__name__,
                }
            )
            raise

        if not live:
            return self._build_result(verdict, mode, trace)
        return self._settle(request, verdict, trace, staged, grant, approval_token)

    # =========================================================================
    # Cascade
    # =========================================================================

    def _run_cascade(
        self,
        request: OperationRequest,
        mode: EvaluationMode,
        source: PolicySource,
        grant: ApprovalGrant | None,
        trace: list[TraceEntry],
        staged: list[Reservation],
    ) -> _Verdict:
        first_allow: Policy | None = None
        names: dict[tuple[ScopeLevel, str], str | None] = {}

        for level in SCOPE_ORDER:
            target = self._bucket_target(level, request)
            if level is not ScopeLevel.GLOBAL and target is None:
                continue

            policies = self._fetch_bucket(source, level, target)
            target_name = self._target_name(level, target, names)

            for policy in sorted((p for p in policies if p.is_active), key=policy_sort_key):
                ctx = HandlerContext(
                    mode=mode,
                    counters=self._counters,
                    prior_staged=tuple(staged),
                    approval=grant,
                )
                result, config, error = self._evaluate_policy(policy, request, ctx)
                staged.extend(result.staged)

                trace.append(
                    TraceEntry(
                        policy_id=policy.id,
                        policy_name=policy.name,
                        type=policy.type,
                        scope=level,
                        target=target,
                        target_name=target_name,
                        priority=policy.priority,
                        outcome=result.outcome,
                        detail=result.detail,
                        error="configuration" if error else None,
                    )
                )

                label = policy.name or policy.id
                if result.outcome is Outcome.DENY:
                    if error:
                        reason = f"Policy {label!r} is misconfigured: {result.detail}"
                    else:
                        reason = f"Denied by policy {label!r}: {result.detail}"
                    return _Verdict(VerdictStatus.DENIED, reason, policy, config, error)
                if result.outcome is Outcome.PENDING:
                    reason = f"Approval required by policy {label!r}: {result.detail}"
                    return _Verdict(VerdictStatus.PENDING, reason, policy, config)
                if result.outcome is Outcome.ALLOW and first_allow is None:
                    first_allow = policy

        if first_allow is not None:
            label = first_allow.name or first_allow.id
            return _Verdict(VerdictStatus.ALLOWED, f"Allowed by policy {label!r}; no policy denied", first_allow)
        if self.default_verdict == "deny":
            return _Verdict(VerdictStatus.DENIED, "No policy allowed the request (default verdict: deny)")
        return _Verdict(VerdictStatus.ALLOWED, "No policy denied the request (default verdict: allow)")

    @staticmethod
    def _bucket_target(level: ScopeLevel, request: OperationRequest) -> str | None:
        if level is ScopeLevel.PLUGIN:
            return request.plugin_type
        if level is ScopeLevel.CREDENTIAL:
            return request.credential_id
        return None

    @staticmethod
    def _fetch_bucket(source: PolicySource, level: ScopeLevel, target: str | None) -> list[Policy]:
        """Load one scope bucket; any lookup failure aborts the evaluation."""
        try:
            return list(source(level, target))
        except StoreUnavailableError:
            raise
        except Exception as e:
            raise PolicyStoreUnavailableError(
                f"Policy lookup failed for {level.value} {target or ''}: {type(e).__name__}: {e}".rstrip()
            ) from e

    def _evaluate_policy(
        self,
        policy: Policy,
        request: OperationRequest,
        ctx: HandlerContext,
    ) -> tuple[HandlerResult, PolicyConfig | None, bool]:
        """Validate and dispatch one policy.

        Returns:
            (handler result, typed config or None, configuration error flag).

        Raises:
            StoreUnavailableError: Propagated from the Counter Store.
        """
        try:
            config = self._validated_config(policy)
        except PolicyConfigurationError as e:
            get_system_logger().warning(
                {
                    "event": "policy_configuration_error",
                    "message": f"Misconfigured policy denies request: {e.message}",
                    "policy_id": policy.id,
                    "policy_type": policy.type.value,
                    "request_id": request.request_id,
                }
            )
            return HandlerResult.deny(e.message), None, True

        handler = get_handler(policy.type)
        try:
            return handler(policy, config, request, ctx), config, False
        except StoreUnavailableError:
            raise
        except Exception as e:
            get_system_logger().error(
                {
                    "event": "policy_handler_error",
                    "message": f"Policy handler failed, denying: {type(e).__name__}: {e}",
                    "policy_id": policy.id,
                    "policy_type": policy.type.value,
                    "request_id": request.request_id,
                    "error_type": type(e).__name__,
                }
            )
            return HandlerResult.deny(f"handler error: {type(e).__name__}: {e}"), config, True

    # =========================================================================
    # Validation cache
    # =========================================================================

    @staticmethod
    def _cache_key(policy: Policy) -> tuple[Any, ...]:
        # Config digest keeps drafts that reuse a stored id/updated_at apart
        try:
            digest = json.dumps(policy.config, sort_keys=True, default=str)
        except (TypeError, ValueError):
            # Unsortable or circular payloads; validation rejects them anyway
            digest = repr(policy.config)
        return (policy.id, policy.updated_at, policy.type, digest)

    def _validated_config(self, policy: Policy) -> PolicyConfig:
        """Typed config for a policy, validated once per policy revision.

        Raises:
            PolicyConfigurationError: If the config is invalid, including
                payloads the schema cannot even inspect.
        """
        key = self._cache_key(policy)
        with self._cache_lock:
            cached = self._validation_cache.get(key)
            if cached is not None:
                self._validation_cache.move_to_end(key)

        if cached is None:
            try:
                cached = parse_policy_config(policy.type, policy.config, policy_id=policy.id)
            except PolicyConfigurationError as e:
                cached = e
            except Exception as e:
                cached = PolicyConfigurationError(
                    f"{policy.type.value} config could not be validated: {type(e).__name__}: {e}",
                    policy_id=policy.id,
                )
            with self._cache_lock:
                self._validation_cache[key] = cached
                while len(self._validation_cache) > self._cache_size:
                    self._validation_cache.popitem(last=False)

        if isinstance(cached, PolicyConfigurationError):
            raise PolicyConfigurationError(cached.message, policy_id=cached.policy_id)
        return cached

    # =========================================================================
    # Commit point
    # =========================================================================

    def _settle(
        self,
        request: OperationRequest,
        verdict: _Verdict,
        trace: list[TraceEntry],
        staged: list[Reservation],
        grant: ApprovalGrant | None,
        approval_token: str | None,
    ) -> EvaluationResult:
        """Apply LIVE side effects for a finished cascade.

        Keeps reservations on ALLOWED, releases them otherwise, opens an
        approval ticket for PENDING, consumes a used approval token and
        emits audit.
        """
        if verdict.status is not VerdictStatus.ALLOWED:
            self._release(staged, request)

        token: str | None = None
        if verdict.status is VerdictStatus.PENDING and verdict.policy is not None:
            config = verdict.config
            ticket = self.approvals.open(
                request,
                verdict.policy.id,
                expiration_minutes=getattr(config, "expiration_minutes", None),
                approvers=tuple(getattr(config, "approvers", ())),
            )
            token = ticket.token

        if grant is not None and approval_token is not None and self._grant_was_used(grant, trace):
            self.approvals.consume(approval_token)

        result = self._build_result(verdict, EvaluationMode.LIVE, trace, approval_token=token)
        self._emit_audit(request, result)
        return result

    @staticmethod
    def _grant_was_used(grant: ApprovalGrant, trace: list[TraceEntry]) -> bool:
        return any(
            entry.policy_id == grant.policy_id
            and entry.type is PolicyType.MANUAL_APPROVAL
            and entry.outcome in (Outcome.ALLOW, Outcome.DENY)
            for entry in trace
        )

    def _release(self, staged: list[Reservation], request: OperationRequest) -> None:
        """Release reservations best-effort (compensating decrements)."""
        if self._counters is None:
            return
        for reservation in reversed(staged):
            try:
                self._counters.decrement(reservation.key)
            except Exception as e:
                get_system_logger().error(
                    {
                        "event": "counter_release_failed",
                        "message": f"Could not release counter reservation: {e}",
                        "request_id": request.request_id,
                        "policy_id": reservation.policy_id,
                        "counter_key": reservation.key,
                        "error_type": type(e).__name__,
                    }
                )
        staged.clear()

    def _emit_audit(self, request: OperationRequest, result: EvaluationResult) -> None:
        if self._audit is None:
            return
        try:
            self._audit.record(request, result)
        except Exception as e:
            get_system_logger().error(
                {
                    "event": "audit_emit_failed",
                    "message": f"Audit record failed, verdict stands: {type(e).__name__}: {e}",
                    "request_id": request.request_id,
                    "status": result.status.value,
                }
            )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _lookup_grant(self, approval_token: str | None, request: OperationRequest) -> ApprovalGrant | None:
        if approval_token is None:
            return None
        ticket = self.approvals.grant_for(approval_token, request)
        if ticket is None or ticket.decision is None:
            return None
        return ApprovalGrant(policy_id=ticket.policy_id, decision=ticket.decision)

    def _target_name(
        self,
        level: ScopeLevel,
        target: str | None,
        names: dict[tuple[ScopeLevel, str], str | None],
    ) -> str | None:
        """Display name for a bucket target; lookup failures degrade to None."""
        if self._metadata is None or target is None:
            return None
        key = (level, target)
        if key in names:
            return names[key]
        try:
            if level is ScopeLevel.PLUGIN:
                name = self._metadata.plugin_name(target)
            else:
                name = self._metadata.credential_name(target)
        except Exception as e:
            get_system_logger().warning(
                {
                    "event": "metadata_lookup_failed",
                    "message": f"Could not resolve display name: {e}",
                    "scope": level.value,
                    "target": target,
                    "error_type": type(e).__name__,
                }
            )
            name = None
        names[key] = name
        return name

    @staticmethod
    def _build_result(
        verdict: _Verdict,
        mode: EvaluationMode,
        trace: list[TraceEntry],
        *,
        approval_token: str | None = None,
    ) -> EvaluationResult:
        return EvaluationResult(
            status=verdict.status,
            matched_policy_id=verdict.policy.id if verdict.policy else None,
            reason=verdict.reason,
            mode=mode,
            trace=trace,
            approval_token=approval_token,
            configuration_error=verdict.configuration_error,
        )
