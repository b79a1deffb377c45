"""Policy Decision Point (PDP) - credential policy evaluation.

This module evaluates layered policies against an OperationRequest to
produce an ALLOWED/DENIED/PENDING verdict:

- context/: Describes the operation being requested
- pdp/ (this module): Evaluates policies against the request
- pep/: Holds pending approvals until an approver decides
- pips/: Policy, counter and metadata stores

Structure:
    decision.py       - Outcome, VerdictStatus, EvaluationMode, ApprovalDecision
    policy.py         - Policy model and tagged scope variants
    configs.py        - Per-type config schemas + save-time validation
    matcher.py        - Glob matching for operations and parameters
    handlers/         - One handler per policy type + dispatch table
    result.py         - EvaluationResult and TraceEntry
    protocol.py       - Protocols for consumed stores and emitters
    engine.py         - PolicyEvaluator (cascade, stage/commit)
    simulator.py      - PolicySimulator (side-effect free, draft policies)
    templates.py      - Built-in policy templates
"""

from credproxy.pdp.decision import ApprovalDecision, EvaluationMode, Outcome, VerdictStatus
from credproxy.pdp.policy import (
    CredentialScope,
    GlobalScope,
    PluginScope,
    Policy,
    PolicyType,
    ScopeLevel,
)
from credproxy.pdp.configs import validate_policy
from credproxy.pdp.result import EvaluationResult, TraceEntry
from credproxy.pdp.protocol import AuditEmitter, CounterStore, MetadataResolver, PolicyStore

# NOTE: The evaluator and simulator depend on pep/ (approval tickets), which
# depends on this package. Import them directly to avoid circular imports:
#   from credproxy.pdp.engine import PolicyEvaluator
#   from credproxy.pdp.simulator import PolicySimulator

__all__ = [
    # Decision
    "ApprovalDecision",
    "EvaluationMode",
    "Outcome",
    "VerdictStatus",
    # Policy models
    "CredentialScope",
    "GlobalScope",
    "PluginScope",
    "Policy",
    "PolicyType",
    "ScopeLevel",
    "validate_policy",
    # Results
    "EvaluationResult",
    "TraceEntry",
    # Protocols
    "AuditEmitter",
    "CounterStore",
    "MetadataResolver",
    "PolicyStore",
]
