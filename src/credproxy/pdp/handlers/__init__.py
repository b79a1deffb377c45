"""Policy type handlers and their dispatch table.

Every PolicyType maps to exactly one handler function. The table is checked
for completeness at import time, so adding a type without a handler fails
loudly instead of at evaluation time.
"""

from __future__ import annotations

from credproxy.pdp.handlers.approval import evaluate_manual_approval
from credproxy.pdp.handlers.base import (
    ApprovalGrant,
    HandlerContext,
    HandlerFn,
    HandlerResult,
    Reservation,
)
from credproxy.pdp.handlers.counters import evaluate_count_based, evaluate_rate_limiting
from credproxy.pdp.handlers.lists import evaluate_allow_list, evaluate_deny_list
from credproxy.pdp.handlers.network import evaluate_ip_restriction
from credproxy.pdp.handlers.pattern import evaluate_pattern_match
from credproxy.pdp.handlers.schedule import evaluate_time_based
from credproxy.pdp.policy import PolicyType

__all__ = [
    "ApprovalGrant",
    "HANDLERS",
    "HandlerContext",
    "HandlerFn",
    "HandlerResult",
    "Reservation",
    "get_handler",
]

HANDLERS: dict[PolicyType, HandlerFn] = {
    PolicyType.ALLOW_LIST: evaluate_allow_list,
    PolicyType.DENY_LIST: evaluate_deny_list,
    PolicyType.PATTERN_MATCH: evaluate_pattern_match,
    PolicyType.IP_RESTRICTION: evaluate_ip_restriction,
    PolicyType.TIME_BASED: evaluate_time_based,
    PolicyType.COUNT_BASED: evaluate_count_based,
    PolicyType.RATE_LIMITING: evaluate_rate_limiting,
    PolicyType.MANUAL_APPROVAL: evaluate_manual_approval,
}

_missing = set(PolicyType) - set(HANDLERS)
if _missing:
    raise RuntimeError(f"No handler registered for policy types: {sorted(t.value for t in _missing)}")


def get_handler(policy_type: PolicyType) -> HandlerFn:
    """Return the handler for a policy type."""
    return HANDLERS[policy_type]
