"""ALLOW_LIST and DENY_LIST handlers."""

from __future__ import annotations

__all__ = [
    "evaluate_allow_list",
    "evaluate_deny_list",
]

from credproxy.context.request import OperationRequest
from credproxy.pdp.configs import AllowListConfig, DenyListConfig, OperationEntry
from credproxy.pdp.handlers.base import HandlerContext, HandlerResult
from credproxy.pdp.matcher import match_operation, match_parameter
from credproxy.pdp.policy import Policy


def _entry_matches(entry: OperationEntry, request: OperationRequest) -> bool:
    """Operation glob matches and every parameter constraint matches."""
    if not match_operation(entry.operation, request.operation):
        return False
    return all(
        match_parameter(pattern, request.parameters, name) for name, pattern in entry.parameters.items()
    )


def _describe(entry: OperationEntry) -> str:
    if not entry.parameters:
        return repr(entry.operation)
    constraints = ", ".join(f"{k}={v}" for k, v in sorted(entry.parameters.items()))
    return f"{entry.operation!r} ({constraints})"


def evaluate_allow_list(
    policy: Policy,
    config: AllowListConfig,
    request: OperationRequest,
    ctx: HandlerContext,
) -> HandlerResult:
    """ALLOW if any entry matches, DENY if none does, NOT_APPLICABLE if empty."""
    entries = config.entries()
    if not entries:
        return HandlerResult.not_applicable("allow list is empty")

    for entry in entries:
        if _entry_matches(entry, request):
            return HandlerResult.allow(f"operation {request.operation!r} allowed by entry {_describe(entry)}")

    return HandlerResult.deny(f"operation {request.operation!r} is not in the allow list")


def evaluate_deny_list(
    policy: Policy,
    config: DenyListConfig,
    request: OperationRequest,
    ctx: HandlerContext,
) -> HandlerResult:
    """DENY if any entry matches, otherwise NOT_APPLICABLE."""
    for entry in config.entries():
        if _entry_matches(entry, request):
            return HandlerResult.deny(f"operation {request.operation!r} denied by entry {_describe(entry)}")

    return HandlerResult.not_applicable(f"operation {request.operation!r} is not in the deny list")
