"""MANUAL_APPROVAL handler.

Returns PENDING until the caller resumes with a resolved approval for this
policy. The evaluator (not the handler) issues the resumable token.
"""

from __future__ import annotations

__all__ = ["evaluate_manual_approval"]

from credproxy.context.request import OperationRequest
from credproxy.pdp.configs import ManualApprovalConfig
from credproxy.pdp.decision import ApprovalDecision
from credproxy.pdp.handlers.base import HandlerContext, HandlerResult
from credproxy.pdp.matcher import match_any_operation
from credproxy.pdp.policy import Policy


def evaluate_manual_approval(
    policy: Policy,
    config: ManualApprovalConfig,
    request: OperationRequest,
    ctx: HandlerContext,
) -> HandlerResult:
    if config.operations and not match_any_operation(config.operations, request.operation):
        return HandlerResult.not_applicable(f"operation {request.operation!r} does not require approval")

    grant = ctx.approval
    if grant is not None and grant.policy_id == policy.id:
        if grant.decision is ApprovalDecision.APPROVED:
            return HandlerResult.allow("approved by approver")
        if grant.decision is ApprovalDecision.EXPIRED:
            return HandlerResult.deny("approval request expired")
        return HandlerResult.deny("rejected by approver")

    detail = f"operation {request.operation!r} requires manual approval"
    if config.approvers:
        detail = f"{detail} (approvers: {', '.join(config.approvers)})"
    return HandlerResult.pending(detail)
