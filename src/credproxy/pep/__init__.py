"""Policy Enforcement Point support: pending manual approvals."""

from credproxy.pep.approval_store import ApprovalTicket, PendingApprovalStore

__all__ = [
    "ApprovalTicket",
    "PendingApprovalStore",
]
