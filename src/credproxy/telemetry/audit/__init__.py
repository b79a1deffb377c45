"""Audit logging for policy decisions."""

from credproxy.telemetry.audit.decision_logger import DecisionAuditEmitter, create_decision_logger

__all__ = [
    "DecisionAuditEmitter",
    "create_decision_logger",
]
