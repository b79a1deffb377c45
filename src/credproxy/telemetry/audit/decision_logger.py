"""Decision logging for LIVE evaluations.

This module provides the JSONL Audit Emitter. Every LIVE evaluation is
written as one DecisionEvent to <log_dir>/audit/decisions.jsonl with the
status in wire form (APPROVED/DENIED/PENDING).

Simulations are never logged here. Failures propagate to the evaluator,
which logs them to the system logger and keeps the verdict.
"""

from __future__ import annotations

__all__ = [
    "DecisionAuditEmitter",
    "create_decision_logger",
]

import logging
from pathlib import Path

from credproxy.constants import AUDIT_LOG_DIRNAME, DECISIONS_LOG_FILENAME
from credproxy.context.request import OperationRequest
from credproxy.pdp.result import EvaluationResult
from credproxy.telemetry.models.decision import DecisionEvent, TraceSummary
from credproxy.utils.logging.logger_setup import setup_jsonl_logger
from credproxy.utils.logging.logging_helpers import (
    hash_parameters,
    hash_sensitive_id,
    sanitize_for_logging,
    serialize_audit_event,
)


def create_decision_logger(log_path: Path) -> logging.Logger:
    """Create logger for decision events.

    Args:
        log_path: Path to decisions.jsonl file.

    Returns:
        Configured logger instance.
    """
    return setup_jsonl_logger("credproxy.audit.decisions", log_path, log_level=logging.INFO)


class DecisionAuditEmitter:
    """AuditEmitter that writes DecisionEvents as JSONL."""

    def __init__(self, logger: logging.Logger) -> None:
        """Initialize the emitter.

        Args:
            logger: Logger for decision events (decisions.jsonl).
        """
        self._logger = logger

    @classmethod
    def for_log_dir(cls, log_dir: Path) -> DecisionAuditEmitter:
        """Emitter writing to <log_dir>/audit/decisions.jsonl."""
        return cls(create_decision_logger(log_dir / AUDIT_LOG_DIRNAME / DECISIONS_LOG_FILENAME))

    def record(self, request: OperationRequest, result: EvaluationResult) -> None:
        """Log one evaluation.

        Args:
            request: The evaluated request.
            result: Its LIVE result.
        """
        resource = request.resource
        event = DecisionEvent(
            status=result.status.wire_value,
            matched_policy_id=result.matched_policy_id,
            reason=sanitize_for_logging(result.reason),
            configuration_error=result.configuration_error,
            request_id=request.request_id,
            credential_id=request.credential_id,
            application_id=request.application_id,
            plugin_type=request.plugin_type,
            operation=sanitize_for_logging(request.operation),
            resource=sanitize_for_logging(resource) if resource != request.operation else None,
            parameters_hash=hash_parameters(request.parameters),
            source_ip=request.source_ip,
            request_time=request.timestamp.isoformat(),
            approval_token_hash=hash_sensitive_id(result.approval_token) if result.approval_token else None,
            policies_evaluated=len(result.trace),
            trace=[
                TraceSummary(
                    policy_id=entry.policy_id,
                    scope=entry.scope.value,
                    outcome=entry.outcome.value,
                    error=entry.error,
                )
                for entry in result.trace
            ],
        )
        self._logger.info(serialize_audit_event(event))
