"""Pydantic models for audit log events."""

from credproxy.telemetry.models.decision import DecisionEvent, TraceSummary

__all__ = [
    "DecisionEvent",
    "TraceSummary",
]
