"""PATTERN_MATCH handler.

The pattern is a regular expression tested with re.search against a
subject string taken from the request:

- parameter set: that parameter's string value (missing → NOT_APPLICABLE)
- target "resource": request.resource
- target "operation": request.operation

A deny pattern (or one without an action) denies on match. An allow pattern
allows on match and denies on no match, so it acts as a whitelist for the
operations it covers.
"""

from __future__ import annotations

__all__ = ["evaluate_pattern_match"]

from credproxy.context.request import OperationRequest
from credproxy.pdp.configs import PatternMatchConfig
from credproxy.pdp.handlers.base import HandlerContext, HandlerResult
from credproxy.pdp.matcher import match_any_operation, parameter_as_text
from credproxy.pdp.policy import Policy


def evaluate_pattern_match(
    policy: Policy,
    config: PatternMatchConfig,
    request: OperationRequest,
    ctx: HandlerContext,
) -> HandlerResult:
    if config.action_patterns and not match_any_operation(config.action_patterns, request.operation):
        return HandlerResult.not_applicable(f"operation {request.operation!r} not covered by actionPatterns")

    if config.parameter is not None:
        value = request.parameters.get(config.parameter)
        if value is None:
            return HandlerResult.not_applicable(f"parameter {config.parameter!r} not present")
        subject = parameter_as_text(value)
        label = f"parameter {config.parameter!r}"
    elif config.target == "operation":
        subject = request.operation
        label = "operation"
    else:
        subject = request.resource
        label = "resource"

    matched = config.compiled().search(subject) is not None

    if config.effective_action == "allow":
        if matched:
            return HandlerResult.allow(f"{label} {subject!r} matches allow pattern {config.pattern!r}")
        return HandlerResult.deny(f"{label} {subject!r} does not match allow pattern {config.pattern!r}")

    if matched:
        return HandlerResult.deny(f"{label} {subject!r} matches deny pattern {config.pattern!r}")
    return HandlerResult.not_applicable(f"{label} {subject!r} does not match {config.pattern!r}")
