"""COUNT_BASED and RATE_LIMITING handlers.

Both reserve quota with an eager atomic increment in LIVE mode:

    count = increment_and_get(key)
    count > limit  → decrement immediately, DENY (no net change)
                     a failed decrement is logged and raised as an outage
    otherwise      → ALLOW, reservation returned to the evaluator

The evaluator keeps reservations only if the whole cascade ends ALLOWED
and releases them otherwise, so a request denied by some other policy never
consumes quota. In SIMULATE mode the counter is read, never written.

Keys:
    count:{policy_id}:{subject}[:{window}]   (window only with resetWindow)
    rate:{policy_id}:{subject}:{window}

subject is the credential id, or ip:<source_ip> with perIp. Windows are
fixed, aligned to the Unix epoch and computed from the request timestamp.
"""

from __future__ import annotations

__all__ = [
    "count_key",
    "evaluate_count_based",
    "evaluate_rate_limiting",
    "rate_key",
]

from collections.abc import Callable
from datetime import datetime

from credproxy.constants import COUNT_KEY_PREFIX, RATE_KEY_PREFIX
from credproxy.context.request import OperationRequest
from credproxy.exceptions import CounterStoreUnavailableError
from credproxy.pdp.configs import CountBasedConfig, RateLimitingConfig
from credproxy.pdp.handlers.base import HandlerContext, HandlerResult, Reservation
from credproxy.pdp.matcher import match_any_operation
from credproxy.pdp.policy import Policy
from credproxy.pdp.protocol import CounterStore
from credproxy.telemetry.system.system_logger import get_system_logger


def _subject(per_ip: bool, request: OperationRequest) -> str | None:
    if per_ip:
        return f"ip:{request.source_ip}" if request.source_ip else None
    return request.credential_id


def _window_index(timestamp: datetime, window_seconds: int) -> int:
    return int(timestamp.timestamp()) // window_seconds


def count_key(policy_id: str, subject: str, timestamp: datetime, reset_window: int | None) -> str:
    key = f"{COUNT_KEY_PREFIX}:{policy_id}:{subject}"
    if reset_window is not None:
        key = f"{key}:{_window_index(timestamp, reset_window)}"
    return key


def rate_key(policy_id: str, subject: str, timestamp: datetime, window_seconds: int) -> str:
    return f"{RATE_KEY_PREFIX}:{policy_id}:{subject}:{_window_index(timestamp, window_seconds)}"


def _require_counters(ctx: HandlerContext) -> CounterStore:
    if ctx.counters is None:
        raise CounterStoreUnavailableError("no counter store is configured")
    return ctx.counters


def _store_call(operation: str, key: str, call: Callable[[], int]) -> int:
    """Run one Counter Store round-trip; any backend failure is an outage."""
    try:
        return call()
    except CounterStoreUnavailableError:
        raise
    except Exception as e:
        raise CounterStoreUnavailableError(f"{operation} failed for {key}: {type(e).__name__}: {e}") from e


def _compensate(policy: Policy, request: OperationRequest, counters: CounterStore, key: str) -> None:
    """Undo an over-limit increment; the increment is logged if it cannot be undone."""
    try:
        _store_call("decrement", key, lambda: counters.decrement(key))
    except CounterStoreUnavailableError as e:
        get_system_logger().error(
            {
                "event": "counter_release_failed",
                "message": f"Could not undo over-limit increment: {e}",
                "request_id": request.request_id,
                "policy_id": policy.id,
                "counter_key": key,
                "error_type": type(e.__cause__ or e).__name__,
            }
        )
        raise


def _reserve(
    policy: Policy,
    request: OperationRequest,
    ctx: HandlerContext,
    key: str,
    limit: int,
    window_seconds: int | None,
    what: str,
) -> HandlerResult:
    """Apply the stage discipline for one counter key."""
    counters = _require_counters(ctx)

    if not ctx.live:
        current = _store_call("get", key, lambda: counters.get(key))
        if current >= limit:
            return HandlerResult.deny(f"{what} reached ({current}/{limit})")
        return HandlerResult.allow(f"{what} not reached ({current}/{limit})")

    count = _store_call("increment", key, lambda: counters.increment_and_get(key, window_seconds))
    if count > limit:
        _compensate(policy, request, counters, key)
        return HandlerResult.deny(f"{what} reached ({limit}/{limit})")
    return HandlerResult.allow(
        f"{what} not reached ({count}/{limit})",
        staged=(Reservation(key=key, policy_id=policy.id),),
    )


def evaluate_count_based(
    policy: Policy,
    config: CountBasedConfig,
    request: OperationRequest,
    ctx: HandlerContext,
) -> HandlerResult:
    subject = _subject(config.per_ip, request)
    if subject is None:
        return HandlerResult.deny("usage is counted per source IP but the source IP is unknown")

    key = count_key(policy.id, subject, request.timestamp, config.reset_window)
    return _reserve(policy, request, ctx, key, config.max_count, config.reset_window, "usage limit")


def evaluate_rate_limiting(
    policy: Policy,
    config: RateLimitingConfig,
    request: OperationRequest,
    ctx: HandlerContext,
) -> HandlerResult:
    if config.operations and not match_any_operation(config.operations, request.operation):
        return HandlerResult.not_applicable(f"operation {request.operation!r} is not rate limited")

    subject = _subject(config.per_ip, request)
    if subject is None:
        return HandlerResult.deny("rate is limited per source IP but the source IP is unknown")

    key = rate_key(policy.id, subject, request.timestamp, config.time_window_seconds)
    what = f"rate limit of {config.max_requests} per {config.time_window_seconds}s"
    return _reserve(policy, request, ctx, key, config.max_requests, config.time_window_seconds, what)
