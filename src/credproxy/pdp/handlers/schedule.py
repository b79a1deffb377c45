"""TIME_BASED handler.

The request timestamp is converted to the policy's timezone before any
comparison. Time-of-day windows have minute granularity and are inclusive
at both ends; a window whose end is before its start wraps past midnight.
"""

from __future__ import annotations

__all__ = ["evaluate_time_based"]

from datetime import datetime, time

from credproxy.context.request import OperationRequest
from credproxy.pdp.configs import TimeBasedConfig
from credproxy.pdp.handlers.base import HandlerContext, HandlerResult
from credproxy.pdp.policy import Policy

_DAY_LABELS = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


def _day_of_week(moment: datetime) -> int:
    """Day index with 0 = Sunday (datetime.weekday() has 0 = Monday)."""
    return (moment.weekday() + 1) % 7


def _in_window(now: time, start: time, end: time) -> bool:
    if start <= end:
        return start <= now <= end
    return now >= start or now <= end


def evaluate_time_based(
    policy: Policy,
    config: TimeBasedConfig,
    request: OperationRequest,
    ctx: HandlerContext,
) -> HandlerResult:
    local = request.timestamp.astimezone(config.zone)
    stamp = f"{local:%Y-%m-%d %H:%M} {config.timezone}"

    if config.start_date is not None and local.date() < config.start_date:
        return HandlerResult.deny(f"{stamp} is before {config.start_date.isoformat()}")
    if config.end_date is not None and local.date() > config.end_date:
        return HandlerResult.deny(f"{stamp} is after {config.end_date.isoformat()}")

    if config.days_of_week is not None:
        day = _day_of_week(local)
        if day not in config.days_of_week:
            return HandlerResult.deny(f"{_DAY_LABELS[day]} is not an allowed day ({stamp})")

    if config.hours_of_day is not None and local.hour not in config.hours_of_day:
        return HandlerResult.deny(f"hour {local.hour} is not an allowed hour ({stamp})")

    if config.start_time is not None and config.end_time is not None:
        now = local.time().replace(second=0, microsecond=0)
        if not _in_window(now, config.start_time, config.end_time):
            return HandlerResult.deny(
                f"{stamp} is outside {config.start_time:%H:%M}-{config.end_time:%H:%M}"
            )

    return HandlerResult.allow(f"{stamp} is inside the allowed window")
