"""Per-type configuration schemas for policies.

Each PolicyType has exactly one config model. A policy's raw config payload
is validated against its model when the policy is saved (validate_policy)
and again, with caching, when it is evaluated. Invalid payloads never widen
access: at save time they are rejected, at evaluation time they deny.

Config keys use the stored camelCase names (maxCount, timeWindowSeconds);
snake_case is accepted as well. Unknown keys are rejected so that a typo
such as "maxcount" cannot silently disable a limit.
"""

from __future__ import annotations

__all__ = [
    "AllowListConfig",
    "CONFIG_MODELS",
    "CountBasedConfig",
    "DenyListConfig",
    "IpRestrictionConfig",
    "ManualApprovalConfig",
    "OperationEntry",
    "PatternMatchConfig",
    "PolicyConfig",
    "RateLimitingConfig",
    "TimeBasedConfig",
    "parse_policy_config",
    "validate_policy",
]

import ipaddress
import re
from datetime import date, time
from typing import Any, Literal, Self
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from credproxy.constants import MAX_APPROVAL_EXPIRATION_MINUTES, MIN_APPROVAL_EXPIRATION_MINUTES
from credproxy.exceptions import PolicyConfigurationError
from credproxy.pdp.policy import Policy, PolicyType

IpNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network

# 0 = Sunday, matching the stored daysOfWeek convention
_DAY_NAMES: dict[str, int] = {
    "sunday": 0,
    "monday": 1,
    "tuesday": 2,
    "wednesday": 3,
    "thursday": 4,
    "friday": 5,
    "saturday": 6,
}


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )


# =============================================================================
# ALLOW_LIST / DENY_LIST
# =============================================================================


class OperationEntry(_ConfigModel):
    """An operation identifier with optional parameter constraints.

    All parameter constraints must match (AND logic). Values are globs
    matched against the parameter's string form.

    Example:
        {"operation": "repos.read", "parameters": {"repo": "acme/*"}}
    """

    operation: str = Field(min_length=1)
    parameters: dict[str, str] = Field(default_factory=dict)


class _OperationListConfig(_ConfigModel):
    operations: list[str | OperationEntry] = Field(default_factory=list)

    @field_validator("operations", mode="after")
    @classmethod
    def reject_blank_operations(cls, v: list[str | OperationEntry]) -> list[str | OperationEntry]:
        for entry in v:
            if isinstance(entry, str) and not entry.strip():
                raise ValueError("operation identifiers must not be blank")
        return v

    def entries(self) -> list[OperationEntry]:
        """Operations normalized to OperationEntry (bare strings have no constraints)."""
        return [OperationEntry(operation=e) if isinstance(e, str) else e for e in self.operations]


class AllowListConfig(_OperationListConfig):
    """Operations that are allowed; anything else is denied (if non-empty)."""


class DenyListConfig(_OperationListConfig):
    """Operations that are denied."""


# =============================================================================
# PATTERN_MATCH
# =============================================================================


class PatternMatchConfig(_ConfigModel):
    """Regular expression tested against a resource path or operation.

    Attributes:
        pattern: Regex, tested with re.search.
        action: "allow" (match allows, no match denies) or "deny". When
            omitted a match denies.
        action_patterns: Operation globs the pattern applies to (empty = all).
        target: Which request field is the subject ("resource" or "operation").
        parameter: Test this named parameter instead of target.
    """

    pattern: str = Field(min_length=1)
    action: Literal["allow", "deny"] | None = None
    action_patterns: list[str] = Field(default_factory=list)
    target: Literal["resource", "operation"] = "resource"
    parameter: str | None = None

    @field_validator("pattern", mode="after")
    @classmethod
    def validate_regex(cls, v: str) -> str:
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"invalid regular expression: {e}") from e
        return v

    @property
    def effective_action(self) -> Literal["allow", "deny"]:
        """Action with the deny default applied."""
        return self.action or "deny"

    def compiled(self) -> re.Pattern[str]:
        return re.compile(self.pattern)


# =============================================================================
# IP_RESTRICTION
# =============================================================================


def _parse_network(value: str) -> IpNetwork:
    return ipaddress.ip_network(value.strip(), strict=False)


class IpRestrictionConfig(_ConfigModel):
    """CIDR allow/deny lists for the request's source IP.

    Bare addresses are accepted as single-host networks. Host bits are
    masked off (10.1.2.3/8 is 10.0.0.0/8).
    """

    allowed_cidrs: list[str] = Field(default_factory=list)
    denied_cidrs: list[str] = Field(default_factory=list)

    @field_validator("allowed_cidrs", "denied_cidrs", mode="after")
    @classmethod
    def validate_cidrs(cls, v: list[str]) -> list[str]:
        for cidr in v:
            try:
                _parse_network(cidr)
            except ValueError as e:
                raise ValueError(f"invalid CIDR {cidr!r}: {e}") from e
        return v

    @model_validator(mode="after")
    def at_least_one_list(self) -> Self:
        if not self.allowed_cidrs and not self.denied_cidrs:
            raise ValueError("at least one of allowedCidrs or deniedCidrs must be non-empty")
        return self

    def allowed_networks(self) -> list[IpNetwork]:
        return [_parse_network(c) for c in self.allowed_cidrs]

    def denied_networks(self) -> list[IpNetwork]:
        return [_parse_network(c) for c in self.denied_cidrs]


# =============================================================================
# TIME_BASED
# =============================================================================


class TimeBasedConfig(_ConfigModel):
    """Time window during which requests are allowed.

    Every configured restriction must hold. Times are compared in the
    configured IANA timezone, never the host's local time.

    Attributes:
        days_of_week: Allowed days, 0 = Sunday. Names ("monday") accepted.
        hours_of_day: Allowed hours (0-23).
        start_time: Window start "HH:MM", inclusive.
        end_time: Window end "HH:MM", inclusive. An end before the start is
            an overnight window (22:00-06:00).
        start_date: First allowed date, inclusive.
        end_date: Last allowed date, inclusive.
        timezone: IANA zone name (default UTC).
    """

    days_of_week: list[int] | None = Field(default=None, min_length=1)
    hours_of_day: list[int] | None = Field(default=None, min_length=1)
    start_time: time | None = None
    end_time: time | None = None
    start_date: date | None = None
    end_date: date | None = None
    timezone: str = "UTC"

    @field_validator("days_of_week", mode="before")
    @classmethod
    def normalize_days(cls, v: Any) -> Any:
        if not isinstance(v, list):
            return v
        days: list[Any] = []
        for day in v:
            if isinstance(day, str) and not day.strip().isdigit():
                key = day.strip().lower()
                matches = [n for name, n in _DAY_NAMES.items() if name == key or name[:3] == key]
                if not matches:
                    raise ValueError(f"unknown day of week: {day!r}")
                days.append(matches[0])
            else:
                days.append(day)
        return days

    @field_validator("days_of_week", mode="after")
    @classmethod
    def validate_day_range(cls, v: list[int] | None) -> list[int] | None:
        if v is not None and any(d < 0 or d > 6 for d in v):
            raise ValueError("daysOfWeek values must be 0-6 (0 = Sunday)")
        return v

    @field_validator("hours_of_day", mode="after")
    @classmethod
    def validate_hour_range(cls, v: list[int] | None) -> list[int] | None:
        if v is not None and any(h < 0 or h > 23 for h in v):
            raise ValueError("hoursOfDay values must be 0-23")
        return v

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def parse_hhmm(cls, v: Any) -> Any:
        if isinstance(v, str):
            match = re.fullmatch(r"(\d{1,2}):(\d{2})", v.strip())
            if not match:
                raise ValueError(f"expected HH:MM, got {v!r}")
            hour, minute = int(match.group(1)), int(match.group(2))
            if hour > 23 or minute > 59:
                raise ValueError(f"time out of range: {v!r}")
            return time(hour, minute)
        return v

    @field_validator("timezone", mode="after")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"unknown timezone: {v!r}") from e
        return v

    @model_validator(mode="after")
    def validate_window(self) -> Self:
        if (self.start_time is None) != (self.end_time is None):
            raise ValueError("startTime and endTime must be set together")
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("startDate must not be after endDate")
        if all(
            v is None
            for v in (
                self.days_of_week,
                self.hours_of_day,
                self.start_time,
                self.start_date,
                self.end_date,
            )
        ):
            raise ValueError("at least one time restriction must be configured")
        return self

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


# =============================================================================
# COUNT_BASED / RATE_LIMITING
# =============================================================================


class CountBasedConfig(_ConfigModel):
    """Usage cap per credential (or per source IP).

    Attributes:
        max_count: Number of allowed uses.
        reset_window: Window length in seconds after which the count
            starts over. None means the cap never resets.
        per_ip: Count per source IP instead of per credential.
    """

    max_count: int = Field(strict=True, ge=1)
    reset_window: int | None = Field(default=None, strict=True, ge=1)
    per_ip: bool = False


class RateLimitingConfig(_ConfigModel):
    """Fixed-window rate limit.

    Attributes:
        max_requests: Requests allowed per window.
        time_window_seconds: Window length.
        per_ip: Key the window by source IP instead of credential.
        operations: Operation globs the limit applies to (empty = all).
    """

    max_requests: int = Field(strict=True, ge=1)
    time_window_seconds: int = Field(strict=True, ge=1)
    per_ip: bool = False
    operations: list[str] = Field(default_factory=list)


# =============================================================================
# MANUAL_APPROVAL
# =============================================================================


class ManualApprovalConfig(_ConfigModel):
    """Operations that need a human decision before they run.

    expiration_minutes is handed to the caller with the approval ticket;
    the engine itself never expires approvals.
    """

    operations: list[str] = Field(default_factory=list)
    approvers: list[str] = Field(default_factory=list)
    expiration_minutes: int | None = Field(
        default=None,
        strict=True,
        ge=MIN_APPROVAL_EXPIRATION_MINUTES,
        le=MAX_APPROVAL_EXPIRATION_MINUTES,
    )


# =============================================================================
# Dispatch
# =============================================================================

PolicyConfig = (
    AllowListConfig
    | DenyListConfig
    | PatternMatchConfig
    | IpRestrictionConfig
    | TimeBasedConfig
    | CountBasedConfig
    | RateLimitingConfig
    | ManualApprovalConfig
)

CONFIG_MODELS: dict[PolicyType, type[_ConfigModel]] = {
    PolicyType.ALLOW_LIST: AllowListConfig,
    PolicyType.DENY_LIST: DenyListConfig,
    PolicyType.PATTERN_MATCH: PatternMatchConfig,
    PolicyType.IP_RESTRICTION: IpRestrictionConfig,
    PolicyType.TIME_BASED: TimeBasedConfig,
    PolicyType.COUNT_BASED: CountBasedConfig,
    PolicyType.RATE_LIMITING: RateLimitingConfig,
    PolicyType.MANUAL_APPROVAL: ManualApprovalConfig,
}


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        loc = ".".join(str(x) for x in item["loc"])
        parts.append(f"{loc}: {item['msg']}" if loc else item["msg"])
    return "; ".join(parts)


def parse_policy_config(policy_type: PolicyType, config: Any, *, policy_id: str | None = None) -> PolicyConfig:
    """Validate a raw config payload against its type's schema.

    Args:
        policy_type: Type whose schema applies.
        config: Raw payload as stored.
        policy_id: Used in error messages only.

    Returns:
        The typed config model.

    Raises:
        PolicyConfigurationError: If the payload is not an object or fails
            validation.
    """
    if not isinstance(config, dict):
        raise PolicyConfigurationError(
            f"{policy_type.value} config must be an object, got {type(config).__name__}",
            policy_id=policy_id,
        )
    model = CONFIG_MODELS[policy_type]
    try:
        return model.model_validate(config)  # type: ignore[return-value]
    except ValidationError as e:
        raise PolicyConfigurationError(
            f"invalid {policy_type.value} config: {_format_validation_error(e)}",
            policy_id=policy_id,
        ) from e


def validate_policy(policy: Policy) -> PolicyConfig:
    """Save-time validation: reject a policy whose config does not fit its type.

    Policy stores call this before accepting a policy, so misconfigured
    policies are normally rejected before they are ever evaluated.

    Returns:
        The typed config model.

    Raises:
        PolicyConfigurationError: If the config is invalid.
    """
    return parse_policy_config(policy.type, policy.config, policy_id=policy.id)
