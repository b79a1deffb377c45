"""Unit tests for the policy type handlers."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest

from credproxy.exceptions import CounterStoreUnavailableError
from credproxy.pdp.configs import parse_policy_config
from credproxy.pdp.decision import ApprovalDecision, EvaluationMode, Outcome
from credproxy.pdp.handlers import HANDLERS, ApprovalGrant, HandlerContext, HandlerResult, get_handler
from credproxy.pdp.handlers.counters import count_key, rate_key
from credproxy.pdp.policy import PolicyType
from credproxy.pips.counter_store import InMemoryCounterStore

LIVE = HandlerContext(mode=EvaluationMode.LIVE)
SIMULATE = HandlerContext(mode=EvaluationMode.SIMULATE)


@pytest.fixture
def run(make_policy):
    """Validate a config and run its handler: run(type, config, request, ctx)."""

    def _run(policy_type: PolicyType, config: dict, request, ctx: HandlerContext = LIVE) -> HandlerResult:
        policy = make_policy("p1", policy_type, config)
        typed = parse_policy_config(policy_type, config, policy_id=policy.id)
        return get_handler(policy_type)(policy, typed, request, ctx)

    return _run


class TestDispatchTable:
    def test_every_type_has_a_handler(self) -> None:
        """The dispatch table covers the closed set of types."""
        assert set(HANDLERS) == set(PolicyType)


# ============================================================================
# ALLOW_LIST / DENY_LIST
# ============================================================================


class TestAllowList:
    """Tests for ALLOW_LIST."""

    def test_listed_operation_allowed(self, run, make_request) -> None:
        result = run(PolicyType.ALLOW_LIST, {"operations": ["repos.read"]}, make_request("repos.read"))
        assert result.outcome is Outcome.ALLOW

    def test_unlisted_operation_denied(self, run, make_request) -> None:
        """A non-empty allow list denies anything it does not list."""
        result = run(PolicyType.ALLOW_LIST, {"operations": ["repos.read"]}, make_request("repos.delete"))
        assert result.outcome is Outcome.DENY
        assert "repos.delete" in result.detail

    def test_empty_list_not_applicable(self, run, make_request) -> None:
        result = run(PolicyType.ALLOW_LIST, {"operations": []}, make_request())
        assert result.outcome is Outcome.NOT_APPLICABLE

    def test_glob_operation(self, run, make_request) -> None:
        result = run(PolicyType.ALLOW_LIST, {"operations": ["repos.*"]}, make_request("repos.list"))
        assert result.outcome is Outcome.ALLOW

    def test_parameter_constraints(self, run, make_request) -> None:
        """Every parameter constraint must match."""
        config = {"operations": [{"operation": "repos.write", "parameters": {"repo": "acme/*"}}]}

        allowed = run(PolicyType.ALLOW_LIST, config, make_request("repos.write", {"repo": "acme/api"}))
        denied = run(PolicyType.ALLOW_LIST, config, make_request("repos.write", {"repo": "evil/api"}))
        missing = run(PolicyType.ALLOW_LIST, config, make_request("repos.write"))

        assert allowed.outcome is Outcome.ALLOW
        assert denied.outcome is Outcome.DENY
        assert missing.outcome is Outcome.DENY


class TestDenyList:
    """Tests for DENY_LIST."""

    def test_listed_operation_denied(self, run, make_request) -> None:
        result = run(PolicyType.DENY_LIST, {"operations": ["repos.delete"]}, make_request("repos.delete"))
        assert result.outcome is Outcome.DENY

    def test_unlisted_operation_not_applicable(self, run, make_request) -> None:
        """A deny list never allows, it only stays out of the way."""
        result = run(PolicyType.DENY_LIST, {"operations": ["repos.delete"]}, make_request("repos.read"))
        assert result.outcome is Outcome.NOT_APPLICABLE

    def test_numeric_parameter_matched_as_text(self, run, make_request) -> None:
        config = {"operations": [{"operation": "tx.send", "parameters": {"chainId": "1"}}]}
        result = run(PolicyType.DENY_LIST, config, make_request("tx.send", {"chainId": 1}))
        assert result.outcome is Outcome.DENY


# ============================================================================
# PATTERN_MATCH
# ============================================================================


class TestPatternMatch:
    """Tests for PATTERN_MATCH."""

    SECRETS = {"pattern": r"^/aws/secrets/.+$", "action": "deny"}

    def test_deny_pattern_matches_secret_path(self, run, make_request) -> None:
        request = make_request("secrets.get", {"path": "/aws/secrets/db-password"})
        result = run(PolicyType.PATTERN_MATCH, self.SECRETS, request)
        assert result.outcome is Outcome.DENY

    def test_deny_pattern_not_applicable_elsewhere(self, run, make_request) -> None:
        request = make_request("config.get", {"path": "/aws/config/region"})
        result = run(PolicyType.PATTERN_MATCH, self.SECRETS, request)
        assert result.outcome is Outcome.NOT_APPLICABLE

    def test_missing_action_denies_on_match(self, run, make_request) -> None:
        """Ambiguous patterns fail closed: no action behaves like deny."""
        request = make_request("secrets.get", {"path": "/aws/secrets/x"})
        result = run(PolicyType.PATTERN_MATCH, {"pattern": "secrets"}, request)
        assert result.outcome is Outcome.DENY

    def test_allow_pattern(self, run, make_request) -> None:
        """An allow pattern allows on match and denies on no match."""
        config = {"pattern": r"^/public/", "action": "allow"}

        match = run(PolicyType.PATTERN_MATCH, config, make_request("get", {"path": "/public/a"}))
        miss = run(PolicyType.PATTERN_MATCH, config, make_request("get", {"path": "/private/a"}))

        assert match.outcome is Outcome.ALLOW
        assert miss.outcome is Outcome.DENY

    def test_action_patterns_narrow_scope(self, run, make_request) -> None:
        config = {**self.SECRETS, "actionPatterns": ["secrets.*"]}
        request = make_request("audit.read", {"path": "/aws/secrets/db-password"})
        result = run(PolicyType.PATTERN_MATCH, config, request)
        assert result.outcome is Outcome.NOT_APPLICABLE

    def test_operation_target(self, run, make_request) -> None:
        config = {"pattern": r"^admin\.", "target": "operation"}
        result = run(PolicyType.PATTERN_MATCH, config, make_request("admin.reset"))
        assert result.outcome is Outcome.DENY

    def test_named_parameter(self, run, make_request) -> None:
        config = {"pattern": r"^0x0+$", "parameter": "to"}

        hit = run(PolicyType.PATTERN_MATCH, config, make_request("tx.send", {"to": "0x0000"}))
        absent = run(PolicyType.PATTERN_MATCH, config, make_request("tx.send"))

        assert hit.outcome is Outcome.DENY
        assert absent.outcome is Outcome.NOT_APPLICABLE

    def test_resource_falls_back_to_operation(self, run, make_request) -> None:
        """Without resource-like parameters the operation is the resource."""
        result = run(PolicyType.PATTERN_MATCH, {"pattern": "delete"}, make_request("repos.delete"))
        assert result.outcome is Outcome.DENY


# ============================================================================
# IP_RESTRICTION
# ============================================================================


class TestIpRestriction:
    """Tests for IP_RESTRICTION."""

    CONFIG = {"allowedCidrs": ["10.0.0.0/8"], "deniedCidrs": ["10.66.0.0/16"]}

    def test_allowed_range(self, run, make_request) -> None:
        result = run(PolicyType.IP_RESTRICTION, self.CONFIG, make_request(source_ip="10.1.2.3"))
        assert result.outcome is Outcome.ALLOW

    def test_deny_takes_precedence(self, run, make_request) -> None:
        """An address in both lists is denied."""
        result = run(PolicyType.IP_RESTRICTION, self.CONFIG, make_request(source_ip="10.66.1.1"))
        assert result.outcome is Outcome.DENY

    def test_outside_allowed_ranges(self, run, make_request) -> None:
        result = run(PolicyType.IP_RESTRICTION, self.CONFIG, make_request(source_ip="8.8.8.8"))
        assert result.outcome is Outcome.DENY

    def test_deny_only_list_not_applicable_on_miss(self, run, make_request) -> None:
        config = {"deniedCidrs": ["203.0.113.0/24"]}
        result = run(PolicyType.IP_RESTRICTION, config, make_request(source_ip="8.8.8.8"))
        assert result.outcome is Outcome.NOT_APPLICABLE

    @pytest.mark.parametrize("source_ip", [None, "not-an-ip"])
    def test_unknown_or_invalid_ip_denied(self, run, make_request, source_ip) -> None:
        result = run(PolicyType.IP_RESTRICTION, self.CONFIG, make_request(source_ip=source_ip))
        assert result.outcome is Outcome.DENY

    def test_ipv6(self, run, make_request) -> None:
        config = {"allowedCidrs": ["2001:db8::/32"]}
        result = run(PolicyType.IP_RESTRICTION, config, make_request(source_ip="2001:db8::1"))
        assert result.outcome is Outcome.ALLOW


# ============================================================================
# TIME_BASED
# ============================================================================


class TestTimeBased:
    """Tests for TIME_BASED."""

    WINDOW = {"startTime": "09:00", "endTime": "17:00", "timezone": "America/New_York"}

    def test_just_before_window_denied(self, run, make_request) -> None:
        """08:59 New York time is outside a 09:00-17:00 New York window."""
        # 13:59 UTC == 08:59 EST
        request = make_request(timestamp=datetime(2025, 1, 15, 13, 59, tzinfo=UTC))
        result = run(PolicyType.TIME_BASED, self.WINDOW, request)
        assert result.outcome is Outcome.DENY

    def test_just_inside_window_allowed(self, run, make_request) -> None:
        request = make_request(timestamp=datetime(2025, 1, 15, 14, 1, tzinfo=UTC))
        result = run(PolicyType.TIME_BASED, self.WINDOW, request)
        assert result.outcome is Outcome.ALLOW

    def test_window_bounds_inclusive(self, run, make_request) -> None:
        """17:00 is still inside; 17:01 is not."""
        at_end = make_request(timestamp=datetime(2025, 1, 15, 22, 0, 30, tzinfo=UTC))
        after = make_request(timestamp=datetime(2025, 1, 15, 22, 1, tzinfo=UTC))

        assert run(PolicyType.TIME_BASED, self.WINDOW, at_end).outcome is Outcome.ALLOW
        assert run(PolicyType.TIME_BASED, self.WINDOW, after).outcome is Outcome.DENY

    def test_overnight_window(self, run, make_request) -> None:
        config = {"startTime": "22:00", "endTime": "06:00"}

        late = make_request(timestamp=datetime(2025, 1, 15, 23, 30, tzinfo=UTC))
        early = make_request(timestamp=datetime(2025, 1, 16, 5, 59, tzinfo=UTC))
        noon = make_request(timestamp=datetime(2025, 1, 16, 12, 0, tzinfo=UTC))

        assert run(PolicyType.TIME_BASED, config, late).outcome is Outcome.ALLOW
        assert run(PolicyType.TIME_BASED, config, early).outcome is Outcome.ALLOW
        assert run(PolicyType.TIME_BASED, config, noon).outcome is Outcome.DENY

    def test_days_of_week_in_configured_zone(self, run, make_request) -> None:
        """Saturday 01:00 UTC is still Friday in New York."""
        config = {"daysOfWeek": ["friday"], "timezone": "America/New_York"}
        request = make_request(timestamp=datetime(2025, 1, 18, 1, 0, tzinfo=UTC))
        result = run(PolicyType.TIME_BASED, config, request)
        assert result.outcome is Outcome.ALLOW

    def test_sunday_is_zero(self, run, make_request) -> None:
        request = make_request(timestamp=datetime(2025, 1, 19, 12, 0, tzinfo=UTC))  # Sunday
        assert run(PolicyType.TIME_BASED, {"daysOfWeek": [0]}, request).outcome is Outcome.ALLOW
        assert run(PolicyType.TIME_BASED, {"daysOfWeek": [1]}, request).outcome is Outcome.DENY

    def test_hours_of_day(self, run, make_request) -> None:
        request = make_request(timestamp=datetime(2025, 1, 15, 12, 30, tzinfo=UTC))
        assert run(PolicyType.TIME_BASED, {"hoursOfDay": [12]}, request).outcome is Outcome.ALLOW
        assert run(PolicyType.TIME_BASED, {"hoursOfDay": [13]}, request).outcome is Outcome.DENY

    def test_date_range(self, run, make_request) -> None:
        config = {"startDate": "2025-01-01", "endDate": "2025-01-31"}
        inside = make_request(timestamp=datetime(2025, 1, 31, 23, 0, tzinfo=UTC))
        outside = make_request(timestamp=datetime(2025, 2, 1, 0, 0, tzinfo=UTC))

        assert run(PolicyType.TIME_BASED, config, inside).outcome is Outcome.ALLOW
        assert run(PolicyType.TIME_BASED, config, outside).outcome is Outcome.DENY

    def test_naive_timestamp_treated_as_utc(self, run, make_request) -> None:
        request = make_request(timestamp=datetime(2025, 1, 15, 13, 59))
        result = run(PolicyType.TIME_BASED, self.WINDOW, request)
        assert result.outcome is Outcome.DENY


# ============================================================================
# COUNT_BASED / RATE_LIMITING
# ============================================================================


class TestCountBased:
    """Tests for COUNT_BASED."""

    def test_live_reserves_until_limit(self, run, make_request) -> None:
        """LIVE increments eagerly and returns a reservation; over the limit it compensates."""
        counters = InMemoryCounterStore()
        ctx = HandlerContext(mode=EvaluationMode.LIVE, counters=counters)
        request = make_request()
        key = count_key("p1", "cred-1", request.timestamp, None)

        outcomes = [run(PolicyType.COUNT_BASED, {"maxCount": 2}, request, ctx) for _ in range(3)]

        assert [r.outcome for r in outcomes] == [Outcome.ALLOW, Outcome.ALLOW, Outcome.DENY]
        assert [len(r.staged) for r in outcomes] == [1, 1, 0]
        assert outcomes[0].staged[0].key == key
        assert counters.get(key) == 2

    def test_simulate_reads_only(self, run, make_request) -> None:
        counters = InMemoryCounterStore()
        request = make_request()
        key = count_key("p1", "cred-1", request.timestamp, None)
        counters.increment_and_get(key)
        ctx = HandlerContext(mode=EvaluationMode.SIMULATE, counters=counters)

        below = run(PolicyType.COUNT_BASED, {"maxCount": 2}, request, ctx)
        at_limit = run(PolicyType.COUNT_BASED, {"maxCount": 1}, request, ctx)

        assert below.outcome is Outcome.ALLOW
        assert below.staged == ()
        assert at_limit.outcome is Outcome.DENY
        assert counters.get(key) == 1

    def test_per_ip_key(self, run, make_request) -> None:
        counters = InMemoryCounterStore()
        ctx = HandlerContext(mode=EvaluationMode.LIVE, counters=counters)

        result = run(PolicyType.COUNT_BASED, {"maxCount": 5, "perIp": True}, make_request(), ctx)

        assert result.staged[0].key == "count:p1:ip:10.0.0.5"

    def test_per_ip_without_ip_denied(self, run, make_request) -> None:
        ctx = HandlerContext(mode=EvaluationMode.LIVE, counters=InMemoryCounterStore())
        result = run(PolicyType.COUNT_BASED, {"maxCount": 5, "perIp": True}, make_request(source_ip=None), ctx)
        assert result.outcome is Outcome.DENY

    def test_reset_window_in_key(self) -> None:
        """resetWindow appends the epoch-aligned window index."""
        moment = datetime(2025, 1, 15, 12, 0, tzinfo=UTC)
        assert count_key("p", "c", moment, None) == "count:p:c"
        assert count_key("p", "c", moment, 3600) == f"count:p:c:{int(moment.timestamp()) // 3600}"

    def test_missing_counter_store_is_unavailable(self, run, make_request) -> None:
        with pytest.raises(CounterStoreUnavailableError):
            run(PolicyType.COUNT_BASED, {"maxCount": 1}, make_request(), LIVE)

    def test_store_error_propagates(self, run, make_request) -> None:
        counters = MagicMock()
        counters.increment_and_get.side_effect = CounterStoreUnavailableError("down")
        ctx = HandlerContext(mode=EvaluationMode.LIVE, counters=counters)

        with pytest.raises(CounterStoreUnavailableError):
            run(PolicyType.COUNT_BASED, {"maxCount": 1}, make_request(), ctx)


class TestRateLimiting:
    """Tests for RATE_LIMITING."""

    CONFIG = {"maxRequests": 2, "timeWindowSeconds": 60}

    def test_fixed_window(self, run, make_request) -> None:
        """The window resets at the next boundary."""
        counters = InMemoryCounterStore()
        ctx = HandlerContext(mode=EvaluationMode.LIVE, counters=counters)
        t0 = datetime(2025, 1, 15, 12, 0, 0, tzinfo=UTC)
        t1 = datetime(2025, 1, 15, 12, 1, 0, tzinfo=UTC)

        first = [run(PolicyType.RATE_LIMITING, self.CONFIG, make_request(timestamp=t0), ctx) for _ in range(3)]
        next_window = run(PolicyType.RATE_LIMITING, self.CONFIG, make_request(timestamp=t1), ctx)

        assert [r.outcome for r in first] == [Outcome.ALLOW, Outcome.ALLOW, Outcome.DENY]
        assert next_window.outcome is Outcome.ALLOW

    def test_key_layout(self) -> None:
        moment = datetime(2025, 1, 15, 12, 0, tzinfo=UTC)
        assert rate_key("p", "ip:1.2.3.4", moment, 60) == f"rate:p:ip:1.2.3.4:{int(moment.timestamp()) // 60}"

    def test_operation_filter(self, run, make_request) -> None:
        config = {**self.CONFIG, "operations": ["tx.*"]}
        ctx = HandlerContext(mode=EvaluationMode.LIVE, counters=InMemoryCounterStore())
        result = run(PolicyType.RATE_LIMITING, config, make_request("repos.read"), ctx)
        assert result.outcome is Outcome.NOT_APPLICABLE


# ============================================================================
# MANUAL_APPROVAL
# ============================================================================


class TestManualApproval:
    """Tests for MANUAL_APPROVAL."""

    def test_pending_without_grant(self, run, make_request) -> None:
        result = run(PolicyType.MANUAL_APPROVAL, {"approvers": ["alice"]}, make_request())
        assert result.outcome is Outcome.PENDING
        assert "alice" in result.detail

    def test_operation_filter(self, run, make_request) -> None:
        result = run(PolicyType.MANUAL_APPROVAL, {"operations": ["tx.sign"]}, make_request("repos.read"))
        assert result.outcome is Outcome.NOT_APPLICABLE

    @pytest.mark.parametrize(
        ("decision", "expected"),
        [
            (ApprovalDecision.APPROVED, Outcome.ALLOW),
            (ApprovalDecision.DENIED, Outcome.DENY),
            (ApprovalDecision.EXPIRED, Outcome.DENY),
        ],
    )
    def test_grant_short_circuits(self, run, make_request, decision, expected) -> None:
        ctx = HandlerContext(mode=EvaluationMode.LIVE, approval=ApprovalGrant("p1", decision))
        result = run(PolicyType.MANUAL_APPROVAL, {}, make_request(), ctx)
        assert result.outcome is expected

    def test_grant_for_other_policy_ignored(self, run, make_request) -> None:
        ctx = HandlerContext(
            mode=EvaluationMode.LIVE,
            approval=ApprovalGrant("other", ApprovalDecision.APPROVED),
        )
        result = run(PolicyType.MANUAL_APPROVAL, {}, make_request(), ctx)
        assert result.outcome is Outcome.PENDING
