"""Shared fixtures for credproxy tests."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from unittest.mock import MagicMock

import pytest

from credproxy.context.request import OperationRequest
from credproxy.pdp.engine import PolicyEvaluator
from credproxy.pdp.policy import CredentialScope, GlobalScope, PluginScope, Policy, PolicyType
from credproxy.pdp.simulator import PolicySimulator
from credproxy.pips.counter_store import InMemoryCounterStore
from credproxy.pips.policy_store import InMemoryPolicyStore
from credproxy.telemetry.system.system_logger import reset_system_logger

PolicyFactory = Callable[..., Policy]
RequestFactory = Callable[..., OperationRequest]

# Wednesday, 12:00 UTC
FIXED_TIME = datetime(2025, 1, 15, 12, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def isolated_system_logger():
    """Each test starts with a fresh system logger (no file handler)."""
    reset_system_logger()
    yield
    reset_system_logger()


@pytest.fixture
def make_policy() -> PolicyFactory:
    """Factory for policies; scope is "global", "plugin:<type>" or "credential:<id>"."""

    def _make(
        policy_id: str,
        policy_type: PolicyType,
        config: Any,
        *,
        scope: str = "global",
        priority: int = 0,
        is_active: bool = True,
        name: str | None = None,
    ) -> Policy:
        level, _, target = scope.partition(":")
        if level == "plugin":
            policy_scope: GlobalScope | PluginScope | CredentialScope = PluginScope(plugin_type=target)
        elif level == "credential":
            policy_scope = CredentialScope(credential_id=target)
        else:
            policy_scope = GlobalScope()
        return Policy(
            id=policy_id,
            name=name or policy_id,
            scope=policy_scope,
            type=policy_type,
            config=config,
            priority=priority,
            is_active=is_active,
        )

    return _make


@pytest.fixture
def make_request() -> RequestFactory:
    """Factory for requests against credential cred-1 (plugin type api-key)."""

    def _make(
        operation: str = "repos.read",
        parameters: dict[str, Any] | None = None,
        **overrides: Any,
    ) -> OperationRequest:
        fields: dict[str, Any] = {
            "credential_id": "cred-1",
            "application_id": "app-1",
            "plugin_type": "api-key",
            "operation": operation,
            "parameters": parameters or {},
            "source_ip": "10.0.0.5",
            "timestamp": FIXED_TIME,
        }
        fields.update(overrides)
        return OperationRequest(**fields)

    return _make


@pytest.fixture
def policy_store() -> InMemoryPolicyStore:
    return InMemoryPolicyStore()


@pytest.fixture
def counter_store() -> InMemoryCounterStore:
    return InMemoryCounterStore()


@pytest.fixture
def audit_emitter() -> MagicMock:
    return MagicMock()


@pytest.fixture
def evaluator(
    policy_store: InMemoryPolicyStore,
    counter_store: InMemoryCounterStore,
    audit_emitter: MagicMock,
) -> PolicyEvaluator:
    return PolicyEvaluator(policy_store, counter_store, audit_emitter=audit_emitter)


@pytest.fixture
def simulator(evaluator: PolicyEvaluator) -> PolicySimulator:
    return PolicySimulator(evaluator)
