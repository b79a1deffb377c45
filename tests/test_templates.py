"""Tests for built-in policy templates."""

from __future__ import annotations

import pytest

from credproxy.exceptions import PolicyConfigurationError
from credproxy.pdp.configs import validate_policy
from credproxy.pdp.decision import VerdictStatus
from credproxy.pdp.policy import CredentialScope, GlobalScope, PolicyType, ScopeLevel
from credproxy.pdp.templates import get_template, instantiate_template, list_templates


class TestTemplateCatalog:
    def test_ids_unique(self) -> None:
        ids = [t.id for t in list_templates()]
        assert len(ids) == len(set(ids))

    @pytest.mark.parametrize("template", list_templates(), ids=lambda t: t.id)
    def test_every_template_instantiates(self, template) -> None:
        policy = instantiate_template(template.id, policy_id=f"t-{template.id}", scope=GlobalScope())
        validate_policy(policy)
        assert policy.type is template.type

    def test_filter_by_plugin_type(self) -> None:
        ethereum = {t.id for t in list_templates("ethereum")}

        assert {"ethereum-read-only", "ethereum-transaction-approval", "read-only"} <= ethereum
        assert "api-key-rate-limit" not in ethereum

    def test_unknown_template(self) -> None:
        with pytest.raises(KeyError, match="nope"):
            get_template("nope")


class TestInstantiateTemplate:
    def test_overrides_and_scope(self) -> None:
        policy = instantiate_template(
            "business-hours-only",
            policy_id="cred-42-hours",
            scope=CredentialScope(credential_id="cred-42"),
            overrides={"timezone": "Europe/Vienna"},
            priority=5,
        )

        assert policy.level is ScopeLevel.CREDENTIAL
        assert policy.target == "cred-42"
        assert policy.config["timezone"] == "Europe/Vienna"
        assert policy.config["startTime"] == "09:00"
        assert policy.priority == 5
        assert policy.name == "Business Hours Only"
        assert policy.created_at is not None

    def test_template_not_mutated(self) -> None:
        instantiate_template("daily-usage-cap", policy_id="x", scope=GlobalScope(), overrides={"maxCount": 5})
        assert get_template("daily-usage-cap").config["maxCount"] == 1000

    def test_invalid_override(self) -> None:
        with pytest.raises(PolicyConfigurationError):
            instantiate_template("daily-usage-cap", policy_id="x", scope=GlobalScope(), overrides={"maxCount": 0})

    def test_block_secret_paths_in_cascade(self, evaluator, policy_store, make_request) -> None:
        policy_store.save(instantiate_template("block-secret-paths", policy_id="secrets", scope=GlobalScope()))

        blocked = evaluator.evaluate(make_request("get", {"path": "/aws/secrets/db-password"}))
        passed = evaluator.evaluate(make_request("get", {"path": "/aws/config/region"}))

        assert blocked.status is VerdictStatus.DENIED
        assert passed.status is VerdictStatus.ALLOWED

    def test_read_only_template(self, evaluator, policy_store, make_request) -> None:
        policy_store.save(
            instantiate_template("read-only", policy_id="ro", scope=CredentialScope(credential_id="cred-1"))
        )

        assert evaluator.evaluate(make_request("getBalance")).status is VerdictStatus.ALLOWED
        assert evaluator.evaluate(make_request("deleteRepo")).status is VerdictStatus.DENIED

    def test_type_matches_catalog(self) -> None:
        assert get_template("api-key-rate-limit").type is PolicyType.RATE_LIMITING
