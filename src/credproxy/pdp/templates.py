"""Built-in policy templates.

Templates are pre-filled policy definitions an operator can start from:
pick one, point it at a scope, optionally tweak the config, and get a
validated Policy back. Each template lists the credential (plugin) types it
is meant for.

Usage:
    from credproxy.pdp.templates import instantiate_template
    from credproxy.pdp.policy import CredentialScope

    policy = instantiate_template(
        "business-hours-only",
        policy_id="cred-42-hours",
        scope=CredentialScope(credential_id="cred-42"),
        overrides={"timezone": "Europe/Vienna"},
    )
"""

from __future__ import annotations

__all__ = [
    "PolicyTemplate",
    "TemplateCategory",
    "get_template",
    "instantiate_template",
    "list_templates",
]

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from credproxy.pdp.configs import validate_policy
from credproxy.pdp.policy import (
    CredentialScope,
    GlobalScope,
    PluginScope,
    Policy,
    PolicyType,
    ScopeLevel,
)

_ALL_PLUGIN_TYPES: tuple[str, ...] = ("api-key", "oauth", "ethereum", "database")


class TemplateCategory(str, Enum):
    SECURITY = "Security"
    ACCESS_CONTROL = "Access Control"
    USAGE_LIMITS = "Usage Limits"
    APPROVAL = "Approval Workflow"


class PolicyTemplate(BaseModel):
    """A reusable policy definition.

    Attributes:
        id: Template identifier.
        name: Display name, used as the policy name by default.
        description: What the resulting policy does.
        type: Policy type.
        category: Grouping for presentation.
        plugin_types: Credential types the template is meant for.
        config: Config payload for the policy type.
        scope: Suggested scope level.
        priority: Default priority.
        recommended: Suggested for new credentials of a matching type.
    """

    id: str
    name: str
    description: str
    type: PolicyType
    category: TemplateCategory
    plugin_types: tuple[str, ...] = _ALL_PLUGIN_TYPES
    config: dict[str, Any] = Field(default_factory=dict)
    scope: ScopeLevel = ScopeLevel.CREDENTIAL
    priority: int = 0
    recommended: bool = False

    model_config = ConfigDict(frozen=True)


_TEMPLATES: tuple[PolicyTemplate, ...] = (
    PolicyTemplate(
        id="read-only",
        name="Read-Only Access",
        description="Allow only read operations, deny everything else",
        type=PolicyType.ALLOW_LIST,
        category=TemplateCategory.ACCESS_CONTROL,
        config={"operations": ["get*", "list*", "read*", "describe*"]},
        priority=100,
        recommended=True,
    ),
    PolicyTemplate(
        id="business-hours-only",
        name="Business Hours Only",
        description="Allow access only 09:00-17:00, Monday to Friday",
        type=PolicyType.TIME_BASED,
        category=TemplateCategory.ACCESS_CONTROL,
        config={
            "daysOfWeek": ["monday", "tuesday", "wednesday", "thursday", "friday"],
            "startTime": "09:00",
            "endTime": "17:00",
            "timezone": "UTC",
        },
        priority=90,
    ),
    PolicyTemplate(
        id="manual-approval-sensitive",
        name="Manual Approval for Sensitive Operations",
        description="Require a human decision before destructive or signing operations",
        type=PolicyType.MANUAL_APPROVAL,
        category=TemplateCategory.APPROVAL,
        config={"operations": ["delete*", "write*", "sign*", "send*"], "expirationMinutes": 60},
        priority=100,
        recommended=True,
    ),
    PolicyTemplate(
        id="daily-usage-cap",
        name="Daily Usage Cap",
        description="Allow at most 1000 uses per credential per day",
        type=PolicyType.COUNT_BASED,
        category=TemplateCategory.USAGE_LIMITS,
        config={"maxCount": 1000, "resetWindow": 86400},
        priority=70,
        recommended=True,
    ),
    PolicyTemplate(
        id="api-key-rate-limit",
        name="API Key Rate Limiting",
        description="Limit each caller IP to 100 requests per minute",
        type=PolicyType.RATE_LIMITING,
        category=TemplateCategory.USAGE_LIMITS,
        plugin_types=("api-key",),
        config={"maxRequests": 100, "timeWindowSeconds": 60, "perIp": True},
        priority=80,
        recommended=True,
    ),
    PolicyTemplate(
        id="block-secret-paths",
        name="Block Secret Paths",
        description="Deny operations on resources under a secrets path",
        type=PolicyType.PATTERN_MATCH,
        category=TemplateCategory.SECURITY,
        config={"pattern": r"(^|/)secrets(/|$)", "action": "deny", "target": "resource"},
        scope=ScopeLevel.GLOBAL,
        priority=200,
    ),
    PolicyTemplate(
        id="internal-network-only",
        name="Internal Network Only",
        description="Allow requests only from private address ranges",
        type=PolicyType.IP_RESTRICTION,
        category=TemplateCategory.SECURITY,
        config={"allowedCidrs": ["10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16", "127.0.0.1/32"]},
        priority=150,
    ),
    PolicyTemplate(
        id="oauth-deny-sensitive",
        name="Deny Sensitive Operations",
        description="Deny data modification and settings changes",
        type=PolicyType.DENY_LIST,
        category=TemplateCategory.SECURITY,
        plugin_types=("oauth",),
        config={"operations": ["writeData", "deleteData", "modifySettings"]},
        priority=90,
        recommended=True,
    ),
    PolicyTemplate(
        id="ethereum-read-only",
        name="Read-Only Blockchain Access",
        description="Allow only read operations on the blockchain",
        type=PolicyType.ALLOW_LIST,
        category=TemplateCategory.ACCESS_CONTROL,
        plugin_types=("ethereum",),
        config={"operations": ["getBalance", "call", "getTransactionCount", "getCode", "getStorageAt"]},
        priority=100,
        recommended=True,
    ),
    PolicyTemplate(
        id="ethereum-transaction-approval",
        name="Approve All Transactions",
        description="Require manual approval for all blockchain transactions",
        type=PolicyType.MANUAL_APPROVAL,
        category=TemplateCategory.APPROVAL,
        plugin_types=("ethereum",),
        config={"operations": ["sendTransaction", "signTransaction", "sign"], "expirationMinutes": 30},
        priority=100,
    ),
)

_BY_ID: dict[str, PolicyTemplate] = {t.id: t for t in _TEMPLATES}


def list_templates(plugin_type: str | None = None) -> list[PolicyTemplate]:
    """Return templates, optionally only those meant for one plugin type."""
    if plugin_type is None:
        return list(_TEMPLATES)
    return [t for t in _TEMPLATES if plugin_type in t.plugin_types]


def get_template(template_id: str) -> PolicyTemplate:
    """Return a template by id.

    Raises:
        KeyError: If no template has this id.
    """
    try:
        return _BY_ID[template_id]
    except KeyError:
        raise KeyError(f"Unknown policy template: {template_id!r}") from None


def instantiate_template(
    template_id: str,
    *,
    policy_id: str,
    scope: GlobalScope | PluginScope | CredentialScope,
    overrides: dict[str, Any] | None = None,
    name: str | None = None,
    priority: int | None = None,
) -> Policy:
    """Create a validated policy from a template.

    Args:
        template_id: Template to start from.
        policy_id: ID of the new policy.
        scope: Where the policy applies.
        overrides: Config keys replacing the template's (shallow merge).
        name: Policy name (template name when None).
        priority: Policy priority (template priority when None).

    Returns:
        A new active Policy.

    Raises:
        KeyError: If the template does not exist.
        PolicyConfigurationError: If the merged config is invalid.
    """
    template = get_template(template_id)
    now = datetime.now(UTC)
    policy = Policy(
        id=policy_id,
        name=name or template.name,
        description=template.description,
        scope=scope,
        type=template.type,
        config={**template.config, **(overrides or {})},
        priority=template.priority if priority is None else priority,
        created_at=now,
        updated_at=now,
    )
    validate_policy(policy)
    return policy
