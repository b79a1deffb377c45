"""Policy models for credential policy evaluation.

This module defines the policy data model used by the evaluator.

Policy structure:
    Policy
    ├── id, name, description
    ├── scope: PolicyScope (tagged variant)
    │   ├── GlobalScope                      → applies to every request
    │   ├── PluginScope(plugin_type)         → every credential of one type
    │   └── CredentialScope(credential_id)   → one credential
    ├── type: PolicyType (closed set of eight)
    ├── config: raw stored payload, validated per type (see configs.py)
    ├── priority: higher first within its scope, ties broken by id
    └── is_active: inactive policies are skipped entirely

Design principles:
1. Scope and target are one value, so a GLOBAL policy with a target (or a
   PLUGIN policy without one) cannot be constructed
2. Unknown policy types are rejected at construction time
3. The config payload is kept as stored: a policy whose config is broken
   must still reach the evaluator so that it can fail closed
"""

from __future__ import annotations

__all__ = [
    "CredentialScope",
    "GlobalScope",
    "PluginScope",
    "Policy",
    "PolicyScope",
    "PolicyType",
    "SCOPE_ORDER",
    "ScopeLevel",
    "policy_sort_key",
]

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class PolicyType(str, Enum):
    """Closed set of policy types, one handler each."""

    ALLOW_LIST = "ALLOW_LIST"
    DENY_LIST = "DENY_LIST"
    TIME_BASED = "TIME_BASED"
    COUNT_BASED = "COUNT_BASED"
    RATE_LIMITING = "RATE_LIMITING"
    PATTERN_MATCH = "PATTERN_MATCH"
    IP_RESTRICTION = "IP_RESTRICTION"
    MANUAL_APPROVAL = "MANUAL_APPROVAL"

    @property
    def is_stateful(self) -> bool:
        """True for types that reserve quota in the Counter Store."""
        return self in (PolicyType.COUNT_BASED, PolicyType.RATE_LIMITING)


class ScopeLevel(str, Enum):
    """Breadth at which a policy applies."""

    GLOBAL = "GLOBAL"
    PLUGIN = "PLUGIN"
    CREDENTIAL = "CREDENTIAL"


# Fixed cascade order: broader scopes veto before narrower ones are consulted
SCOPE_ORDER: tuple[ScopeLevel, ...] = (ScopeLevel.GLOBAL, ScopeLevel.PLUGIN, ScopeLevel.CREDENTIAL)


# =============================================================================
# Scope variants
# =============================================================================


class GlobalScope(BaseModel):
    """Applies to all requests."""

    level: Literal["GLOBAL"] = "GLOBAL"

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def target(self) -> None:
        return None


class PluginScope(BaseModel):
    """Applies to all credentials of one plugin type."""

    level: Literal["PLUGIN"] = "PLUGIN"
    plugin_type: str = Field(min_length=1)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def target(self) -> str:
        return self.plugin_type


class CredentialScope(BaseModel):
    """Applies to one credential instance."""

    level: Literal["CREDENTIAL"] = "CREDENTIAL"
    credential_id: str = Field(min_length=1)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def target(self) -> str:
        return self.credential_id


PolicyScope = Annotated[GlobalScope | PluginScope | CredentialScope, Field(discriminator="level")]


# =============================================================================
# Policy
# =============================================================================


class Policy(BaseModel):
    """A named rule evaluated against operation requests.

    Accepts both the nested scope form ({"scope": {"level": "PLUGIN",
    "plugin_type": "api-key"}}) and the flat stored form ({"scope": "PLUGIN",
    "targetPluginType": "api-key"}). Field names accept camelCase aliases
    (isActive, createdAt) as well as snake_case.

    Attributes:
        id: Unique policy identifier.
        name: Display name.
        description: Optional human-readable description.
        scope: Where the policy applies (tagged variant).
        type: Policy type, selects the handler.
        config: Raw type-specific payload, validated by configs.validate_policy().
        priority: Higher is evaluated first within its scope.
        is_active: Inactive policies are skipped entirely.
        created_at: Creation time (informational).
        updated_at: Last modification time; part of the validation cache key.
    """

    id: str = Field(min_length=1)
    name: str = ""
    description: str | None = None
    scope: PolicyScope = Field(default_factory=GlobalScope)
    type: PolicyType
    # Raw stored payload; may be invalid, in which case the policy fails closed
    config: Any = Field(default_factory=dict)
    priority: int = 0
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def accept_flat_scope(cls, data: Any) -> Any:
        """Convert the flat stored scope form into the tagged variant.

        Exactly one of {no target, targetPluginType, targetCredentialId} must be
        set, consistent with the scope name.
        """
        if not isinstance(data, dict) or not isinstance(data.get("scope"), str):
            return data

        data = dict(data)
        level = data.pop("scope").upper()
        plugin_type = data.pop("targetPluginType", None) or data.pop("target_plugin_type", None)
        credential_id = data.pop("targetCredentialId", None) or data.pop("target_credential_id", None)

        if level == ScopeLevel.GLOBAL:
            if plugin_type or credential_id:
                raise ValueError("GLOBAL policies must not set targetPluginType or targetCredentialId")
            data["scope"] = {"level": "GLOBAL"}
        elif level == ScopeLevel.PLUGIN:
            if not plugin_type or credential_id:
                raise ValueError("PLUGIN policies require targetPluginType and no targetCredentialId")
            data["scope"] = {"level": "PLUGIN", "plugin_type": plugin_type}
        elif level == ScopeLevel.CREDENTIAL:
            if not credential_id or plugin_type:
                raise ValueError("CREDENTIAL policies require targetCredentialId and no targetPluginType")
            data["scope"] = {"level": "CREDENTIAL", "credential_id": credential_id}
        else:
            raise ValueError(f"Unknown scope: {level!r}")
        return data

    @property
    def level(self) -> ScopeLevel:
        """Scope level of this policy."""
        return ScopeLevel(self.scope.level)

    @property
    def target(self) -> str | None:
        """Plugin type or credential id this policy targets (None for GLOBAL)."""
        return self.scope.target

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Policy:
        """Build a policy from a stored record (flat or nested scope form).

        Raises:
            pydantic.ValidationError: If the scope/target combination is
                inconsistent, the type is unknown or a field is malformed.
        """
        return cls.model_validate(record)

    def to_record(self) -> dict[str, Any]:
        """Serialize to the flat stored form (camelCase keys).

        Returns:
            dict: JSON-compatible record accepted back by Policy.model_validate().
        """
        record: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "scope": self.level.value,
            "type": self.type.value,
            "config": self.config,
            "priority": self.priority,
            "isActive": self.is_active,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
        if isinstance(self.scope, PluginScope):
            record["targetPluginType"] = self.scope.plugin_type
        elif isinstance(self.scope, CredentialScope):
            record["targetCredentialId"] = self.scope.credential_id
        return {k: v for k, v in record.items() if v is not None}

    def with_changes(self, **changes: Any) -> Self:
        """Return a copy with the given fields replaced (policies are immutable)."""
        return self.model_copy(update=changes)


def policy_sort_key(policy: Policy) -> tuple[int, str]:
    """Ordering within a scope bucket: priority descending, then id ascending."""
    return (-policy.priority, policy.id)
