"""Policy Store implementations.

Two stores ship with the engine:

- InMemoryPolicyStore: mutable, thread-safe, validates configs on save
- JsonFilePolicyStore: read-only view of a policies.json document

policies.json format:
    {
      "version": 1,
      "policies": [
        {"id": "deny-secrets", "name": "Block secrets", "scope": "GLOBAL",
         "type": "PATTERN_MATCH", "config": {"pattern": "^/aws/secrets/.+$"},
         "priority": 100, "isActive": true},
        {"id": "gh-cap", "scope": "CREDENTIAL", "targetCredentialId": "cred-1",
         "type": "COUNT_BASED", "config": {"maxCount": 100}}
      ]
    }
"""

from __future__ import annotations

__all__ = [
    "InMemoryPolicyStore",
    "JsonFilePolicyStore",
    "PolicyDocument",
]

import threading
from collections.abc import Iterable
from pathlib import Path
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

from credproxy.exceptions import PolicyConfigurationError
from credproxy.pdp.configs import validate_policy
from credproxy.pdp.policy import Policy, ScopeLevel
from credproxy.telemetry.system.system_logger import get_system_logger
from credproxy.utils.file_helpers import load_validated_json, require_file_exists, write_json_atomic


def _matches_bucket(policy: Policy, level: ScopeLevel, target: str | None) -> bool:
    return policy.is_active and policy.level is level and policy.target == target


class InMemoryPolicyStore:
    """Thread-safe in-memory Policy Store.

    Policies are validated against their type's schema when saved, so a
    misconfigured policy is rejected before it is ever evaluated.
    """

    def __init__(self, policies: Iterable[Policy] = ()) -> None:
        self._policies: dict[str, Policy] = {}
        self._lock = threading.Lock()
        for policy in policies:
            self.save(policy)

    def save(self, policy: Policy, *, validate: bool = True) -> Policy:
        """Insert or replace a policy.

        Args:
            policy: Policy to store (replaces any policy with the same id).
            validate: Check the config against its type first. Pass False
                only to import legacy records as-is; such policies still
                fail closed at evaluation time.

        Returns:
            The stored policy.

        Raises:
            PolicyConfigurationError: If validate is True and the config is invalid.
        """
        if validate:
            validate_policy(policy)
        with self._lock:
            self._policies[policy.id] = policy
        return policy

    def delete(self, policy_id: str) -> bool:
        """Remove a policy. Returns False if it did not exist."""
        with self._lock:
            return self._policies.pop(policy_id, None) is not None

    def get(self, policy_id: str) -> Policy | None:
        with self._lock:
            return self._policies.get(policy_id)

    def all_policies(self) -> list[Policy]:
        with self._lock:
            return list(self._policies.values())

    def list_active_policies(self, level: ScopeLevel, target: str | None) -> list[Policy]:
        with self._lock:
            return [p for p in self._policies.values() if _matches_bucket(p, level, target)]


class PolicyDocument(BaseModel):
    """On-disk policy document (policies.json)."""

    version: int = 1
    policies: list[Policy] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def unique_ids(self) -> Self:
        ids = [p.id for p in self.policies]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate policy IDs: {duplicates}")
        return self


class JsonFilePolicyStore:
    """Read-only Policy Store backed by a JSON document.

    The document's structure (scopes, types, ids) must be valid or loading
    fails. Config payloads are checked too, but a policy with a bad config
    is kept and logged: it will deny at evaluation time rather than vanish.

    reload() swaps the whole policy list atomically; lookups never see a
    half-loaded document.
    """

    def __init__(self, path: Path) -> None:
        """Load the document.

        Args:
            path: Path to policies.json.

        Raises:
            FileNotFoundError: If the file does not exist.
            ValueError: If the JSON is malformed or fails validation.
        """
        self.path = path
        self._document = self._load()

    def _load(self) -> PolicyDocument:
        require_file_exists(self.path, file_type="policy")
        document = load_validated_json(
            self.path,
            PolicyDocument,
            file_type="policy",
            recovery_hint="Fix the listed fields; the previous policy set stays active until then.",
        )
        for policy in document.policies:
            try:
                validate_policy(policy)
            except PolicyConfigurationError as e:
                get_system_logger().warning(
                    {
                        "event": "policy_configuration_error",
                        "message": f"Loaded misconfigured policy, it will deny: {e.message}",
                        "policy_id": policy.id,
                        "policy_type": policy.type.value,
                        "path": str(self.path),
                    }
                )
        return document

    def reload(self) -> int:
        """Re-read the document.

        Returns:
            Number of policies now loaded.

        Raises:
            FileNotFoundError, ValueError: The old document stays active.
        """
        self._document = self._load()
        return len(self._document.policies)

    @property
    def policies(self) -> list[Policy]:
        return list(self._document.policies)

    def list_active_policies(self, level: ScopeLevel, target: str | None) -> list[Policy]:
        return [p for p in self._document.policies if _matches_bucket(p, level, target)]

    @staticmethod
    def write(path: Path, policies: Iterable[Policy]) -> None:
        """Validate policies and write them as a policy document.

        Raises:
            PolicyConfigurationError: If any policy's config is invalid
                (nothing is written).
        """
        policies = list(policies)
        for policy in policies:
            validate_policy(policy)
        document = {"version": 1, "policies": [p.to_record() for p in policies]}
        write_json_atomic(path, document, prefix=".policies_")
