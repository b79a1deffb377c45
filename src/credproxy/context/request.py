"""The operation request being evaluated.

An OperationRequest describes one attempt by an application to use a stored
credential: which credential, which operation, with what parameters, from
where and when. It carries no secret material.
"""

from __future__ import annotations

__all__ = [
    "OperationRequest",
    "build_operation_request",
]

import hashlib
import json
import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from credproxy.constants import RESOURCE_PARAMETER_NAMES
from credproxy.telemetry.system.system_logger import get_system_logger

if TYPE_CHECKING:
    from credproxy.pdp.protocol import MetadataResolver


def _new_request_id() -> str:
    return uuid.uuid4().hex


def _utc_now() -> datetime:
    return datetime.now(UTC)


class OperationRequest(BaseModel):
    """A credentialed operation an application wants to perform.

    Attributes:
        request_id: Correlation ID for logs and audit.
        credential_id: Credential the operation uses.
        application_id: Application asking for the operation.
        plugin_type: Credential type (e.g., "api-key", "oauth"). None skips
            PLUGIN-scope policies.
        operation: Operation identifier (verb).
        parameters: Operation-specific parameters.
        source_ip: Caller's IP address, if known.
        timestamp: When the request was made (naive values are UTC).
    """

    request_id: str = Field(default_factory=_new_request_id)
    credential_id: str = Field(min_length=1)
    application_id: str
    plugin_type: str | None = None
    operation: str = Field(min_length=1)
    parameters: dict[str, Any] = Field(default_factory=dict)
    source_ip: str | None = None
    timestamp: datetime = Field(default_factory=_utc_now)

    model_config = ConfigDict(frozen=True)

    @field_validator("timestamp", mode="after")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @property
    def resource(self) -> str:
        """Resource the operation targets.

        The first non-empty string among the resource-like parameters
        (resource, path, url, resourcePath), falling back to the operation.
        """
        for name in RESOURCE_PARAMETER_NAMES:
            value = self.parameters.get(name)
            if isinstance(value, str) and value:
                return value
        return self.operation

    def fingerprint(self) -> str:
        """Stable SHA-256 over the request's identity.

        Covers credential, application, plugin type, operation and
        parameters. Timestamp, source IP and request id are excluded so a
        resumed request (new id, later time) still matches its approval.
        """
        identity = {
            "credential_id": self.credential_id,
            "application_id": self.application_id,
            "plugin_type": self.plugin_type,
            "operation": self.operation,
            "parameters": self.parameters,
        }
        payload = json.dumps(identity, sort_keys=True, separators=(",", ":"), default=str)
        return hashlib.sha256(payload.encode()).hexdigest()


def build_operation_request(
    credential_id: str,
    application_id: str,
    operation: str,
    parameters: dict[str, Any] | None = None,
    *,
    source_ip: str | None = None,
    timestamp: datetime | None = None,
    plugin_type: str | None = None,
    metadata: "MetadataResolver | None" = None,
    request_id: str | None = None,
) -> OperationRequest:
    """Build an OperationRequest, resolving the plugin type when needed.

    The plugin type is derived from the credential. When the caller does
    not pass it, it is looked up through the metadata resolver; a failed
    lookup is logged and the request proceeds without a plugin type.

    Args:
        credential_id: Credential the operation uses.
        application_id: Application asking for the operation.
        operation: Operation identifier.
        parameters: Operation parameters.
        source_ip: Caller's IP address.
        timestamp: Request time (defaults to now, UTC).
        plugin_type: Credential type, if already known.
        metadata: Resolver for the plugin type.
        request_id: Correlation ID (generated when omitted).

    Returns:
        OperationRequest ready for evaluation.
    """
    if plugin_type is None and metadata is not None:
        try:
            plugin_type = metadata.plugin_type_for(credential_id)
        except Exception as e:
            get_system_logger().warning(
                {
                    "event": "metadata_lookup_failed",
                    "message": f"Could not resolve plugin type: {e}",
                    "credential_id": credential_id,
                    "error_type": type(e).__name__,
                }
            )

    fields: dict[str, Any] = {
        "credential_id": credential_id,
        "application_id": application_id,
        "plugin_type": plugin_type,
        "operation": operation,
        "parameters": parameters or {},
        "source_ip": source_ip,
    }
    if timestamp is not None:
        fields["timestamp"] = timestamp
    if request_id is not None:
        fields["request_id"] = request_id
    return OperationRequest(**fields)
