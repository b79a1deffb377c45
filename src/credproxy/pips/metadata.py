"""Static metadata resolver.

Maps credentials to plugin types and provides display names for traces.
Deployments backed by a credential database implement MetadataResolver
themselves; this one serves fixed dictionaries (tests, simple setups).
"""

from __future__ import annotations

__all__ = [
    "StaticMetadataResolver",
]

from collections.abc import Mapping


class StaticMetadataResolver:
    """MetadataResolver over fixed mappings.

    Args:
        credential_plugin_types: credential_id -> plugin type.
        credential_names: credential_id -> display name.
        plugin_names: plugin type -> display name.
    """

    def __init__(
        self,
        credential_plugin_types: Mapping[str, str] | None = None,
        credential_names: Mapping[str, str] | None = None,
        plugin_names: Mapping[str, str] | None = None,
    ) -> None:
        self._plugin_types = dict(credential_plugin_types or {})
        self._credential_names = dict(credential_names or {})
        self._plugin_names = dict(plugin_names or {})

    def plugin_type_for(self, credential_id: str) -> str | None:
        return self._plugin_types.get(credential_id)

    def credential_name(self, credential_id: str) -> str | None:
        return self._credential_names.get(credential_id)

    def plugin_name(self, plugin_type: str) -> str | None:
        return self._plugin_names.get(plugin_type)
