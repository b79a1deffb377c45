"""Pattern matching for policy conditions.

This module provides the matching primitives shared by handlers:
- Operations: Glob matching (case-sensitive, operation identifiers are verbs
  such as "repos.read" or "tx.sign")
- Parameters: Glob matching against the string form of a parameter value
- Regex subjects: re.search against a resource path or operation string

Globs use fnmatch semantics (*, ?, [seq]). Patterns are matched with
fnmatchcase so results never depend on the host platform.
"""

from __future__ import annotations

__all__ = [
    "match_any_operation",
    "match_operation",
    "match_parameter",
    "parameter_as_text",
]

import json
from collections.abc import Iterable
from fnmatch import fnmatchcase
from typing import Any


def match_operation(pattern: str, operation: str) -> bool:
    """Match an operation identifier against a glob pattern.

    Args:
        pattern: Glob pattern (e.g., "repos.*", "tx.sign").
        operation: Operation identifier from the request.

    Returns:
        True if the operation matches the pattern.
    """
    if pattern == operation:
        return True
    return fnmatchcase(operation, pattern)


def match_any_operation(patterns: Iterable[str], operation: str) -> bool:
    """True if any pattern matches the operation (OR logic)."""
    return any(match_operation(p, operation) for p in patterns)


def parameter_as_text(value: Any) -> str:
    """Render a parameter value as the string patterns are matched against.

    Strings are used as-is, booleans as "true"/"false", numbers via str(),
    structured values as compact sorted JSON.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def match_parameter(pattern: str, parameters: dict[str, Any], name: str) -> bool:
    """Match a named request parameter against a glob pattern.

    A parameter that is absent (or None) never matches, so a constraint on
    a missing parameter cannot be satisfied.

    Args:
        pattern: Glob pattern for the parameter's string form.
        parameters: Request parameters.
        name: Parameter name.

    Returns:
        True if the parameter is present and matches.
    """
    value = parameters.get(name)
    if value is None:
        return False
    return fnmatchcase(parameter_as_text(value), pattern)
