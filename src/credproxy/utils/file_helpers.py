"""Shared file utilities for credproxy.

Provides common utilities used by the engine config and the JSON policy store:
- set_secure_permissions: Owner-only file/directory permissions
- require_file_exists: Consistent "file not found" errors
- load_validated_json: JSON read + Pydantic validation with readable errors
- write_json_atomic: Crash-safe JSON writes (temp file + rename)
"""

from __future__ import annotations

import json
import os
import sys
import tempfile
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

# Type variable for Pydantic models
T = TypeVar("T", bound=BaseModel)

__all__ = [
    "load_validated_json",
    "require_file_exists",
    "set_secure_permissions",
    "write_json_atomic",
]


def set_secure_permissions(path: Path, *, is_directory: bool = False) -> None:
    """Set secure permissions on file or directory.

    Sets permissions to restrict access to owner only:
    - Directory: 0o700 (rwx------)
    - File: 0o600 (rw-------)

    Does nothing on Windows. Silently ignores permission errors
    (some systems don't allow permission changes).

    Args:
        path: Path to file or directory.
        is_directory: If True, use directory permissions (0o700).
    """
    if sys.platform == "win32":
        return

    try:
        mode = 0o700 if is_directory else 0o600
        path.chmod(mode)
    except OSError:
        pass  # Permission changes might fail on some systems


def require_file_exists(file_path: Path, file_type: str = "file") -> None:
    """Raise FileNotFoundError with helpful message if file doesn't exist.

    Args:
        file_path: Path to check.
        file_type: Description for error message (e.g., "configuration", "policy").

    Raises:
        FileNotFoundError: If file doesn't exist.
    """
    if file_path.exists():
        return
    raise FileNotFoundError(f"{file_type.capitalize()} file not found at {file_path}.")


def load_validated_json(
    file_path: Path,
    model_class: type[T],
    file_type: str = "file",
    recovery_hint: str | None = None,
) -> T:
    """Load JSON file and validate against Pydantic model.

    Combines file reading, JSON parsing, and Pydantic validation with
    consistent error messages.

    Args:
        file_path: Path to JSON file.
        model_class: Pydantic model class to validate against.
        file_type: Description for error messages (e.g., "config", "policy").
        recovery_hint: Optional hint appended to validation errors.

    Returns:
        Validated Pydantic model instance.

    Raises:
        ValueError: If JSON is invalid or validation fails.
    """
    try:
        with open(file_path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {file_type} file {file_path}: {e}") from e
    except OSError as e:
        raise ValueError(f"Could not read {file_type} file {file_path}: {e}") from e

    try:
        return model_class.model_validate(data)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc_parts = error["loc"]
            loc = ".".join(str(x) for x in loc_parts)

            # Name the offending policy when the error is inside the policies list
            context = ""
            if len(loc_parts) >= 2 and loc_parts[0] == "policies" and isinstance(loc_parts[1], int):
                policies = data.get("policies", []) if isinstance(data, dict) else []
                index = loc_parts[1]
                if 0 <= index < len(policies) and isinstance(policies[index], dict):
                    policy_id = policies[index].get("id")
                    context = f" (policy id: {policy_id})" if policy_id else f" (policy #{index + 1})"

            errors.append(f"  - {loc}{context}: {error['msg']}")

        hint = f"\n\n{recovery_hint}" if recovery_hint else ""
        raise ValueError(
            f"Invalid {file_type} configuration in {file_path}:\n" + "\n".join(errors) + hint
        ) from e


def write_json_atomic(path: Path, data: Any, *, prefix: str = ".credproxy_") -> None:
    """Write JSON to a file atomically.

    Uses atomic write pattern: write to temp file, then rename.
    This prevents file corruption if write fails midway.

    Creates parent directories if they don't exist.
    Sets secure permissions (0o700 on directory, 0o600 on file).

    Args:
        path: Destination file.
        data: JSON-serializable data.
        prefix: Temp file prefix (same directory as the destination).
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    set_secure_permissions(path.parent, is_directory=True)

    content = json.dumps(data, indent=2) + "\n"

    # Same directory ensures rename is atomic (same filesystem)
    fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=prefix, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())

        os.chmod(temp_path, 0o600)
        os.replace(temp_path, path)

    except Exception:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise
