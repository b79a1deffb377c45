"""Engine configuration for credproxy.

Defines configuration models for the evaluator's default verdict, counter
backend, logging and approvals. Configuration is a JSON file; every field
has a default, so an empty object is a valid config.

Example usage:
    # Load from config file
    config = EngineConfig.load_from_file(config_path)

    # Save configuration
    config.save_to_file(config_path)

Example config.json:
    {
      "default_verdict": "allow",
      "policy_file": "/etc/credproxy/policies.json",
      "counter_store": {"backend": "redis", "redis_url": "redis://localhost:6379/0"},
      "logging": {"log_dir": "/var/log/credproxy"},
      "approvals": {"default_expiration_minutes": 30}
    }
"""

from __future__ import annotations

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_LOG_DIR",
    "ApprovalConfig",
    "CounterStoreConfig",
    "EngineConfig",
    "LoggingConfig",
]

from pathlib import Path
from typing import Literal, Self

from platformdirs import user_config_dir, user_log_dir
from pydantic import BaseModel, ConfigDict, Field, model_validator

from credproxy.constants import (
    APP_NAME,
    DEFAULT_APPROVAL_EXPIRATION_MINUTES,
    DEFAULT_REDIS_KEY_PREFIX,
    DEFAULT_VALIDATION_CACHE_SIZE,
    MAX_APPROVAL_EXPIRATION_MINUTES,
    MIN_APPROVAL_EXPIRATION_MINUTES,
    SYSTEM_LOG_FILENAME,
)
from credproxy.exceptions import ConfigurationError
from credproxy.utils.file_helpers import load_validated_json, require_file_exists, write_json_atomic

DEFAULT_LOG_DIR = user_log_dir(APP_NAME)
DEFAULT_CONFIG_PATH = Path(user_config_dir(APP_NAME)) / "config.json"


class CounterStoreConfig(BaseModel):
    """Counter Store backend for COUNT_BASED and RATE_LIMITING policies.

    Attributes:
        backend: "memory" (single process) or "redis" (shared).
        redis_url: Connection URL, required for the redis backend.
        key_prefix: Namespace prepended to every Redis key.
        socket_timeout_seconds: Redis socket timeout; a timeout aborts the
            evaluation as a store outage.
    """

    backend: Literal["memory", "redis"] = "memory"
    redis_url: str | None = None
    key_prefix: str = DEFAULT_REDIS_KEY_PREFIX
    socket_timeout_seconds: float = Field(default=1.0, gt=0)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def require_redis_url(self) -> Self:
        if self.backend == "redis" and not self.redis_url:
            raise ValueError("redis_url is required when backend is 'redis'")
        return self


class LoggingConfig(BaseModel):
    """Logging configuration settings.

    Logs are stored under log_dir with this structure:
        <log_dir>/
        ├── system.jsonl            # WARNING+ operational events
        └── audit/
            └── decisions.jsonl     # One line per LIVE evaluation

    Attributes:
        log_dir: Base directory for logs.
        audit_enabled: Write decisions.jsonl.
        system_log_file: Also write system events to <log_dir>/system.jsonl.
    """

    log_dir: str = Field(default=DEFAULT_LOG_DIR, min_length=1)
    audit_enabled: bool = True
    system_log_file: bool = True

    model_config = ConfigDict(frozen=True)

    @property
    def log_path(self) -> Path:
        return Path(self.log_dir).expanduser()

    @property
    def system_log_path(self) -> Path:
        return self.log_path / SYSTEM_LOG_FILENAME


class ApprovalConfig(BaseModel):
    """Manual approval settings.

    Attributes:
        default_expiration_minutes: Expiry hint for tickets whose policy does
            not set expirationMinutes. The engine never expires tickets
            itself; callers resolve stale ones as EXPIRED.
    """

    default_expiration_minutes: int = Field(
        default=DEFAULT_APPROVAL_EXPIRATION_MINUTES,
        ge=MIN_APPROVAL_EXPIRATION_MINUTES,
        le=MAX_APPROVAL_EXPIRATION_MINUTES,
    )

    model_config = ConfigDict(frozen=True)


class EngineConfig(BaseModel):
    """Top-level engine configuration.

    Attributes:
        default_verdict: Verdict when no policy denies. "allow" matches the
            behavior operators expect from the dashboard copy; "deny" turns
            the engine into an explicit allow-list system.
        policy_file: Path to a policies.json document (JSON policy store).
        validation_cache_size: Max cached config validation results.
        counter_store: Counter backend settings.
        logging: Log locations.
        approvals: Manual approval settings.
    """

    default_verdict: Literal["allow", "deny"] = "allow"
    policy_file: str | None = None
    validation_cache_size: int = Field(default=DEFAULT_VALIDATION_CACHE_SIZE, ge=1)
    counter_store: CounterStoreConfig = Field(default_factory=CounterStoreConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    approvals: ApprovalConfig = Field(default_factory=ApprovalConfig)

    model_config = ConfigDict(frozen=True)

    def save_to_file(self, config_path: Path = DEFAULT_CONFIG_PATH) -> None:
        """Save configuration to JSON file.

        Creates parent directories if they don't exist. Written atomically
        with owner-only permissions.

        Args:
            config_path: Destination (platform config dir by default).
        """
        write_json_atomic(config_path, self.model_dump(mode="json"), prefix=".config_")

    @classmethod
    def load_from_file(cls, config_path: Path = DEFAULT_CONFIG_PATH) -> EngineConfig:
        """Load configuration from JSON file.

        Args:
            config_path: Config JSON file (platform config dir by default).

        Returns:
            EngineConfig instance with loaded configuration.

        Raises:
            ConfigurationError: If the file doesn't exist, is not valid JSON
                or fails validation.
        """
        try:
            require_file_exists(config_path, file_type="configuration")
            return load_validated_json(
                config_path,
                cls,
                file_type="config",
                recovery_hint="See the example in credproxy/config.py for the expected layout.",
            )
        except (FileNotFoundError, ValueError) as e:
            raise ConfigurationError(str(e)) from e
