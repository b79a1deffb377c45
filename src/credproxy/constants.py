"""Application-wide constants for credproxy.

Constants that define engine behavior.
For user-configurable settings per deployment, see config.py.
"""

__all__ = [
    # Application identity
    "APP_NAME",
    # Evaluation
    "DEFAULT_VALIDATION_CACHE_SIZE",
    "RESOURCE_PARAMETER_NAMES",
    # Counter keys
    "COUNT_KEY_PREFIX",
    "RATE_KEY_PREFIX",
    "DEFAULT_REDIS_KEY_PREFIX",
    # Approvals
    "DEFAULT_APPROVAL_EXPIRATION_MINUTES",
    "MIN_APPROVAL_EXPIRATION_MINUTES",
    "MAX_APPROVAL_EXPIRATION_MINUTES",
    "APPROVAL_TOKEN_BYTES",
    # Logging
    "AUDIT_LOG_DIRNAME",
    "DECISIONS_LOG_FILENAME",
    "SYSTEM_LOG_FILENAME",
]

# =============================================================================
# Application identity
# =============================================================================

APP_NAME = "credproxy"

# =============================================================================
# Evaluation
# =============================================================================

# Upper bound on cached config validation results (one per policy revision)
DEFAULT_VALIDATION_CACHE_SIZE = 1024

# Parameter names that carry the resource an operation targets, in lookup order.
# The first non-empty one becomes OperationRequest.resource.
RESOURCE_PARAMETER_NAMES: tuple[str, ...] = ("resource", "path", "url", "resourcePath")

# =============================================================================
# Counter keys
# =============================================================================

COUNT_KEY_PREFIX = "count"
RATE_KEY_PREFIX = "rate"
DEFAULT_REDIS_KEY_PREFIX = "credproxy:"

# =============================================================================
# Approvals
# =============================================================================

# The engine never expires approvals itself; this is the hint handed to callers
DEFAULT_APPROVAL_EXPIRATION_MINUTES = 60
MIN_APPROVAL_EXPIRATION_MINUTES = 1
MAX_APPROVAL_EXPIRATION_MINUTES = 60 * 24 * 30

# Entropy for resumable approval tokens (secrets.token_urlsafe)
APPROVAL_TOKEN_BYTES = 24

# =============================================================================
# Logging
# =============================================================================

AUDIT_LOG_DIRNAME = "audit"
DECISIONS_LOG_FILENAME = "decisions.jsonl"
SYSTEM_LOG_FILENAME = "system.jsonl"
