"""Redis-backed Counter Store.

Counters shared by every evaluator process. Increments and decrements run
as Lua scripts, so each is a single atomic step on the server:

- increment: INCR, then EXPIRE on the first increment of a windowed key
- decrement: DECR unless the key is absent or already zero

Any redis.RedisError (connection refused, timeout, READONLY replica) is
raised as CounterStoreUnavailableError, which aborts the evaluation instead
of producing a verdict.
"""

from __future__ import annotations

__all__ = [
    "RedisCounterStore",
]

from typing import Any

import redis

from credproxy.constants import DEFAULT_REDIS_KEY_PREFIX
from credproxy.exceptions import CounterStoreUnavailableError

_INCREMENT_SCRIPT = """
local value = redis.call('INCR', KEYS[1])
local window = tonumber(ARGV[1])
if value == 1 and window > 0 then
  redis.call('EXPIRE', KEYS[1], window)
end
return value
"""

_DECREMENT_SCRIPT = """
local current = tonumber(redis.call('GET', KEYS[1]) or '0')
if current <= 0 then
  return 0
end
return redis.call('DECR', KEYS[1])
"""


class RedisCounterStore:
    """Atomic counters in Redis.

    Attributes:
        key_prefix: Namespace prepended to every counter key.
    """

    def __init__(self, client: redis.Redis, *, key_prefix: str = DEFAULT_REDIS_KEY_PREFIX) -> None:
        """Initialize the store.

        Args:
            client: Connected redis-py client.
            key_prefix: Namespace for counter keys (e.g., "credproxy:").
        """
        self._client = client
        self.key_prefix = key_prefix
        self._increment = client.register_script(_INCREMENT_SCRIPT)
        self._decrement = client.register_script(_DECREMENT_SCRIPT)

    @classmethod
    def from_url(cls, url: str, *, key_prefix: str = DEFAULT_REDIS_KEY_PREFIX, **kwargs: Any) -> RedisCounterStore:
        """Create a store from a redis:// URL.

        Args:
            url: Redis connection URL.
            key_prefix: Namespace for counter keys.
            **kwargs: Passed to redis.Redis.from_url (e.g., socket_timeout).
        """
        return cls(redis.Redis.from_url(url, **kwargs), key_prefix=key_prefix)

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def increment_and_get(self, key: str, window_seconds: int | None = None) -> int:
        try:
            value = self._increment(keys=[self._key(key)], args=[window_seconds or 0])
        except redis.RedisError as e:
            raise CounterStoreUnavailableError(f"Redis increment failed for {key!r}: {e}") from e
        return int(value)

    def get(self, key: str) -> int:
        try:
            value = self._client.get(self._key(key))
        except redis.RedisError as e:
            raise CounterStoreUnavailableError(f"Redis read failed for {key!r}: {e}") from e
        return int(value) if value is not None else 0

    def decrement(self, key: str) -> int:
        try:
            value = self._decrement(keys=[self._key(key)])
        except redis.RedisError as e:
            raise CounterStoreUnavailableError(f"Redis decrement failed for {key!r}: {e}") from e
        return int(value)

    def ping(self) -> bool:
        """True if the server answers; False on any Redis error."""
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False
