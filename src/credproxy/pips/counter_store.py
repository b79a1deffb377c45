"""In-memory Counter Store.

Suitable for a single process and for tests. Every operation holds one
lock, so increment_and_get() is atomic with respect to concurrent callers.
Keys created with a window expire window_seconds after creation; expired
keys read as 0.
"""

from __future__ import annotations

__all__ = [
    "InMemoryCounterStore",
]

import threading
from collections.abc import Callable
from dataclasses import dataclass
from time import monotonic


@dataclass(slots=True)
class _Counter:
    value: int
    expires_at: float | None


class InMemoryCounterStore:
    """Thread-safe counters with optional per-key expiry.

    Args:
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(self, clock: Callable[[], float] = monotonic) -> None:
        self._clock = clock
        self._counters: dict[str, _Counter] = {}
        self._lock = threading.Lock()

    def _live(self, key: str, now: float) -> _Counter | None:
        """Counter for key, dropping it if expired. Caller holds the lock."""
        counter = self._counters.get(key)
        if counter is not None and counter.expires_at is not None and now >= counter.expires_at:
            del self._counters[key]
            return None
        return counter

    def increment_and_get(self, key: str, window_seconds: int | None = None) -> int:
        with self._lock:
            now = self._clock()
            counter = self._live(key, now)
            if counter is None:
                expires_at = now + window_seconds if window_seconds else None
                counter = self._counters[key] = _Counter(0, expires_at)
            counter.value += 1
            return counter.value

    def get(self, key: str) -> int:
        with self._lock:
            counter = self._live(key, self._clock())
            return counter.value if counter is not None else 0

    def decrement(self, key: str) -> int:
        """Decrement, never below zero. Unknown keys stay absent."""
        with self._lock:
            counter = self._live(key, self._clock())
            if counter is None:
                return 0
            counter.value = max(0, counter.value - 1)
            return counter.value

    def reset(self, key: str | None = None) -> None:
        """Drop one key, or every key when key is None."""
        with self._lock:
            if key is None:
                self._counters.clear()
            else:
                self._counters.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._counters)
