"""Tests for the in-memory Counter Store."""

from __future__ import annotations

import threading

from credproxy.pdp.protocol import CounterStore
from credproxy.pips.counter_store import InMemoryCounterStore


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestInMemoryCounterStore:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(InMemoryCounterStore(), CounterStore)

    def test_increment_and_get(self) -> None:
        store = InMemoryCounterStore()
        assert [store.increment_and_get("k") for _ in range(3)] == [1, 2, 3]
        assert store.get("k") == 3

    def test_missing_key_reads_zero(self) -> None:
        assert InMemoryCounterStore().get("missing") == 0

    def test_decrement_floors_at_zero(self) -> None:
        store = InMemoryCounterStore()
        store.increment_and_get("k")

        assert store.decrement("k") == 0
        assert store.decrement("k") == 0
        assert store.decrement("unknown") == 0
        assert len(store) == 1

    def test_window_expiry(self) -> None:
        """A windowed key expires window_seconds after creation, not after the last hit."""
        clock = FakeClock()
        store = InMemoryCounterStore(clock=clock)

        store.increment_and_get("k", window_seconds=60)
        clock.now += 59
        assert store.increment_and_get("k", window_seconds=60) == 2
        clock.now += 1
        assert store.get("k") == 0
        assert store.increment_and_get("k", window_seconds=60) == 1

    def test_no_window_never_expires(self) -> None:
        clock = FakeClock()
        store = InMemoryCounterStore(clock=clock)
        store.increment_and_get("k")
        clock.now += 10**9
        assert store.get("k") == 1

    def test_reset(self) -> None:
        store = InMemoryCounterStore()
        store.increment_and_get("a")
        store.increment_and_get("b")

        store.reset("a")
        assert store.get("a") == 0
        assert store.get("b") == 1

        store.reset()
        assert len(store) == 0

    def test_concurrent_increments_are_atomic(self) -> None:
        store = InMemoryCounterStore()
        seen: list[int] = []
        lock = threading.Lock()

        def worker() -> None:
            for _ in range(200):
                value = store.increment_and_get("k")
                with lock:
                    seen.append(value)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.get("k") == 1600
        assert sorted(seen) == list(range(1, 1601))
