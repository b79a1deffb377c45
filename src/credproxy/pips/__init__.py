"""Policy Information Points (PIPs) - stores the evaluator reads from.

- policy_store.py: Policy lookup (in-memory, JSON file)
- counter_store.py: Atomic counters (in-memory)
- redis_counter_store.py: Atomic counters (Redis)
- metadata.py: Plugin types and display names
"""

from credproxy.pips.counter_store import InMemoryCounterStore
from credproxy.pips.metadata import StaticMetadataResolver
from credproxy.pips.policy_store import InMemoryPolicyStore, JsonFilePolicyStore, PolicyDocument
from credproxy.pips.redis_counter_store import RedisCounterStore

__all__ = [
    "InMemoryCounterStore",
    "InMemoryPolicyStore",
    "JsonFilePolicyStore",
    "PolicyDocument",
    "RedisCounterStore",
    "StaticMetadataResolver",
]
