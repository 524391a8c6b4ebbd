"""Redis-backed memoization for async operations.

Caches results under keys derived from a logical name and the call
arguments, runs at most one computation per key at a time, and invalidates
cached results by partial-argument filter through a per-key index set.
"""

from memoredis.cache.keys import CacheKeys
from memoredis.errors import (
    ArgumentError,
    InvalidKeyError,
    LockError,
    LockTimeoutError,
    MemoizerError,
    SerializationError,
)
from memoredis.memoizer import (
    BaseMemoizer,
    EmptyMemoizer,
    MemoizedFunction,
    RedisMemoizer,
    create_memoizer,
)

__all__ = [
    # Memoizers
    "create_memoizer",
    "BaseMemoizer",
    "RedisMemoizer",
    "EmptyMemoizer",
    "MemoizedFunction",
    # Keys
    "CacheKeys",
    # Errors
    "MemoizerError",
    "InvalidKeyError",
    "ArgumentError",
    "SerializationError",
    "LockError",
    "LockTimeoutError",
]
