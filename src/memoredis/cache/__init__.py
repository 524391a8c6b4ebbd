"""Cache layer for memoredis.

- Key canonicalization with order-independent argument rendering
- Redis store adapter with transactional entry + index updates
- Per-logical-key index sets for partial-argument invalidation
"""

from memoredis.cache.invalidation import KeySetIndex
from memoredis.cache.keys import (
    CacheKeys,
    Nested,
    Scalar,
    derive_invalidation_glob,
    derive_key,
    derive_set_key,
    fingerprint,
    key_matches,
)
from memoredis.cache.redis import RedisStore, create_redis

__all__ = [
    # Keys
    "CacheKeys",
    "Scalar",
    "Nested",
    "derive_key",
    "derive_set_key",
    "derive_invalidation_glob",
    "key_matches",
    "fingerprint",
    # Store
    "RedisStore",
    "create_redis",
    # Index
    "KeySetIndex",
]
