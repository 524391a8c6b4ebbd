"""Per-logical-key index of cached entries.

Every entry written for a logical key is also added to that key's index
set (`{logical_key}-keyset`). Invalidation then walks only that set with
SSCAN instead of scanning the whole keyspace.

Set members may outlive their entries when the entry TTL lapses first. A
stale member is harmless: deleting an expired key is a no-op and the member
is dropped by the same transaction.

Example:
    index = KeySetIndex(RedisStore(client))

    keys = await index.find_matching("reports-keyset", "reports*user:42*")
    removed = await index.remove_all("reports-keyset", keys)
"""

from __future__ import annotations

import logging

from memoredis.cache.redis import RedisStore

logger = logging.getLogger(__name__)


class KeySetIndex:
    """Maintains and queries the index sets of a store."""

    def __init__(self, store: RedisStore):
        self.store = store

    async def record_membership(self, set_key: str, key: str) -> None:
        """Ensure `key` is a member of `set_key`.

        Called on every cache hit so entries written by a peer that skipped
        the index still become invalidatable.
        """
        await self.store.sadd(set_key, key)

    async def find_matching(self, set_key: str, glob: str) -> list[str]:
        """Return every member of `set_key` matching `glob`."""
        keys = await self.store.scan_set_all(set_key, glob)
        logger.debug(f"Index {set_key} has {len(keys)} members matching {glob}")
        return keys

    async def remove_all(self, set_key: str, keys: list[str]) -> int:
        """Delete `keys` and drop them from `set_key` in one transaction.

        Returns the number of keys removed from the index.
        """
        if not keys:
            return 0
        await self.store.del_and_rem(set_key, keys)
        return len(keys)
