"""Distributed coordination primitives for memoredis.

Example:
    from memoredis.distributed import RedisLock

    async with RedisLock(client, "lock-reports|user:42", timeout=5.0):
        ...
"""

from memoredis.distributed.lock import RedisLock

__all__ = ["RedisLock"]
