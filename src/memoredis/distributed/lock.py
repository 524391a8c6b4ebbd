"""Redis-based mutual exclusion for single-flight computation.

A lock is a Redis string holding a random owner token, created with
SET NX PX so it expires on its own if the holder dies. Release is an
owner-checked compare-and-delete in Lua, so a holder whose lease already
lapsed can't delete a lock that now belongs to someone else.

Example:
    async with RedisLock(client, "lock-reports|user:42", timeout=5.0):
        await compute_and_store()
"""

from __future__ import annotations

import asyncio
import logging
import time
from types import TracebackType
from typing import TYPE_CHECKING, Awaitable, cast
from uuid import uuid4

from redis.exceptions import RedisError

from memoredis.errors import LockError, LockTimeoutError

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT = 5.0  # Seconds
RETRY_INTERVAL = 0.05  # Seconds between acquire attempts

RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class RedisLock:
    """Lease-based distributed lock.

    Args:
        client: redis-py asyncio client
        name: Lock key
        timeout: Lease TTL and maximum time to wait for acquisition, in seconds
        retry_interval: Delay between acquire attempts while the lock is held
    """

    def __init__(
        self,
        client: Redis,
        name: str,
        timeout: float = DEFAULT_LOCK_TIMEOUT,
        retry_interval: float = RETRY_INTERVAL,
    ):
        self.client = client
        self.name = name
        self.timeout = timeout
        self.retry_interval = retry_interval
        self.token = uuid4().hex
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    async def _try_acquire(self) -> bool:
        acquired = await self.client.set(
            self.name,
            self.token,
            nx=True,
            px=max(1, int(self.timeout * 1000)),
        )
        return bool(acquired)

    async def acquire(self) -> None:
        """Wait for the lock, at most `timeout` seconds.

        Raises:
            LockTimeoutError: The lock stayed held for the whole timeout
            LockError: Redis failed while acquiring
        """
        deadline = time.monotonic() + self.timeout
        while True:
            try:
                if await self._try_acquire():
                    self._held = True
                    logger.debug(f"Acquired lock {self.name}")
                    return
            except RedisError as e:
                raise LockError(self.name, f"Failed to acquire lock {self.name!r}: {e}") from e

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise LockTimeoutError(self.name, self.timeout)
            await asyncio.sleep(min(self.retry_interval, remaining))

    async def release(self) -> bool:
        """Release the lock if we still own it.

        Failures are logged rather than raised; the lease expires on its own.
        """
        if not self._held:
            return False
        self._held = False
        try:
            result = await cast(
                Awaitable[int],
                self.client.eval(RELEASE_SCRIPT, 1, self.name, self.token),
            )
        except RedisError as e:
            logger.error(f"Failed to release lock {self.name}: {e}")
            return False

        if not result:
            logger.warning(f"Lock {self.name} expired before release")
            return False
        logger.debug(f"Released lock {self.name}")
        return True

    async def __aenter__(self) -> "RedisLock":
        await self.acquire()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.release()
