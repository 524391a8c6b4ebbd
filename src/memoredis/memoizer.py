"""Memoization of async operations backed by Redis.

A memoized call derives a cache key from its logical key and arguments,
returns the cached value when present, and otherwise computes it under a
distributed lock so concurrent identical calls run the operation once:

    1. GET the entry. Hit: re-add it to the index set and return it.
    2. Acquire lock-{entry}, waiting at most lock_timeout.
    3. GET again. Hit: another caller computed it while we waited.
    4. Run the operation, then SADD + PSETEX in one transaction.
    5. Release the lock (always, also when the operation raises).

If Redis is unreachable on the first read the call degrades to running the
operation directly, so a cache outage never blocks the protected operation.

Example:
    memoizer = create_memoizer(prefix="api")

    async def load_report(args):
        return await build_report(args["user"], args["month"])

    report = memoizer.memoize(load_report, key="report", ttl=300)
    await report({"user": 42, "month": "2026-01"})

    # Drop every cached report of user 42
    await memoizer.invalidate("report", {"user": 42})
"""

from __future__ import annotations

import functools
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from types import TracebackType
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Generic, TypeVar

from redis.exceptions import RedisError

from memoredis.cache.invalidation import KeySetIndex
from memoredis.cache.keys import Arguments, CacheKeys, validate_safe_string
from memoredis.cache.redis import (
    DEFAULT_SCAN_COUNT,
    RedisStore,
    create_redis,
    decode_value,
    encode_value,
)
from memoredis.config import Settings
from memoredis.config import settings as default_settings
from memoredis.distributed.lock import RETRY_INTERVAL, RedisLock
from memoredis.errors import SerializationError
from memoredis.observability.logging import LogContext, MemoLogger

if TYPE_CHECKING:
    from redis.asyncio import Redis

DEFAULT_TTL = 60.0  # Seconds
DEFAULT_LOCK_TIMEOUT = 5.0  # Seconds

# Failures of the store itself, as opposed to the wrapped operation
STORE_ERRORS = (RedisError, OSError)

R = TypeVar("R")
Operation = Callable[[Any], Awaitable[R]]


def _millis(seconds: float) -> int:
    return max(1, int(seconds * 1000))


def _materialize(args: Arguments) -> Arguments:
    # Pairs are read twice: once for the key, once by the operation or filter
    if args is None or isinstance(args, Mapping):
        return args
    return list(args)


class MemoizedFunction(Generic[R]):
    """Callable returned by `memoize`.

    Call it with a mapping (or a list of pairs) of arguments; the same object
    is passed on to the wrapped operation.
    """

    def __init__(
        self,
        memoizer: BaseMemoizer,
        fn: Operation[R],
        key: str,
        ttl: float,
        lock_timeout: float,
    ):
        functools.update_wrapper(self, fn)
        self.memoizer = memoizer
        self.fn = fn
        self.key = key
        self.ttl = ttl
        self.lock_timeout = lock_timeout

    async def __call__(self, args: Arguments = None) -> R:
        return await self.memoizer._call(self, {} if args is None else _materialize(args))

    async def invalidate(self, partial_args: Arguments = None) -> int:
        """Invalidate cached results of this function matching `partial_args`."""
        return await self.memoizer.invalidate(self.key, partial_args)

    def __repr__(self) -> str:
        return f"<MemoizedFunction key={self.key!r} ttl={self.ttl}>"


class BaseMemoizer(ABC):
    """Interface shared by the Redis-backed and the bypass memoizer."""

    default_ttl: float = DEFAULT_TTL
    default_lock_timeout: float = DEFAULT_LOCK_TIMEOUT

    def memoize(
        self,
        fn: Operation[R],
        *,
        key: str,
        ttl: float | None = None,
        lock_timeout: float | None = None,
    ) -> MemoizedFunction[R]:
        """Wrap `fn` so its results are cached under the logical key `key`.

        Args:
            fn: Async operation taking one argument mapping
            key: Unique logical key of the operation
            ttl: Seconds a result stays cached
            lock_timeout: Lock lease and acquire timeout in seconds. Should exceed
                the worst-case runtime of `fn`, otherwise a waiting caller may
                compute the same value again.
        """
        validate_safe_string(key)
        ttl = self.default_ttl if ttl is None else ttl
        lock_timeout = self.default_lock_timeout if lock_timeout is None else lock_timeout
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        if lock_timeout <= 0:
            raise ValueError(f"lock_timeout must be positive, got {lock_timeout}")
        return MemoizedFunction(self, fn, key, ttl, lock_timeout)

    def memoized(
        self,
        *,
        key: str,
        ttl: float | None = None,
        lock_timeout: float | None = None,
    ) -> Callable[[Operation[R]], MemoizedFunction[R]]:
        """Decorator form of `memoize`.

        Example:
            @memoizer.memoized(key="exchange-rate", ttl=30)
            async def exchange_rate(args):
                ...
        """

        def decorator(fn: Operation[R]) -> MemoizedFunction[R]:
            return self.memoize(fn, key=key, ttl=ttl, lock_timeout=lock_timeout)

        return decorator

    @abstractmethod
    async def _call(self, func: MemoizedFunction[R], args: Arguments) -> R: ...

    @abstractmethod
    async def invalidate(self, key: str, partial_args: Arguments = None) -> int:
        """Remove every cached result of `key` whose arguments include `partial_args`."""

    @abstractmethod
    async def keys(self, key: str, partial_args: Arguments = None) -> list[str]:
        """List cached entry keys of `key` whose arguments include `partial_args`."""

    async def close(self) -> None:
        """Release the store connection gracefully."""

    async def disconnect(self) -> None:
        """Drop the store connection immediately."""

    async def __aenter__(self) -> "BaseMemoizer":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()


class EmptyMemoizer(BaseMemoizer):
    """Bypass memoizer for environments without Redis.

    Memoized functions always run the operation; invalidation does nothing.
    """

    async def _call(self, func: MemoizedFunction[R], args: Arguments) -> R:
        return await func.fn(args)

    async def invalidate(self, key: str, partial_args: Arguments = None) -> int:
        return 0

    async def keys(self, key: str, partial_args: Arguments = None) -> list[str]:
        return []


class RedisMemoizer(BaseMemoizer):
    """Redis-backed memoizer with single-flight locking and indexed invalidation.

    Args:
        client: redis-py asyncio client
        prefix: Namespace for every key written by this memoizer
        logger: Logger receiving cache diagnostics (defaults to "memoredis")
        default_ttl: TTL used when `memoize` gets none, in seconds
        default_lock_timeout: Lock timeout used when `memoize` gets none, in seconds
        lock_retry_interval: Delay between lock acquire attempts, in seconds
        scan_count: COUNT hint for index scans
    """

    def __init__(
        self,
        client: Redis,
        *,
        prefix: str | None = None,
        logger: MemoLogger | None = None,
        default_ttl: float = DEFAULT_TTL,
        default_lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
        lock_retry_interval: float = RETRY_INTERVAL,
        scan_count: int = DEFAULT_SCAN_COUNT,
    ):
        self.client = client
        self.cache_keys = CacheKeys(prefix)
        self.store = RedisStore(client, scan_count=scan_count)
        self.index = KeySetIndex(self.store)
        self.logger: MemoLogger = logger or logging.getLogger("memoredis")
        self.default_ttl = default_ttl
        self.default_lock_timeout = default_lock_timeout
        self.lock_retry_interval = lock_retry_interval

    @property
    def prefix(self) -> str | None:
        return self.cache_keys.prefix

    async def _read(self, cache_key: str) -> tuple[bool, Any]:
        """GET and decode an entry. Store errors propagate; corrupt payloads are a miss."""
        payload = await self.store.get(cache_key)
        if payload is None:
            return False, None
        try:
            return True, decode_value(payload)
        except SerializationError as e:
            self.logger.error(f"Discarding unreadable cache entry {cache_key}: {e}")
            return False, None

    async def _write(self, set_key: str, cache_key: str, ttl: float, value: Any) -> None:
        try:
            payload = encode_value(value)
        except SerializationError as e:
            self.logger.error(f"Result for {cache_key} is not cacheable: {e}")
            return
        try:
            await self.store.psetex_and_sadd(set_key, cache_key, _millis(ttl), payload)
        except STORE_ERRORS as e:
            self.logger.error(f"Cache write failed for {cache_key}: {e}")

    async def _call(self, func: MemoizedFunction[R], args: Arguments) -> R:
        cache_key = self.cache_keys.entry(func.key, args)
        set_key = self.cache_keys.keyset(func.key)

        with LogContext(logical_key=func.key, memo_key=cache_key):
            try:
                found, value = await self._read(cache_key)
            except STORE_ERRORS as e:
                self.logger.error(f"Cache read failed for {cache_key}, calling through: {e}")
                return await func.fn(args)

            if found:
                self.logger.debug(f"Cache hit {cache_key}")
                try:
                    await self.index.record_membership(set_key, cache_key)
                except STORE_ERRORS as e:
                    self.logger.warning(f"Could not index {cache_key} in {set_key}: {e}")
                return value  # type: ignore[no-any-return]

            lock = RedisLock(
                self.client,
                self.cache_keys.lock(cache_key),
                timeout=func.lock_timeout,
                retry_interval=self.lock_retry_interval,
            )
            async with lock:
                try:
                    found, value = await self._read(cache_key)
                except STORE_ERRORS as e:
                    self.logger.error(f"Cache re-read failed for {cache_key}: {e}")
                    found = False

                if found:
                    self.logger.debug(f"Cache hit after lock wait {cache_key}")
                    return value  # type: ignore[no-any-return]

                self.logger.debug(f"Cache miss {cache_key}, computing")
                result = await func.fn(args)
                await self._write(set_key, cache_key, func.ttl, result)
                return result

    async def keys(self, key: str, partial_args: Arguments = None) -> list[str]:
        partial_args = _materialize(partial_args)
        set_key = self.cache_keys.keyset(key)
        glob = self.cache_keys.invalidation_pattern(key, partial_args)
        candidates = await self.index.find_matching(set_key, glob)
        return [k for k in candidates if self.cache_keys.matches(k, key, partial_args)]

    async def remove_matching(self, key: str, partial_args: Arguments = None) -> int:
        """Like `invalidate`, but store errors propagate to the caller."""
        partial_args = _materialize(partial_args)
        matching = await self.keys(key, partial_args)
        return await self.index.remove_all(self.cache_keys.keyset(key), matching)

    async def invalidate(self, key: str, partial_args: Arguments = None) -> int:
        """Remove every cached result of `key` whose arguments include `partial_args`.

        Entries written while the index scan is running may survive. Store
        errors are logged and reported as zero removals.

        Returns:
            Number of entries removed
        """
        with LogContext(logical_key=key):
            try:
                removed = await self.remove_matching(key, partial_args)
            except STORE_ERRORS as e:
                self.logger.error(f"Invalidation of {key} failed: {e}")
                return 0

            if removed:
                self.logger.info(f"Invalidated {removed} cached entries of {key}")
            return removed

    async def close(self) -> None:
        await self.store.close()

    async def disconnect(self) -> None:
        await self.store.disconnect()


def create_memoizer(
    *,
    prefix: str | None = None,
    client: Redis | None = None,
    client_opts: dict[str, Any] | None = None,
    empty_mode: bool | None = None,
    logger: MemoLogger | None = None,
    settings: Settings | None = None,
) -> BaseMemoizer:
    """Create a memoizer.

    Options left as None fall back to `settings` (environment driven).

    Args:
        prefix: Namespace for all keys
        client: Existing Redis client to use
        client_opts: Extra options for the client built from `settings.redis_url`
        empty_mode: Return the bypass memoizer that never touches Redis
        logger: Logger for cache diagnostics
        settings: Settings instance (defaults to the module-level one)
    """
    settings = settings or default_settings
    empty_mode = settings.empty_mode if empty_mode is None else empty_mode
    prefix = settings.prefix if prefix is None else prefix

    if empty_mode:
        empty = EmptyMemoizer()
        empty.default_ttl = settings.default_ttl
        empty.default_lock_timeout = settings.default_lock_timeout
        return empty

    # Validate before opening a connection
    if prefix:
        validate_safe_string(prefix, "prefix")

    if client is None:
        client = create_redis(settings.redis_url, **(client_opts or {}))

    return RedisMemoizer(
        client,
        prefix=prefix,
        logger=logger,
        default_ttl=settings.default_ttl,
        default_lock_timeout=settings.default_lock_timeout,
        lock_retry_interval=settings.lock_retry_interval,
        scan_count=settings.scan_count,
    )
