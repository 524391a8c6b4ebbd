"""Redis store adapter for memoredis.

Thin async layer over redis-py exposing only what the memoizer needs:
plain reads, TTL writes, SET membership and cursor scans. Every operation
that touches an entry and its index set together runs in one MULTI/EXEC
pipeline so a crash can't leave them half-updated.
"""

from __future__ import annotations

from collections.abc import Awaitable, Iterable
from typing import TYPE_CHECKING, Any, cast

import orjson
import redis.asyncio as redis

from memoredis.errors import SerializationError

if TYPE_CHECKING:
    from redis.asyncio import Redis

# Members requested per SCAN/SSCAN round trip
DEFAULT_SCAN_COUNT = 1000


def create_redis(url: str, **client_opts: Any) -> Redis:
    """Create a Redis client from a URL.

    Values are stored as orjson bytes, so responses are left undecoded
    unless the caller overrides it.
    """
    client_opts.setdefault("decode_responses", False)
    return redis.from_url(url, **client_opts)  # type: ignore[no-untyped-call]


def encode_value(value: Any) -> bytes:
    """Serialize a value for storage."""
    try:
        return orjson.dumps(value)
    except orjson.JSONEncodeError as e:
        raise SerializationError(f"Cannot encode {type(value).__name__}: {e}") from e


def decode_value(payload: bytes | str) -> Any:
    """Deserialize a stored payload."""
    try:
        return orjson.loads(payload)
    except orjson.JSONDecodeError as e:
        raise SerializationError(f"Corrupt cached payload: {e}") from e


def _to_str(member: bytes | str) -> str:
    return member.decode() if isinstance(member, bytes) else member


class RedisStore:
    """Key/value operations used by the memoizer.

    Args:
        client: redis-py asyncio client
        scan_count: COUNT hint for SCAN and SSCAN
    """

    def __init__(self, client: Redis, scan_count: int = DEFAULT_SCAN_COUNT):
        self.client = client
        self.scan_count = scan_count

    # -------------------------------------------------------------------------
    # Flat keyspace
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> bytes | None:
        return cast(bytes | None, await self.client.get(key))

    async def psetex(self, key: str, ttl_ms: int, payload: bytes) -> None:
        """Set a value with a TTL in milliseconds."""
        await self.client.psetex(key, ttl_ms, payload)

    async def delete(self, keys: Iterable[str]) -> int:
        keys = list(keys)
        if not keys:
            return 0
        return cast(int, await self.client.delete(*keys))

    # -------------------------------------------------------------------------
    # Index sets
    # -------------------------------------------------------------------------

    async def sadd(self, set_key: str, key: str) -> None:
        await cast(Awaitable[int], self.client.sadd(set_key, key))

    async def srem(self, set_key: str, keys: Iterable[str]) -> None:
        keys = list(keys)
        if keys:
            await cast(Awaitable[int], self.client.srem(set_key, *keys))

    # -------------------------------------------------------------------------
    # Transactional pairs
    # -------------------------------------------------------------------------

    async def psetex_and_sadd(self, set_key: str, key: str, ttl_ms: int, payload: bytes) -> None:
        """Index `key` in `set_key` and store its value, atomically."""
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.sadd(set_key, key)
            pipe.psetex(key, ttl_ms, payload)
            await pipe.execute()

    async def del_and_rem(self, set_key: str, keys: list[str]) -> None:
        """Delete entries and drop them from `set_key`, atomically."""
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.delete(*keys)
            pipe.srem(set_key, *keys)
            await pipe.execute()

    # -------------------------------------------------------------------------
    # Cursor scans
    # -------------------------------------------------------------------------

    async def scan(self, match: str, cursor: int = 0) -> tuple[int, list[str]]:
        """One SCAN round trip over the keyspace."""
        next_cursor, keys = await self.client.scan(
            cursor=cursor, match=match, count=self.scan_count
        )
        return int(next_cursor), [_to_str(k) for k in keys]

    async def scan_all(self, match: str) -> list[str]:
        """Enumerate all keys matching `match`.

        SCAN may return a key more than once; duplicates are collapsed.
        """
        found: dict[str, None] = {}
        cursor = 0
        while True:
            cursor, keys = await self.scan(match, cursor)
            found.update(dict.fromkeys(keys))
            if cursor == 0:
                break
        return list(found)

    async def scan_set(self, set_key: str, match: str, cursor: int = 0) -> tuple[int, list[str]]:
        """One SSCAN round trip over an index set."""
        next_cursor, members = await cast(
            Awaitable[tuple[int, list[bytes | str]]],
            self.client.sscan(set_key, cursor=cursor, match=match, count=self.scan_count),
        )
        return int(next_cursor), [_to_str(m) for m in members]

    async def scan_set_all(self, set_key: str, match: str) -> list[str]:
        """Enumerate all members of `set_key` matching `match`.

        Runs from cursor 0 until Redis hands back cursor 0. Members added
        concurrently may or may not be included.
        """
        found: dict[str, None] = {}
        cursor = 0
        while True:
            cursor, members = await self.scan_set(set_key, match, cursor)
            found.update(dict.fromkeys(members))
            if cursor == 0:
                break
        return list(found)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def health_check(self) -> bool:
        """Check Redis connectivity."""
        try:
            await cast(Awaitable[bool], self.client.ping())
            return True
        except Exception:
            return False

    async def close(self) -> None:
        """Close the client, letting in-flight commands finish."""
        await self.client.aclose()

    async def disconnect(self) -> None:
        """Drop every pooled connection immediately, in use or not."""
        await self.client.connection_pool.disconnect(inuse_connections=True)
