"""Unit test fixtures.

Provides an in-memory stand-in for the redis-py asyncio client covering the
commands memoredis issues, with TTLs, cursor paging and failure injection.
"""

from __future__ import annotations

import re
import time
from collections import Counter
from typing import Any

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from memoredis.memoizer import RedisMemoizer


def _encode(value: Any) -> bytes:
    if isinstance(value, bytes):
        return value
    return str(value).encode()


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a Redis glob (with backslash escapes) to a regex."""
    out: list[str] = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == "\\" and i + 1 < len(pattern):
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if char == "*":
            out.append(".*")
        elif char == "?":
            out.append(".")
        elif char == "[" and "]" in pattern[i + 1 :]:
            end = pattern.index("]", i + 1)
            out.append(f"[{pattern[i + 1 : end]}]")
            i = end + 1
            continue
        else:
            out.append(re.escape(char))
        i += 1
    return re.compile("".join(out), re.DOTALL)


class FakePool:
    def __init__(self) -> None:
        self.disconnected = False
        self.inuse_connections: bool | None = None

    async def disconnect(self, inuse_connections: bool = True) -> None:
        self.disconnected = True
        self.inuse_connections = inuse_connections


class FakePipeline:
    """Queues commands and applies them all at once on execute()."""

    def __init__(self, redis: FakeRedis) -> None:
        self.redis = redis
        self.queued: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []

    async def __aenter__(self) -> FakePipeline:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.queued.clear()

    def __getattr__(self, name: str) -> Any:
        def queue(*args: Any, **kwargs: Any) -> FakePipeline:
            self.queued.append((name, args, kwargs))
            return self

        return queue

    async def execute(self) -> list[Any]:
        # All-or-nothing, like MULTI/EXEC
        self.redis._check("exec")
        for name, _, _ in self.queued:
            self.redis._check(name)
        results = [getattr(self.redis, f"_do_{name}")(*a, **kw) for name, a, kw in self.queued]
        self.queued.clear()
        return results


class FakeRedis:
    """In-memory subset of redis.asyncio.Redis."""

    def __init__(self) -> None:
        self.values: dict[str, bytes] = {}
        self.expires: dict[str, float] = {}
        self.sets: dict[str, set[str]] = {}
        self.calls: Counter[str] = Counter()
        self.fail_commands: set[str] = set()
        self.connection_pool = FakePool()
        self.closed = False

    def _check(self, command: str) -> None:
        self.calls[command] += 1
        if command in self.fail_commands:
            raise RedisConnectionError(f"Simulated failure of {command}")

    def _alive(self, key: str) -> bool:
        expires_at = self.expires.get(key)
        if expires_at is not None and expires_at <= time.monotonic():
            self.values.pop(key, None)
            self.expires.pop(key, None)
        return key in self.values

    # Command implementations

    def _do_set(self, key: str, value: Any, nx: bool = False, px: int | None = None) -> bool | None:
        if nx and self._alive(key):
            return None
        self.values[key] = _encode(value)
        self.expires.pop(key, None)
        if px is not None:
            self.expires[key] = time.monotonic() + px / 1000
        return True

    def _do_psetex(self, key: str, ttl_ms: int, value: Any) -> bool:
        return bool(self._do_set(key, value, px=ttl_ms))

    def _do_delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            if self._alive(key):
                deleted += 1
            self.values.pop(key, None)
            self.expires.pop(key, None)
            if self.sets.pop(key, None) is not None:
                deleted += 1
        return deleted

    def _do_sadd(self, key: str, *members: Any) -> int:
        target = self.sets.setdefault(key, set())
        added = {_encode(m).decode() for m in members} - target
        target.update(added)
        return len(added)

    def _do_srem(self, key: str, *members: Any) -> int:
        target = self.sets.get(key, set())
        removed = {_encode(m).decode() for m in members} & target
        target.difference_update(removed)
        if not target:
            self.sets.pop(key, None)
        return len(removed)

    # Public async API

    async def get(self, key: str) -> bytes | None:
        self._check("get")
        return self.values[key] if self._alive(key) else None

    async def set(
        self,
        key: str,
        value: Any,
        nx: bool = False,
        px: int | None = None,
        ex: int | None = None,
    ) -> bool | None:
        self._check("set")
        if ex is not None:
            px = ex * 1000
        return self._do_set(key, value, nx=nx, px=px)

    async def psetex(self, key: str, ttl_ms: int, value: Any) -> bool:
        self._check("psetex")
        return self._do_psetex(key, ttl_ms, value)

    async def delete(self, *keys: str) -> int:
        self._check("delete")
        return self._do_delete(*keys)

    async def sadd(self, key: str, *members: Any) -> int:
        self._check("sadd")
        return self._do_sadd(key, *members)

    async def srem(self, key: str, *members: Any) -> int:
        self._check("srem")
        return self._do_srem(key, *members)

    async def smembers(self, key: str) -> set[bytes]:
        self._check("smembers")
        return {m.encode() for m in self.sets.get(key, set())}

    async def pttl(self, key: str) -> int:
        if not self._alive(key):
            return -2
        expires_at = self.expires.get(key)
        if expires_at is None:
            return -1
        return int((expires_at - time.monotonic()) * 1000)

    @staticmethod
    def _page(
        items: list[str], cursor: int, match: str | None, count: int | None
    ) -> tuple[int, list[bytes]]:
        count = count or 10
        page = items[cursor : cursor + count]
        next_cursor = cursor + count if cursor + count < len(items) else 0
        if match is not None:
            regex = glob_to_regex(match)
            page = [item for item in page if regex.fullmatch(item)]
        return next_cursor, [item.encode() for item in page]

    async def sscan(
        self, key: str, cursor: int = 0, match: str | None = None, count: int | None = None
    ) -> tuple[int, list[bytes]]:
        self._check("sscan")
        return self._page(sorted(self.sets.get(key, set())), cursor, match, count)

    async def scan(
        self, cursor: int = 0, match: str | None = None, count: int | None = None
    ) -> tuple[int, list[bytes]]:
        self._check("scan")
        keys = sorted({k for k in list(self.values) if self._alive(k)} | set(self.sets))
        return self._page(keys, cursor, match, count)

    async def eval(self, script: str, numkeys: int, *keys_and_args: Any) -> int:
        # Only the owner-checked delete used by RedisLock
        self._check("eval")
        key, token = keys_and_args[0], keys_and_args[1]
        if self._alive(key) and self.values[key] == _encode(token):
            self._do_delete(key)
            return 1
        return 0

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)

    async def ping(self) -> bool:
        self._check("ping")
        return True

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_redis() -> FakeRedis:
    """Create an empty in-memory Redis."""
    return FakeRedis()


@pytest.fixture
def memoizer(fake_redis: FakeRedis) -> RedisMemoizer:
    """Memoizer over the fake Redis with fast lock polling and small scan pages."""
    return RedisMemoizer(fake_redis, lock_retry_interval=0.005, scan_count=50)  # type: ignore
