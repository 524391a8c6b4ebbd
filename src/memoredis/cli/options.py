"""Option parsing shared by the CLI commands."""

from __future__ import annotations

from typing import Any

import orjson
import typer

from memoredis.cache.keys import CacheKeys
from memoredis.cache.redis import create_redis
from memoredis.config import settings
from memoredis.memoizer import RedisMemoizer


def parse_arg_options(values: list[str] | None) -> dict[str, Any]:
    """Parse repeated `field=value` options into an argument mapping.

    Values are read as JSON when they parse (`42`, `true`, `{"a": 1}`) and
    as plain strings otherwise.
    """
    args: dict[str, Any] = {}
    for item in values or []:
        name, sep, raw = item.partition("=")
        if not sep or not name:
            raise typer.BadParameter(f"Expected field=value, got {item!r}")
        try:
            args[name] = orjson.loads(raw)
        except orjson.JSONDecodeError:
            args[name] = raw
    return args


def open_memoizer(url: str | None, prefix: str | None) -> RedisMemoizer:
    """Connect a Redis memoizer for one CLI invocation."""
    prefix = prefix if prefix is not None else settings.prefix
    # Reject a bad prefix before opening a connection
    CacheKeys(prefix)
    client = create_redis(url or settings.redis_url)
    return RedisMemoizer(
        client,
        prefix=prefix,
        scan_count=settings.scan_count,
    )


ARG_HELP = "Argument filter as field=value (repeatable)"
URL_HELP = "Redis URL (defaults to REDIS_URL)"
PREFIX_HELP = "Key prefix of the memoizer (defaults to MEMOREDIS_PREFIX)"
