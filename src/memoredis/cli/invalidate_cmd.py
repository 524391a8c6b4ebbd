"""CLI command for invalidating cached entries.

Usage:
    memoredis invalidate report
    memoredis invalidate report -a user=42
    memoredis invalidate report -a filter='{"region": "eu"}' --prefix api
"""

from __future__ import annotations

import asyncio

import typer

from memoredis.cli.options import (
    ARG_HELP,
    PREFIX_HELP,
    URL_HELP,
    open_memoizer,
    parse_arg_options,
)


def invalidate(
    logical_key: str = typer.Argument(..., help="Logical key of the memoized operation"),
    arg: list[str] | None = typer.Option(None, "--arg", "-a", help=ARG_HELP),
    prefix: str | None = typer.Option(None, "--prefix", "-p", help=PREFIX_HELP),
    url: str | None = typer.Option(None, "--url", "-u", help=URL_HELP),
) -> None:
    """Invalidate cached entries whose arguments include the given filter.

    Without --arg every cached entry of the logical key is removed.
    """
    asyncio.run(_invalidate(logical_key, parse_arg_options(arg), prefix, url))


async def _invalidate(logical_key: str, args: dict, prefix: str | None, url: str | None) -> None:
    from rich.console import Console

    from redis.exceptions import RedisError

    from memoredis.errors import MemoizerError

    console = Console()

    try:
        memoizer = open_memoizer(url, prefix)
        async with memoizer:
            removed = await memoizer.remove_matching(logical_key, args)
    except (MemoizerError, RedisError, OSError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from e

    console.print(f"[green]Invalidated[/green] {removed} cached entries of {logical_key}")
