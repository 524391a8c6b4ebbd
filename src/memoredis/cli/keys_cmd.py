"""CLI command for listing cached entries.

Usage:
    memoredis keys report
    memoredis keys report -a user=42 -a month=2026-01
    memoredis keys report --prefix api --url redis://cache:6379/0
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


def keys(
    logical_key: str = typer.Argument(..., help="Logical key of the memoized operation"),
    arg: list[str] | None = typer.Option(None, "--arg", "-a", help=ARG_HELP),
    prefix: str | None = typer.Option(None, "--prefix", "-p", help=PREFIX_HELP),
    url: str | None = typer.Option(None, "--url", "-u", help=URL_HELP),
) -> None:
    """List cached entries whose arguments include the given filter."""
    asyncio.run(_keys(logical_key, parse_arg_options(arg), prefix, url))


async def _keys(logical_key: str, args: dict, prefix: str | None, url: str | None) -> None:
    from rich.console import Console

    from redis.exceptions import RedisError

    from memoredis.errors import MemoizerError

    console = Console()

    try:
        memoizer = open_memoizer(url, prefix)
        async with memoizer:
            found = await memoizer.keys(logical_key, args)
    except (MemoizerError, RedisError, OSError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from e

    for key in sorted(found):
        console.print(key, highlight=False)
    console.print(f"[bold]{len(found)}[/bold] cached entries")
