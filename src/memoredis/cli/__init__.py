"""CLI commands for memoredis.

Provides command-line interface using Typer:
- memoredis keys: List cached entries of a logical key
- memoredis invalidate: Invalidate cached entries by partial arguments
- memoredis bench: Benchmark indexed invalidation

Usage:
    memoredis --help
    memoredis keys report -a user=42
    memoredis invalidate report -a user=42 --prefix api
    memoredis bench --size medium
"""

import typer

from memoredis.cli.bench_cmd import bench
from memoredis.cli.invalidate_cmd import invalidate
from memoredis.cli.keys_cmd import keys
from memoredis.config import settings
from memoredis.observability.logging import configure_logging

# Main CLI application
app = typer.Typer(
    name="memoredis",
    help="memoredis: Redis-backed memoization for async operations",
    no_args_is_help=True,
)

# Commands
app.command("keys")(keys)
app.command("invalidate")(invalidate)
app.command("bench")(bench)


@app.callback()
def callback() -> None:
    """memoredis: Redis-backed memoization for async operations."""
    configure_logging(json_format=settings.log_json, level=settings.log_level)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
