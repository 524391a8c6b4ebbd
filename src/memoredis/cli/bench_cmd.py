"""CLI command for benchmarking indexed invalidation.

Seeds a Redis instance with memoized entries spread over several logical
keys, then times single-entry invalidations against them.

Usage:
    memoredis bench
    memoredis bench --size large --rounds 500 --url redis://localhost:6379/1
"""

from __future__ import annotations

import asyncio
import random
import secrets
import time
from enum import Enum

import typer

from memoredis.cli.options import URL_HELP, open_memoizer

# Seconds; long enough to outlive the run
BENCH_TTL = 100.0
SEED_BATCH = 500


class BenchSize(str, Enum):
    """Number of logical keys and entries per key to seed."""

    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


SIZES: dict[BenchSize, list[int]] = {
    BenchSize.SMALL: [1_000] * 4,
    BenchSize.MEDIUM: [1_000] * 10 + [10_000] * 5,
    BenchSize.LARGE: [10_000] * 10 + [100_000] * 5,
}


def bench(
    size: BenchSize = typer.Option(BenchSize.SMALL, "--size", "-s", help="Dataset size"),
    rounds: int = typer.Option(100, "--rounds", "-r", min=1, help="Invalidations to time"),
    url: str | None = typer.Option(None, "--url", "-u", help=URL_HELP),
) -> None:
    """Seed memoized entries and time single-entry invalidations."""
    asyncio.run(_bench(size, rounds, url))


async def _seed(memoizer, logical_key: str, count: int) -> None:
    async def compute(args):
        return secrets.token_hex(8)

    fn = memoizer.memoize(compute, key=logical_key, ttl=BENCH_TTL)
    for start in range(0, count, SEED_BATCH):
        stop = min(start + SEED_BATCH, count)
        await asyncio.gather(*(fn({"id": idx}) for idx in range(start, stop)))


async def _bench(size: BenchSize, rounds: int, url: str | None) -> None:
    from rich.console import Console
    from rich.table import Table

    console = Console()
    spec = SIZES[size]
    logical_keys = [f"bench-{i}" for i in range(len(spec))]

    memoizer = open_memoizer(url, f"bench-{size.value}")
    async with memoizer:
        console.print(f"[blue]Seeding[/blue] {sum(spec)} entries over {len(spec)} keys")
        started = time.perf_counter()
        for logical_key, count in zip(logical_keys, spec):
            await _seed(memoizer, logical_key, count)
        seed_time = time.perf_counter() - started

        timings: list[float] = []
        removed = 0
        for next_id in range(rounds):
            logical_key = random.choice(logical_keys)
            started = time.perf_counter()
            removed += await memoizer.invalidate(logical_key, {"id": next_id})
            timings.append(time.perf_counter() - started)

        for logical_key in logical_keys:
            await memoizer.invalidate(logical_key)

    timings.sort()
    total = max(sum(timings), 1e-9)
    p99 = timings[min(len(timings) - 1, int(len(timings) * 0.99))]
    table = Table(title=f"Invalidation benchmark ({size.value})")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Seed time", f"{seed_time:.2f}s")
    table.add_row("Invalidations", str(rounds))
    table.add_row("Entries removed", str(removed))
    table.add_row("Mean", f"{total / len(timings) * 1000:.2f}ms")
    table.add_row("p50", f"{timings[len(timings) // 2] * 1000:.2f}ms")
    table.add_row("p99", f"{p99 * 1000:.2f}ms")
    table.add_row("Ops/sec", f"{len(timings) / total:.0f}")
    console.print(table)
