#!/usr/bin/env -S uv run
"""
Queue Benchmark Tool for pqueue

Enqueues N tasks into a PersistentQueue and drains them through the
next/done cycle, for each storage adapter and batch size. Reports enqueue
throughput, drain throughput and per-task add latency percentiles.

Usage:
    uv run tools/benchmark_queue.py
    uv run tools/benchmark_queue.py --operations 5000 --batch-sizes 1,10,100
    uv run tools/benchmark_queue.py --adapters sqlite
    uv run tools/benchmark_queue.py --help
"""
# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "pydantic>=2.0",
#     "aiosqlite>=0.19",
#     "typer>=0.9.0",
#     "rich>=13.0",
# ]
# ///

from __future__ import annotations

import asyncio
import statistics
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from time import perf_counter
from typing import Any

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Import pqueue components from the local package
# Add parent directory to path to import pqueue
sys.path.insert(0, str(Path(__file__).parent.parent))

from pqueue import PersistentQueue, QueueEvent, Task
from pqueue.adapters.storage.memory import InMemoryStorage
from pqueue.adapters.storage.sqlite import SQLiteStorage
from pqueue.ports.storage import TaskStoragePort

app = typer.Typer(
    help="Benchmark pqueue enqueue and drain throughput",
    add_completion=False,
)


# ---------------------------------------------------------------------------
# Data Classes
# ---------------------------------------------------------------------------


@dataclass
class BenchmarkConfig:
    """Configuration for benchmark runs."""

    operations: int = 1000
    batch_sizes: list[int] = field(default_factory=lambda: [1, 10, 100])
    payload_size: int = 1000
    adapters: list[str] = field(default_factory=lambda: ["memory", "sqlite"])


@dataclass
class BenchmarkResult:
    """Results from a single adapter / batch size run."""

    adapter_name: str
    batch_size: int
    total_ops: int
    enqueue_time: float
    drain_time: float
    latencies: list[float]  # seconds, one per add()

    @property
    def enqueue_per_sec(self) -> float:
        return self.total_ops / self.enqueue_time if self.enqueue_time > 0 else 0.0

    @property
    def drain_per_sec(self) -> float:
        return self.total_ops / self.drain_time if self.drain_time > 0 else 0.0

    @property
    def p50(self) -> float:
        return statistics.median(self.latencies) if self.latencies else 0.0

    @property
    def p99(self) -> float:
        if not self.latencies:
            return 0.0
        ordered = sorted(self.latencies)
        return ordered[min(int(len(ordered) * 0.99), len(ordered) - 1)]


def format_latency_ms(seconds: float) -> str:
    """Format latency in milliseconds."""
    ms = seconds * 1000
    if ms < 1:
        return f"{ms:.3f}ms"
    elif ms < 10:
        return f"{ms:.2f}ms"
    else:
        return f"{ms:.1f}ms"


# ---------------------------------------------------------------------------
# Core Benchmark Functions
# ---------------------------------------------------------------------------


def create_storage(adapter_name: str, temp_dir: Path, run: int) -> TaskStoragePort:
    """Build a fresh store for one run."""
    if adapter_name == "memory":
        return InMemoryStorage()
    if adapter_name == "sqlite":
        return SQLiteStorage(temp_dir / f"bench-{run}.db")
    raise typer.BadParameter(f"Unknown adapter: {adapter_name}")


async def benchmark_enqueue(
    queue: PersistentQueue, n: int, payload: dict[str, Any]
) -> list[float]:
    """Sequential add() calls; returns the latency of each."""
    latencies = []
    for i in range(n):
        start = perf_counter()
        await queue.add({**payload, "n": i})
        latencies.append(perf_counter() - start)
    return latencies


async def benchmark_drain(queue: PersistentQueue) -> int:
    """Start the queue and acknowledge every task until it reports empty."""
    finished = asyncio.Event()
    delivered = 0

    async def on_next(task: Task[Any]) -> None:
        nonlocal delivered
        delivered += 1
        await queue.done()

    queue.on(QueueEvent.NEXT, on_next)
    queue.once(QueueEvent.EMPTY, finished.set)
    queue.start()
    await finished.wait()
    return delivered


async def run_benchmark(
    adapter_name: str,
    batch_size: int,
    config: BenchmarkConfig,
    temp_dir: Path,
    run: int,
) -> BenchmarkResult:
    payload = {"data": "x" * config.payload_size}
    storage = create_storage(adapter_name, temp_dir, run)

    async with PersistentQueue(storage=storage, batch_size=batch_size) as queue:
        start = perf_counter()
        latencies = await benchmark_enqueue(queue, config.operations, payload)
        enqueue_time = perf_counter() - start

        start = perf_counter()
        delivered = await benchmark_drain(queue)
        drain_time = perf_counter() - start

    if delivered != config.operations:
        raise RuntimeError(
            f"{adapter_name}: delivered {delivered} of {config.operations} tasks"
        )

    return BenchmarkResult(
        adapter_name=adapter_name,
        batch_size=batch_size,
        total_ops=config.operations,
        enqueue_time=enqueue_time,
        drain_time=drain_time,
        latencies=latencies,
    )


# ---------------------------------------------------------------------------
# Output Formatting
# ---------------------------------------------------------------------------


def format_results(results: list[BenchmarkResult], config: BenchmarkConfig) -> None:
    console = Console()
    console.print(
        Panel(
            f"{config.operations} tasks per run, payload ~{config.payload_size} bytes",
            title="pqueue Benchmark",
        )
    )

    table = Table(show_header=True, header_style="bold")
    table.add_column("Adapter")
    table.add_column("Batch", justify="right")
    table.add_column("Enqueue/sec", justify="right")
    table.add_column("Drain/sec", justify="right")
    table.add_column("Add P50", justify="right")
    table.add_column("Add P99", justify="right")

    for result in results:
        table.add_row(
            result.adapter_name,
            str(result.batch_size),
            f"{result.enqueue_per_sec:.1f}",
            f"{result.drain_per_sec:.1f}",
            format_latency_ms(result.p50),
            format_latency_ms(result.p99),
        )

    console.print(table)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@app.command()
def main(
    operations: int = typer.Option(
        1000,
        "--operations",
        "-n",
        help="Number of tasks per run",
    ),
    batch_sizes: str = typer.Option(
        "1,10,100",
        "--batch-sizes",
        "-b",
        help="Comma-separated batch sizes to test",
    ),
    adapters: str = typer.Option(
        "memory,sqlite",
        "--adapters",
        "-a",
        help="Comma-separated adapters to test",
    ),
) -> None:
    """
    Benchmark pqueue.

    For every adapter and batch size: add N tasks, then drain them through
    next/done and report throughput for both phases.
    """
    config = BenchmarkConfig(
        operations=operations,
        batch_sizes=[int(b) for b in batch_sizes.split(",")],
        adapters=[a.strip() for a in adapters.split(",")],
    )

    all_results = []

    with tempfile.TemporaryDirectory() as temp_dir_str:
        temp_dir = Path(temp_dir_str)
        run = 0
        for adapter_name in config.adapters:
            for batch_size in config.batch_sizes:
                run += 1
                try:
                    all_results.append(
                        asyncio.run(
                            run_benchmark(adapter_name, batch_size, config, temp_dir, run)
                        )
                    )
                except Exception as e:
                    print(
                        f"\nError benchmarking {adapter_name} (batch {batch_size}): {e}",
                        file=sys.stderr,
                    )

    if all_results:
        format_results(all_results, config)
    else:
        print("\nNo benchmark results to display.", file=sys.stderr)
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
