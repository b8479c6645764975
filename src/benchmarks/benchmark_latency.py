#!/usr/bin/env python3
"""
Benchmark script for Gatekeeper gate latency.

Runs the standard check chain in-process and reports p50, p95, p99 latency
and throughput for several request mixes:
- clean browser requests
- SQL injection and XSS probes
- adversarial inputs built to stress backtracking regex engines

Usage:
    python benchmark_latency.py --requests 10000
    python benchmark_latency.py --requests 20000 --concurrent 50 --output results.json
"""

import argparse
import asyncio
import json
import statistics
import time
from dataclasses import dataclass

from gatekeeper.clock import SystemClock
from gatekeeper.config import Settings
from gatekeeper.gate import SecurityGate
from gatekeeper.models import GuardRequest
from gatekeeper.store import InMemoryStore

BROWSER_HEADERS = (
    ("host", "example.com"),
    ("user-agent", "Mozilla/5.0 (X11; Linux x86_64; rv:128.0) Gecko/20100101 Firefox/128.0"),
    ("accept", "text/html,application/xhtml+xml"),
    ("accept-language", "en-US,en;q=0.5"),
)

MIXES: dict[str, tuple[tuple[str, str], ...]] = {
    "clean": (("q", "hello world"), ("page", "2")),
    "sql": (("q", "' OR '1'='1"),),
    "xss": (("q", "<script>alert(1)</script>"),),
    "adversarial": (("a", "<" + "a" * 2000), ("b", "on" * 1000), ("c", "<script>" + "x" * 2000)),
}


@dataclass
class BenchmarkResult:
    """Benchmark result metrics."""

    total_requests: int
    admitted_requests: int
    refused_requests: int
    total_duration_seconds: float
    latencies_ms: list[float]

    @property
    def throughput(self) -> float:
        """Requests per second."""
        return self.total_requests / self.total_duration_seconds

    @property
    def p50(self) -> float:
        """50th percentile latency in ms."""
        return self._percentile(50)

    @property
    def p95(self) -> float:
        """95th percentile latency in ms."""
        return self._percentile(95)

    @property
    def p99(self) -> float:
        """99th percentile latency in ms."""
        return self._percentile(99)

    @property
    def mean(self) -> float:
        """Mean latency in ms."""
        return statistics.mean(self.latencies_ms) if self.latencies_ms else 0

    def _percentile(self, p: int) -> float:
        """Calculate percentile."""
        if not self.latencies_ms:
            return 0
        sorted_latencies = sorted(self.latencies_ms)
        idx = int(len(sorted_latencies) * p / 100)
        return sorted_latencies[min(idx, len(sorted_latencies) - 1)]

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON export."""
        return {
            "total_requests": self.total_requests,
            "admitted_requests": self.admitted_requests,
            "refused_requests": self.refused_requests,
            "total_duration_seconds": round(self.total_duration_seconds, 3),
            "throughput_rps": round(self.throughput, 2),
            "latency_ms": {
                "mean": round(self.mean, 4),
                "p50": round(self.p50, 4),
                "p95": round(self.p95, 4),
                "p99": round(self.p99, 4),
                "max": round(max(self.latencies_ms), 4) if self.latencies_ms else 0,
            },
        }


def build_gate() -> SecurityGate:
    """Gate with a limit high enough that throttling never kicks in."""
    settings = Settings(_env_file=None, rate_limit_requests=10_000_000)
    clock = SystemClock()
    return SecurityGate.from_settings(settings, store=InMemoryStore(clock=clock), clock=clock)


def build_request(index: int, query: tuple[tuple[str, str], ...]) -> GuardRequest:
    # Spread load over many client keys, as real traffic would
    client_ip = f"10.0.{index % 256}.{(index // 256) % 256}"
    return GuardRequest(
        method="GET",
        path="/dashboard",
        headers=BROWSER_HEADERS + (("x-forwarded-for", client_ip),),
        query_params=query,
    )


async def benchmark(gate: SecurityGate, mix: str, num_requests: int, concurrency: int) -> BenchmarkResult:
    """Evaluate num_requests requests of one mix, optionally from concurrent workers."""
    query = MIXES[mix]
    latencies: list[float] = []
    admitted = 0
    queue: asyncio.Queue[int] = asyncio.Queue()
    for i in range(num_requests):
        queue.put_nowait(i)

    async def worker() -> None:
        nonlocal admitted
        while True:
            try:
                index = queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            request = build_request(index, query)
            start = time.perf_counter()
            decision = await gate.evaluate(request)
            latencies.append((time.perf_counter() - start) * 1000)
            if decision.admitted:
                admitted += 1

    start_time = time.perf_counter()
    await asyncio.gather(*(worker() for _ in range(max(1, concurrency))))
    total_duration = time.perf_counter() - start_time

    return BenchmarkResult(
        total_requests=num_requests,
        admitted_requests=admitted,
        refused_requests=num_requests - admitted,
        total_duration_seconds=total_duration,
        latencies_ms=latencies,
    )


def print_results(result: BenchmarkResult, title: str) -> None:
    """Print benchmark results in a formatted table."""
    print(f"\n{'=' * 60}")
    print(f"  {title}")
    print(f"{'=' * 60}")
    print(f"  Total requests:      {result.total_requests:,}")
    print(f"  Admitted:            {result.admitted_requests:,}")
    print(f"  Refused:             {result.refused_requests:,}")
    print(f"  Duration:            {result.total_duration_seconds:.2f}s")
    print(f"  Throughput:          {result.throughput:,.2f} req/s")
    print()
    print("  Latency (ms):")
    print(f"    Mean:              {result.mean:.4f}")
    print(f"    P50:               {result.p50:.4f}")
    print(f"    P95:               {result.p95:.4f}")
    print(f"    P99:               {result.p99:.4f}")
    print(f"    Max:               {max(result.latencies_ms):.4f}")
    print(f"{'=' * 60}")


async def main() -> None:
    parser = argparse.ArgumentParser(description="Gatekeeper Benchmark")
    parser.add_argument("--requests", type=int, default=10000, help="Requests per mix")
    parser.add_argument("--concurrent", type=int, default=0, help="Concurrency (0 = sequential)")
    parser.add_argument("--mix", choices=sorted(MIXES), action="append", help="Mixes to run (default: all)")
    parser.add_argument("--output", help="Output JSON file")

    args = parser.parse_args()
    mixes = args.mix or list(MIXES)

    print("Gatekeeper Benchmark")
    print(f"   Requests per mix: {args.requests}")
    print(f"   Concurrency: {args.concurrent or 'sequential'}")

    gate = build_gate()
    results = {}

    for mix in mixes:
        result = await benchmark(gate, mix, args.requests, args.concurrent)
        print_results(result, f"Mix: {mix}")
        results[mix] = result.to_dict()

    if args.output:
        with open(args.output, "w") as f:
            json.dump(results, f, indent=2)
        print(f"\nResults saved to {args.output}")


if __name__ == "__main__":
    asyncio.run(main())
