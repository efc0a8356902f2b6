#!/usr/bin/env python3
"""
Micro-benchmark for Opsboard hot paths.

Tests:
1. Telemetry frame decode + cache merge throughput
2. Subscription bus fan-out
3. Auto-layout position calculation
4. Full widget render pass (what the UI needs per update)

Usage:
    python -m opsboard.benchmark
"""

from __future__ import annotations

import random
import time
from statistics import mean, stdev

import orjson

from .canvas.layout import calculate_layout
from .engine.bus import SubscriptionBus
from .engine.cache import StreamCache
from .types import Channel, GridSize, WidgetKind
from .widgets.registry import create_widget, new_config


def generate_mock_telemetry(metrics: int = 200) -> bytes:
    """Generate a mock telemetry frame."""
    types = ("gauge", "counter")
    items = []
    for i in range(metrics):
        items.append({
            "name": f"metric_{i % 50}",
            "labels": {"instance": f"node-{i // 50}"},
            "metric_type": {"type": types[i % len(types)], "value": random.uniform(0, 1000)},
            "cached_rate": random.uniform(0, 10),
        })
    return orjson.dumps({"metrics": items})


def _report_timings(times: list[float]) -> float:
    """Print mean and spread of per-iteration timings; returns the mean in ms."""
    avg_ms = mean(times) * 1000
    print(f"  Avg time: {avg_ms:.3f}ms  (stdev {stdev(times) * 1000:.3f}ms)")
    return avg_ms


def benchmark_cache_merge(iterations: int = 2000) -> None:
    """Benchmark telemetry decode + merge throughput."""
    print("\n=== Cache Merge Benchmark ===")

    cache = StreamCache()
    frames = [generate_mock_telemetry() for _ in range(50)]

    # Warm up
    for frame in frames:
        cache.merge(Channel.TELEMETRY, orjson.loads(frame))

    start = time.perf_counter()
    for i in range(iterations):
        cache.merge(Channel.TELEMETRY, orjson.loads(frames[i % len(frames)]))
    elapsed = time.perf_counter() - start

    rate = iterations / elapsed
    print(f"  Frames merged: {iterations:,}")
    print(f"  Time: {elapsed*1000:.1f}ms")
    print(f"  Rate: {rate:,.0f} frames/sec")
    print(f"  Per frame: {elapsed/iterations*1_000_000:.1f}µs")


def benchmark_bus_fanout(iterations: int = 100000, subscribers: int = 20) -> None:
    """Benchmark publish to many subscribers."""
    print("\n=== Bus Fan-out Benchmark ===")

    bus = SubscriptionBus()
    received = [0]

    def on_update(payload: object) -> None:
        received[0] += 1

    for _ in range(subscribers):
        bus.subscribe("telemetry", lambda payload: on_update(payload))

    start = time.perf_counter()
    for _ in range(iterations):
        bus.publish("telemetry", None)
    elapsed = time.perf_counter() - start

    rate = iterations / elapsed
    print(f"  Publishes: {iterations:,} x {subscribers} subscribers")
    print(f"  Time: {elapsed*1000:.1f}ms")
    print(f"  Rate: {rate:,.0f} publishes/sec")
    print(f"  Per delivery: {elapsed/(iterations*subscribers)*1_000_000:.2f}µs")


def benchmark_layout(iterations: int = 1000, widgets: int = 100) -> None:
    """Benchmark auto-layout for a large batch."""
    print("\n=== Auto-layout Benchmark ===")

    sizes = [GridSize(random.randint(4, 12), random.randint(3, 8)) for _ in range(widgets)]

    times = []
    for _ in range(iterations):
        start = time.perf_counter()
        calculate_layout(sizes, 64, 40)
        times.append(time.perf_counter() - start)

    print(f"  Iterations: {iterations} ({widgets} widgets each)")
    avg_ms = _report_timings(times)
    print(f"  Rate: {1000/avg_ms:,.0f} layouts/sec")


def benchmark_render_pass(iterations: int = 500) -> None:
    """Benchmark one update fanned out to a board of telemetry widgets."""
    print("\n=== Render Pass Benchmark ===")

    cache = StreamCache()
    bus = SubscriptionBus()
    cache.merge(Channel.TELEMETRY, orjson.loads(generate_mock_telemetry()))

    kinds = (
        WidgetKind.TELEMETRY_GAUGE,
        WidgetKind.TELEMETRY_COUNTER,
        WidgetKind.TELEMETRY_METRIC,
    )
    for i in range(12):
        widget = create_widget(new_config(kinds[i % len(kinds)]), cache, bus)
        widget.mount()

    times = []
    for _ in range(iterations):
        start = time.perf_counter()
        bus.publish("telemetry", None)
        times.append(time.perf_counter() - start)

    print(f"  Iterations: {iterations}")
    avg_ms = _report_timings(times)
    print(f"  Max updates/sec possible: {1000/avg_ms:,.0f}")


def main() -> None:
    """Run all benchmarks."""
    print("=" * 60)
    print("Opsboard Performance Benchmark")
    print("=" * 60)

    benchmark_cache_merge()
    benchmark_bus_fanout()
    benchmark_layout()
    benchmark_render_pass()

    print("\n" + "=" * 60)
    print("Benchmark complete.")
    print("=" * 60)


if __name__ == "__main__":
    main()
