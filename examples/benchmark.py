#!/usr/bin/env python3
"""wristflick Benchmark — per-sample latency and throughput of each stage.

Measures the aim estimator, the burst detectors and the full engine on
synthetic sensor traces. No watch required.

Usage:
    python examples/benchmark.py
    python examples/benchmark.py --iterations 50000 --preset dual
"""

from __future__ import annotations

import argparse
import gc
import os
import sys
import time
from pathlib import Path
from typing import Callable

import numpy as np

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from wristflick.aim import AimEstimator
from wristflick.config import PRESETS, get_preset
from wristflick.detectors import FlickDetector, ShakeDetector
from wristflick.engine import GestureEngine
from wristflick.sources import ReplaySource
from wristflick.synthetic import MS, pose_at_heading, typing_session


def get_memory_mb() -> float:
    """Get current process RSS in MB."""
    try:
        import resource
        return resource.getrusage(resource.RUSAGE_SELF).ru_maxrss / 1024  # Linux: KB → MB
    except ImportError:
        return 0.0


def time_calls(fn: Callable, args: list) -> dict:
    """Call ``fn`` once per item of ``args`` and summarize latency."""
    for a in args[:10]:
        fn(a)

    gc.collect()
    times = []
    for a in args:
        t0 = time.perf_counter()
        fn(a)
        times.append(time.perf_counter() - t0)

    times_us = np.array(times) * 1e6
    return {
        "mean_us": float(np.mean(times_us)),
        "p95_us": float(np.percentile(times_us, 95)),
        "p99_us": float(np.percentile(times_us, 99)),
        "max_us": float(np.max(times_us)),
        "throughput": 1e6 / float(np.mean(times_us)),
    }


def print_table(title: str, rows: list[tuple[str, str]]):
    """Print a formatted table."""
    max_key = max(len(r[0]) for r in rows)
    max_val = max(len(r[1]) for r in rows)
    width = max_key + max_val + 7

    print()
    print(f"  ╭{'─' * width}╮")
    print(f"  │ {title:<{width-2}} │")
    print(f"  ├{'─' * width}┤")
    for key, val in rows:
        print(f"  │ {key:<{max_key}}   {val:>{max_val}} │")
    print(f"  ╰{'─' * width}╯")


def latency_rows(results: dict, unit: str) -> list[tuple[str, str]]:
    return [
        ("Mean latency", f"{results['mean_us']:.2f} us"),
        ("P95 latency", f"{results['p95_us']:.2f} us"),
        ("P99 latency", f"{results['p99_us']:.2f} us"),
        ("Max latency", f"{results['max_us']:.2f} us"),
        ("Throughput", f"{results['throughput']:,.0f} {unit}/sec"),
    ]


def main():
    parser = argparse.ArgumentParser(description="wristflick Benchmark")
    parser.add_argument("-n", "--iterations", type=int, default=20000, help="Samples per stage")
    parser.add_argument("--preset", default="dual", choices=sorted(PRESETS), help="Engine preset")
    args = parser.parse_args()

    n = args.iterations
    config = get_preset(args.preset)
    rng = np.random.default_rng(42)

    print()
    print("  ┌─────────────────────────────────────┐")
    print("  │     wristflick Benchmark Suite ⌚    │")
    print("  └─────────────────────────────────────┘")
    print()

    mem_before = get_memory_mb()
    print(f"  Generating {n} synthetic samples per stage...")
    poses = [pose_at_heading(h, i * 10 * MS) for i, h in enumerate(rng.uniform(-np.pi, np.pi, n))]
    omegas = rng.gamma(2.0, 0.8, n)
    accels = rng.normal(11.0, 6.0, n)
    session = typing_session(list(range(config.aim.num_arcs)) * 5, config)
    mem_after = get_memory_mb()

    print("  Running aim benchmark...")
    aim = AimEstimator(config.aim)
    aim_results = time_calls(aim.update, poses)

    print("  Running detector benchmarks...")
    flick = FlickDetector(config.flick)
    flick_results = time_calls(lambda i: flick.update(float(omegas[i]), i * 5 * MS), list(range(n)))
    shake = ShakeDetector(config.shake)
    shake_results = time_calls(lambda i: shake.update(float(accels[i]), i * 20 * MS), list(range(n)))

    print("  Running full engine benchmark...")
    engine = GestureEngine(config)
    source = ReplaySource()
    engine.start(source=source)
    engine_results = time_calls(source.push, session)
    stats = engine.stats
    engine.stop()

    print_table(f"Aim estimator ({config.aim.mode.value})", latency_rows(aim_results, "samples"))
    print_table("Flick detector", latency_rows(flick_results, "samples"))
    print_table("Shake detector", latency_rows(shake_results, "samples"))
    print_table(f"Engine end-to-end ({args.preset})", latency_rows(engine_results, "samples") + [
        ("Gestures", ", ".join(f"{k}={v}" for k, v in sorted(stats.gestures.items())) or "none"),
        ("Over 1 ms budget", f"{sum(s['over_budget'] for s in stats.profiler_summary.values())}"),
    ])

    print_table("System", [
        ("Iterations", f"{n:,}"),
        ("Session samples", f"{len(session):,}"),
        ("Memory (data)", f"{mem_after - mem_before:.1f} MB"),
        ("Memory (total RSS)", f"{get_memory_mb():.1f} MB"),
        ("Platform", f"{sys.platform} / {os.uname().machine}"),
        ("Python", f"{sys.version.split()[0]}"),
        ("NumPy", f"{np.__version__}"),
    ])

    # A 200 Hz gyroscope leaves 5 ms per sample
    headroom = 5000.0 / engine_results["mean_us"] if engine_results["mean_us"] > 0 else float("inf")
    print()
    print(f"  ⚡ Engine cost: {engine_results['mean_us']:.1f} us/sample ({headroom:,.0f}x headroom at 200 Hz)")
    print()


if __name__ == "__main__":
    main()
