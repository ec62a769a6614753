"""Centralized clock helpers for duration measurement."""

from __future__ import annotations

import time

NS_PER_MS = 1_000_000


def perf_ns() -> int:
    """High-resolution monotonic clock in nanoseconds for profiling."""
    return time.perf_counter_ns()


def elapsed_ms(start_ns: int, end_ns: int | None = None) -> float:
    """Milliseconds between a perf_ns() start mark and now (or end_ns)."""
    if end_ns is None:
        end_ns = perf_ns()
    return max(0, end_ns - start_ns) / NS_PER_MS
