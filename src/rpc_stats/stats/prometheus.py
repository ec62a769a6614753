"""Prometheus-backed StatsReceiver.

Slash paths such as ``per_method_stats/foo/failures/TimeoutError`` are not
valid Prometheus metric names, so every counter becomes one sample of a
single counter family and every stat one sample of a single histogram
family, with the exact path carried in the ``name`` label:

    rpc_counter_total{name="per_method_stats/foo/success"} 1.0
    rpc_stat_bucket{name="per_method_stats/foo/latency_ms",le="50.0"} 1.0
"""

from __future__ import annotations

from typing import Sequence

from prometheus_client import REGISTRY, CollectorRegistry
from prometheus_client import Counter as P8sCounter
from prometheus_client import Histogram as P8sHistogram
from structlog import get_logger

from rpc_stats.errors import ConfigError
from rpc_stats.stats.receiver import Counter, Path, Stat, StatsReceiver, format_path
from rpc_stats.utils.memoize import Memoize

logger = get_logger("stats.prometheus")

# Latency-oriented buckets, in milliseconds.
DEFAULT_BUCKETS_MS: tuple[float, ...] = (1, 2, 5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000)


class _PromCounter(Counter):
    __slots__ = ("_child",)

    def __init__(self, child) -> None:
        self._child = child

    def incr(self, delta: int = 1) -> None:
        self._child.inc(delta)


class _PromStat(Stat):
    __slots__ = ("_child",)

    def __init__(self, child) -> None:
        self._child = child

    def add(self, value: float) -> None:
        self._child.observe(value)


class PrometheusStatsReceiver(StatsReceiver):
    """Registers ``<namespace>_counter`` and ``<namespace>_stat`` on ``registry``.

    A namespace can be registered once per registry. Building a second
    receiver with the same namespace on the same registry (the process-wide
    default ``REGISTRY`` included) raises ``ConfigError`` until the first one
    is released with ``unregister()``. Share one receiver per namespace, or
    pass a dedicated ``CollectorRegistry``.
    """

    def __init__(
        self,
        namespace: str = "rpc",
        registry: CollectorRegistry | None = None,
        buckets: Sequence[float] | None = None,
    ) -> None:
        self._registry = registry if registry is not None else REGISTRY
        self._namespace = namespace
        try:
            self._counter_family = P8sCounter(
                f"{namespace}_counter",
                "RPC counters keyed by stats path",
                ["name"],
                registry=self._registry,
            )
        except ValueError as exc:
            raise ConfigError(f"Cannot register stats namespace {namespace!r}: {exc}") from exc
        try:
            self._stat_family = P8sHistogram(
                f"{namespace}_stat",
                "RPC stats keyed by stats path",
                ["name"],
                buckets=tuple(buckets) if buckets else DEFAULT_BUCKETS_MS,
                registry=self._registry,
            )
        except ValueError as exc:
            self._registry.unregister(self._counter_family)
            raise ConfigError(f"Cannot register stats namespace {namespace!r}: {exc}") from exc
        self._counters: Memoize[Path, Counter] = Memoize(
            lambda path: _PromCounter(self._counter_family.labels(name=format_path(path)))
        )
        self._stats: Memoize[Path, Stat] = Memoize(
            lambda path: _PromStat(self._stat_family.labels(name=format_path(path)))
        )
        logger.info("Prometheus stats receiver ready", namespace=namespace)

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def _counter(self, path: Path) -> Counter:
        return self._counters(path)

    def _stat(self, path: Path) -> Stat:
        return self._stats(path)

    def unregister(self) -> None:
        """Remove this receiver's metric families from its registry."""
        for collector in (self._counter_family, self._stat_family):
            try:
                self._registry.unregister(collector)
            except KeyError:
                pass

    def __repr__(self) -> str:
        return f"PrometheusStatsReceiver(namespace={self._namespace!r})"
