"""StatsReceiver: scoped factory for counters and histograms.

Names are hierarchical. ``receiver.scope("per_method_stats").scope("foo")
.counter("success")`` addresses ``per_method_stats/foo/success``. Backends
implement ``_counter(path)`` / ``_stat(path)`` on the root receiver; scoping
is handled here once for all of them.

Backends must return the same Counter/Stat object for the same path and
make ``incr``/``add`` atomic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Sequence, Tuple

from rpc_stats.core import timebase

Path = Tuple[str, ...]

SEPARATOR = "/"


def format_path(path: Sequence[str]) -> str:
    return SEPARATOR.join(path)


class Counter(ABC):
    @abstractmethod
    def incr(self, delta: int = 1) -> None: ...


class Stat(ABC):
    @abstractmethod
    def add(self, value: float) -> None: ...

    def timer(self) -> "ScopedTimer":
        """Start a timer that records elapsed milliseconds into this stat once."""
        return ScopedTimer(self)


class ScopedTimer:
    """Records elapsed ms into a Stat exactly once, however many exits call stop()."""

    __slots__ = ("_stat", "_start_ns", "_stopped")

    def __init__(self, stat: Stat) -> None:
        self._stat = stat
        self._start_ns = timebase.perf_ns()
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    def stop(self) -> float | None:
        if self._stopped:
            return None
        self._stopped = True
        elapsed = timebase.elapsed_ms(self._start_ns)
        self._stat.add(elapsed)
        return elapsed

    def __enter__(self) -> "ScopedTimer":
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()


class StatsReceiver(ABC):
    """Root receiver. Subclasses provide the storage."""

    prefix: Path = ()

    def counter(self, *name: str) -> Counter:
        return self._root()._counter(self.prefix + tuple(name))

    def stat(self, *name: str) -> Stat:
        return self._root()._stat(self.prefix + tuple(name))

    def scope(self, name: str) -> "StatsReceiver":
        if not name:
            return self
        return ScopedStatsReceiver(self._root(), self.prefix + (name,))

    def _root(self) -> "StatsReceiver":
        return self

    @abstractmethod
    def _counter(self, path: Path) -> Counter: ...

    @abstractmethod
    def _stat(self, path: Path) -> Stat: ...


class ScopedStatsReceiver(StatsReceiver):
    def __init__(self, underlying: StatsReceiver, prefix: Path) -> None:
        self._underlying = underlying
        self.prefix = prefix

    def _root(self) -> StatsReceiver:
        return self._underlying

    def _counter(self, path: Path) -> Counter:
        return self._underlying._counter(path)

    def _stat(self, path: Path) -> Stat:
        return self._underlying._stat(path)

    def __repr__(self) -> str:
        return f"ScopedStatsReceiver({self._underlying!r}, {format_path(self.prefix)!r})"


# ── Null / Broadcast ──────────────────────────────────────────────────────


class _NullCounter(Counter):
    def incr(self, delta: int = 1) -> None:
        pass


class _NullStat(Stat):
    def add(self, value: float) -> None:
        pass


class NullStatsReceiver(StatsReceiver):
    """Discards everything."""

    _COUNTER = _NullCounter()
    _STAT = _NullStat()

    def _counter(self, path: Path) -> Counter:
        return self._COUNTER

    def _stat(self, path: Path) -> Stat:
        return self._STAT


class _BroadcastCounter(Counter):
    __slots__ = ("_counters",)

    def __init__(self, counters: Sequence[Counter]) -> None:
        self._counters = tuple(counters)

    def incr(self, delta: int = 1) -> None:
        for c in self._counters:
            c.incr(delta)


class _BroadcastStat(Stat):
    __slots__ = ("_stats",)

    def __init__(self, stats: Sequence[Stat]) -> None:
        self._stats = tuple(stats)

    def add(self, value: float) -> None:
        for s in self._stats:
            s.add(value)


class BroadcastStatsReceiver(StatsReceiver):
    """Fans every counter/stat out to several receivers."""

    def __init__(self, receivers: Iterable[StatsReceiver]) -> None:
        self._receivers = tuple(receivers)

    def _counter(self, path: Path) -> Counter:
        return _BroadcastCounter([r.counter(*path) for r in self._receivers])

    def _stat(self, path: Path) -> Stat:
        return _BroadcastStat([r.stat(*path) for r in self._receivers])
