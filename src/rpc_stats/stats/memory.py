from __future__ import annotations

import threading
from typing import Dict, List

from rpc_stats.stats.receiver import Counter, Path, Stat, StatsReceiver, format_path
from rpc_stats.utils.memoize import Memoize


class MemoryCounter(Counter):
    __slots__ = ("_lock", "_value")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = 0

    def incr(self, delta: int = 1) -> None:
        with self._lock:
            self._value += delta

    def reset(self) -> None:
        with self._lock:
            self._value = 0

    @property
    def value(self) -> int:
        return self._value


class MemoryStat(Stat):
    __slots__ = ("_lock", "_samples")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._samples: List[float] = []

    def add(self, value: float) -> None:
        with self._lock:
            self._samples.append(float(value))

    def reset(self) -> None:
        with self._lock:
            self._samples.clear()

    @property
    def samples(self) -> List[float]:
        with self._lock:
            return list(self._samples)


class InMemoryStatsReceiver(StatsReceiver):
    """Keeps every counter and stat in process, keyed by its full path.

    Snapshots use the slash-joined name, e.g.
    ``receiver.counters["per_method_stats/foo/success"]``.
    """

    def __init__(self) -> None:
        self._counters: Memoize[Path, MemoryCounter] = Memoize(lambda _path: MemoryCounter())
        self._stats: Memoize[Path, MemoryStat] = Memoize(lambda _path: MemoryStat())

    def _counter(self, path: Path) -> Counter:
        return self._counters(path)

    def _stat(self, path: Path) -> Stat:
        return self._stats(path)

    # ── Inspection ────────────────────────────────────────────────────────

    @property
    def counters(self) -> Dict[str, int]:
        return {format_path(path): c.value for path, c in self._counters.snapshot().items()}

    @property
    def stats(self) -> Dict[str, List[float]]:
        return {format_path(path): s.samples for path, s in self._stats.snapshot().items()}

    def counter_value(self, name: str) -> int:
        """Value of the counter at ``name``, 0 if it was never created."""
        return self.counters.get(name, 0)

    def samples(self, name: str) -> List[float]:
        return self.stats.get(name, [])

    def clear(self) -> None:
        """Zero every counter and drop every sample.

        Instances are reset in place, so callers holding a counter or stat
        (such as a filter's per-method cache) keep reporting here.
        """
        for counter in self._counters.snapshot().values():
            counter.reset()
        for stat in self._stats.snapshot().values():
            stat.reset()

    def __repr__(self) -> str:
        return f"InMemoryStatsReceiver(counters={len(self._counters)}, stats={len(self._stats)})"
