"""Thread-safe memoizing cache with single construction per key.

Lookups of already-built keys never take a lock (a plain dict read). On a
miss, the registry lock is held only long enough to install a per-key
pending latch; the factory runs outside it, so building one key never blocks
lookups or construction of other keys. Concurrent first-callers for the same
key wait on the latch and all observe the one instance that was built.

If the factory raises, the latch is removed, waiters retry (one of them
becomes the new builder) and the error propagates to the caller that ran the
factory. Nothing is ever evicted.
"""

from __future__ import annotations

import threading
from typing import Callable, Dict, Generic, Hashable, Iterator, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class _Pending:
    __slots__ = ("event", "owner")

    def __init__(self) -> None:
        self.event = threading.Event()
        self.owner = threading.get_ident()


class Memoize(Generic[K, V]):
    """Compute-if-absent cache around ``factory``."""

    def __init__(self, factory: Callable[[K], V]) -> None:
        self._factory = factory
        self._values: Dict[K, V] = {}
        self._pending: Dict[K, _Pending] = {}
        self._lock = threading.Lock()

    def __call__(self, key: K) -> V:
        # Fast path: no locking once the key is built.
        try:
            return self._values[key]
        except KeyError:
            pass
        while True:
            with self._lock:
                if key in self._values:
                    return self._values[key]
                pending = self._pending.get(key)
                if pending is None:
                    pending = _Pending()
                    self._pending[key] = pending
                    build = True
                else:
                    build = False
            if build:
                return self._build(key, pending)
            if pending.owner == threading.get_ident():
                raise RuntimeError(f"Recursive memoized construction for key {key!r}")
            pending.event.wait()
            value = self._values.get(key, _MISSING)
            if value is not _MISSING:
                return value  # type: ignore[return-value]
            # Builder failed; loop and race to become the next builder.

    def _build(self, key: K, pending: _Pending) -> V:
        try:
            value = self._factory(key)
        except BaseException:
            with self._lock:
                del self._pending[key]
            pending.event.set()
            raise
        with self._lock:
            self._values[key] = value
            del self._pending[key]
        pending.event.set()
        return value

    def get(self, key: K) -> V | None:
        """Return the built value without constructing it."""
        return self._values.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[K]:
        return iter(list(self._values))

    def snapshot(self) -> Dict[K, V]:
        with self._lock:
            return dict(self._values)


_MISSING = object()
