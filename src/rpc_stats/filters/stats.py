"""StatsFilter — per-method success/failure/latency stats for RPC handlers.

Stats are scoped under ``per_method_stats/<method>``. A successful call to
``foo``:

    per_method_stats/foo/failures 0
    per_method_stats/foo/success 1
    per_method_stats/foo/latency_ms [43.0]

A call to ``foo`` that raised ``TimeoutError`` and was classified failed:

    exceptions 1
    exceptions/TimeoutError 1
    per_method_stats/foo/failures 1
    per_method_stats/foo/failures/TimeoutError 1
    per_method_stats/foo/success 0
    per_method_stats/foo/latency_ms [43.0]

Classification and exception counting are kept apart. A raised error is
always counted under ``exceptions``, and under the per-method scope of
whichever side it was classified on; a value classified as failed bumps
``failures`` and no exception counter:

    +----------------+----------------+-----------------------------+
    | Classification |  value         |  error                      |
    +----------------+----------------+-----------------------------+
    |  SUCCESSFUL    | success++      | success++, success/<E>++    |
    |  FAILED        | failures++     | failures++, failures/<E>++  |
    +----------------+----------------+-----------------------------+
    (errors additionally bump exceptions and exceptions/<E>)

Place it above any exception-mapping stage so it counts the mapped result:
``StatsFilter(sr).and_then(ExceptionMapper()).and_then(service)``.

The filter never changes what the caller sees. Values and errors pass
through untouched, and any fault in the stats path is logged and dropped.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import inspect
import os
import threading
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterator

from structlog import get_logger

from rpc_stats.errors import error_type_name
from rpc_stats.filters.base import Filter, Outcome, Return, Throw
from rpc_stats.filters.classifier import (
    DEFAULT_CLASSIFIER,
    RPC_ERRORS_AS_FAILURES,
    ReqRep,
    ResponseClass,
    ResponseClassifier,
)
from rpc_stats.stats.receiver import Counter, ScopedTimer, Stat, StatsReceiver
from rpc_stats.utils.memoize import Memoize

logger = get_logger("filters.stats")

PER_METHOD_SCOPE = "per_method_stats"
EXCEPTIONS = "exceptions"


@dataclass(frozen=True, slots=True)
class MethodStats:
    """Stats bundle for one RPC method. Built once, shared by all calls."""

    latency: Stat
    success_counter: Counter
    failures_counter: Counter
    successes_scope: StatsReceiver
    failures_scope: StatsReceiver

    @classmethod
    def from_receiver(cls, stats: StatsReceiver) -> "MethodStats":
        return cls(
            latency=stats.stat("latency_ms"),
            success_counter=stats.counter("success"),
            failures_counter=stats.counter("failures"),
            successes_scope=stats.scope("success"),
            failures_scope=stats.scope("failures"),
        )

    def exception_counter(self, success: bool, error_name: str) -> Counter:
        scope = self.successes_scope if success else self.failures_scope
        return scope.counter(error_name)


class MethodStatsRegistry:
    """Lazily built MethodStats per method name, never evicted."""

    def __init__(self, stats_receiver: StatsReceiver) -> None:
        self._scope = stats_receiver.scope(PER_METHOD_SCOPE)
        self._memo: Memoize[str, MethodStats] = Memoize(self._build)

    def _build(self, method_name: str) -> MethodStats:
        logger.debug("Registering method stats", method=method_name)
        return MethodStats.from_receiver(self._scope.scope(method_name))

    def get_or_create(self, method_name: str) -> MethodStats:
        return self._memo(method_name)

    def get(self, method_name: str) -> MethodStats | None:
        return self._memo.get(method_name)

    def method_names(self) -> list[str]:
        return sorted(self._memo)

    def __contains__(self, method_name: object) -> bool:
        return method_name in self._memo

    def __len__(self) -> int:
        return len(self._memo)

    def __iter__(self) -> Iterator[str]:
        return iter(self._memo)


class StatsFilter(Filter):
    """Records per-method latency, success/failure and exception counters.

    Env vars:
        RPC_STATS_WARN_UNNAMED: log the first call without a method name (default 1)
    """

    def __init__(
        self,
        stats_receiver: StatsReceiver,
        response_classifier: ResponseClassifier | Callable[[ReqRep], ResponseClass | None] | None = None,
        warn_unnamed: bool | None = None,
    ) -> None:
        if response_classifier is None:
            response_classifier = RPC_ERRORS_AS_FAILURES
        elif not isinstance(response_classifier, ResponseClassifier):
            response_classifier = ResponseClassifier.named(
                getattr(response_classifier, "__name__", "custom"), response_classifier
            )
        self._classifier = response_classifier
        self._registry = MethodStatsRegistry(stats_receiver)
        self._exception_counter = stats_receiver.counter(EXCEPTIONS)
        self._exception_scope = stats_receiver.scope(EXCEPTIONS)
        self._warn_unnamed = (
            warn_unnamed
            if warn_unnamed is not None
            else os.getenv("RPC_STATS_WARN_UNNAMED", "1").lower() not in {"0", "false", "no", "off"}
        )
        self._unnamed_lock = threading.Lock()
        self._unnamed_seen = False

    @property
    def registry(self) -> MethodStatsRegistry:
        return self._registry

    @property
    def classifier(self) -> ResponseClassifier:
        return self._classifier

    # ── Entry point ───────────────────────────────────────────────────────

    def __call__(self, request: Any, service: Callable[[Any], Any]) -> Any:
        stats = self._lookup(request)
        timer = self._start_timer(stats)
        try:
            response = service(request)
        except Exception as exc:
            self._handle_response(stats, timer, request, Throw(exc))
            raise

        if asyncio.isfuture(response):
            return self._observe_asyncio_future(stats, timer, request, response)
        if inspect.isawaitable(response):
            return self._observe_awaitable(stats, timer, request, response)
        if isinstance(response, concurrent.futures.Future):
            return self._observe_future(stats, timer, request, response)

        self._handle_response(stats, timer, request, Return(response))
        return response

    # ── Deferred outcomes ─────────────────────────────────────────────────

    async def _observe_awaitable(
        self,
        stats: MethodStats | None,
        timer: ScopedTimer | None,
        request: Any,
        awaitable: Awaitable[Any],
    ) -> Any:
        # CancelledError is a BaseException: a cancelled call records nothing.
        try:
            value = await awaitable
        except Exception as exc:
            self._handle_response(stats, timer, request, Throw(exc))
            raise
        self._handle_response(stats, timer, request, Return(value))
        return value

    def _observe_asyncio_future(
        self,
        stats: MethodStats | None,
        timer: ScopedTimer | None,
        request: Any,
        future: asyncio.Future,
    ) -> asyncio.Future:
        """Chain a Task/Future into a new future resolved after stats are recorded."""
        observed: asyncio.Future = future.get_loop().create_future()

        def _on_done(done: asyncio.Future) -> None:
            if done.cancelled():
                observed.cancel()
                return
            exc = done.exception()
            if exc is not None:
                self._handle_response(stats, timer, request, Throw(exc))
                if not observed.done():
                    observed.set_exception(exc)
            else:
                value = done.result()
                self._handle_response(stats, timer, request, Return(value))
                if not observed.done():
                    observed.set_result(value)

        def _propagate_cancel(fut: asyncio.Future) -> None:
            if fut.cancelled():
                future.cancel()

        observed.add_done_callback(_propagate_cancel)
        future.add_done_callback(_on_done)
        return observed

    def _observe_future(
        self,
        stats: MethodStats | None,
        timer: ScopedTimer | None,
        request: Any,
        future: concurrent.futures.Future,
    ) -> concurrent.futures.Future:
        observed: concurrent.futures.Future = concurrent.futures.Future()

        def _on_done(done: concurrent.futures.Future) -> None:
            if done.cancelled():
                observed.cancel()
                return
            exc = done.exception()
            if exc is not None:
                self._handle_response(stats, timer, request, Throw(exc))
                # False once the caller cancelled `observed`; nothing left to deliver.
                if observed.set_running_or_notify_cancel():
                    observed.set_exception(exc)
            else:
                value = done.result()
                self._handle_response(stats, timer, request, Return(value))
                if observed.set_running_or_notify_cancel():
                    observed.set_result(value)

        def _propagate_cancel(fut: concurrent.futures.Future) -> None:
            if fut.cancelled():
                future.cancel()

        observed.add_done_callback(_propagate_cancel)
        future.add_done_callback(_on_done)
        return observed

    # ── Stats path ────────────────────────────────────────────────────────

    def _lookup(self, request: Any) -> MethodStats | None:
        method_name = getattr(request, "method_name", None)
        if not method_name:
            self._note_unnamed(request)
            return None
        try:
            return self._registry.get_or_create(method_name)
        except Exception as exc:
            logger.warning("Method stats lookup failed", method=method_name, error=str(exc))
            return None

    def _start_timer(self, stats: MethodStats | None) -> ScopedTimer | None:
        if stats is None:
            return None
        try:
            return stats.latency.timer()
        except Exception as exc:
            logger.warning("Latency timer start failed", error=str(exc))
            return None

    def _handle_response(
        self,
        stats: MethodStats | None,
        timer: ScopedTimer | None,
        request: Any,
        response: Outcome,
    ) -> None:
        if timer is not None:
            try:
                timer.stop()
            except Exception as exc:
                logger.warning("Latency record failed", error=str(exc))

        success = self._classify(request, response) is not ResponseClass.FAILED
        if stats is not None:
            try:
                (stats.success_counter if success else stats.failures_counter).incr()
            except Exception as exc:
                self._log_update_failure(request, "outcome", exc)

        if not isinstance(response, Throw):
            return
        name = error_type_name(response.error)
        try:
            self._exception_counter.incr()
            self._exception_scope.counter(name).incr()
        except Exception as exc:
            self._log_update_failure(request, "exceptions", exc)
        if stats is not None:
            try:
                stats.exception_counter(success, name).incr()
            except Exception as exc:
                self._log_update_failure(request, "method_exceptions", exc)

    def _classify(self, request: Any, response: Outcome) -> ResponseClass:
        req_rep = ReqRep(request, response)
        try:
            return self._classifier.apply_or_default(req_rep)
        except Exception as exc:
            logger.warning(
                "Response classifier failed, using default",
                classifier=getattr(self._classifier, "name", repr(self._classifier)),
                error=str(exc),
            )
            return DEFAULT_CLASSIFIER.apply_or_default(req_rep)

    def _log_update_failure(self, request: Any, counters: str, exc: Exception) -> None:
        logger.warning(
            "Stats update failed",
            method=getattr(request, "method_name", None),
            counters=counters,
            error=str(exc),
        )

    def _note_unnamed(self, request: Any) -> None:
        if not self._warn_unnamed or self._unnamed_seen:
            return
        with self._unnamed_lock:
            if self._unnamed_seen:
                return
            self._unnamed_seen = True
        logger.info(
            "Request without method name, skipping per-method stats",
            request_type=type(request).__name__,
        )
