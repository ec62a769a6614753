import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from prometheus_client import CollectorRegistry

from rpc_stats.core import timebase
from rpc_stats.errors import ConfigError
from rpc_stats.stats.memory import InMemoryStatsReceiver
from rpc_stats.stats.prometheus import PrometheusStatsReceiver
from rpc_stats.stats.receiver import BroadcastStatsReceiver, NullStatsReceiver


def test_scoped_names_are_slash_joined(receiver):
    scoped = receiver.scope("per_method_stats").scope("foo")
    scoped.counter("success").incr()
    scoped.scope("failures").counter("TimeoutError").incr(2)
    scoped.stat("latency_ms").add(43)

    assert receiver.counters == {
        "per_method_stats/foo/success": 1,
        "per_method_stats/foo/failures/TimeoutError": 2,
    }
    assert receiver.stats == {"per_method_stats/foo/latency_ms": [43.0]}


def test_empty_scope_is_identity(receiver):
    assert receiver.scope("") is receiver


def test_same_path_returns_same_counter(receiver):
    a = receiver.scope("x").counter("y")
    b = receiver.counter("x", "y")
    assert a is b


def test_memory_counter_no_lost_updates(receiver):
    counter = receiver.counter("hits")

    def bump(_):
        for _ in range(1000):
            counter.incr()

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(bump, range(8)))

    assert receiver.counter_value("hits") == 8000


def test_counter_value_defaults_to_zero(receiver):
    assert receiver.counter_value("never") == 0
    assert receiver.samples("never") == []


def test_memory_clear_resets_in_place(receiver):
    counter = receiver.counter("a")
    stat = receiver.stat("b")
    counter.incr()
    stat.add(1)

    receiver.clear()

    assert receiver.counters == {"a": 0}
    assert receiver.stats == {"b": []}

    counter.incr()
    stat.add(2)
    assert receiver.counter_value("a") == 1
    assert receiver.samples("b") == [2.0]
    assert receiver.counter("a") is counter


def test_scoped_timer_records_once(receiver, monkeypatch):
    ticks = iter([0, 7_000_000, 9_000_000])
    monkeypatch.setattr(timebase, "perf_ns", lambda: next(ticks))
    stat = receiver.stat("latency_ms")

    timer = stat.timer()
    assert timer.stop() == 7.0
    assert timer.stop() is None
    assert timer.stopped
    assert receiver.samples("latency_ms") == [7.0]


def test_scoped_timer_context_manager(receiver, monkeypatch):
    ticks = iter([0, 2_500_000])
    monkeypatch.setattr(timebase, "perf_ns", lambda: next(ticks))
    with receiver.stat("t").timer():
        pass
    assert receiver.samples("t") == [2.5]


def test_null_receiver_discards():
    null = NullStatsReceiver()
    null.scope("a").counter("b").incr()
    null.stat("c").add(1.0)
    with null.stat("d").timer():
        pass


def test_broadcast_receiver_fans_out():
    a = InMemoryStatsReceiver()
    b = InMemoryStatsReceiver()
    both = BroadcastStatsReceiver([a, b])
    both.scope("s").counter("c").incr()
    both.stat("lat").add(3)
    assert a.counters == b.counters == {"s/c": 1}
    assert a.stats == b.stats == {"lat": [3.0]}


def test_prometheus_receiver_keeps_exact_path_in_label():
    registry = CollectorRegistry()
    prom = PrometheusStatsReceiver(namespace="svc", registry=registry, buckets=[10, 50, 100])

    prom.scope("per_method_stats").scope("foo").counter("success").incr()
    prom.scope("exceptions").counter("TimeoutError").incr()
    prom.scope("exceptions").counter("TimeoutError").incr()
    prom.scope("per_method_stats").scope("foo").stat("latency_ms").add(43)

    assert registry.get_sample_value("svc_counter_total", {"name": "per_method_stats/foo/success"}) == 1.0
    assert registry.get_sample_value("svc_counter_total", {"name": "exceptions/TimeoutError"}) == 2.0
    assert registry.get_sample_value("svc_stat_count", {"name": "per_method_stats/foo/latency_ms"}) == 1.0
    assert registry.get_sample_value("svc_stat_sum", {"name": "per_method_stats/foo/latency_ms"}) == 43.0
    assert (
        registry.get_sample_value("svc_stat_bucket", {"name": "per_method_stats/foo/latency_ms", "le": "50.0"})
        == 1.0
    )


def test_prometheus_receiver_unregister():
    registry = CollectorRegistry()
    prom = PrometheusStatsReceiver(namespace="gone", registry=registry)
    prom.counter("a").incr()
    prom.unregister()
    assert registry.get_sample_value("gone_counter_total", {"name": "a"}) is None
    # Idempotent.
    prom.unregister()
    # Namespace can be reused once unregistered.
    PrometheusStatsReceiver(namespace="gone", registry=registry)


def test_prometheus_counter_concurrent_increments():
    registry = CollectorRegistry()
    prom = PrometheusStatsReceiver(namespace="conc", registry=registry)
    barrier = threading.Barrier(4)

    def bump(_):
        barrier.wait()
        for _ in range(500):
            prom.counter("hits").incr()

    with ThreadPoolExecutor(max_workers=4) as pool:
        list(pool.map(bump, range(4)))

    assert registry.get_sample_value("conc_counter_total", {"name": "hits"}) == 2000.0


def test_prometheus_duplicate_namespace_rejected_until_unregistered():
    registry = CollectorRegistry()
    first = PrometheusStatsReceiver(namespace="dup", registry=registry)

    with pytest.raises(ConfigError, match="dup"):
        PrometheusStatsReceiver(namespace="dup", registry=registry)

    # The first receiver is untouched by the failed attempt.
    first.counter("a").incr()
    assert registry.get_sample_value("dup_counter_total", {"name": "a"}) == 1.0

    first.unregister()
    second = PrometheusStatsReceiver(namespace="dup", registry=registry)
    second.counter("a").incr()
    assert registry.get_sample_value("dup_counter_total", {"name": "a"}) == 1.0


def test_prometheus_other_namespace_shares_registry():
    registry = CollectorRegistry()
    PrometheusStatsReceiver(namespace="one", registry=registry).counter("a").incr()
    PrometheusStatsReceiver(namespace="two", registry=registry).counter("a").incr(3)
    assert registry.get_sample_value("one_counter_total", {"name": "a"}) == 1.0
    assert registry.get_sample_value("two_counter_total", {"name": "a"}) == 3.0
