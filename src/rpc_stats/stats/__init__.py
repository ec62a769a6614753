from .memory import InMemoryStatsReceiver
from .prometheus import PrometheusStatsReceiver
from .receiver import (
    BroadcastStatsReceiver,
    Counter,
    NullStatsReceiver,
    ScopedTimer,
    Stat,
    StatsReceiver,
)

__all__ = [
    "BroadcastStatsReceiver",
    "Counter",
    "InMemoryStatsReceiver",
    "NullStatsReceiver",
    "PrometheusStatsReceiver",
    "ScopedTimer",
    "Stat",
    "StatsReceiver",
]
