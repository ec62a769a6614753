from rpc_stats.errors import RpcApplicationError, RpcStatsError
from rpc_stats.filters import (
    ErrorsAsFailures,
    ErrorsAsSuccesses,
    MethodStats,
    MethodStatsRegistry,
    ReqRep,
    ResponseClass,
    ResponseClassifier,
    RpcRequest,
    StatsFilter,
)
from rpc_stats.stats import InMemoryStatsReceiver, NullStatsReceiver, PrometheusStatsReceiver, StatsReceiver

__version__ = "0.1.0"

__all__ = [
    "ErrorsAsFailures",
    "ErrorsAsSuccesses",
    "InMemoryStatsReceiver",
    "MethodStats",
    "MethodStatsRegistry",
    "NullStatsReceiver",
    "PrometheusStatsReceiver",
    "ReqRep",
    "ResponseClass",
    "ResponseClassifier",
    "RpcApplicationError",
    "RpcRequest",
    "RpcStatsError",
    "StatsFilter",
    "StatsReceiver",
]
