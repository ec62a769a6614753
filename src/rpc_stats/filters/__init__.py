from .base import Filter, FilteredService, Return, RpcRequest, Service, Throw
from .classifier import (
    DEFAULT_CLASSIFIER,
    RPC_ERRORS_AS_FAILURES,
    ErrorsAsFailures,
    ErrorsAsSuccesses,
    ReqRep,
    ResponseClass,
    ResponseClassifier,
)
from .stats import MethodStats, MethodStatsRegistry, StatsFilter

__all__ = [
    "DEFAULT_CLASSIFIER",
    "ErrorsAsFailures",
    "ErrorsAsSuccesses",
    "Filter",
    "FilteredService",
    "MethodStats",
    "MethodStatsRegistry",
    "RPC_ERRORS_AS_FAILURES",
    "ReqRep",
    "ResponseClass",
    "ResponseClassifier",
    "Return",
    "RpcRequest",
    "Service",
    "StatsFilter",
    "Throw",
]
