"""Request descriptor, outcome types and filter composition.

A service is any callable ``request -> response`` where the response may be
a plain value, an awaitable, or a ``concurrent.futures.Future``. A filter
sits in front of a service and sees every request on its way in and every
outcome on its way out:

    chain = StatsFilter(receiver).and_then(exception_mapper).and_then(handler)
    result = chain(RpcRequest("get_user", args={"id": 7}))
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, TypeVar, Union

Req = TypeVar("Req")
Rep = TypeVar("Rep")


@dataclass(slots=True)
class RpcRequest:
    """In-process view of a decoded RPC call."""

    method_name: str | None
    args: Any = None
    headers: Dict[str, str] = field(default_factory=dict)
    client_id: str | None = None
    trace_id: str = ""


# ── Outcome ───────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Return(Generic[Rep]):
    value: Rep


@dataclass(frozen=True, slots=True)
class Throw:
    error: BaseException


Outcome = Union[Return[Any], Throw]


# ── Composition ───────────────────────────────────────────────────────────


class Service(Generic[Req, Rep]):
    """Adapts a plain callable to the service interface."""

    def __init__(self, fn: Callable[[Req], Any], name: str | None = None) -> None:
        self._fn = fn
        self.name = name or getattr(fn, "__name__", type(fn).__name__)

    def __call__(self, request: Req) -> Any:
        return self._fn(request)

    def __repr__(self) -> str:
        return f"Service({self.name})"


class Filter(ABC, Generic[Req, Rep]):
    @abstractmethod
    def __call__(self, request: Req, service: Callable[[Req], Any]) -> Any: ...

    def and_then(self, next_stage: "Filter | Callable[[Req], Any]") -> "Filter | FilteredService":
        """Compose with another filter (returns a filter) or a service (returns a service)."""
        if isinstance(next_stage, Filter):
            return _AndThenFilter(self, next_stage)
        return FilteredService(self, next_stage)


class FilteredService(Service):
    def __init__(self, filter_: Filter, service: Callable[[Any], Any]) -> None:
        self._filter = filter_
        self._service = service
        self.name = f"{type(filter_).__name__}>{getattr(service, 'name', getattr(service, '__name__', '?'))}"

    def __call__(self, request: Any) -> Any:
        return self._filter(request, self._service)


class _AndThenFilter(Filter):
    def __init__(self, first: Filter, second: Filter) -> None:
        self._first = first
        self._second = second

    def __call__(self, request: Any, service: Callable[[Any], Any]) -> Any:
        return self._first(request, FilteredService(self._second, service))
