"""Response classification: is an outcome a logical success or failure?

A classifier sees the original request and the raw outcome (``Return`` or
``Throw``) and answers ``SUCCESSFUL``, ``FAILED``, or ``None`` when it has no
opinion. ``None`` falls through to ``or_else`` chains and finally to the
default policy (errors fail, values succeed), so a classifier only needs to
cover the cases it cares about.

Whether an error was raised and whether the call succeeded are independent:
``ErrorsAsSuccesses(NotFound)`` makes a raised ``NotFound`` count as a
success while it is still tallied as an exception.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Tuple, Type

from rpc_stats.errors import RpcApplicationError
from rpc_stats.filters.base import Outcome, Throw


class ResponseClass(str, Enum):
    SUCCESSFUL = "SUCCESSFUL"
    FAILED = "FAILED"


@dataclass(frozen=True, slots=True)
class ReqRep:
    request: Any
    response: Outcome


ClassifyFn = Callable[[ReqRep], Optional[ResponseClass]]


class ResponseClassifier:
    """Partial classification function with a readable name."""

    def __init__(self, name: str, fn: ClassifyFn) -> None:
        self.name = name
        self._fn = fn

    @classmethod
    def named(cls, name: str, fn: ClassifyFn) -> "ResponseClassifier":
        return cls(name, fn)

    def classify(self, req_rep: ReqRep) -> ResponseClass | None:
        return self._fn(req_rep)

    def __call__(self, req_rep: ReqRep) -> ResponseClass | None:
        return self.classify(req_rep)

    def or_else(self, other: "ResponseClassifier | ClassifyFn") -> "ResponseClassifier":
        fallback = other if isinstance(other, ResponseClassifier) else ResponseClassifier("anonymous", other)

        def _chained(req_rep: ReqRep) -> ResponseClass | None:
            result = self.classify(req_rep)
            if result is None:
                return fallback.classify(req_rep)
            return result

        return ResponseClassifier(f"{self.name}.or_else({fallback.name})", _chained)

    def apply_or_default(self, req_rep: ReqRep) -> ResponseClass:
        result = self.classify(req_rep)
        if result is None:
            return DEFAULT_CLASSIFIER.classify(req_rep)  # type: ignore[return-value]
        return result

    def __repr__(self) -> str:
        return f"ResponseClassifier({self.name})"


def _default(req_rep: ReqRep) -> ResponseClass:
    if isinstance(req_rep.response, Throw):
        return ResponseClass.FAILED
    return ResponseClass.SUCCESSFUL


DEFAULT_CLASSIFIER = ResponseClassifier("Default", _default)


def _error_matcher(name: str, types: Tuple[Type[BaseException], ...], result: ResponseClass) -> ResponseClassifier:
    def _match(req_rep: ReqRep) -> ResponseClass | None:
        response = req_rep.response
        if isinstance(response, Throw) and isinstance(response.error, types):
            return result
        return None

    label = ",".join(t.__name__ for t in types)
    return ResponseClassifier(f"{name}({label})", _match)


def ErrorsAsSuccesses(*types: Type[BaseException]) -> ResponseClassifier:
    """Raised errors of ``types`` count as successful calls."""
    return _error_matcher("ErrorsAsSuccesses", types, ResponseClass.SUCCESSFUL)


def ErrorsAsFailures(*types: Type[BaseException]) -> ResponseClassifier:
    """Raised errors of ``types`` count as failed calls."""
    return _error_matcher("ErrorsAsFailures", types, ResponseClass.FAILED)


# Declared application errors fail; anything else is left to the default policy.
RPC_ERRORS_AS_FAILURES = ErrorsAsFailures(RpcApplicationError)
