"""Error types shared across rpc_stats.

``RpcStatsError`` covers faults of this library itself (bad configuration,
misuse of the stats API). ``RpcApplicationError`` is the base for errors a
handler raises on purpose as part of its declared contract; the bundled
classifiers key off it.
"""

from __future__ import annotations


class RpcStatsError(Exception):
    """Base class for rpc_stats library errors."""


class ConfigError(RpcStatsError):
    """Invalid or unreadable settings."""


class RpcApplicationError(Exception):
    """Declared, application-level error raised by an RPC handler."""

    def __init__(self, message: str = "", code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


def error_type_name(exc: BaseException) -> str:
    """Fully-qualified type name used to key exception counters.

    Builtins are reported by bare name (``TimeoutError``); everything else as
    ``module.QualName``.
    """
    cls = type(exc)
    module = cls.__module__
    if not module or module == "builtins":
        return cls.__qualname__
    return f"{module}.{cls.__qualname__}"
