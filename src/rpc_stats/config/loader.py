import json
import os
from copy import deepcopy
from typing import Any, Dict, List, Tuple

import yaml
from structlog import get_logger

from rpc_stats.errors import ConfigError
from rpc_stats.filters.stats import StatsFilter
from rpc_stats.stats.memory import InMemoryStatsReceiver
from rpc_stats.stats.prometheus import DEFAULT_BUCKETS_MS, PrometheusStatsReceiver
from rpc_stats.stats.receiver import NullStatsReceiver, StatsReceiver

logger = get_logger("config.loader")

BACKENDS = ("memory", "prometheus", "null")

DEFAULT_SETTINGS: Dict[str, Any] = {
    "backend": "memory",  # memory | prometheus | null
    "namespace": "rpc",
    "latency_buckets_ms": list(DEFAULT_BUCKETS_MS),
    "warn_unnamed": True,
    "paths": {
        "settings_json": "config/settings.json",
        "settings_yaml": "config/settings.yaml",
    },
}


def _load_settings_yaml(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r") as f:
            return yaml.safe_load(f) or {}
    except FileNotFoundError:
        return {}
    except Exception as exc:  # pragma: no cover - defensive
        logger.error("Failed to load settings.yaml", path=path, error=str(exc))
        return {}


def _load_settings_json(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r") as f:
            return json.load(f) or {}
    except FileNotFoundError:
        return {}
    except Exception as exc:  # pragma: no cover - defensive
        logger.error("Failed to load settings.json", path=path, error=str(exc))
        return {}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Shallow merge; nested dicts merged recursively."""
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            base[k] = _merge(deepcopy(base.get(k, {})), v)
        else:
            base[k] = v
    return base


def _parse_buckets(raw: str) -> List[float]:
    out: List[float] = []
    for tok in raw.split(","):
        tok = tok.strip()
        if not tok:
            continue
        try:
            out.append(float(tok))
        except ValueError:
            logger.warning("Ignoring invalid latency bucket", value=tok)
    return out


def _env_overrides() -> Dict[str, Any]:
    env: Dict[str, Any] = {}
    if os.getenv("RPC_STATS_BACKEND"):
        env["backend"] = os.getenv("RPC_STATS_BACKEND").strip().lower()
    if os.getenv("RPC_STATS_NAMESPACE"):
        env["namespace"] = os.getenv("RPC_STATS_NAMESPACE")
    if os.getenv("RPC_STATS_LATENCY_BUCKETS_MS"):
        buckets = _parse_buckets(os.getenv("RPC_STATS_LATENCY_BUCKETS_MS"))
        if buckets:
            env["latency_buckets_ms"] = buckets
    if os.getenv("RPC_STATS_WARN_UNNAMED"):
        env["warn_unnamed"] = os.getenv("RPC_STATS_WARN_UNNAMED").lower() not in {"0", "false", "no", "off"}
    return env


def load_settings(overrides: Dict[str, Any] | None = None) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Return (settings, applied_defaults) after applying priority chain.

    defaults < config/settings.json < config/settings.yaml < env < overrides
    """
    overrides = overrides or {}

    settings = deepcopy(DEFAULT_SETTINGS)
    applied_defaults = deepcopy(DEFAULT_SETTINGS)

    paths = _merge(deepcopy(settings["paths"]), overrides.get("paths", {}))

    settings_json = _load_settings_json(paths["settings_json"])
    settings = _merge(settings, settings_json)

    settings_yaml = _load_settings_yaml(paths["settings_yaml"])
    settings = _merge(settings, settings_yaml)

    env = _env_overrides()
    settings = _merge(settings, env)

    settings = _merge(settings, overrides)

    if settings.get("backend") not in BACKENDS:
        logger.warning("Unknown stats backend, using memory", backend=settings.get("backend"))
        settings["backend"] = "memory"

    return settings, applied_defaults


def build_stats_receiver(settings: Dict[str, Any], registry=None) -> StatsReceiver:
    backend = settings.get("backend", "memory")
    if backend == "prometheus":
        return PrometheusStatsReceiver(
            namespace=settings.get("namespace", "rpc"),
            registry=registry,
            buckets=settings.get("latency_buckets_ms"),
        )
    if backend == "null":
        return NullStatsReceiver()
    if backend == "memory":
        return InMemoryStatsReceiver()
    raise ConfigError(f"Unknown stats backend: {backend!r} (expected one of {', '.join(BACKENDS)})")


def summarize_settings(settings: Dict[str, Any]) -> str:
    lines = []
    lines.append(f"backend={settings.get('backend')}")
    lines.append(f"namespace={settings.get('namespace')}")
    buckets = settings.get("latency_buckets_ms", [])
    lines.append(f"latency_buckets_ms={','.join(f'{b:g}' for b in buckets)}")
    lines.append(f"warn_unnamed={settings.get('warn_unnamed')}")
    return " | ".join(lines)


def build_stats_filter(settings: Dict[str, Any], response_classifier=None, registry=None) -> StatsFilter:
    """StatsFilter wired from settings (backend, namespace, buckets, warn_unnamed)."""
    receiver = build_stats_receiver(settings, registry=registry)
    logger.info("Building StatsFilter", summary=summarize_settings(settings))
    return StatsFilter(
        receiver,
        response_classifier=response_classifier,
        warn_unnamed=bool(settings.get("warn_unnamed", True)),
    )
