"""Configuration loading from environment variables."""

from __future__ import annotations

import os
import re

from kubevent.errors import ConfigError
from kubevent.models.config import KubeventConfig, LogConfig, MetricsConfig, WatcherConfig

_PREFIX_RE = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBEVENT_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    raw = _env(key, str(default))
    try:
        val = int(raw)
    except ValueError as exc:
        raise ConfigError(f"KUBEVENT_{key} must be an integer, got {raw!r}") from exc
    if min_val is not None and val < min_val:
        raise ConfigError(f"KUBEVENT_{key} must be >= {min_val}, got {val}")
    if max_val is not None and val > max_val:
        raise ConfigError(f"KUBEVENT_{key} must be <= {max_val}, got {val}")
    return val


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ConfigError(f"Invalid log level: {value}. Must be one of {sorted(valid)}")
    return value.lower()


def _validate_metrics_prefix(value: str) -> str:
    if value and not _PREFIX_RE.match(value):
        raise ConfigError(f"Invalid metrics prefix: {value!r}")
    return value


def load_config() -> KubeventConfig:
    """Load configuration from KUBEVENT_* environment variables."""
    return KubeventConfig(
        cluster_id=_env("CLUSTER_ID", ""),
        watcher=WatcherConfig(
            namespace=_env("NAMESPACE", ""),
            max_event_age_seconds=_env_int("MAX_EVENT_AGE_SECONDS", 5, min_val=0),
            omit_lookup=_env_bool("OMIT_LOOKUP", False),
            cache_size=_env_int("CACHE_SIZE", 1024, min_val=1),
            watch_timeout_seconds=_env_int("WATCH_TIMEOUT_SECONDS", 300, min_val=1),
        ),
        metrics=MetricsConfig(
            prefix=_validate_metrics_prefix(_env("METRICS_PREFIX", "")),
            port=_env_int("METRICS_PORT", 2112, min_val=0, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
