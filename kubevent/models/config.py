"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class WatcherConfig:
    """Event watcher configuration."""

    namespace: str = ""  # empty string watches every namespace
    max_event_age_seconds: int = 5
    omit_lookup: bool = False
    cache_size: int = 1024
    watch_timeout_seconds: int = 300


@dataclass
class MetricsConfig:
    """Prometheus metrics configuration."""

    prefix: str = ""
    port: int = 2112  # 0 disables the /metrics endpoint


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class KubeventConfig:
    """Top-level kubevent configuration."""

    cluster_id: str = ""
    watcher: WatcherConfig = field(default_factory=WatcherConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    log: LogConfig = field(default_factory=LogConfig)
