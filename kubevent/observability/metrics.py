"""Prometheus counters for the event pipeline.

Each MetricsStore owns its own CollectorRegistry so that several stores can
coexist in one process (tests create and destroy one per case).  Counter
increments are thread-safe in prometheus_client.
"""

from __future__ import annotations

import platform

from prometheus_client import CollectorRegistry, Counter, Info, start_http_server


class MetricsStore:
    """Counters exposed by the watcher and the metadata cache.

    Args:
        prefix:   Prepended to every metric name (e.g. ``"test_"``).
        registry: Registry to register into.  A private one is created
                  when omitted.
    """

    def __init__(self, prefix: str = "", registry: CollectorRegistry | None = None) -> None:
        from kubevent import __version__

        self.prefix = prefix
        self.registry = registry if registry is not None else CollectorRegistry()

        self.build_info = Info(
            f"{prefix}build",
            "Build information of the event exporter",
            registry=self.registry,
        )
        self.build_info.info({"version": __version__, "python_version": platform.python_version()})

        self.events_processed = Counter(
            f"{prefix}events_processed",
            "Number of events admitted and handed to the downstream handler",
            registry=self.registry,
        )
        self.events_discarded = Counter(
            f"{prefix}events_discarded",
            "Number of live events discarded as older than the maximum event age",
            registry=self.registry,
        )
        self.watch_errors = Counter(
            f"{prefix}watch_errors",
            "Number of transport errors reported by the event watch",
            registry=self.registry,
        )
        self.kube_api_read_cache_hits = Counter(
            f"{prefix}kube_api_read_cache_hits",
            "Number of involved-object metadata reads served from cache",
            registry=self.registry,
        )
        self.kube_api_read_requests = Counter(
            f"{prefix}kube_api_read_requests",
            "Number of involved-object metadata reads sent to the Kubernetes API",
            registry=self.registry,
        )

        self._collectors = [
            self.build_info,
            self.events_processed,
            self.events_discarded,
            self.watch_errors,
            self.kube_api_read_cache_hits,
            self.kube_api_read_requests,
        ]

    def value(self, name: str) -> float:
        """Current value of counter *name* (without prefix or ``_total``)."""
        sample = self.registry.get_sample_value(f"{self.prefix}{name}_total")
        return sample if sample is not None else 0.0

    def destroy(self) -> None:
        """Unregister every collector; the store must not be used afterwards."""
        for collector in self._collectors:
            try:
                self.registry.unregister(collector)
            except KeyError:
                # already unregistered
                continue
        self._collectors.clear()


def serve_metrics(store: MetricsStore, port: int, addr: str = "0.0.0.0") -> None:
    """Expose *store* on ``http://addr:port/metrics`` from a daemon thread."""
    start_http_server(port, addr=addr, registry=store.registry)
