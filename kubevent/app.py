"""Application bootstrap for kubevent.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config -> logging -> K8s client -> metrics -> event watcher

Shutdown stops components in reverse startup order.  Each component's stop
error is caught and logged independently so that a failure in one does not
prevent the rest from shutting down cleanly.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING, Any

from kubevent.config import load_config
from kubevent.errors import ConfigError
from kubevent.models.config import KubeventConfig
from kubevent.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

    from kubevent.collector.event_watcher import EventHandler, EventWatcher
    from kubevent.observability.metrics import MetricsStore

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class KubeventApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    Calling ``stop()`` on an app that was never started (or already stopped)
    is safe.

    Args:
        handler: Downstream handler for enhanced events.  Defaults to
                 ``kubevent.handlers.log_event_handler``.
    """

    def __init__(self, handler: EventHandler | None = None) -> None:
        self.config: KubeventConfig | None = None
        self._handler = handler

        self._api_client: Any | None = None
        self._metrics: MetricsStore | None = None
        self._watcher: EventWatcher | None = None

        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        """
        # --- 1. Configuration -------------------------------------------
        try:
            self.config = load_config()
        except ConfigError as exc:
            raise _ComponentError("config", exc) from exc

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level, cluster_id=self.config.cluster_id)
        self._log = get_logger("app")
        self._log.info("kubevent starting", version=_kubevent_version())

        # --- 3. Kubernetes client ----------------------------------------
        await self._start_k8s_client()

        # --- 4. Metrics ----------------------------------------------------
        self._start_metrics()

        # --- 5. Event watcher --------------------------------------------
        await self._start_watcher()

        self._running = True
        self._log.info(
            "kubevent started",
            namespace=self.config.watcher.namespace or "*",
            omit_lookup=self.config.watcher.omit_lookup,
        )

    async def _start_k8s_client(self) -> None:
        """Configure kubernetes-asyncio from in-cluster config or kubeconfig."""
        assert self._log is not None
        self._log.debug("starting k8s client")
        try:
            import kubernetes_asyncio.config as k8s_config  # type: ignore[import-untyped]
            from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

            try:
                # load_incluster_config() is synchronous in kubernetes-asyncio
                k8s_config.load_incluster_config()
                self._log.info("k8s client configured from in-cluster service account")
            except k8s_config.ConfigException:
                # load_kube_config() is async in kubernetes-asyncio
                await k8s_config.load_kube_config()
                self._log.info("k8s client configured from kubeconfig")

            self._api_client = k8s_client.ApiClient()
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    def _start_metrics(self) -> None:
        """Create the metrics store and, if a port is set, the /metrics endpoint."""
        assert self._log is not None
        assert self.config is not None
        try:
            from kubevent.observability.metrics import MetricsStore, serve_metrics

            self._metrics = MetricsStore(prefix=self.config.metrics.prefix)
            if self.config.metrics.port:
                serve_metrics(self._metrics, self.config.metrics.port)
                self._log.info("metrics endpoint started", port=self.config.metrics.port)
        except Exception as exc:
            raise _ComponentError("metrics", exc) from exc

    async def _start_watcher(self) -> None:
        """Build the event watcher and launch its consumption task."""
        assert self._log is not None
        assert self.config is not None
        assert self._metrics is not None
        self._log.debug("starting event watcher")
        try:
            from kubevent.collector.event_watcher import build_event_watcher
            from kubevent.handlers import log_event_handler

            watcher = build_event_watcher(
                self._api_client,
                self.config.watcher,
                self._metrics,
                self._handler or log_event_handler,
            )
            await watcher.start()
            self._watcher = watcher
        except Exception as exc:
            raise _ComponentError("event_watcher", exc) from exc

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._log is None:
            # Never started
            return

        log = self._log or get_logger("app")
        log.info("kubevent shutting down")
        self._running = False

        await self._stop_component("event_watcher", self._watcher)
        self._watcher = None
        await self._stop_k8s_client()

        log.info("kubevent stopped")

    async def _stop_component(self, name: str, component: object | None) -> None:
        """Call stop() on a component if it has that method, catching all errors."""
        if component is None:
            return
        log = self._log or get_logger("app")
        stop_fn = getattr(component, "stop", None)
        if stop_fn is None:
            return
        try:
            result = stop_fn()
            if asyncio.iscoroutine(result):
                await asyncio.wait_for(result, timeout=_SHUTDOWN_GRACE_SECONDS)
        except TimeoutError:
            log.warning("component stop timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
        except Exception as exc:
            log.error("component stop raised an error", component=name, error=str(exc))

    async def _stop_k8s_client(self) -> None:
        """Close the kubernetes-asyncio ApiClient connection pool."""
        if self._api_client is None:
            return
        log = self._log or get_logger("app")
        try:
            await self._api_client.close()
        except Exception as exc:
            log.debug("k8s client close raised (non-fatal)", error=str(exc))
        self._api_client = None


def _kubevent_version() -> str:
    from kubevent import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = KubeventApp()
    loop = asyncio.get_running_loop()
    shutdown = asyncio.Event()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown.set)

    try:
        await app.start()
        await shutdown.wait()
    except _ComponentError as exc:
        # A mandatory component failed; log and exit non-zero
        log = get_logger("app")
        log.critical(
            "fatal startup error",
            component=exc.component,
            error=str(exc.cause),
        )
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app.running:
            await app.stop()


def run() -> None:
    """Console-script entry point."""
    asyncio.run(main())
