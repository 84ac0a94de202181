"""EventWatcher: bridges the event change feed to the enrichment pipeline.

One background task consumes the feed.  For every ADDED or UPDATED
notification it applies the age policy, enriches admitted events and hands
them to the downstream handler; DELETED notifications are ignored because
the exporter follows event history, not object lifecycle.

Notifications are handled strictly in feed order on the consumption task.
A slow handler therefore delays the notifications behind it.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any

import structlog

from kubevent.cache.lookup import DynamicObjectLookup
from kubevent.cache.metadata_cache import ObjectMetadataCache
from kubevent.clock import Clock, RealClock
from kubevent.collector.admission import AdmissionFilter
from kubevent.collector.enricher import EventEnricher
from kubevent.collector.informer import ChangeFeed, EventInformer, Notification, NotificationType
from kubevent.models.config import WatcherConfig
from kubevent.models.events import EnhancedEvent, RawEvent, format_timestamp
from kubevent.observability.metrics import MetricsStore

_log = structlog.get_logger(component="collector.event_watcher")

EventHandler = Callable[[EnhancedEvent], Awaitable[None] | None]


class EventWatcher:
    """Consumes a ChangeFeed and drives admission, enrichment and dispatch.

    Args:
        feed:           Change feed; owned exclusively by this watcher.
        max_event_age:  Events older than this are discarded.
        metrics:        Receives processed / discarded / watch-error counts.
        handler:        Called once per admitted event; may be sync or async.
        metadata_cache: Cache used for enrichment (ignored with omit_lookup).
        omit_lookup:    Skip involved-object enrichment entirely.
        clock:          Time source; defaults to the wall clock.
        resubscribe_delay: Pause before re-subscribing after the feed fails.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        *,
        max_event_age: timedelta,
        metrics: MetricsStore,
        handler: EventHandler,
        metadata_cache: ObjectMetadataCache | None = None,
        omit_lookup: bool = False,
        clock: Clock | None = None,
        resubscribe_delay: float = 1.0,
    ) -> None:
        self._feed = feed
        self._resubscribe_delay = resubscribe_delay
        self._clock = clock or RealClock()
        self._admission = AdmissionFilter(max_event_age, self._clock)
        self._enricher = EventEnricher(metadata_cache, omit_lookup)
        self._metrics = metrics
        self._handler = handler
        self._startup_time = self._clock.now()
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

        self._feed.set_watch_error_handler(self._on_watch_error)

    @property
    def max_event_age(self) -> timedelta:
        return self._admission.max_event_age

    @property
    def startup_time(self) -> datetime:
        return self._startup_time

    def set_startup_time(self, startup_time: datetime) -> None:
        """Override the instant separating initial backlog from live events."""
        self._startup_time = startup_time

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Launch the consumption task and return immediately."""
        if self._task is not None:
            raise RuntimeError("EventWatcher already started")
        self._task = asyncio.create_task(self._run(), name="event-watcher")
        _log.info("event watcher started", max_event_age=str(self.max_event_age))

    async def stop(self) -> None:
        """Signal the consumption task to finish and wait until it has exited.

        A notification already being processed is completed first; no handler
        call happens after this coroutine returns.
        """
        self._stop_event.set()
        if self._task is None:
            return
        try:
            await self._task
        finally:
            _log.info("event watcher stopped")

    async def _run(self) -> None:
        notifications = self._feed.notifications()
        stop_waiter = asyncio.ensure_future(self._stop_event.wait())
        try:
            while not self._stop_event.is_set():
                next_item = asyncio.ensure_future(anext(notifications))
                await asyncio.wait({next_item, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
                if not next_item.done():
                    next_item.cancel()
                    with contextlib.suppress(asyncio.CancelledError, StopAsyncIteration):
                        await next_item
                    break
                try:
                    notification = next_item.result()
                except StopAsyncIteration:
                    _log.info("event feed closed")
                    break
                except Exception as exc:  # noqa: BLE001
                    # A failed iterator cannot be resumed; subscribe again.
                    _log.error("event feed failed, resubscribing", error=str(exc))
                    self._metrics.watch_errors.inc()
                    await _aclose(notifications)
                    await asyncio.wait({stop_waiter}, timeout=self._resubscribe_delay)
                    notifications = self._feed.notifications()
                    continue
                await self.on_notification(notification)
        finally:
            stop_waiter.cancel()
            await _aclose(notifications)

    # ------------------------------------------------------------------
    # Per-notification pipeline
    # ------------------------------------------------------------------

    async def on_notification(self, notification: Notification) -> None:
        if notification.type == NotificationType.DELETED:
            return
        await self.on_event(notification.event)

    def _on_watch_error(self, exc: Exception) -> None:
        self._metrics.watch_errors.inc()

    def is_event_discarded(self, event: RawEvent) -> bool:
        """Apply the age policy, logging and counting live discards."""
        decision = self._admission.evaluate(event, self._startup_time)
        if not decision.discarded:
            return False
        # Events from before startup are initial-sync backlog: drop silently.
        if decision.live:
            _log.warning(
                "Event discarded as being older than maxEventAgeSeconds",
                max_event_age=str(self.max_event_age),
                event_age=str(decision.age),
                event_namespace=event.namespace,
                event_name=event.name,
                event_message=event.message,
                event_reason=event.reason,
                event_source_component=event.source.component,
                event_source_host=event.source.host,
                event_first_timestamp=format_timestamp(event.first_timestamp),
                event_last_timestamp=format_timestamp(event.last_timestamp),
                event_creation_time=format_timestamp(event.creation_timestamp),
                event_event_time=format_timestamp(event.event_time, micro=True),
                involved_object_api_version=event.involved_object.api_version,
                involved_object_kind=event.involved_object.kind,
                involved_object_namespace=event.involved_object.namespace,
                involved_object_name=event.involved_object.name,
                involved_object_uid=event.involved_object.uid,
            )
            self._metrics.events_discarded.inc()
        return True

    async def on_event(self, event: RawEvent) -> None:
        if self.is_event_discarded(event):
            return

        _log.debug(
            "Received event",
            msg=event.message,
            namespace=event.namespace,
            reason=event.reason,
            involved_object=event.involved_object.name,
        )
        self._metrics.events_processed.inc()

        enhanced = await self._enricher.enrich(event)
        try:
            result = self._handler(enhanced)
            if asyncio.iscoroutine(result):
                await result
        except Exception as exc:  # noqa: BLE001
            _log.error(
                "event handler raised an error",
                event_namespace=event.namespace,
                event_name=event.name,
                error=str(exc),
            )


async def _aclose(notifications: Any) -> None:
    aclose = getattr(notifications, "aclose", None)
    if aclose is not None:
        await aclose()


def build_event_watcher(
    api_client: Any,
    config: WatcherConfig,
    metrics: MetricsStore,
    handler: EventHandler,
    clock: Clock | None = None,
) -> EventWatcher:
    """Wire an EventWatcher against a live cluster."""
    from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

    feed = EventInformer(
        k8s_client.CoreV1Api(api_client),
        namespace=config.namespace,
        watch_timeout_seconds=config.watch_timeout_seconds,
    )
    cache: ObjectMetadataCache | None = None
    if not config.omit_lookup:
        cache = ObjectMetadataCache(
            DynamicObjectLookup(api_client),
            capacity=config.cache_size,
            metrics=metrics,
        )
    return EventWatcher(
        feed,
        max_event_age=timedelta(seconds=config.max_event_age_seconds),
        metrics=metrics,
        handler=handler,
        metadata_cache=cache,
        omit_lookup=config.omit_lookup,
        clock=clock,
    )
