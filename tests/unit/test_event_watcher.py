"""Tests for EventWatcher admission, enrichment and dispatch per notification."""

from __future__ import annotations

from datetime import timedelta

import pytest
from structlog.testing import capture_logs

from kubevent.cache.metadata_cache import ObjectMetadataCache
from kubevent.clock import FakeClock
from kubevent.collector.event_watcher import EventWatcher
from kubevent.collector.informer import Notification, NotificationType
from kubevent.models.events import EnhancedEvent
from kubevent.models.metadata import OwnerReference
from kubevent.observability.metrics import MetricsStore
from tests.helpers import MAX_AGE, STARTUP, FakeFeed, FixtureLookup, make_event, make_pod

_DISCARD_MSG = "Event discarded as being older than maxEventAgeSeconds"

_OWNER = {"apiVersion": "testAPI", "kind": "testKind", "name": "testOwner", "uid": "testOwner"}


def _lookup() -> FixtureLookup:
    pod = make_pod(name="test-1", labels={"test": "test"}, annotations={"test": "test"}, owners=[_OWNER])
    return FixtureLookup(objects={("Pod", "default", "test-1"): pod})


def _make_watcher(
    feed: FakeFeed,
    metrics: MetricsStore,
    clock: FakeClock,
    lookup: FixtureLookup | None = None,
    omit_lookup: bool = False,
) -> tuple[EventWatcher, list[EnhancedEvent]]:
    received: list[EnhancedEvent] = []
    watcher = EventWatcher(
        feed,
        max_event_age=MAX_AGE,
        metrics=metrics,
        handler=received.append,
        metadata_cache=ObjectMetadataCache(lookup or _lookup(), capacity=16),
        omit_lookup=omit_lookup,
        clock=clock,
    )
    watcher.set_startup_time(STARTUP)
    return watcher, received


# ---------------------------------------------------------------------------
# Events created before startup
# ---------------------------------------------------------------------------


class TestEventCreatedBeforeStartup:
    @pytest.mark.parametrize(
        "event",
        [
            pytest.param(make_event(last_timestamp=STARTUP - timedelta(minutes=3)), id="last-timestamp"),
            pytest.param(make_event(event_time=STARTUP - timedelta(minutes=3)), id="event-time-only"),
            pytest.param(
                make_event(
                    last_timestamp=STARTUP - timedelta(minutes=3),
                    event_time=STARTUP - timedelta(minutes=3),
                ),
                id="last-timestamp-and-event-time",
            ),
        ],
    )
    async def test_dropped_silently(self, feed, metrics, clock, event) -> None:
        watcher, received = _make_watcher(feed, metrics, clock)

        with capture_logs() as logs:
            assert watcher.is_event_discarded(event) is True
            await watcher.on_event(event)

        messages = [entry["event"] for entry in logs]
        assert _DISCARD_MSG not in messages
        assert "Received event" not in messages
        assert received == []
        assert metrics.value("events_processed") == 0
        assert metrics.value("events_discarded") == 0


# ---------------------------------------------------------------------------
# Events created after startup, within max age
# ---------------------------------------------------------------------------


class TestEventCreatedAfterStartupWithinMaxAge:
    async def test_processed_when_last_timestamp_empty(self, feed, metrics, clock) -> None:
        watcher, received = _make_watcher(feed, metrics, clock)
        event = make_event(creation_timestamp=STARTUP + timedelta(minutes=8), involved_name="test-1", involved_uid="test")

        with capture_logs() as logs:
            assert watcher.is_event_discarded(event) is False
            await watcher.on_event(event)

        received_logs = [entry for entry in logs if entry["event"] == "Received event"]
        assert received_logs and received_logs[0]["involved_object"] == "test-1"
        assert all(entry["event"] != _DISCARD_MSG for entry in logs)
        assert metrics.value("events_processed") == 1
        assert len(received) == 1

    async def test_processed_when_last_timestamp_after_creation(self, feed, metrics, clock) -> None:
        watcher, received = _make_watcher(feed, metrics, clock)
        event = make_event(
            creation_timestamp=STARTUP,
            last_timestamp=STARTUP + timedelta(minutes=9),
            involved_name="test-2",
        )

        with capture_logs() as logs:
            assert watcher.is_event_discarded(event) is False
            await watcher.on_event(event)

        assert any(entry["event"] == "Received event" and entry["involved_object"] == "test-2" for entry in logs)
        assert metrics.value("events_processed") == 1
        assert received[0].involved_object.name == "test-2"


# ---------------------------------------------------------------------------
# Events created after startup, beyond max age
# ---------------------------------------------------------------------------


class TestEventCreatedAfterStartupBeyondMaxAge:
    @pytest.mark.parametrize(
        "event",
        [
            pytest.param(make_event(name="event1", creation_timestamp=STARTUP + timedelta(minutes=3)), id="last-empty"),
            pytest.param(
                make_event(
                    name="event2",
                    creation_timestamp=STARTUP + timedelta(minutes=3),
                    last_timestamp=STARTUP + timedelta(minutes=4),
                ),
                id="last-after-creation",
            ),
        ],
    )
    async def test_dropped_with_warning(self, feed, metrics, clock, event) -> None:
        watcher, received = _make_watcher(feed, metrics, clock)

        with capture_logs() as logs:
            await watcher.on_event(event)

        warnings = [entry for entry in logs if entry["event"] == _DISCARD_MSG]
        assert len(warnings) == 1
        warning = warnings[0]
        assert warning["log_level"] == "warning"
        assert warning["event_name"] == event.name
        assert warning["event_namespace"] == "default"
        assert warning["event_source_component"] == "kubelet"
        assert warning["involved_object_kind"] == "Pod"
        assert warning["involved_object_uid"] == "pod-uid-1"
        assert all(entry["event"] != "Received event" for entry in logs)
        assert received == []
        assert metrics.value("events_processed") == 0
        assert metrics.value("events_discarded") == 1


# ---------------------------------------------------------------------------
# Enrichment
# ---------------------------------------------------------------------------


class TestOnEventEnrichment:
    async def test_with_object_metadata(self, feed, metrics, clock) -> None:
        watcher, received = _make_watcher(feed, metrics, clock)
        event = make_event(
            name="event1",
            creation_timestamp=STARTUP + timedelta(minutes=8),
            involved_name="test-1",
            involved_uid="test",
        )

        await watcher.on_event(event)

        involved = received[0].involved_object
        assert involved.uid == "test"
        assert involved.name == "test-1"
        assert involved.annotations == {"test": "test"}
        assert involved.labels == {"test": "test"}
        assert involved.owner_references == (
            OwnerReference(api_version="testAPI", kind="testKind", name="testOwner", uid="testOwner"),
        )

    async def test_deleted_objects(self, feed, metrics, clock) -> None:
        watcher, received = _make_watcher(feed, metrics, clock, lookup=FixtureLookup())
        event = make_event(
            name="event1",
            creation_timestamp=STARTUP + timedelta(minutes=8),
            involved_name="test-1",
            involved_uid="test",
        )

        await watcher.on_event(event)

        involved = received[0].involved_object
        assert involved.uid == "test"
        assert involved.name == "test-1"
        assert involved.deleted is True
        assert involved.annotations is None
        assert involved.labels is None
        assert involved.owner_references is None

    async def test_omit_lookup_skips_metadata(self, feed, metrics, clock) -> None:
        lookup = _lookup()
        watcher, received = _make_watcher(feed, metrics, clock, lookup=lookup, omit_lookup=True)

        await watcher.on_event(make_event(creation_timestamp=STARTUP + timedelta(minutes=8), involved_name="test-1"))

        assert lookup.calls == []
        assert received[0].involved_object.labels is None
        assert received[0].involved_object.owner_references is None


# ---------------------------------------------------------------------------
# Notification routing and handler isolation
# ---------------------------------------------------------------------------


class TestNotifications:
    @pytest.mark.parametrize("kind", [NotificationType.ADDED, NotificationType.UPDATED])
    async def test_add_and_update_are_processed(self, feed, metrics, clock, kind) -> None:
        watcher, received = _make_watcher(feed, metrics, clock)
        event = make_event(creation_timestamp=STARTUP + timedelta(minutes=8))

        await watcher.on_notification(Notification(kind, event))

        assert len(received) == 1

    async def test_delete_is_ignored(self, feed, metrics, clock) -> None:
        watcher, received = _make_watcher(feed, metrics, clock)
        event = make_event(creation_timestamp=STARTUP + timedelta(minutes=8))

        await watcher.on_notification(Notification(NotificationType.DELETED, event))

        assert received == []
        assert metrics.value("events_processed") == 0

    async def test_duplicate_updates_are_each_forwarded(self, feed, metrics, clock) -> None:
        watcher, received = _make_watcher(feed, metrics, clock)
        event = make_event(creation_timestamp=STARTUP + timedelta(minutes=8))

        await watcher.on_notification(Notification(NotificationType.ADDED, event))
        await watcher.on_notification(Notification(NotificationType.UPDATED, event))

        assert len(received) == 2
        assert metrics.value("events_processed") == 2

    async def test_async_handler_is_awaited(self, feed, metrics, clock) -> None:
        received: list[EnhancedEvent] = []

        async def handler(event: EnhancedEvent) -> None:
            received.append(event)

        watcher = EventWatcher(feed, max_event_age=MAX_AGE, metrics=metrics, handler=handler, omit_lookup=True, clock=clock)

        await watcher.on_event(make_event(last_timestamp=clock.now()))

        assert len(received) == 1

    async def test_handler_error_is_contained(self, feed, metrics, clock) -> None:
        def handler(event: EnhancedEvent) -> None:
            raise RuntimeError("sink unavailable")

        watcher = EventWatcher(feed, max_event_age=MAX_AGE, metrics=metrics, handler=handler, omit_lookup=True, clock=clock)

        with capture_logs() as logs:
            await watcher.on_event(make_event(last_timestamp=clock.now()))

        assert any(entry["event"] == "event handler raised an error" for entry in logs)
        assert metrics.value("events_processed") == 1

    def test_watch_errors_are_counted(self, feed, metrics, clock) -> None:
        _make_watcher(feed, metrics, clock)

        feed.transport_error(ConnectionResetError("watch closed"))
        feed.transport_error(ConnectionResetError("watch closed"))

        assert metrics.value("watch_errors") == 2

    def test_startup_time_defaults_to_construction_instant(self, feed, metrics, clock) -> None:
        watcher = EventWatcher(feed, max_event_age=MAX_AGE, metrics=metrics, handler=print, omit_lookup=True, clock=clock)

        assert watcher.startup_time == clock.now()
