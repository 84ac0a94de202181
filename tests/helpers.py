"""Test helpers: event factories, a scripted change feed and a fixture-backed
object lookup, so tests never touch a real cluster.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from kubevent.collector.informer import Notification, NotificationType
from kubevent.errors import ObjectNotFoundError
from kubevent.models.events import EventSource, ObjectReference, RawEvent

# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------

NOW = datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)
STARTUP = NOW - timedelta(minutes=10)
MAX_AGE = timedelta(seconds=300)


# ---------------------------------------------------------------------------
# Event factory helpers
# ---------------------------------------------------------------------------


def make_event(
    name: str = "my-app.17a9c3e2",
    namespace: str = "default",
    reason: str = "BackOff",
    message: str = "Back-off restarting failed container",
    creation_timestamp: datetime | None = None,
    last_timestamp: datetime | None = None,
    event_time: datetime | None = None,
    involved_kind: str = "Pod",
    involved_name: str = "my-app-7b4f8c6d-x2kj",
    involved_uid: str = "pod-uid-1",
    involved_api_version: str = "v1",
) -> RawEvent:
    """Create a RawEvent with sensible defaults for testing."""
    return RawEvent(
        namespace=namespace,
        name=name,
        message=message,
        reason=reason,
        source=EventSource(component="kubelet", host="node-1"),
        involved_object=ObjectReference(
            kind=involved_kind,
            namespace=namespace,
            name=involved_name,
            uid=involved_uid,
            api_version=involved_api_version,
        ),
        creation_timestamp=creation_timestamp,
        last_timestamp=last_timestamp,
        event_time=event_time,
        type="Warning",
        count=1,
    )


def make_pod(
    name: str = "my-app-7b4f8c6d-x2kj",
    namespace: str = "default",
    labels: dict[str, str] | None = None,
    annotations: dict[str, str] | None = None,
    owners: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Create a Pod API object dict."""
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "uid": "pod-uid-1",
            "labels": labels or {},
            "annotations": annotations or {},
            "ownerReferences": owners or [],
        },
        "spec": {},
        "status": {"phase": "Running"},
    }


# ---------------------------------------------------------------------------
# Collaborator doubles
# ---------------------------------------------------------------------------


class FixtureLookup:
    """ObjectLookup serving fixed objects; unknown objects are not found."""

    def __init__(
        self,
        objects: dict[tuple[str, str, str], dict[str, Any]] | None = None,
        errors: dict[tuple[str, str, str], Exception] | None = None,
    ) -> None:
        self.objects = objects or {}
        self.errors = errors or {}
        self.calls: list[tuple[str, str, str]] = []

    async def lookup(self, kind: str, namespace: str, name: str, api_version: str = "") -> dict[str, Any]:
        key = (kind, namespace, name)
        self.calls.append(key)
        await asyncio.sleep(0)
        if key in self.errors:
            raise self.errors[key]
        if key not in self.objects:
            raise ObjectNotFoundError(kind, namespace, name)
        return self.objects[key]


class FakeFeed:
    """ChangeFeed driven by the test through an asyncio.Queue."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Notification | Exception | None] = asyncio.Queue()
        self.error_handler: Callable[[Exception], None] | None = None
        self.closed = False

    def set_watch_error_handler(self, handler: Callable[[Exception], None]) -> None:
        self.error_handler = handler

    async def notifications(self) -> AsyncIterator[Notification]:
        try:
            while True:
                item = await self._queue.get()
                if item is None:
                    return
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            self.closed = True

    def push(self, event: RawEvent, kind: NotificationType = NotificationType.ADDED) -> None:
        self._queue.put_nowait(Notification(kind, event))

    def end(self) -> None:
        self._queue.put_nowait(None)

    def fail(self, exc: Exception) -> None:
        """Make the current notifications() iterator raise *exc*."""
        self._queue.put_nowait(exc)

    def transport_error(self, exc: Exception) -> None:
        assert self.error_handler is not None
        self.error_handler(exc)


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll *predicate* until it is true or *timeout* elapses."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)

