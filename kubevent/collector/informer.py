"""Change feed for core/v1 Events.

EventInformer lists the events in scope, then watches from the list's
resourceVersion, translating the stream into ADDED / UPDATED / DELETED
notifications against an in-memory set of known events (so a relist after
``410 Gone`` replays known events as updates and reports vanished ones as
deletions).

Failures are reported through the watch-error handler and retried with
exponential back-off; the feed itself never terminates on its own.  An item
that cannot be decoded is logged and skipped.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

import aiohttp
import structlog
from kubernetes_asyncio import watch  # type: ignore[import-untyped]
from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

from kubevent.models.events import RawEvent

_log = structlog.get_logger(component="collector.informer")

_HTTP_GONE = 410

WatchErrorHandler = Callable[[Exception], None]


class NotificationType(StrEnum):
    """Kind of change delivered by the feed."""

    ADDED = "added"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True)
class Notification:
    type: NotificationType
    event: RawEvent


class ChangeFeed(Protocol):
    """Subscription delivering event notifications."""

    def notifications(self) -> AsyncIterator[Notification]: ...

    def set_watch_error_handler(self, handler: WatchErrorHandler) -> None: ...


class _ResourceExpired(Exception):
    """The watch resourceVersion is too old; a full relist is required."""


class EventInformer:
    """List-then-watch feed of ``v1.Event`` objects.

    Args:
        core_v1:               kubernetes-asyncio CoreV1Api.
        namespace:             Watch scope; empty string means all namespaces.
        watch_timeout_seconds: Server-side timeout of each watch request.
        backoff_initial:       First retry delay after a transport error.
        backoff_max:           Upper bound of the retry delay.
    """

    def __init__(
        self,
        core_v1: Any,
        namespace: str = "",
        watch_timeout_seconds: int = 300,
        backoff_initial: float = 1.0,
        backoff_max: float = 30.0,
    ) -> None:
        self._core_v1 = core_v1
        self._namespace = namespace
        self._watch_timeout = watch_timeout_seconds
        self._backoff_initial = backoff_initial
        self._backoff_max = backoff_max
        self._on_watch_error: WatchErrorHandler | None = None
        self._resource_version: str | None = None
        # "namespace/name" -> resourceVersion of every event currently known
        self._known: dict[str, str] = {}

    @property
    def namespace(self) -> str:
        return self._namespace

    def set_watch_error_handler(self, handler: WatchErrorHandler) -> None:
        self._on_watch_error = handler

    def _list_fn(self) -> Callable[..., Any]:
        if self._namespace:
            return self._core_v1.list_namespaced_event
        return self._core_v1.list_event_for_all_namespaces

    def _scope(self) -> dict[str, str]:
        return {"namespace": self._namespace} if self._namespace else {}

    def _report(self, exc: Exception) -> None:
        _log.warning("event watch error", namespace=self._namespace or "*", error=str(exc))
        if self._on_watch_error is not None:
            self._on_watch_error(exc)

    async def notifications(self) -> AsyncIterator[Notification]:
        backoff = self._backoff_initial
        while True:
            try:
                if self._resource_version is None:
                    for notification in await self._relist():
                        yield notification
                async for notification in self._watch():
                    yield notification
                backoff = self._backoff_initial
            except _ResourceExpired as exc:
                self._report(exc)
                self._resource_version = None
            except ApiException as exc:
                self._report(exc)
                if exc.status == _HTTP_GONE:
                    self._resource_version = None
                    continue
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, self._backoff_max)
            except (aiohttp.ClientError, TimeoutError) as exc:
                self._report(exc)
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, self._backoff_max)
            except Exception as exc:  # noqa: BLE001
                # Unexpected failure: the stream state is unknown, start over.
                self._report(exc)
                self._resource_version = None
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, self._backoff_max)

    async def _relist(self) -> list[Notification]:
        response = await self._list_fn()(**self._scope())
        data = self._core_v1.api_client.sanitize_for_serialization(response)
        self._resource_version = str((data.get("metadata") or {}).get("resourceVersion") or "")

        seen: dict[str, str] = {}
        notifications: list[Notification] = []
        for item in data.get("items") or []:
            event = _decode(item)
            if event is None:
                continue
            key = _key(event)
            seen[key] = event.resource_version
            kind = NotificationType.UPDATED if key in self._known else NotificationType.ADDED
            notifications.append(Notification(kind, event))

        for key in set(self._known) - set(seen):
            namespace, _, name = key.partition("/")
            notifications.append(Notification(NotificationType.DELETED, RawEvent(namespace=namespace, name=name)))

        self._known = seen
        _log.info(
            "event list synced",
            namespace=self._namespace or "*",
            events=len(seen),
            resource_version=self._resource_version,
        )
        return notifications

    async def _watch(self) -> AsyncIterator[Notification]:
        stream = watch.Watch()
        async with stream.stream(
            self._list_fn(),
            resource_version=self._resource_version,
            timeout_seconds=self._watch_timeout,
            allow_watch_bookmarks=True,
            **self._scope(),
        ) as changes:
            async for change in changes:
                change_type = change.get("type")
                raw = change.get("raw_object") or {}
                if change_type == "ERROR":
                    if raw.get("code") == _HTTP_GONE:
                        raise _ResourceExpired(raw.get("message", "resource version expired"))
                    raise ApiException(status=raw.get("code"), reason=raw.get("message"))

                version = (raw.get("metadata") or {}).get("resourceVersion")
                if version:
                    self._resource_version = str(version)
                if change_type == "BOOKMARK":
                    continue

                event = _decode(raw)
                if event is None:
                    continue
                key = _key(event)
                if change_type == "DELETED":
                    self._known.pop(key, None)
                    yield Notification(NotificationType.DELETED, event)
                    continue
                kind = NotificationType.UPDATED if key in self._known else NotificationType.ADDED
                self._known[key] = event.resource_version
                yield Notification(kind, event)


def _key(event: RawEvent) -> str:
    return f"{event.namespace}/{event.name}"


def _decode(obj: dict[str, Any]) -> RawEvent | None:
    try:
        return RawEvent.from_dict(obj)
    except (ValueError, TypeError, AttributeError) as exc:
        metadata = obj.get("metadata")
        if not isinstance(metadata, dict):
            metadata = {}
        _log.warning(
            "skipping undecodable event",
            namespace=metadata.get("namespace"),
            name=metadata.get("name"),
            error=str(exc),
        )
        return None
