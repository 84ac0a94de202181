"""Core event data structures.

RawEvent mirrors a Kubernetes ``v1.Event`` as observed on the change feed.
EnhancedEvent is the output record handed to the downstream handler.
Both are produced once and never mutated afterwards.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from kubevent.models.metadata import ObjectIdentity, OwnerReference

_TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
_MICRO_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an API timestamp into an aware UTC datetime.

    Accepts RFC 3339 strings (``Z`` or offset suffix), datetimes, or None.
    Naive datetimes are taken to be UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        ts = value
    else:
        ts = datetime.fromisoformat(str(value))
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def format_timestamp(value: datetime | None, micro: bool = False) -> str | None:
    if value is None:
        return None
    return value.astimezone(UTC).strftime(_MICRO_TIME_FORMAT if micro else _TIME_FORMAT)


def strip_managed_fields(obj: dict[str, Any]) -> dict[str, Any]:
    """Return a deep copy of *obj* without ``metadata.managedFields``."""
    stripped = copy.deepcopy(obj)
    metadata = stripped.get("metadata")
    if isinstance(metadata, dict):
        metadata.pop("managedFields", None)
    return stripped


@dataclass(frozen=True)
class EventSource:
    """Component (and host) that reported the event."""

    component: str = ""
    host: str = ""


@dataclass(frozen=True)
class ObjectReference:
    """Reference to the object an event is about."""

    kind: str = ""
    namespace: str = ""
    name: str = ""
    uid: str = ""
    api_version: str = ""
    resource_version: str = ""
    field_path: str = ""

    @classmethod
    def from_dict(cls, obj: dict[str, Any] | None) -> ObjectReference:
        obj = obj or {}
        return cls(
            kind=str(obj.get("kind") or ""),
            namespace=str(obj.get("namespace") or ""),
            name=str(obj.get("name") or ""),
            uid=str(obj.get("uid") or ""),
            api_version=str(obj.get("apiVersion") or ""),
            resource_version=str(obj.get("resourceVersion") or ""),
            field_path=str(obj.get("fieldPath") or ""),
        )

    def identity(self) -> ObjectIdentity:
        return ObjectIdentity(
            api_version=self.api_version,
            kind=self.kind,
            namespace=self.namespace,
            name=self.name,
            uid=self.uid,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "kind": self.kind,
            "namespace": self.namespace,
            "name": self.name,
            "uid": self.uid,
            "apiVersion": self.api_version,
        }
        if self.resource_version:
            out["resourceVersion"] = self.resource_version
        if self.field_path:
            out["fieldPath"] = self.field_path
        return out


@dataclass(frozen=True)
class RawEvent:
    """Canonical event representation as observed on the change feed.

    ``creation_timestamp`` and ``last_timestamp`` drive the age policy;
    ``event_time`` is carried for diagnostics and output only.
    """

    namespace: str
    name: str
    message: str = ""
    reason: str = ""
    source: EventSource = field(default_factory=EventSource)
    involved_object: ObjectReference = field(default_factory=ObjectReference)
    creation_timestamp: datetime | None = None
    first_timestamp: datetime | None = None
    last_timestamp: datetime | None = None
    event_time: datetime | None = None
    type: str = ""
    count: int = 0
    uid: str = ""
    resource_version: str = ""
    action: str = ""
    reporting_component: str = ""
    reporting_instance: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_dict(cls, obj: dict[str, Any]) -> RawEvent:
        """Build a RawEvent from the camelCase API representation."""
        metadata = obj.get("metadata") or {}
        source = obj.get("source") or {}
        return cls(
            namespace=str(metadata.get("namespace") or ""),
            name=str(metadata.get("name") or ""),
            message=str(obj.get("message") or ""),
            reason=str(obj.get("reason") or ""),
            source=EventSource(
                component=str(source.get("component") or ""),
                host=str(source.get("host") or ""),
            ),
            involved_object=ObjectReference.from_dict(obj.get("involvedObject")),
            creation_timestamp=parse_timestamp(metadata.get("creationTimestamp")),
            first_timestamp=parse_timestamp(obj.get("firstTimestamp")),
            last_timestamp=parse_timestamp(obj.get("lastTimestamp")),
            event_time=parse_timestamp(obj.get("eventTime")),
            type=str(obj.get("type") or ""),
            count=int(obj.get("count") or 0),
            uid=str(metadata.get("uid") or ""),
            resource_version=str(metadata.get("resourceVersion") or ""),
            action=str(obj.get("action") or ""),
            reporting_component=str(obj.get("reportingComponent") or ""),
            reporting_instance=str(obj.get("reportingInstance") or ""),
            labels=dict(metadata.get("labels") or {}),
            annotations=dict(metadata.get("annotations") or {}),
            raw=strip_managed_fields(obj),
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the API dict as received (typed fields when there is none)."""
        if self.raw:
            return copy.deepcopy(self.raw)
        metadata: dict[str, Any] = {
            "name": self.name,
            "namespace": self.namespace,
            "uid": self.uid,
            "resourceVersion": self.resource_version,
            "creationTimestamp": format_timestamp(self.creation_timestamp),
        }
        if self.labels:
            metadata["labels"] = dict(self.labels)
        if self.annotations:
            metadata["annotations"] = dict(self.annotations)
        return {
            "metadata": metadata,
            "reason": self.reason,
            "message": self.message,
            "source": {"component": self.source.component, "host": self.source.host},
            "firstTimestamp": format_timestamp(self.first_timestamp),
            "lastTimestamp": format_timestamp(self.last_timestamp),
            "eventTime": format_timestamp(self.event_time, micro=True),
            "count": self.count,
            "type": self.type,
            "action": self.action,
            "reportingComponent": self.reporting_component,
            "reportingInstance": self.reporting_instance,
            "involvedObject": self.involved_object.to_dict(),
        }


@dataclass(frozen=True)
class EnhancedObjectReference:
    """Involved-object reference plus resolved metadata.

    ``labels``, ``annotations`` and ``owner_references`` stay None when no
    metadata was attached (lookup omitted, object missing, or lookup failed).
    """

    reference: ObjectReference
    labels: dict[str, str] | None = None
    annotations: dict[str, str] | None = None
    owner_references: tuple[OwnerReference, ...] | None = None
    deleted: bool = False

    @property
    def uid(self) -> str:
        return self.reference.uid

    @property
    def name(self) -> str:
        return self.reference.name

    def to_dict(self) -> dict[str, Any]:
        out = self.reference.to_dict()
        if self.labels:
            out["labels"] = dict(self.labels)
        if self.annotations:
            out["annotations"] = dict(self.annotations)
        if self.owner_references:
            out["ownerReferences"] = [ref.to_dict() for ref in self.owner_references]
        out["deleted"] = self.deleted
        return out


@dataclass(frozen=True)
class EnhancedEvent:
    """Output record: one per admitted RawEvent."""

    event: RawEvent
    involved_object: EnhancedObjectReference

    @classmethod
    def from_raw(cls, event: RawEvent, involved_object: EnhancedObjectReference) -> EnhancedEvent:
        """Deep-copy *event*, dropping server-managed bookkeeping fields."""
        copied = copy.deepcopy(event)
        metadata = copied.raw.get("metadata")
        if isinstance(metadata, dict):
            metadata.pop("managedFields", None)
        return cls(event=copied, involved_object=involved_object)

    def to_dict(self) -> dict[str, Any]:
        """Render the JSON-ready form handed to sinks.

        Every field of the API object is kept; only ``involvedObject`` is
        replaced by the enriched reference.
        """
        out = self.event.to_dict()
        out["involvedObject"] = self.involved_object.to_dict()
        return out
