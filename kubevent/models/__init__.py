"""Core data structures for kubevent."""

from kubevent.models.config import KubeventConfig
from kubevent.models.events import (
    EnhancedEvent,
    EnhancedObjectReference,
    EventSource,
    ObjectReference,
    RawEvent,
)
from kubevent.models.metadata import ObjectIdentity, ObjectMetadata, OwnerReference

__all__ = [
    "EnhancedEvent",
    "EnhancedObjectReference",
    "EventSource",
    "KubeventConfig",
    "ObjectIdentity",
    "ObjectMetadata",
    "ObjectReference",
    "OwnerReference",
    "RawEvent",
]
