"""Bounded LRU cache of involved-object metadata.

Cache hits never touch the API.  Misses are resolved through an ObjectLookup;
a not-found outcome is cached as a negative result (``deleted=True``) and is
kept until LRU eviction pushes it out, after which the next read looks the
object up again.  Any other lookup failure propagates and is not cached.

The store is guarded by a lock that is only held for dictionary operations,
never across the lookup await, so misses for different objects proceed
concurrently.  Concurrent misses for the same object may each perform a
lookup; the last one to finish wins the slot.
"""

from __future__ import annotations

import threading
from collections import OrderedDict

import structlog

from kubevent.cache.lookup import ObjectLookup
from kubevent.errors import ObjectNotFoundError
from kubevent.models.metadata import ObjectIdentity, ObjectMetadata
from kubevent.observability.metrics import MetricsStore

_log = structlog.get_logger(component="cache.metadata")


class ObjectMetadataCache:
    """Maps ObjectIdentity to ObjectMetadata with least-recently-used eviction.

    Args:
        lookup:   Collaborator used on cache miss.
        capacity: Maximum number of entries; fixed for the cache's lifetime.
        metrics:  Optional store receiving cache-hit and API-read counters.
    """

    def __init__(
        self,
        lookup: ObjectLookup,
        capacity: int,
        metrics: MetricsStore | None = None,
    ) -> None:
        if capacity < 1:
            raise ValueError(f"cache capacity must be >= 1, got {capacity}")
        self._lookup = lookup
        self._capacity = capacity
        self._metrics = metrics
        self._lock = threading.Lock()
        self._entries: OrderedDict[ObjectIdentity, ObjectMetadata] = OrderedDict()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            return identity in self._entries

    def peek(self, identity: ObjectIdentity) -> ObjectMetadata | None:
        """Return the cached entry without refreshing its recency."""
        with self._lock:
            return self._entries.get(identity)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    async def get_object_metadata(self, identity: ObjectIdentity) -> ObjectMetadata:
        """Return metadata for *identity*, looking it up on a miss.

        Raises:
            Whatever the lookup raised, except ObjectNotFoundError, which is
            turned into a cached ``deleted=True`` result.
        """
        cached = self._get(identity)
        if cached is not None:
            if self._metrics is not None:
                self._metrics.kube_api_read_cache_hits.inc()
            return cached

        if self._metrics is not None:
            self._metrics.kube_api_read_requests.inc()
        try:
            resource = await self._lookup.lookup(
                identity.kind,
                identity.namespace,
                identity.name,
                identity.api_version,
            )
        except ObjectNotFoundError:
            _log.debug(
                "involved object not found, caching negative result",
                kind=identity.kind,
                namespace=identity.namespace,
                name=identity.name,
                uid=identity.uid,
            )
            metadata = ObjectMetadata.not_found()
        else:
            metadata = ObjectMetadata.from_resource(resource)

        self._put(identity, metadata)
        return metadata

    def _get(self, identity: ObjectIdentity) -> ObjectMetadata | None:
        with self._lock:
            metadata = self._entries.get(identity)
            if metadata is not None:
                self._entries.move_to_end(identity)
            return metadata

    def _put(self, identity: ObjectIdentity, metadata: ObjectMetadata) -> None:
        with self._lock:
            self._entries[identity] = metadata
            self._entries.move_to_end(identity)
            while len(self._entries) > self._capacity:
                evicted, _ = self._entries.popitem(last=False)
                _log.debug(
                    "metadata cache eviction",
                    kind=evicted.kind,
                    namespace=evicted.namespace,
                    name=evicted.name,
                )
