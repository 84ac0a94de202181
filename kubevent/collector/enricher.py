"""Builds EnhancedEvent records from raw events.

Enrichment failure never drops an event: when metadata cannot be resolved
the event is still emitted with the raw involved-object reference.
"""

from __future__ import annotations

import structlog

from kubevent.cache.metadata_cache import ObjectMetadataCache
from kubevent.errors import ObjectNotFoundError
from kubevent.models.events import EnhancedEvent, EnhancedObjectReference, RawEvent

_log = structlog.get_logger(component="collector.enricher")


class EventEnricher:
    """Attaches involved-object metadata to events.

    Args:
        metadata_cache: Cache consulted when lookups are enabled.
        omit_lookup:    Copy the raw reference only; no cache or API traffic.
    """

    def __init__(self, metadata_cache: ObjectMetadataCache | None, omit_lookup: bool = False) -> None:
        if metadata_cache is None and not omit_lookup:
            raise ValueError("metadata_cache is required unless omit_lookup is set")
        self._cache = metadata_cache
        self._omit_lookup = omit_lookup

    @property
    def omit_lookup(self) -> bool:
        return self._omit_lookup

    async def enrich(self, event: RawEvent) -> EnhancedEvent:
        reference = event.involved_object
        if self._omit_lookup or self._cache is None:
            return EnhancedEvent.from_raw(event, EnhancedObjectReference(reference=reference))

        try:
            metadata = await self._cache.get_object_metadata(reference.identity())
        except ObjectNotFoundError:
            _log.debug(
                "involved object not found, likely deleted",
                kind=reference.kind,
                namespace=reference.namespace,
                name=reference.name,
            )
            return EnhancedEvent.from_raw(
                event,
                EnhancedObjectReference(reference=reference, deleted=True),
            )
        except Exception as exc:  # noqa: BLE001
            _log.error(
                "failed to get object metadata",
                kind=reference.kind,
                namespace=reference.namespace,
                name=reference.name,
                uid=reference.uid,
                error=str(exc),
            )
            return EnhancedEvent.from_raw(event, EnhancedObjectReference(reference=reference))

        if metadata.deleted:
            involved = EnhancedObjectReference(reference=reference, deleted=True)
        else:
            involved = EnhancedObjectReference(
                reference=reference,
                labels=dict(metadata.labels),
                annotations=dict(metadata.annotations),
                owner_references=metadata.owner_references,
                deleted=False,
            )
        return EnhancedEvent.from_raw(event, involved)
