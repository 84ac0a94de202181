"""Collector package for kubevent.

Turns the cluster's event change feed into enriched events.

Submodules
----------
informer      -- EventInformer: list-then-watch feed with relist and back-off.
admission     -- Age policy deciding which events are too old to forward.
enricher      -- EventEnricher: attaches involved-object metadata.
event_watcher -- EventWatcher: lifecycle and per-notification pipeline.
"""

from kubevent.collector.admission import AdmissionDecision, AdmissionFilter, get_event_age
from kubevent.collector.enricher import EventEnricher
from kubevent.collector.event_watcher import EventHandler, EventWatcher, build_event_watcher
from kubevent.collector.informer import ChangeFeed, EventInformer, Notification, NotificationType

__all__ = [
    "AdmissionDecision",
    "AdmissionFilter",
    "ChangeFeed",
    "EventEnricher",
    "EventHandler",
    "EventInformer",
    "EventWatcher",
    "Notification",
    "NotificationType",
    "build_event_watcher",
    "get_event_age",
]
