"""Downstream handlers for enhanced events.

Sink transports are out of scope for kubevent; ``log_event_handler`` writes
each enhanced event as a structured log line so the exporter is useful on
its own (ship stderr to any log pipeline).
"""

from __future__ import annotations

import structlog

from kubevent.models.events import EnhancedEvent

_log = structlog.get_logger(component="handlers")


def log_event_handler(event: EnhancedEvent) -> None:
    """Emit *event* at info level in its JSON-ready form."""
    _log.info("enhanced_event", payload=event.to_dict())
