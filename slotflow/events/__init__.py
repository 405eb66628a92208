"""
Page event wiring and tag lifecycle events.
"""

from .emitter import EventService, TagEventName
from .sources import EventCallback, EventSource, EventSourceRegistry, ScopeKind

__all__ = [
    "EventCallback",
    "EventService",
    "EventSource",
    "EventSourceRegistry",
    "ScopeKind",
    "TagEventName",
]
