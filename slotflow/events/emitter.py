"""
Tag event emitter for slotflow.

External systems subscribe to the tag's lifecycle events:

- ``beforeRequestAds``: payload ``{"runtime_config": RuntimeConfig}``,
  emitted right before a requestAds cycle starts
- ``afterRequestAds``: payload ``{"state": "finished" | "spa-finished" | "error"}``,
  emitted once the cycle settled

A listener that raises is logged; the remaining listeners still run.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Literal

from slotflow.observability import StdlibTagLogger, TagLogger

TagEventName = Literal["beforeRequestAds", "afterRequestAds"]
TagEventListener = Callable[[dict[str, Any]], Any]

SOURCE = "EventService"


class EventService:
    """
    Subscribe to and emit tag lifecycle events.

    Example:
        events = EventService()
        events.add_event_listener("afterRequestAds", lambda e: print(e["state"]))
        events.emit("afterRequestAds", {"state": "finished"})
    """

    def __init__(self, logger: TagLogger | None = None) -> None:
        self.logger = logger or StdlibTagLogger()
        self._listeners: dict[str, list[TagEventListener]] = {}
        self._once: dict[str, list[TagEventListener]] = {}

    def add_event_listener(
        self, event: TagEventName, listener: TagEventListener, once: bool = False
    ) -> None:
        """
        Add a listener. Listeners are not replayed for events emitted earlier.

        Args:
            event: Event name
            listener: Called with the event payload
            once: Remove the listener after its first invocation
        """
        target = self._once if once else self._listeners
        listeners = target.setdefault(event, [])
        if listener not in listeners:
            listeners.append(listener)

    def remove_event_listener(self, event: TagEventName, listener: TagEventListener) -> None:
        for target in (self._listeners, self._once):
            listeners = target.get(event)
            if listeners and listener in listeners:
                listeners.remove(listener)

    def emit(self, event: TagEventName, data: dict[str, Any]) -> None:
        for listener in list(self._listeners.get(event, [])):
            self._call(event, listener, data)

        once = self._once.pop(event, [])
        for listener in once:
            self._call(event, listener, data)

    def _call(self, event: str, listener: TagEventListener, data: dict[str, Any]) -> None:
        try:
            listener(data)
        except Exception as e:
            self.logger.error(SOURCE, f"Error in event listener for {event}: {e}")

    def listener_count(self, event: TagEventName) -> int:
        return len(self._listeners.get(event, [])) + len(self._once.get(event, []))
