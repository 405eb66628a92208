"""
EventSource Registry for slotflow.

Lazy and refreshable slots are triggered by page events. Many slots share
the same trigger, and single page applications request ads again on every
navigation. The registry makes sure each distinct trigger is wired to the
page exactly once and can be torn down as a whole.

Design Philosophy:
- One native listener per (scope, event, selector)
- Callbacks are one-shot (lazy load) or permanent (refresh)
- Optional throttle window per source
- A failing callback never prevents the others from running

Scope resolution for ``EventTrigger.source``:
- the Window object or ``"window"`` binds the window
- ``"document"`` binds the document
- any other string is a CSS selector, resolved when the source is created
- anything else binds the document
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from slotflow.dom import Event, EventTarget, Window
from slotflow.errors import EventSourceError
from slotflow.observability import StdlibTagLogger, TagLogger

if TYPE_CHECKING:
    from slotflow.ads.service import SlotRenderEndedEvent
    from slotflow.config import AdSlot, EventTrigger

SOURCE = "EventSourceRegistry"


class ScopeKind(str, Enum):
    """Where the native listener of an event source lives."""

    WINDOW = "window"
    DOCUMENT = "document"
    ELEMENT = "element"


EventSourceKey = tuple[ScopeKind, str, "str | None"]


@dataclass(eq=False)
class EventCallback:
    """A callback registration. One-shot callbacks are dropped after they fired."""

    callback: Callable[[Event], Any]
    permanent: bool = False


@dataclass(eq=False)
class EventSource:
    """
    A single native listener fanning out to registered callbacks.

    ``EventSource`` is itself the listener object attached to the target
    (it implements ``handle_event``), so removing it detaches exactly the
    listener that was added.
    """

    key: EventSourceKey
    target: EventTarget
    throttle: float | None = None
    logger: TagLogger = field(default_factory=StdlibTagLogger)
    clock: Callable[[], float] = time.monotonic
    callbacks: list[EventCallback] = field(default_factory=list)
    _throttled_until: float | None = field(default=None, init=False)

    @property
    def event(self) -> str:
        return self.key[1]

    def add_callback(self, callback: Callable[[Event], Any], permanent: bool = False) -> EventCallback:
        registration = EventCallback(callback=callback, permanent=permanent)
        self.callbacks.append(registration)
        return registration

    def set_callback(self, callback: Callable[[Event], Any]) -> EventCallback:
        """Add a permanent callback unless the same callable is already registered."""
        for registration in self.callbacks:
            if registration.callback == callback:
                return registration
        return self.add_callback(callback, permanent=True)

    def remove_callback(self, callback: Callable[[Event], Any]) -> None:
        self.callbacks = [r for r in self.callbacks if r.callback != callback]

    def handle_event(self, event: Event) -> None:
        if self.throttle:
            now = self.clock()
            if self._throttled_until is not None and now < self._throttled_until:
                self.logger.debug(SOURCE, f"throttled event '{self.event}'")
                return
            self._throttled_until = now + self.throttle

        fired = list(self.callbacks)
        for registration in fired:
            try:
                registration.callback(event)
            except Exception as e:
                self.logger.error(SOURCE, f"callback for event '{self.event}' failed: {e}")

        # callbacks registered while firing are kept
        self.callbacks = [
            r for r in self.callbacks if r.permanent or r not in fired
        ]

    def __repr__(self) -> str:
        scope, event, selector = self.key
        return f"EventSource(scope={scope.value}, event='{event}', selector={selector!r})"


class EventSourceRegistry:
    """
    Registry of event sources and ad slot render tracking.

    Example:
        registry = EventSourceRegistry(logger)
        source = registry.get_or_create_event_source(trigger, None, window)
        source.add_callback(lambda _: refresh(), permanent=True)

        # on SPA navigation
        registry.remove_all_event_sources(window)
    """

    def __init__(self, logger: TagLogger | None = None, clock: Callable[[], float] = time.monotonic) -> None:
        self.logger = logger or StdlibTagLogger()
        self._clock = clock
        self._sources: dict[EventSourceKey, EventSource] = {}
        self._render_ended_callbacks: list[Callable[["SlotRenderEndedEvent"], None]] = []

    # =========================================================================
    # Event sources
    # =========================================================================

    def _resolve(self, trigger: "EventTrigger", window: Window) -> tuple[EventSourceKey, EventTarget | None]:
        source = trigger.source
        if source is window or source == "window" or isinstance(source, Window):
            return (ScopeKind.WINDOW, trigger.event, None), window
        if isinstance(source, str) and source != "document":
            return (ScopeKind.ELEMENT, trigger.event, source), window.document.query_selector(source)
        return (ScopeKind.DOCUMENT, trigger.event, None), window.document

    def get_or_create_event_source(
        self,
        trigger: "EventTrigger",
        throttle: float | None,
        window: Window,
    ) -> EventSource:
        """
        Return the event source for a trigger, creating and attaching it once.

        Raises:
            EventSourceError: If the trigger's selector matches no element
        """
        key, target = self._resolve(trigger, window)
        existing = self._sources.get(key)
        if existing is not None:
            return existing

        if target is None:
            raise EventSourceError(
                f"invalid trigger source: no element matches '{key[2]}' for event '{trigger.event}'"
            )

        source = EventSource(
            key=key, target=target, throttle=throttle, logger=self.logger, clock=self._clock
        )
        target.add_event_listener(trigger.event, source)
        self._sources[key] = source
        self.logger.debug(SOURCE, f"created {source}")
        return source

    def remove_event_source(self, trigger: "EventTrigger", window: Window) -> None:
        key, _ = self._resolve(trigger, window)
        source = self._sources.pop(key, None)
        if source is not None:
            source.target.remove_event_listener(source.event, source)
            self.logger.debug(SOURCE, f"removed {source}")

    def remove_all_event_sources(self, window: Window | None = None) -> None:
        """Detach every native listener. Used when a page view is torn down."""
        sources = list(self._sources.values())
        self._sources.clear()
        for source in sources:
            source.target.remove_event_listener(source.event, source)
        if sources:
            self.logger.debug(SOURCE, f"removed {len(sources)} event sources")

    @property
    def sources(self) -> list[EventSource]:
        return list(self._sources.values())

    # =========================================================================
    # Render tracking
    # =========================================================================

    def slot_render_ended(self, event: "SlotRenderEndedEvent") -> None:
        """Fan out an ad server ``slotRenderEnded`` event."""
        for callback in list(self._render_ended_callbacks):
            try:
                callback(event)
            except Exception as e:
                self.logger.error(SOURCE, f"slotRenderEnded callback failed: {e}")

    def await_all_ad_slots_rendered(
        self, slots: Iterable["AdSlot"]
    ) -> "asyncio.Future[list[SlotRenderEndedEvent]]":
        """
        Future resolving once every slot reported ``slotRenderEnded``.

        Resolves immediately for an empty slot list. The internal callback
        removes itself on completion.
        """
        future: asyncio.Future[list[SlotRenderEndedEvent]] = asyncio.get_running_loop().create_future()
        pending = {slot.dom_id for slot in slots}
        if not pending:
            future.set_result([])
            return future

        events: list[SlotRenderEndedEvent] = []

        def on_render_ended(event: "SlotRenderEndedEvent") -> None:
            if event.dom_id not in pending:
                return
            pending.discard(event.dom_id)
            events.append(event)
            if not pending:
                self._render_ended_callbacks.remove(on_render_ended)
                if not future.done():
                    future.set_result(events)

        self._render_ended_callbacks.append(on_render_ended)
        return future

    @property
    def render_ended_callback_count(self) -> int:
        return len(self._render_ended_callbacks)
