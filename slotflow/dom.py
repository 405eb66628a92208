"""
Host Page Model for slotflow.

A small headless model of the browser objects the ad tag talks to:
event targets, elements, the document, the window and its location.

Host integrations (a browser bridge, a test harness, a server-side
renderer) hand a ``Window`` to the tag. Everything in the engine only
relies on the surface defined here.

Listener semantics follow the DOM:
- A listener is a callable or an object with a ``handle_event`` method
- Adding the same listener twice for the same event is a no-op
- Dispatch iterates over a snapshot, so listeners may detach themselves
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Protocol, Union, runtime_checkable
from urllib.parse import parse_qs, urlsplit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    """A dispatched event: its type and an optional payload."""

    type: str
    detail: Any = None


@runtime_checkable
class EventListenerObject(Protocol):
    """Object-style listener, the counterpart of a DOM EventListenerObject."""

    def handle_event(self, event: Event) -> None: ...


EventListener = Union[Callable[[Event], None], EventListenerObject]


class EventTarget:
    """Anything events can be dispatched on."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[EventListener]] = {}

    def add_event_listener(self, event: str, listener: EventListener) -> None:
        listeners = self._listeners.setdefault(event, [])
        if listener not in listeners:
            listeners.append(listener)

    def remove_event_listener(self, event: str, listener: EventListener) -> None:
        listeners = self._listeners.get(event)
        if listeners and listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event: str) -> int:
        """Number of native listeners attached for an event."""
        return len(self._listeners.get(event, []))

    def dispatch_event(self, event: Event | str) -> None:
        if isinstance(event, str):
            event = Event(type=event)
        for listener in list(self._listeners.get(event.type, [])):
            if isinstance(listener, EventListenerObject):
                listener.handle_event(event)
            else:
                listener(event)


class Element(EventTarget):
    """A DOM node with an id, css classes and attributes."""

    def __init__(
        self,
        tag: str = "div",
        *,
        id: str | None = None,
        classes: list[str] | None = None,
        attributes: dict[str, str] | None = None,
    ) -> None:
        super().__init__()
        self.tag = tag
        self.id = id
        self.classes = list(classes or [])
        self.attributes = dict(attributes or {})

    def matches(self, selector: str) -> bool:
        """
        Match a simple selector.

        Supported forms: ``#id``, ``.class``, ``[attr]``, ``[attr=value]``
        and a bare tag name.
        """
        selector = selector.strip()
        if selector.startswith("#"):
            return self.id == selector[1:]
        if selector.startswith("."):
            return selector[1:] in self.classes
        if selector.startswith("[") and selector.endswith("]"):
            name, _, value = selector[1:-1].partition("=")
            if name not in self.attributes:
                return False
            return not value or self.attributes[name] == value.strip("\"'")
        return self.tag == selector

    def __repr__(self) -> str:
        return f"Element(tag='{self.tag}', id={self.id!r})"


class Document(EventTarget):
    """The page document: a flat collection of elements."""

    def __init__(self, elements: list[Element] | None = None) -> None:
        super().__init__()
        self.elements: list[Element] = list(elements or [])

    def append(self, element: Element) -> Element:
        self.elements.append(element)
        return element

    def remove(self, element: Element) -> None:
        if element in self.elements:
            self.elements.remove(element)

    def get_element_by_id(self, dom_id: str) -> Element | None:
        for element in self.elements:
            if element.id == dom_id:
                return element
        return None

    def query_selector(self, selector: str) -> Element | None:
        for element in self.elements:
            if element.matches(selector):
                return element
        return None

    def query_selector_all(self, selector: str) -> list[Element]:
        return [e for e in self.elements if e.matches(selector)]


class Location:
    """Parsed view of the page URL."""

    def __init__(self, href: str) -> None:
        self.href = href

    @property
    def _parts(self):
        return urlsplit(self.href)

    @property
    def pathname(self) -> str:
        return self._parts.path or "/"

    @property
    def hostname(self) -> str:
        return self._parts.hostname or ""

    @property
    def search(self) -> str:
        query = self._parts.query
        return f"?{query}" if query else ""

    def query_param(self, key: str) -> str | None:
        values = parse_qs(self._parts.query).get(key)
        return values[0] if values else None

    def __repr__(self) -> str:
        return f"Location(href='{self.href}')"


class Window(EventTarget):
    """
    The page window.

    ``globals`` is the page-global namespace where the publisher's pending
    command queue lives before the tag is installed.
    """

    def __init__(self, href: str = "https://localhost/", document: Document | None = None) -> None:
        super().__init__()
        self.location = Location(href)
        self.document = document if document is not None else Document()
        self.globals: dict[str, Any] = {}

    def navigate(self, href: str) -> None:
        """Client-side navigation (history.pushState); the page is not reloaded."""
        logger.debug(f"navigate: {self.location.href} -> {href}")
        self.location = Location(href)

    def __repr__(self) -> str:
        return f"Window(href='{self.location.href}')"
