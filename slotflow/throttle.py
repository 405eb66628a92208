"""
Ad Request Throttling for slotflow.

Prevents a slot from being requested again within a configurable window.
A refreshable slot firing on every scroll event, or a manual refresh loop
on the publisher side, would otherwise hammer the ad server.

Design Philosophy:
- Per-slot deadlines keyed by DOM id
- Monotonic clock (injectable for tests)
- Requests are recorded from the ad server's ``slotRequested`` events,
  so every request path is covered, not only the tag's own refreshes
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

from slotflow.observability import StdlibTagLogger, TagLogger

if TYPE_CHECKING:
    from slotflow.config import AdSlot

SOURCE = "ThrottleGuard"

S = TypeVar("S", bound="AdSlot")


@dataclass
class ThrottleGuard:
    """
    Tracks recently requested slots.

    Example:
        guard = ThrottleGuard(throttle=10.0)
        guard.on_slot_requested("content_1")
        guard.is_throttled("content_1")   # True for the next 10 seconds

    Args:
        throttle: Seconds a slot stays throttled after being requested
        clock: Monotonic time source
        logger: Tag logger
    """

    throttle: float = 10.0
    clock: Callable[[], float] = time.monotonic
    logger: TagLogger = field(default_factory=StdlibTagLogger)
    _deadlines: dict[str, float] = field(default_factory=dict, init=False)

    def on_slot_requested(self, dom_id: str) -> None:
        """Record a request for ``dom_id``."""
        self._deadlines[dom_id] = self.clock() + self.throttle
        self.logger.debug(SOURCE, f"{dom_id} throttled for {self.throttle}s")

    def is_throttled(self, dom_id: str) -> bool:
        deadline = self._deadlines.get(dom_id)
        if deadline is None:
            return False
        if self.clock() >= deadline:
            del self._deadlines[dom_id]
            return False
        return True

    def filter_slots(self, slots: Iterable[S]) -> list[S]:
        """Drop slots that were requested within the throttle window."""
        allowed = []
        for slot in slots:
            if self.is_throttled(slot.dom_id):
                self.logger.debug(SOURCE, f"skipping {slot.dom_id}")
            else:
                allowed.append(slot)
        return allowed

    def reset(self) -> None:
        self._deadlines.clear()

    @property
    def throttled_ids(self) -> list[str]:
        return [dom_id for dom_id in list(self._deadlines) if self.is_throttled(dom_id)]
