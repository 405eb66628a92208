"""
Tests for the slotflow EventSource registry.
"""
import asyncio
from unittest.mock import MagicMock

import pytest

from slotflow.ads import SlotRenderEndedEvent
from slotflow.config import AdSlot, EventTrigger
from slotflow.errors import EventSourceError
from slotflow.events import EventSourceRegistry, ScopeKind


@pytest.fixture
def registry(logger, fake_clock):
    return EventSourceRegistry(logger, clock=fake_clock)


def slot(dom_id: str) -> AdSlot:
    return AdSlot(dom_id=dom_id, ad_unit_path=f"/1234/{dom_id}")


# =============================================================================
# Scope resolution
# =============================================================================


class TestScopeResolution:
    """Tests for binding event sources to window, document and elements."""

    def test_window_object(self, registry, window):
        callback = MagicMock()
        source = registry.get_or_create_event_source(EventTrigger(event="ads", source=window), None, window)
        source.add_callback(callback)

        window.dispatch_event("ads")

        callback.assert_called_once()
        assert source.key == (ScopeKind.WINDOW, "ads", None)

    def test_window_keyword(self, registry, window):
        source = registry.get_or_create_event_source(EventTrigger(event="ads", source="window"), None, window)

        assert source.target is window

    def test_document(self, registry, window):
        callback = MagicMock()
        source = registry.get_or_create_event_source(EventTrigger(event="ads", source="document"), None, window)
        source.add_callback(callback)

        window.document.dispatch_event("ads")

        callback.assert_called_once()
        assert source.key[0] is ScopeKind.DOCUMENT

    def test_anything_else_binds_document(self, registry, window):
        source = registry.get_or_create_event_source(EventTrigger(event="ads", source=42), None, window)

        assert source.target is window.document

    def test_css_selector(self, registry, window):
        callback = MagicMock()
        button = window.document.get_element_by_id("load-more")
        source = registry.get_or_create_event_source(EventTrigger(event="click", source=".load-more"), None, window)
        source.add_callback(callback)

        button.dispatch_event("click")

        callback.assert_called_once()
        assert source.key == (ScopeKind.ELEMENT, "click", ".load-more")

    def test_missing_selector_element_raises(self, registry, window):
        with pytest.raises(EventSourceError):
            registry.get_or_create_event_source(EventTrigger(event="click", source="#missing"), None, window)

        assert registry.sources == []


# =============================================================================
# De-duplication and callbacks
# =============================================================================


class TestEventSource:
    """Tests for event source callbacks."""

    def test_same_trigger_returns_same_source(self, registry, window):
        trigger = EventTrigger(event="ads", source=window)

        first = registry.get_or_create_event_source(trigger, None, window)
        second = registry.get_or_create_event_source(trigger, None, window)

        assert first is second
        assert window.listener_count("ads") == 1

    def test_different_scopes_are_different_sources(self, registry, window):
        on_window = registry.get_or_create_event_source(EventTrigger(event="ads", source="window"), None, window)
        on_document = registry.get_or_create_event_source(EventTrigger(event="ads", source="document"), None, window)

        assert on_window is not on_document
        assert len(registry.sources) == 2

    def test_one_shot_and_permanent_callbacks(self, registry, window):
        one_shot = MagicMock()
        permanent = MagicMock()
        source = registry.get_or_create_event_source(EventTrigger(event="ads", source=window), None, window)
        source.add_callback(one_shot, permanent=False)
        source.add_callback(permanent, permanent=True)

        for _ in range(3):
            window.dispatch_event("ads")

        assert one_shot.call_count == 1
        assert permanent.call_count == 3

    def test_one_shot_registered_later_fires_once(self, registry, window):
        source = registry.get_or_create_event_source(EventTrigger(event="ads", source=window), None, window)
        window.dispatch_event("ads")

        late = MagicMock()
        source.add_callback(late)
        window.dispatch_event("ads")
        window.dispatch_event("ads")

        late.assert_called_once()

    def test_callback_added_while_firing_is_kept(self, registry, window):
        source = registry.get_or_create_event_source(EventTrigger(event="ads", source=window), None, window)
        added = MagicMock()
        source.add_callback(lambda event: source.add_callback(added))

        window.dispatch_event("ads")
        added.assert_not_called()
        window.dispatch_event("ads")

        added.assert_called_once()

    def test_failing_callback_does_not_block_others(self, registry, window):
        survivor = MagicMock()
        source = registry.get_or_create_event_source(EventTrigger(event="ads", source=window), None, window)
        source.add_callback(MagicMock(side_effect=RuntimeError("broken")), permanent=True)
        source.add_callback(survivor, permanent=True)

        window.dispatch_event("ads")

        survivor.assert_called_once()

    def test_set_callback_registers_once(self, registry, window):
        callback = MagicMock()
        source = registry.get_or_create_event_source(EventTrigger(event="ads", source=window), None, window)

        source.set_callback(callback)
        source.set_callback(callback)
        window.dispatch_event("ads")

        callback.assert_called_once()
        assert len(source.callbacks) == 1

    def test_remove_callback(self, registry, window):
        removed = MagicMock()
        kept = MagicMock()
        source = registry.get_or_create_event_source(EventTrigger(event="ads", source=window), None, window)
        source.set_callback(removed)
        source.add_callback(kept, permanent=True)

        source.remove_callback(removed)
        window.dispatch_event("ads")

        removed.assert_not_called()
        kept.assert_called_once()
        assert [r.callback for r in source.callbacks] == [kept]


class TestThrottledEventSource:
    """Tests for throttled event sources."""

    def test_events_inside_window_are_dropped(self, registry, window, fake_clock):
        callback = MagicMock()
        source = registry.get_or_create_event_source(EventTrigger(event="scroll", source=window), 2.0, window)
        source.add_callback(callback, permanent=True)

        window.dispatch_event("scroll")
        window.dispatch_event("scroll")
        assert callback.call_count == 1

        fake_clock.advance(2.0)
        window.dispatch_event("scroll")

        assert callback.call_count == 2

    def test_throttle_windows_are_per_source(self, registry, window):
        on_window = MagicMock()
        on_document = MagicMock()
        registry.get_or_create_event_source(EventTrigger(event="scroll", source=window), 2.0, window).add_callback(
            on_window, permanent=True
        )
        registry.get_or_create_event_source(
            EventTrigger(event="scroll", source="document"), 2.0, window
        ).add_callback(on_document, permanent=True)

        window.dispatch_event("scroll")
        window.document.dispatch_event("scroll")

        on_window.assert_called_once()
        on_document.assert_called_once()


# =============================================================================
# Removal
# =============================================================================


class TestRemoval:
    """Tests for removing event sources."""

    def test_remove_event_source(self, registry, window):
        callback = MagicMock()
        trigger = EventTrigger(event="ads", source=window)
        registry.get_or_create_event_source(trigger, None, window).add_callback(callback, permanent=True)

        registry.remove_event_source(trigger, window)
        window.dispatch_event("ads")

        callback.assert_not_called()
        assert window.listener_count("ads") == 0

    def test_remove_all_event_sources(self, registry, window):
        callback = MagicMock()
        registry.get_or_create_event_source(EventTrigger(event="a", source=window), None, window).add_callback(
            callback, permanent=True
        )
        registry.get_or_create_event_source(
            EventTrigger(event="b", source="document"), None, window
        ).add_callback(callback, permanent=True)

        registry.remove_all_event_sources(window)
        window.dispatch_event("a")
        window.document.dispatch_event("b")

        callback.assert_not_called()
        assert registry.sources == []

    def test_source_recreated_after_removal(self, registry, window):
        trigger = EventTrigger(event="ads", source=window)
        first = registry.get_or_create_event_source(trigger, None, window)
        registry.remove_all_event_sources(window)

        second = registry.get_or_create_event_source(trigger, None, window)

        assert first is not second
        assert window.listener_count("ads") == 1


# =============================================================================
# Render tracking
# =============================================================================


class TestAwaitAllAdSlotsRendered:
    """Tests for await_all_ad_slots_rendered()."""

    @pytest.mark.asyncio
    async def test_resolves_when_all_slots_rendered(self, registry):
        rendered = registry.await_all_ad_slots_rendered([slot("top"), slot("side")])

        registry.slot_render_ended(SlotRenderEndedEvent("top"))
        assert not rendered.done()
        registry.slot_render_ended(SlotRenderEndedEvent("other"))
        registry.slot_render_ended(SlotRenderEndedEvent("side"))

        events = await asyncio.wait_for(rendered, timeout=1)
        assert [e.dom_id for e in events] == ["top", "side"]

    @pytest.mark.asyncio
    async def test_callback_unregisters_itself(self, registry):
        for _ in range(3):
            rendered = registry.await_all_ad_slots_rendered([slot("top")])
            registry.slot_render_ended(SlotRenderEndedEvent("top"))
            await rendered

        assert registry.render_ended_callback_count == 0

    @pytest.mark.asyncio
    async def test_empty_slot_list_resolves_immediately(self, registry):
        rendered = registry.await_all_ad_slots_rendered([])

        assert rendered.done()
        assert await rendered == []
        assert registry.render_ended_callback_count == 0
