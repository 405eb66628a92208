"""
Tests for the slotflow ad service.

Tests slot loading behaviours, buckets, throttling and page teardown.
"""
from unittest.mock import MagicMock

import pytest

from slotflow.ads import AdService, SlotRenderEndedEvent
from slotflow.config import StaticConfig
from slotflow.dom import Element


def make_config(*slots, **extra) -> StaticConfig:
    return StaticConfig.model_validate({"slots": list(slots), **extra})


@pytest.fixture
def service(window, ad_server, logger):
    return AdService(window, ad_server, logger)


class TestRequestAds:
    """Tests for AdService.request_ads()."""

    @pytest.mark.asyncio
    async def test_eager_slots_requested_together(self, service, ad_server):
        config = make_config(
            {"domId": "top", "adUnitPath": "/1/top"},
            {"domId": "footer", "adUnitPath": "/1/footer"},
            {"domId": "sidebar", "adUnitPath": "/1/sidebar", "behaviour": {"loaded": "manual"}},
        )
        service.initialize(config)

        requested = await service.request_ads(config, None, 1)

        assert [s.dom_id for s in requested] == ["top", "footer"]
        assert ad_server.requests == [["top", "footer"]]

    @pytest.mark.asyncio
    async def test_missing_dom_element_is_filtered(self, service, ad_server):
        config = make_config(
            {"domId": "top", "adUnitPath": "/1/top"},
            {"domId": "not-on-page", "adUnitPath": "/1/gone"},
        )
        service.initialize(config)

        await service.request_ads(config, None, 1)

        assert ad_server.requests == [["top"]]

    @pytest.mark.asyncio
    async def test_no_slots_never_initializes_ad_server(self, service, ad_server):
        config = make_config({"domId": "not-on-page", "adUnitPath": "/1/gone"})
        service.initialize(config)

        await service.request_ads(config, None, 1)

        assert ad_server.init_calls == 0
        assert ad_server.requests == []

    @pytest.mark.asyncio
    async def test_additional_slots_are_batched(self, service, ad_server):
        config = make_config(
            {"domId": "top", "adUnitPath": "/1/top"},
            {"domId": "sidebar", "adUnitPath": "/1/sidebar", "behaviour": {"loaded": "manual"}},
        )
        service.initialize(config)
        queued = service.slots_for_refresh(config, ["sidebar", "top"])

        await service.request_ads(config, None, 1, queued)

        assert ad_server.requests == [["top", "sidebar"]]

    @pytest.mark.asyncio
    async def test_lazy_slot_requested_once_on_trigger(self, service, ad_server, window):
        config = make_config(
            {
                "domId": "lazy-slot",
                "adUnitPath": "/1/lazy",
                "behaviour": {"loaded": "lazy", "trigger": {"event": "lazy", "source": "window"}},
            }
        )
        service.initialize(config)
        await service.request_ads(config, None, 1)
        assert ad_server.requests == []

        window.dispatch_event("lazy")
        window.dispatch_event("lazy")
        await service.wait_for_background_tasks()

        assert ad_server.requests == [["lazy-slot"]]

    @pytest.mark.asyncio
    async def test_refreshable_slot_requested_on_every_trigger(self, service, ad_server, window):
        config = make_config(
            {
                "domId": "sidebar",
                "adUnitPath": "/1/sidebar",
                "behaviour": {"loaded": "refreshable", "trigger": {"event": "refresh", "source": "document"}},
            }
        )
        service.initialize(config)
        await service.request_ads(config, None, 1)

        window.document.dispatch_event("refresh")
        await service.wait_for_background_tasks()
        window.document.dispatch_event("refresh")
        await service.wait_for_background_tasks()

        assert ad_server.requests == [["sidebar"], ["sidebar"], ["sidebar"]]

    @pytest.mark.asyncio
    async def test_lazy_refreshable_slot_waits_for_trigger(self, service, ad_server, window):
        config = make_config(
            {
                "domId": "sidebar",
                "adUnitPath": "/1/sidebar",
                "behaviour": {
                    "loaded": "refreshable",
                    "lazy": True,
                    "trigger": {"event": "refresh", "source": "window"},
                },
            }
        )
        service.initialize(config)

        await service.request_ads(config, None, 1)
        assert ad_server.requests == []

        window.dispatch_event("refresh")
        await service.wait_for_background_tasks()
        assert ad_server.requests == [["sidebar"]]

    @pytest.mark.asyncio
    async def test_invalid_trigger_source_is_skipped(self, service, ad_server):
        config = make_config(
            {"domId": "top", "adUnitPath": "/1/top"},
            {
                "domId": "lazy-slot",
                "adUnitPath": "/1/lazy",
                "behaviour": {"loaded": "lazy", "trigger": {"event": "click", "source": "#missing"}},
            },
        )
        service.initialize(config)

        await service.request_ads(config, None, 1)

        assert ad_server.requests == [["top"]]

    @pytest.mark.asyncio
    async def test_lazy_slot_removed_from_page_is_not_requested(self, service, ad_server, window):
        config = make_config(
            {
                "domId": "lazy-slot",
                "adUnitPath": "/1/lazy",
                "behaviour": {"loaded": "lazy", "trigger": {"event": "lazy", "source": "window"}},
            }
        )
        service.initialize(config)
        await service.request_ads(config, None, 1)

        window.document.remove(window.document.get_element_by_id("lazy-slot"))
        window.dispatch_event("lazy")
        await service.wait_for_background_tasks()

        assert ad_server.requests == []


class TestBuckets:
    """Tests for bucket grouped auctions."""

    @pytest.fixture
    def config(self):
        return make_config(
            {"domId": "top", "adUnitPath": "/1/top", "behaviour": {"bucket": "above-fold"}},
            {"domId": "footer", "adUnitPath": "/1/footer"},
            {"domId": "sidebar", "adUnitPath": "/1/sidebar", "behaviour": {"loaded": "manual", "bucket": "side"}},
            buckets={"enabled": True, "bucket": {"above-fold": {"timeout": 1000}}},
        )

    @pytest.mark.asyncio
    async def test_eager_slots_grouped_per_bucket(self, service, ad_server, config):
        service.initialize(config)

        await service.request_ads(config, None, 1)

        assert sorted(ad_server.requests) == [["footer"], ["top"]]
        timeouts = {tuple(r): ctx.bucket for r, ctx in zip(ad_server.requests, ad_server.contexts)}
        assert timeouts[("top",)].timeout == 1000
        assert timeouts[("footer",)] is None

    @pytest.mark.asyncio
    async def test_refresh_bucket(self, service, ad_server, config):
        service.initialize(config)

        refreshed = await service.refresh_bucket("side", config, None, 1)

        assert [s.dom_id for s in refreshed] == ["sidebar"]
        assert ad_server.requests == [["sidebar"]]


class TestRefresh:
    """Tests for manual refreshes and throttling."""

    @pytest.mark.asyncio
    async def test_refresh_only_matching_behaviour(self, service, ad_server, static_config):
        config = StaticConfig.model_validate(static_config)
        service.initialize(config)

        await service.refresh_ad_slots(["sidebar", "top"], config, None, 1)

        assert ad_server.requests == [["sidebar"]]

    @pytest.mark.asyncio
    async def test_throttled_refresh(self, service, ad_server, static_config):
        config = StaticConfig.model_validate(
            {**static_config, "adRequestThrottling": {"enabled": True, "throttle": 60}}
        )
        service.initialize(config)

        await service.refresh_ad_slots(["sidebar"], config, None, 1)
        await service.refresh_ad_slots(["sidebar"], config, None, 1)
        await service.refresh_ad_slots(["sidebar", "footer"], config, None, 1)

        assert ad_server.requests == [["sidebar"], ["footer"]]

    @pytest.mark.asyncio
    async def test_set_logger_reaches_throttle_guard(self, service, static_config):
        config = StaticConfig.model_validate(
            {**static_config, "adRequestThrottling": {"enabled": True, "throttle": 60}}
        )
        service.initialize(config)
        logger = MagicMock()

        service.set_logger(logger)
        await service.refresh_ad_slots(["sidebar"], config, None, 1)
        await service.refresh_ad_slots(["sidebar"], config, None, 1)

        assert service.throttle_guard.logger is logger
        assert any("skipping sidebar" in c.args[1] for c in logger.debug.call_args_list)

    @pytest.mark.asyncio
    async def test_throttled_refreshable_trigger(self, service, ad_server, window):
        config = make_config(
            {
                "domId": "sidebar",
                "adUnitPath": "/1/sidebar",
                "behaviour": {"loaded": "refreshable", "trigger": {"event": "refresh", "source": "window"}},
            },
            adRequestThrottling={"enabled": True, "throttle": 60},
        )
        service.initialize(config)
        await service.request_ads(config, None, 1)

        window.dispatch_event("refresh")
        await service.wait_for_background_tasks()

        assert ad_server.requests == [["sidebar"]]


class TestTeardown:
    """Tests for page teardown and render tracking."""

    @pytest.mark.asyncio
    async def test_remove_all_event_sources(self, service, ad_server, window):
        config = make_config(
            {
                "domId": "lazy-slot",
                "adUnitPath": "/1/lazy",
                "behaviour": {"loaded": "lazy", "trigger": {"event": "lazy", "source": "window"}},
            }
        )
        service.initialize(config)
        await service.request_ads(config, None, 1)

        service.remove_all_event_sources()
        window.dispatch_event("lazy")
        await service.wait_for_background_tasks()

        assert ad_server.requests == []
        assert window.listener_count("lazy") == 0

    def test_destroy_ad_slots(self, service, ad_server):
        service.destroy_ad_slots()
        service.destroy_ad_slots(["top"])

        assert ad_server.destroyed == [None, ["top"]]

    @pytest.mark.asyncio
    async def test_render_events_reach_registry(self, service, ad_server, window):
        window.document.append(Element(id="extra"))
        config = make_config({"domId": "top", "adUnitPath": "/1/top"})
        service.initialize(config)
        await service.request_ads(config, None, 1)

        rendered = service.registry.await_all_ad_slots_rendered(config.slots)
        ad_server.render("top")

        events = await rendered
        assert events == [SlotRenderEndedEvent("top")]

    @pytest.mark.asyncio
    async def test_ad_server_events_wired_once(self, service, ad_server):
        config = make_config({"domId": "top", "adUnitPath": "/1/top"})
        service.initialize(config)

        await service.request_ads(config, None, 1)
        await service.request_ads(config, None, 2)

        assert len(ad_server.listeners["slotRenderEnded"]) == 1
