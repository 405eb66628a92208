"""
Ad Service for slotflow.

Owns the ad pipeline, the event source registry and the throttle guard,
and decides which slots go through the pipeline when.

Loading behaviours:
- eager: requested with requestAds()
- lazy: requested once, when the trigger event fires
- refreshable: requested with requestAds() (unless ``lazy``) and again on
  every trigger event, throttled
- manual, infinite, backfill: requested via refreshAdSlot() and friends

Slots whose DOM element does not exist are never requested.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from slotflow.errors import EventSourceError
from slotflow.events import EventSourceRegistry
from slotflow.observability import StdlibTagLogger, TagLogger
from slotflow.pipeline import AdPipeline, PipelineConfigurationBuilder, mk_configure_step
from slotflow.throttle import ThrottleGuard

if TYPE_CHECKING:
    from slotflow.config import AdSlot, StaticConfig
    from slotflow.dom import Event, Window
    from slotflow.modules import Module
    from slotflow.pipeline import (
        ConfigureStep,
        DefineSlotsStep,
        InitStep,
        PipelineContext,
        PrepareRequestAdsStep,
        RequestAdsStep,
    )
    from slotflow.tag.runtime import RuntimeConfig

SOURCE = "AdService"

DEFAULT_BUCKET = "default"


# =============================================================================
# Ad server integration
# =============================================================================


@dataclass(frozen=True)
class SlotRenderEndedEvent:
    dom_id: str
    ad_unit_path: str = ""
    is_empty: bool = False


@dataclass(frozen=True)
class SlotRequestedEvent:
    dom_id: str
    ad_unit_path: str = ""


@runtime_checkable
class AdServer(Protocol):
    """
    The ad serving integration (e.g. an ad manager bridge).

    Provides the core pipeline steps and the slot lifecycle events
    ``slotRequested`` and ``slotRenderEnded``.
    """

    def init_steps(self) -> list["InitStep"]: ...

    def configure_steps(self) -> list["ConfigureStep"]: ...

    def define_slots_step(self) -> "DefineSlotsStep": ...

    def prepare_request_ads_steps(self) -> list["PrepareRequestAdsStep"]: ...

    def request_ads_step(self) -> "RequestAdsStep": ...

    def destroy_slots(self, dom_ids: list[str] | None = None) -> None: ...

    def add_event_listener(self, event_name: str, callback: Callable[[Any], None]) -> None: ...


# =============================================================================
# Ad service
# =============================================================================


class AdService:
    """
    Requests ads for the configured slots.

    Example:
        service = AdService(window, ad_server, logger)
        service.initialize(config, modules)
        await service.request_ads(config, runtime_config, request_ads_calls=1)
        await service.refresh_ad_slots(["sidebar"], config, runtime_config, 1)
    """

    def __init__(self, window: "Window", ad_server: AdServer, logger: TagLogger | None = None) -> None:
        self.window = window
        self.ad_server = ad_server
        self.logger = logger or StdlibTagLogger()
        self.registry = EventSourceRegistry(self.logger)
        self.throttle_guard: ThrottleGuard | None = None
        self.pipeline: AdPipeline | None = None
        self._events_wired = False
        self._background: set[asyncio.Task] = set()

    # =========================================================================
    # Setup
    # =========================================================================

    def initialize(self, config: "StaticConfig", modules: Iterable["Module"] = ()) -> AdPipeline:
        """Build the pipeline from the ad server steps and the module steps."""
        configuration = (
            PipelineConfigurationBuilder()
            .add_ad_server(self.ad_server)
            .add_modules(modules)
            .add_configure(mk_configure_step("slot-events", self._wire_ad_server_events))
            .build()
        )
        throttling = config.ad_request_throttling
        if throttling is not None and throttling.enabled:
            self.throttle_guard = ThrottleGuard(throttle=throttling.throttle, logger=self.logger)
        self.pipeline = AdPipeline(configuration, self.logger, self.window)
        self.logger.debug(SOURCE, f"pipeline steps {configuration.step_names}")
        return self.pipeline

    def set_logger(self, logger: TagLogger) -> None:
        self.logger = logger
        self.registry.logger = logger
        if self.throttle_guard is not None:
            self.throttle_guard.logger = logger
        if self.pipeline is not None:
            self.pipeline.logger = logger

    def _wire_ad_server_events(self, ctx: "PipelineContext", slots: list["AdSlot"]) -> None:
        # the ad server may only accept listeners once it is loaded
        if self._events_wired:
            return
        self._events_wired = True
        self.ad_server.add_event_listener("slotRenderEnded", self.registry.slot_render_ended)
        if self.throttle_guard is not None:
            guard = self.throttle_guard
            self.ad_server.add_event_listener(
                "slotRequested", lambda event: guard.on_slot_requested(event.dom_id)
            )

    # =========================================================================
    # Requests
    # =========================================================================

    async def request_ads(
        self,
        config: "StaticConfig",
        runtime_config: "RuntimeConfig | None",
        request_ads_calls: int,
        additional_slots: Iterable["AdSlot"] = (),
    ) -> list["AdSlot"]:
        """
        Request the eager slots and wire the lazy and refreshable ones.

        Args:
            config: The static configuration of this cycle
            runtime_config: The frozen runtime configuration of this cycle
            request_ads_calls: Number of requestAds() cycles on the page
            additional_slots: Queued refreshes requested together with the eager slots

        Returns:
            The slots sent through the pipeline right away
        """
        immediate: list[AdSlot] = []
        for slot in config.slots:
            behaviour = slot.behaviour
            if behaviour.loaded == "eager":
                immediate.append(slot)
            elif behaviour.loaded == "lazy":
                self._on_trigger(slot, config, runtime_config, request_ads_calls, permanent=False)
            elif behaviour.loaded == "refreshable":
                self._on_trigger(slot, config, runtime_config, request_ads_calls, permanent=True)
                if not behaviour.lazy:
                    immediate.append(slot)

        known = {slot.dom_id for slot in immediate}
        for slot in additional_slots:
            if slot.dom_id not in known:
                known.add(slot.dom_id)
                immediate.append(slot)

        slots = [slot for slot in immediate if self._is_slot_available(slot)]
        await self._run_grouped(slots, config, runtime_config, request_ads_calls)
        return slots

    async def refresh_ad_slots(
        self,
        dom_ids: Iterable[str],
        config: "StaticConfig",
        runtime_config: "RuntimeConfig | None",
        request_ads_calls: int,
        loaded: str = "manual",
    ) -> list["AdSlot"]:
        """Request the configured slots ``dom_ids`` with loading behaviour ``loaded``."""
        slots = self.slots_for_refresh(config, dom_ids, loaded=loaded)
        if self.throttle_guard is not None:
            slots = self.throttle_guard.filter_slots(slots)
        await self._run_grouped(slots, config, runtime_config, request_ads_calls)
        return slots

    async def refresh_bucket(
        self,
        bucket: str,
        config: "StaticConfig",
        runtime_config: "RuntimeConfig | None",
        request_ads_calls: int,
    ) -> list["AdSlot"]:
        """Request all manual slots of a bucket in one auction."""
        slots = self.slots_for_buckets(config, [bucket])
        if self.throttle_guard is not None:
            slots = self.throttle_guard.filter_slots(slots)
        await self._run(slots, config, runtime_config, request_ads_calls, bucket)
        return slots

    async def request_slots(
        self,
        slots: list["AdSlot"],
        config: "StaticConfig",
        runtime_config: "RuntimeConfig | None",
        request_ads_calls: int,
    ) -> list["AdSlot"]:
        """Request already resolved slots, grouped per bucket."""
        await self._run_grouped(slots, config, runtime_config, request_ads_calls)
        return slots

    def slots_for_refresh(
        self, config: "StaticConfig", dom_ids: Iterable[str], loaded: str | None = "manual"
    ) -> list["AdSlot"]:
        wanted = set(dom_ids)
        return [
            slot
            for slot in config.slots
            if slot.dom_id in wanted
            and (loaded is None or slot.behaviour.loaded == loaded)
            and self._is_slot_available(slot)
        ]

    def slots_for_buckets(self, config: "StaticConfig", buckets: Iterable[str]) -> list["AdSlot"]:
        wanted = set(buckets)
        return [
            slot
            for slot in config.slots
            if slot.behaviour.bucket in wanted
            and slot.behaviour.loaded == "manual"
            and self._is_slot_available(slot)
        ]

    # =========================================================================
    # Page teardown
    # =========================================================================

    def destroy_ad_slots(self, dom_ids: list[str] | None = None) -> None:
        self.ad_server.destroy_slots(dom_ids)

    def remove_all_event_sources(self) -> None:
        self.registry.remove_all_event_sources(self.window)

    async def wait_for_background_tasks(self) -> None:
        """Wait for trigger-initiated pipeline runs."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # =========================================================================
    # Internals
    # =========================================================================

    def _on_trigger(
        self,
        slot: "AdSlot",
        config: "StaticConfig",
        runtime_config: "RuntimeConfig | None",
        request_ads_calls: int,
        permanent: bool,
    ) -> None:
        trigger = slot.behaviour.trigger
        throttle = slot.behaviour.throttle if permanent else None
        try:
            source = self.registry.get_or_create_event_source(trigger, throttle, self.window)
        except EventSourceError as e:
            self.logger.error(SOURCE, f"cannot wire trigger of {slot.dom_id}: {e}")
            return

        def on_event(event: "Event") -> None:
            if not self._is_slot_available(slot):
                self.logger.error(SOURCE, f"slot dom element not available: {slot.ad_unit_path} / {slot.dom_id}")
                return
            if self.throttle_guard is not None and self.throttle_guard.is_throttled(slot.dom_id):
                self.logger.debug(SOURCE, f"{slot.dom_id} is throttled")
                return
            self.spawn(self._run([slot], config, runtime_config, request_ads_calls, slot.behaviour.bucket))

        source.add_callback(on_event, permanent=permanent)

    async def _run_grouped(
        self,
        slots: list["AdSlot"],
        config: "StaticConfig",
        runtime_config: "RuntimeConfig | None",
        request_ads_calls: int,
    ) -> None:
        if config.buckets is None or not config.buckets.enabled:
            await self._run(slots, config, runtime_config, request_ads_calls)
            return

        groups: dict[str, list[AdSlot]] = {}
        for slot in slots:
            groups.setdefault(slot.behaviour.bucket or DEFAULT_BUCKET, []).append(slot)
        self.logger.debug(SOURCE, f"requesting buckets {list(groups)}")
        await asyncio.gather(
            *(
                self._run(group, config, runtime_config, request_ads_calls, bucket)
                for bucket, group in groups.items()
            )
        )

    async def _run(
        self,
        slots: list["AdSlot"],
        config: "StaticConfig",
        runtime_config: "RuntimeConfig | None",
        request_ads_calls: int,
        bucket: str | None = None,
    ) -> None:
        if self.pipeline is None:
            raise RuntimeError("AdService.initialize() must be called first")
        settings = None
        if bucket is not None and config.buckets is not None:
            settings = config.buckets.bucket.get(bucket)
        await self.pipeline.run(slots, config, request_ads_calls, settings, runtime_config)

    def spawn(self, coro) -> asyncio.Task:
        """Run ``coro`` in the background; failures are logged."""
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.logger.error(SOURCE, f"background ad request failed: {task.exception()}")

    def _is_slot_available(self, slot: "AdSlot") -> bool:
        return self.window.document.get_element_by_id(slot.dom_id) is not None
