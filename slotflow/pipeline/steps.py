"""
Pipeline Steps for slotflow.

A step is a small named callable contributed by the ad server integration
or by a module. Each phase has its own step type so that the executor can
enforce the phase contracts:

    Init               (ctx)         -> None            shared, runs once
    Configure          (ctx, slots)  -> None            every run
    DefineSlots        (ctx, slots)  -> [SlotDefinition]
    PrepareRequestAds  (ctx, defs)   -> None            by priority tier
    RequestBids        (ctx, defs)   -> None
    RequestAds         (ctx, defs)   -> None

Use the ``mk_*`` factories rather than constructing steps directly.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union

from slotflow.errors import InitializationFailure

if TYPE_CHECKING:
    from slotflow.config import AdSlot

    from .context import PipelineContext

LOW_PRIORITY = 1
HIGH_PRIORITY = 10

MaybeAwaitable = Union[Awaitable[Any], Any]


async def _settle(result: MaybeAwaitable) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


@dataclass
class SlotDefinition:
    """
    A configured slot paired with the ad server's slot handle.

    Produced by DefineSlots and consumed by the later phases.
    PrepareRequestAds steps may attach a ``price_rule``.
    """

    slot: "AdSlot"
    ad_server_slot: Any = None
    filter_supported_sizes: Callable[[list[Any]], list[Any]] = list
    price_rule: Any = None

    @property
    def dom_id(self) -> str:
        return self.slot.dom_id


# =============================================================================
# Step types
# =============================================================================


@dataclass(frozen=True)
class InitStep:
    name: str
    fn: Callable[["PipelineContext"], MaybeAwaitable]

    async def __call__(self, ctx: "PipelineContext") -> None:
        await _settle(self.fn(ctx))


@dataclass(frozen=True)
class ConfigureStep:
    name: str
    fn: Callable[["PipelineContext", list["AdSlot"]], MaybeAwaitable]

    async def __call__(self, ctx: "PipelineContext", slots: list["AdSlot"]) -> None:
        await _settle(self.fn(ctx, slots))


@dataclass(frozen=True)
class DefineSlotsStep:
    name: str
    fn: Callable[["PipelineContext", list["AdSlot"]], MaybeAwaitable]

    async def __call__(self, ctx: "PipelineContext", slots: list["AdSlot"]) -> list[SlotDefinition]:
        return list(await _settle(self.fn(ctx, slots)) or [])


@dataclass(frozen=True)
class PrepareRequestAdsStep:
    name: str
    priority: int
    fn: Callable[["PipelineContext", list[SlotDefinition]], MaybeAwaitable]

    async def __call__(self, ctx: "PipelineContext", slots: list[SlotDefinition]) -> None:
        await _settle(self.fn(ctx, slots))


@dataclass(frozen=True)
class RequestBidsStep:
    name: str
    fn: Callable[["PipelineContext", list[SlotDefinition]], MaybeAwaitable]

    async def __call__(self, ctx: "PipelineContext", slots: list[SlotDefinition]) -> None:
        await _settle(self.fn(ctx, slots))


@dataclass(frozen=True)
class RequestAdsStep:
    name: str
    fn: Callable[["PipelineContext", list[SlotDefinition]], MaybeAwaitable]

    async def __call__(self, ctx: "PipelineContext", slots: list[SlotDefinition]) -> None:
        await _settle(self.fn(ctx, slots))


# =============================================================================
# Factories
# =============================================================================


def mk_init_step(name: str, fn: Callable[["PipelineContext"], MaybeAwaitable]) -> InitStep:
    return InitStep(name, fn)


def mk_configure_step(
    name: str, fn: Callable[["PipelineContext", list["AdSlot"]], MaybeAwaitable]
) -> ConfigureStep:
    return ConfigureStep(name, fn)


def mk_configure_step_once(
    name: str, fn: Callable[["PipelineContext", list["AdSlot"]], MaybeAwaitable]
) -> ConfigureStep:
    """
    Configure step that only runs for the very first pipeline run of a page.

    Used for one-time wiring such as registering ad server event listeners.
    Later runs and later SPA cycles skip it.
    """

    async def once(ctx: "PipelineContext", slots: list["AdSlot"]) -> None:
        if ctx.request_id == 1 and ctx.request_ads_calls == 1:
            await _settle(fn(ctx, slots))

    return ConfigureStep(name, once)


def mk_define_slots_step(
    name: str, fn: Callable[["PipelineContext", list["AdSlot"]], MaybeAwaitable]
) -> DefineSlotsStep:
    return DefineSlotsStep(name, fn)


def mk_prepare_request_ads_step(
    name: str,
    priority: int,
    fn: Callable[["PipelineContext", list[SlotDefinition]], MaybeAwaitable],
) -> PrepareRequestAdsStep:
    return PrepareRequestAdsStep(name, priority, fn)


def mk_request_bids_step(
    name: str, fn: Callable[["PipelineContext", list[SlotDefinition]], MaybeAwaitable]
) -> RequestBidsStep:
    return RequestBidsStep(name, fn)


def mk_request_ads_step(
    name: str, fn: Callable[["PipelineContext", list[SlotDefinition]], MaybeAwaitable]
) -> RequestAdsStep:
    return RequestAdsStep(name, fn)


def mk_wait_for_init_step(
    name: str,
    ready: Callable[["PipelineContext"], Awaitable[Any]],
    timeout: float,
    required: bool = False,
) -> InitStep:
    """
    Init step waiting for a third-party dependency with a timeout.

    Args:
        name: Step name
        ready: Coroutine function completing once the dependency is ready
        timeout: Seconds to wait
        required: Fail the Init phase on timeout instead of continuing degraded

    Raises:
        InitializationFailure: On timeout when ``required``
    """

    async def wait(ctx: "PipelineContext") -> None:
        try:
            await asyncio.wait_for(ready(ctx), timeout)
        except asyncio.TimeoutError:
            if required:
                raise InitializationFailure(name, f"not ready after {timeout}s")
            ctx.logger.warn("AdPipeline", f"{name} not ready after {timeout}s, continuing without it")

    return InitStep(name, wait)
