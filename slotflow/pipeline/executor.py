"""
Ad Pipeline Executor for slotflow.

The AdPipeline runs a list of ad slots through the phases that turn
configured slots into an ad request:

    Init → Configure → DefineSlots → PrepareRequestAds → RequestBids → RequestAds

Execution Model:
- Init runs once per pipeline. Its outcome, success or failure, is shared
  with every later run()
- Configure, RequestBids and each PrepareRequestAds tier run their steps
  concurrently
- PrepareRequestAds tiers run by descending priority; a tier starts only
  after every step of the higher tiers has settled
- Any failing step short-circuits the remaining phases of that run and
  the error propagates to the caller
"""
from __future__ import annotations

import asyncio
import itertools
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from slotflow.errors import InitializationFailure, SlotflowError, StepFailure
from slotflow.observability import StdlibTagLogger, TagLogger

from .context import PipelineContext

if TYPE_CHECKING:
    from slotflow.config import AdSlot, BucketSettings, StaticConfig
    from slotflow.dom import Window
    from slotflow.tag.runtime import RuntimeConfig

    from .builder import PipelineConfiguration
    from .steps import SlotDefinition

T = TypeVar("T")

SOURCE = "AdPipeline"


class Phase(str, Enum):
    INIT = "init"
    CONFIGURE = "configure"
    DEFINE_SLOTS = "defineSlots"
    PREPARE_REQUEST_ADS = "prepareRequestAds"
    REQUEST_BIDS = "requestBids"
    REQUEST_ADS = "requestAds"


class SharedFuture(Generic[T]):
    """
    Lazily started computation shared by all awaiters.

    The underlying task is created on the first ``get()``. ``awaiters`` counts
    the callers currently waiting. Every awaiter is
    shielded from the others: cancelling one caller does not cancel the
    shared work. The result, or the exception, is replayed to all callers.
    """

    def __init__(self, factory: Callable[[], Awaitable[T]]) -> None:
        self._factory = factory
        self._task: asyncio.Future[T] | None = None
        self.awaiters = 0

    @property
    def started(self) -> bool:
        return self._task is not None

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def get(self) -> T:
        if self._task is None:
            self._task = asyncio.ensure_future(self._factory())
        self.awaiters += 1
        try:
            return await asyncio.shield(self._task)
        finally:
            self.awaiters -= 1


class AdPipeline:
    """
    Runs ad slots through the pipeline phases.

    Example:
        pipeline = AdPipeline(configuration, logger, window)
        await pipeline.run(slots, static_config, request_ads_calls=1)

    Args:
        configuration: The steps per phase
        logger: Tag logger
        window: The page the pipeline requests ads for
    """

    def __init__(
        self,
        configuration: "PipelineConfiguration",
        logger: TagLogger | None = None,
        window: "Window | None" = None,
    ) -> None:
        self.configuration = configuration
        self.logger = logger or StdlibTagLogger()
        self.window = window
        self._request_id = 0
        self._init: SharedFuture[None] | None = None

    @property
    def request_id(self) -> int:
        """Number of run() calls so far."""
        return self._request_id

    @property
    def init_started(self) -> bool:
        return self._init is not None and self._init.started

    async def run(
        self,
        slots: list["AdSlot"],
        config: "StaticConfig",
        request_ads_calls: int,
        bucket: "BucketSettings | None" = None,
        runtime_config: "RuntimeConfig | None" = None,
    ) -> None:
        """
        Run one pipeline pass for ``slots``.

        An empty slot list returns right away; Init is not touched, so a
        page without matching slots never loads third-party scripts.

        Raises:
            InitializationFailure: If Init failed, now or in an earlier run
            StepFailure: If any other step failed
        """
        self._request_id += 1
        if not slots:
            self.logger.debug(SOURCE, f"run {self._request_id}: no slots, skipping")
            return

        ctx = PipelineContext(
            request_id=self._request_id,
            request_ads_calls=request_ads_calls,
            config=config,
            runtime_config=runtime_config,
            logger=self.logger,
            window=self.window,
            env=config.environment,
            bucket=bucket,
        )

        self._log_stage(Phase.INIT)
        if self._init is None:
            self._init = SharedFuture(lambda: self._run_init(ctx))
        await self._init.get()

        self._log_stage(Phase.CONFIGURE)
        await asyncio.gather(
            *(self._call(Phase.CONFIGURE, step, ctx, slots) for step in self.configuration.configure)
        )

        self._log_stage(Phase.DEFINE_SLOTS)
        definitions: list[SlotDefinition] = await self._call(
            Phase.DEFINE_SLOTS, self.configuration.define_slots, ctx, slots
        )
        if not definitions:
            self.logger.debug(SOURCE, f"run {ctx.request_id}: no slot definitions, stopping")
            return

        self._log_stage(Phase.PREPARE_REQUEST_ADS)
        for priority, tier in self._tiers():
            self.logger.debug(SOURCE, f"prepareRequestAds priority {priority}")
            await asyncio.gather(
                *(self._call(Phase.PREPARE_REQUEST_ADS, step, ctx, definitions) for step in tier)
            )

        self._log_stage(Phase.REQUEST_BIDS)
        await asyncio.gather(
            *(self._call(Phase.REQUEST_BIDS, step, ctx, definitions) for step in self.configuration.request_bids)
        )

        self._log_stage(Phase.REQUEST_ADS)
        await self._call(Phase.REQUEST_ADS, self.configuration.request_ads, ctx, definitions)

    async def _run_init(self, ctx: PipelineContext) -> None:
        await asyncio.gather(*(self._call(Phase.INIT, step, ctx) for step in self.configuration.init))

    def _tiers(self):
        steps = sorted(self.configuration.prepare_request_ads, key=lambda s: s.priority, reverse=True)
        for priority, tier in itertools.groupby(steps, key=lambda s: s.priority):
            yield priority, list(tier)

    async def _call(self, phase: Phase, step: Any, *args: Any) -> Any:
        try:
            return await step(*args)
        except SlotflowError:
            raise
        except Exception as e:
            if phase is Phase.INIT:
                raise InitializationFailure(step.name, str(e)) from e
            raise StepFailure(phase.value, step.name, e) from e

    def _log_stage(self, phase: Phase) -> None:
        self.logger.debug(SOURCE, f"stage: {phase.value}")

    def __repr__(self) -> str:
        return f"AdPipeline(request_id={self._request_id}, init_started={self.init_started})"
