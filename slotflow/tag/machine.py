"""
Ad Tag for slotflow.

The publisher facing API. ``AdTag`` owns the current tag state and turns
publisher calls into state transitions and pipeline runs.

Every call applies its state transition synchronously, before it returns.
Calls that lead to asynchronous work return an ``asyncio.Future`` with the
outcome:

    tag.set_targeting("section", "sports")
    tag.configure(config)
    state = await tag.request_ads()
    result = await tag.refresh_ad_slot("sidebar")   # "queued" | "refreshed"

Misuse (configuring twice, requesting ads twice on a classic page, invalid
configuration) is logged and otherwise ignored. It never raises into
publisher code. Lifecycle calls need a running event loop; without one
they are logged, return ``None`` and leave the state untouched.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import ValidationError

from slotflow.ads import (
    AB_TEST_KEY,
    AdService,
    ab_test_value,
    add_infinite_slot,
    extract_top_private_domain,
    remove_child_id,
    resolve_ad_unit_path,
)
from slotflow.config import StaticConfig
from slotflow.errors import ConfigurationError, LocationValidationError, RefreshNotAllowedError
from slotflow.events import EventService
from slotflow.modules import ModuleMeta, meta_from_module
from slotflow.observability import get_logger

from . import state as transitions
from .runtime import RefreshQueues, RuntimeConfig
from .spa import allow_refresh_ad_slot, allow_request_ads
from .state import (
    Configurable,
    Configured,
    Finished,
    RequestingAds,
    SinglePageApp,
    State,
    TagState,
)

if TYPE_CHECKING:
    from slotflow.ads import AdServer
    from slotflow.config import AdSlot
    from slotflow.dom import Window
    from slotflow.events import TagEventName
    from slotflow.modules import Module
    from slotflow.observability import TagLogger

    from .queue import CommandQueue
    from .runtime import AfterRequestAdsHook, BeforeRequestAdsHook

T = TypeVar("T")

SOURCE = "AdTag"

RefreshResult = str  # "queued" | "refreshed"


def _resolved(value: T) -> "asyncio.Future[T]":
    future = asyncio.get_running_loop().create_future()
    future.set_result(value)
    return future


def _failed(error: BaseException) -> "asyncio.Future[Any]":
    future = asyncio.get_running_loop().create_future()
    future.set_exception(error)
    return future


class AdTag:
    """
    The ad tag state machine.

    Args:
        window: The page
        ad_server: The ad server integration
        logger: Initial tag logger; ``set_logger`` replaces it
    """

    que: "CommandQueue | None" = None

    def __init__(self, window: "Window", ad_server: "AdServer", logger: "TagLogger | None" = None) -> None:
        self.window = window
        self.logger = get_logger(logger, window)
        self.events = EventService(self.logger)
        self.ad_service = AdService(window, ad_server, self.logger)
        self._state: State = Configurable(runtime_config=RuntimeConfig(logger=logger))
        self._modules: list[Module] = []
        self._static_config: StaticConfig | None = None
        self._request_ads_calls = 0
        self._cycle = 0

    @property
    def state(self) -> State:
        return self._state

    @property
    def request_ads_calls(self) -> int:
        return self._request_ads_calls

    # =========================================================================
    # Runtime configuration
    # =========================================================================

    def _running_loop(self, operation: str) -> asyncio.AbstractEventLoop | None:
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            self.logger.error(SOURCE, str(ConfigurationError(f"{operation} requires a running event loop")))
            return None

    def _pending_runtime_config(self, operation: str) -> RuntimeConfig | None:
        state = self._state
        if isinstance(state, (Configurable, Configured)):
            return state.runtime_config
        if isinstance(state, SinglePageApp):
            return state.next_runtime_config
        self.logger.error(SOURCE, f"{operation} is not allowed in state {state.name.value}")
        return None

    def set_targeting(self, key: str, value: str | list[str]) -> None:
        runtime_config = self._pending_runtime_config("setTargeting")
        if runtime_config is not None:
            runtime_config.set_targeting(key, value)

    def add_label(self, label: str) -> None:
        runtime_config = self._pending_runtime_config("addLabel")
        if runtime_config is not None:
            runtime_config.add_label(label)

    def set_ad_unit_path_variables(self, variables: dict[str, str]) -> None:
        runtime_config = self._pending_runtime_config("setAdUnitPathVariables")
        if runtime_config is not None:
            runtime_config.set_ad_unit_path_variables(variables)

    def set_logger(self, logger: "TagLogger") -> None:
        runtime_config = self._pending_runtime_config("setLogger")
        if runtime_config is None:
            return
        runtime_config.set_logger(logger)
        self.logger = logger
        self.events.logger = logger
        self.ad_service.set_logger(logger)

    def before_request_ads(self, hook: "BeforeRequestAdsHook") -> None:
        runtime_config = self._pending_runtime_config("beforeRequestAds")
        if runtime_config is not None:
            runtime_config.add_before_request_ads(hook)

    def after_request_ads(self, hook: "AfterRequestAdsHook") -> None:
        runtime_config = self._pending_runtime_config("afterRequestAds")
        if runtime_config is not None:
            runtime_config.add_after_request_ads(hook)

    def register_module(self, module: "Module") -> None:
        if not isinstance(self._state, Configurable):
            self.logger.error(
                SOURCE, f"registerModule({module.name}) is not allowed in state {self._state.name.value}"
            )
            return
        if any(m.name == module.name for m in self._modules):
            self.logger.warn(SOURCE, f"module {module.name} is already registered")
            return
        self._modules.append(module)
        self.logger.debug(SOURCE, f"registered {module.module_type.value} module {module.name}")

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def configure(self, config: StaticConfig | dict[str, Any]) -> "asyncio.Future[State] | None":
        """
        Configure the tag. Only allowed once, in state configurable.

        Continues with request_ads() right away if it was called before or
        if the configuration sets ``request_ads``.
        """
        if self._running_loop("configure()") is None:
            return None

        state = self._state
        if not isinstance(state, Configurable):
            self.logger.error(SOURCE, str(ConfigurationError(f"configure() called in state {state.name.value}")))
            return _resolved(state)

        try:
            static_config = config if isinstance(config, StaticConfig) else StaticConfig.model_validate(config)
        except ValidationError as e:
            self.logger.error(SOURCE, str(ConfigurationError(f"invalid configuration: {e}")))
            return _resolved(state)

        for module in self._modules:
            try:
                module.configure(static_config.modules.get(module.name, {}))
            except Exception as e:
                self.logger.error(SOURCE, f"configuring module {module.name} failed: {e}")

        try:
            self.ad_service.initialize(static_config, self._modules)
        except Exception as e:
            self.logger.error(SOURCE, str(ConfigurationError(f"building the ad pipeline failed: {e}")))
            return _resolved(state)
        self._static_config = static_config
        self._state = transitions.configure(state, static_config)
        self.logger.debug(SOURCE, "configured")

        if state.initialize or static_config.request_ads:
            return self.request_ads()
        return _resolved(self._state)

    def request_ads(self) -> "asyncio.Future[State] | None":
        """
        Request ads for the configured slots.

        The future resolves with the state the cycle settled in. In single
        page application mode a call on the same page fails with
        ``LocationValidationError``.
        """
        if self._running_loop("requestAds()") is None:
            return None

        state = self._state
        if isinstance(state, Configurable):
            self._state = transitions.mark_initialize(state)
            self.logger.debug(SOURCE, "requestAds() before configure(), waiting for configuration")
            return _resolved(self._state)

        if isinstance(state, Configured):
            config = self._prepare_cycle(state.runtime_config, state.config)
            if config.spa_enabled:
                return self._start_spa_cycle(state, config)
            return self._start_cycle(transitions.with_config(state, config))

        if isinstance(state, SinglePageApp):
            validate_location = state.config.validate_location
            if not allow_request_ads(validate_location, state.href, self.window.location):
                error = LocationValidationError(validate_location, self.window.location.href)
                self.logger.error(SOURCE, str(error))
                return _failed(error)
            if state.name is TagState.SPA_REQUEST_ADS:
                self.logger.debug(SOURCE, "requestAds() called while the previous cycle is still running")
            config = self._prepare_cycle(state.next_runtime_config, self._static_config)
            return self._start_spa_cycle(state, config)

        self.logger.error(SOURCE, f"requestAds() is not allowed in state {state.name.value}")
        return _resolved(state)

    def _prepare_cycle(self, runtime_config: RuntimeConfig, config: StaticConfig) -> StaticConfig:
        """Page level targeting, infinite slot clones and beforeRequestAds hooks."""
        runtime_config.set_targeting(AB_TEST_KEY, ab_test_value(self.window))
        domain = config.domain or extract_top_private_domain(self.window.location.hostname)
        if domain:
            runtime_config.add_label(domain)

        for refresh in runtime_config.refresh_infinite_slots:
            config = add_infinite_slot(config, refresh.id_of_configured_slot, refresh.dom_id, self.logger)

        for hook in list(runtime_config.before_request_ads):
            try:
                hook(config, runtime_config)
            except Exception as e:
                self.logger.error(SOURCE, f"beforeRequestAds hook failed: {e}")
        self.events.emit("beforeRequestAds", {"config": config, "runtime_config": runtime_config})
        return config

    def _start_cycle(self, state: Configured) -> "asyncio.Future[State]":
        self._request_ads_calls += 1
        requesting = transitions.request_ads(state)
        queues = requesting.runtime_config.take_refresh_queues()
        self._state = requesting
        return self.ad_service.spawn(self._run_cycle(requesting, queues))

    async def _run_cycle(self, requesting: RequestingAds, queues: RefreshQueues) -> State:
        try:
            await self._request_ads(requesting.config, requesting.runtime_config, queues)
        except Exception as e:
            self.logger.error(SOURCE, f"requestAds() failed: {e}")
            current = self._state if isinstance(self._state, RequestingAds) else requesting
            self._state = transitions.fail(current, e)
            self._after_request_ads(requesting.runtime_config, "error")
            return self._state

        current = self._state if isinstance(self._state, RequestingAds) else requesting
        self._state = transitions.finish(current)
        self._after_request_ads(requesting.runtime_config, "finished")
        return self._state

    def _start_spa_cycle(self, state: Configured | SinglePageApp, config: StaticConfig) -> "asyncio.Future[State]":
        self._request_ads_calls += 1
        spa = config.spa
        if self._request_ads_calls > 1:
            # tear down the previous page
            self.ad_service.remove_all_event_sources()
            if spa.destroy_all_ad_slots:
                self.ad_service.destroy_ad_slots()

        self._cycle += 1
        cycle = transitions.start_spa_cycle(
            state, config, self.window.location.href, self._cycle, sticky=spa.persist_targeting
        )
        queues = cycle.runtime_config.take_refresh_queues()
        self._state = cycle
        return self.ad_service.spawn(self._run_spa_cycle(cycle, queues))

    async def _run_spa_cycle(self, cycle: SinglePageApp, queues: RefreshQueues) -> State:
        try:
            await self._request_ads(cycle.config, cycle.runtime_config, queues)
        except Exception as e:
            self.logger.error(SOURCE, f"requestAds() cycle {cycle.cycle} failed: {e}")

        current = self._state
        if not isinstance(current, SinglePageApp) or current.cycle != cycle.cycle:
            self.logger.debug(SOURCE, "a previous requestAds() was slower than the following requestAds() call")
            return current

        if allow_refresh_ad_slot(current.config.validate_location, current.href, self.window.location):
            pending = current.next_runtime_config.take_refresh_queues()
            if pending:
                config = current.config
                for refresh in pending.infinite_slots:
                    config = add_infinite_slot(config, refresh.id_of_configured_slot, refresh.dom_id, self.logger)
                current = transitions.with_config(current, config)
                self.ad_service.spawn(
                    self._request_ads(config, current.runtime_config, pending, eager=False)
                )

        self._state = transitions.settle_spa_cycle(current)
        self._after_request_ads(current.next_runtime_config, "spa-finished")
        return self._state

    async def _request_ads(
        self,
        config: StaticConfig,
        runtime_config: RuntimeConfig,
        queues: RefreshQueues,
        eager: bool = True,
    ) -> list["AdSlot"]:
        """Request the slots of a cycle together with the queued refreshes."""
        service = self.ad_service
        queued = [
            *service.slots_for_refresh(config, queues.slots, loaded="manual"),
            *service.slots_for_refresh(config, [r.dom_id for r in queues.infinite_slots], loaded="infinite"),
            *service.slots_for_buckets(config, queues.buckets),
        ]
        if eager:
            return await service.request_ads(config, runtime_config, self._request_ads_calls, queued)
        return await service.request_slots(queued, config, runtime_config, self._request_ads_calls)

    def _after_request_ads(self, runtime_config: RuntimeConfig, state: str) -> None:
        for hook in list(runtime_config.after_request_ads):
            try:
                hook(state)
            except Exception as e:
                self.logger.error(SOURCE, f"afterRequestAds hook failed: {e}")
        self.events.emit("afterRequestAds", {"state": state})

    # =========================================================================
    # Refreshes
    # =========================================================================

    def refresh_ad_slot(
        self, dom_id: str | list[str], loaded: str = "manual"
    ) -> "asyncio.Future[RefreshResult] | None":
        """
        Request one or more manual slots.

        Before ads were requested, and while a single page application cycle
        is running, the refresh is queued and batched into the next request.
        """
        if self._running_loop("refreshAdSlot()") is None:
            return None
        dom_ids = [dom_id] if isinstance(dom_id, str) else list(dom_id)
        state = self._state

        def execute(config: StaticConfig, runtime_config: RuntimeConfig):
            return self.ad_service.refresh_ad_slots(
                dom_ids, config, runtime_config, self._request_ads_calls, loaded=loaded
            )

        return self._refresh(
            "refreshAdSlot", state, execute, lambda rc: rc.queue_refresh_slots(dom_ids)
        )

    def refresh_infinite_ad_slot(
        self, dom_id: str, id_of_configured_slot: str
    ) -> "asyncio.Future[RefreshResult] | None":
        """Request a clone of the configured infinite slot under ``dom_id``."""
        if self._running_loop("refreshInfiniteAdSlot()") is None:
            return None
        state = self._state

        def execute(config: StaticConfig, runtime_config: RuntimeConfig):
            config = add_infinite_slot(config, id_of_configured_slot, dom_id, self.logger)
            self._state = transitions.with_config(self._state, config)
            return self.ad_service.refresh_ad_slots(
                [dom_id], config, runtime_config, self._request_ads_calls, loaded="infinite"
            )

        return self._refresh(
            "refreshInfiniteAdSlot",
            state,
            execute,
            lambda rc: rc.queue_refresh_infinite_slot(dom_id, id_of_configured_slot),
        )

    def refresh_bucket(self, bucket: str) -> "asyncio.Future[RefreshResult] | None":
        """Request all manual slots of ``bucket`` in one auction."""
        if self._running_loop("refreshBucket()") is None:
            return None
        state = self._state

        def execute(config: StaticConfig, runtime_config: RuntimeConfig):
            return self.ad_service.refresh_bucket(bucket, config, runtime_config, self._request_ads_calls)

        return self._refresh("refreshBucket", state, execute, lambda rc: rc.queue_refresh_bucket(bucket))

    def _refresh(self, operation: str, state: State, execute, queue) -> "asyncio.Future[RefreshResult]":
        if isinstance(state, (Configurable, Configured)):
            queue(state.runtime_config)
            return _resolved("queued")

        if isinstance(state, SinglePageApp):
            if state.name is TagState.SPA_FINISHED and allow_refresh_ad_slot(
                state.config.validate_location, state.href, self.window.location
            ):
                return self._refreshed(execute(state.config, state.runtime_config))
            queue(state.next_runtime_config)
            return _resolved("queued")

        if isinstance(state, (RequestingAds, Finished)):
            return self._refreshed(execute(state.config, state.runtime_config))

        error = RefreshNotAllowedError(state.name.value)
        self.logger.error(SOURCE, f"{operation}: {error}")
        return _failed(error)

    def _refreshed(self, request: Coroutine[Any, Any, Any]) -> "asyncio.Future[RefreshResult]":
        async def run() -> RefreshResult:
            await request
            return "refreshed"

        return self.ad_service.spawn(run())

    # =========================================================================
    # Queries
    # =========================================================================

    def get_state(self) -> TagState:
        return self._state.name

    def get_config(self) -> StaticConfig | None:
        return getattr(self._state, "config", None)

    def get_runtime_config(self) -> RuntimeConfig:
        """The runtime configuration publisher calls currently write to, or the last consumed one."""
        state = self._state
        if isinstance(state, SinglePageApp):
            return state.next_runtime_config
        return state.runtime_config

    def get_page_targeting(self) -> dict[str, Any]:
        key_values: dict[str, Any] = {}
        labels: list[str] = []
        config = self.get_config()
        if config is not None and config.targeting is not None:
            key_values.update(config.targeting.key_values)
            labels.extend(config.targeting.labels)
        runtime_config = self.get_runtime_config()
        key_values.update(runtime_config.key_values)
        labels.extend(label for label in runtime_config.labels if label not in labels)
        return {"key_values": key_values, "labels": labels}

    def get_module_meta(self) -> list[ModuleMeta]:
        return [meta_from_module(module) for module in self._modules]

    def resolve_ad_unit_path(self, ad_unit_path: str, remove_network_child_id: bool = False) -> str:
        """Resolve ``{variables}`` with the domain, the configured and the runtime variables."""
        variables: dict[str, str] = {}
        config = self.get_config()
        domain = (config.domain if config is not None else None) or extract_top_private_domain(
            self.window.location.hostname
        )
        if domain:
            variables["domain"] = domain
        if config is not None and config.targeting is not None:
            variables.update(config.targeting.ad_unit_path_variables)
        variables.update(self.get_runtime_config().ad_unit_path_variables)

        resolved = resolve_ad_unit_path(ad_unit_path, variables)
        return remove_child_id(resolved) if remove_network_child_id else resolved

    # =========================================================================
    # Events
    # =========================================================================

    def add_event_listener(self, event: "TagEventName", listener, once: bool = False) -> None:
        self.events.add_event_listener(event, listener, once=once)

    def remove_event_listener(self, event: "TagEventName", listener) -> None:
        self.events.remove_event_listener(event, listener)

    def __repr__(self) -> str:
        return f"AdTag(state={self._state.name.value}, request_ads_calls={self._request_ads_calls})"
