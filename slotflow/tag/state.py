"""
Tag States for slotflow.

The ad tag is a state machine. Each state is an immutable value; the
transitions below are plain functions from one state to the next. The
``AdTag`` controller owns the current value and performs the side effects
(pipeline runs, hooks, logging).

    configurable ──configure()──▶ configured ──requestAds()──▶ requestAds ──▶ finished
                                      │                              └──────▶ error
                                      └──(spa)──▶ spa-requestAds ⇄ spa-finished
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, ClassVar, Union

if TYPE_CHECKING:
    from slotflow.config import StaticConfig

    from .runtime import RuntimeConfig


class TagState(str, Enum):
    CONFIGURABLE = "configurable"
    CONFIGURED = "configured"
    REQUEST_ADS = "requestAds"
    SPA_REQUEST_ADS = "spa-requestAds"
    SPA_FINISHED = "spa-finished"
    FINISHED = "finished"
    ERROR = "error"


@dataclass(frozen=True)
class Configurable:
    """Collecting runtime configuration until ``configure()`` is called."""

    name: ClassVar[TagState] = TagState.CONFIGURABLE

    runtime_config: "RuntimeConfig"
    initialize: bool = False


@dataclass(frozen=True)
class Configured:
    name: ClassVar[TagState] = TagState.CONFIGURED

    config: "StaticConfig"
    runtime_config: "RuntimeConfig"


@dataclass(frozen=True)
class RequestingAds:
    """The single requestAds() cycle of a classic page is in flight."""

    name: ClassVar[TagState] = TagState.REQUEST_ADS

    config: "StaticConfig"
    runtime_config: "RuntimeConfig"


@dataclass(frozen=True)
class SinglePageApp:
    """
    A single page application cycle, in flight or settled.

    ``runtime_config`` is the frozen buffer the cycle consumes;
    ``next_runtime_config`` collects everything for the following cycle.
    ``href`` is the page the cycle was started on.
    """

    name: TagState
    config: "StaticConfig"
    runtime_config: "RuntimeConfig"
    next_runtime_config: "RuntimeConfig"
    href: str
    cycle: int


@dataclass(frozen=True)
class Finished:
    name: ClassVar[TagState] = TagState.FINISHED

    config: "StaticConfig"
    runtime_config: "RuntimeConfig"


@dataclass(frozen=True)
class Failed:
    name: ClassVar[TagState] = TagState.ERROR

    config: "StaticConfig"
    runtime_config: "RuntimeConfig"
    error: BaseException | None = None


State = Union[Configurable, Configured, RequestingAds, SinglePageApp, Finished, Failed]


# =============================================================================
# Transitions
# =============================================================================


def _frozen(runtime_config: "RuntimeConfig") -> "RuntimeConfig":
    return replace(runtime_config, frozen=True)


def mark_initialize(state: Configurable) -> Configurable:
    """requestAds() before configure(): request ads as soon as configured."""
    return replace(state, initialize=True)


def configure(state: Configurable, config: "StaticConfig") -> Configured:
    return Configured(config=config, runtime_config=state.runtime_config)


def with_config(state: State, config: "StaticConfig") -> State:
    return replace(state, config=config)


def request_ads(state: Configured) -> RequestingAds:
    return RequestingAds(config=state.config, runtime_config=_frozen(state.runtime_config))


def start_spa_cycle(
    state: Configured | SinglePageApp,
    config: "StaticConfig",
    href: str,
    cycle: int,
    sticky: bool = False,
) -> SinglePageApp:
    """
    Start a requestAds() cycle in single page application mode.

    The pending buffer (the configured one, or the previous cycle's next
    buffer) is frozen and consumed. A fresh next buffer takes its place.
    """
    consumed = state.next_runtime_config if isinstance(state, SinglePageApp) else state.runtime_config
    return SinglePageApp(
        name=TagState.SPA_REQUEST_ADS,
        config=config,
        runtime_config=_frozen(consumed),
        next_runtime_config=consumed.next_cycle(sticky=sticky),
        href=href,
        cycle=cycle,
    )


def settle_spa_cycle(state: SinglePageApp) -> SinglePageApp:
    return replace(state, name=TagState.SPA_FINISHED)


def finish(state: RequestingAds) -> Finished:
    return Finished(config=state.config, runtime_config=state.runtime_config)


def fail(state: RequestingAds, error: BaseException | None = None) -> Failed:
    return Failed(config=state.config, runtime_config=state.runtime_config, error=error)
