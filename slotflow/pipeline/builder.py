"""
Pipeline Configuration Builder for slotflow.

Collects the steps of each phase from the ad server integration and the
registered modules.

Example:
    configuration = (
        PipelineConfigurationBuilder()
        .add_ad_server(ad_server)
        .add_modules(modules)
        .add_configure(mk_configure_step_once("wire-events", wire_events))
        .build()
    )
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from slotflow.errors import ConfigurationError

from .steps import (
    ConfigureStep,
    DefineSlotsStep,
    InitStep,
    PrepareRequestAdsStep,
    RequestAdsStep,
    RequestBidsStep,
)

if TYPE_CHECKING:
    from slotflow.ads.service import AdServer
    from slotflow.modules import Module

logger = logging.getLogger(__name__)


@dataclass
class PipelineConfiguration:
    """The steps of every phase. DefineSlots and RequestAds have exactly one."""

    define_slots: DefineSlotsStep
    request_ads: RequestAdsStep
    init: list[InitStep] = field(default_factory=list)
    configure: list[ConfigureStep] = field(default_factory=list)
    prepare_request_ads: list[PrepareRequestAdsStep] = field(default_factory=list)
    request_bids: list[RequestBidsStep] = field(default_factory=list)

    @property
    def step_names(self) -> dict[str, list[str]]:
        return {
            "init": [s.name for s in self.init],
            "configure": [s.name for s in self.configure],
            "defineSlots": [self.define_slots.name],
            "prepareRequestAds": [s.name for s in self.prepare_request_ads],
            "requestBids": [s.name for s in self.request_bids],
            "requestAds": [self.request_ads.name],
        }


class PipelineConfigurationBuilder:
    """Builder for PipelineConfiguration with a fluent API."""

    def __init__(self) -> None:
        self._init: list[InitStep] = []
        self._configure: list[ConfigureStep] = []
        self._define_slots: DefineSlotsStep | None = None
        self._prepare_request_ads: list[PrepareRequestAdsStep] = []
        self._request_bids: list[RequestBidsStep] = []
        self._request_ads: RequestAdsStep | None = None

    def add_init(self, step: InitStep) -> "PipelineConfigurationBuilder":
        self._init.append(step)
        return self

    def add_configure(self, step: ConfigureStep) -> "PipelineConfigurationBuilder":
        self._configure.append(step)
        return self

    def add_configure_if(self, condition: bool, step: ConfigureStep) -> "PipelineConfigurationBuilder":
        """Conditionally add a configure step."""
        if condition:
            self._configure.append(step)
        return self

    def set_define_slots(self, step: DefineSlotsStep) -> "PipelineConfigurationBuilder":
        self._define_slots = step
        return self

    def add_prepare_request_ads(self, step: PrepareRequestAdsStep) -> "PipelineConfigurationBuilder":
        self._prepare_request_ads.append(step)
        return self

    def add_request_bids(self, step: RequestBidsStep) -> "PipelineConfigurationBuilder":
        self._request_bids.append(step)
        return self

    def set_request_ads(self, step: RequestAdsStep) -> "PipelineConfigurationBuilder":
        self._request_ads = step
        return self

    def add_ad_server(self, ad_server: "AdServer") -> "PipelineConfigurationBuilder":
        """Add the core steps of the ad server integration."""
        self._init.extend(ad_server.init_steps())
        self._configure.extend(ad_server.configure_steps())
        self._prepare_request_ads.extend(ad_server.prepare_request_ads_steps())
        self._define_slots = ad_server.define_slots_step()
        self._request_ads = ad_server.request_ads_step()
        return self

    def add_module(self, module: "Module") -> "PipelineConfigurationBuilder":
        self._init.extend(module.init_steps())
        self._configure.extend(module.configure_steps())
        self._prepare_request_ads.extend(module.prepare_request_ads_steps())
        self._request_bids.extend(module.request_bids_steps())
        logger.debug(f"Added pipeline steps of module '{module.name}'")
        return self

    def add_modules(self, modules: Iterable["Module"]) -> "PipelineConfigurationBuilder":
        for module in modules:
            self.add_module(module)
        return self

    def build(self) -> PipelineConfiguration:
        """
        Build the configuration.

        Raises:
            ConfigurationError: If no DefineSlots or RequestAds step was set
        """
        if self._define_slots is None or self._request_ads is None:
            raise ConfigurationError("pipeline requires a defineSlots and a requestAds step")
        return PipelineConfiguration(
            define_slots=self._define_slots,
            request_ads=self._request_ads,
            init=list(self._init),
            configure=list(self._configure),
            prepare_request_ads=list(self._prepare_request_ads),
            request_bids=list(self._request_bids),
        )
