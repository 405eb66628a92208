"""
Modules for slotflow.

A module plugs optional functionality into the ad pipeline: consent
management, identity providers, header bidding, reporting. It contributes
steps to the pipeline phases and may receive its own configuration from
``StaticConfig.modules[<name>]``.

Modules are registered via ``tag.register_module(...)`` before
``tag.configure(...)``; the steps are merged into the pipeline when the tag
is configured.

Subclasses must implement:
- name: Unique module identifier
- description: Human readable description
- module_type: The ModuleType

Everything else defaults to "contributes nothing".
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from slotflow.pipeline import ConfigureStep, InitStep, PrepareRequestAdsStep, RequestBidsStep


class ModuleType(str, Enum):
    CMP = "cmp"
    IDENTITY = "identity"
    HEADER_BIDDING = "hb"
    REPORTING = "reporting"
    POLICY = "policy"
    CREATIVES = "creatives"
    DMP = "dmp"


@dataclass(frozen=True)
class ModuleMeta:
    """Public description of a registered module."""

    name: str
    description: str
    module_type: ModuleType
    config: dict[str, Any] = field(default_factory=dict)


class Module(ABC):
    """Base class for all pipeline modules."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique name for this module, also the key of its configuration."""
        ...

    @property
    @abstractmethod
    def description(self) -> str: ...

    @property
    @abstractmethod
    def module_type(self) -> ModuleType: ...

    def config(self) -> dict[str, Any]:
        """The module configuration currently in effect."""
        return {}

    def configure(self, module_config: dict[str, Any]) -> None:
        """
        Receive ``StaticConfig.modules[self.name]``.

        Called once when the tag is configured, before any step is collected.
        Default implementation does nothing.
        """
        pass

    def init_steps(self) -> list["InitStep"]:
        return []

    def configure_steps(self) -> list["ConfigureStep"]:
        return []

    def prepare_request_ads_steps(self) -> list["PrepareRequestAdsStep"]:
        return []

    def request_bids_steps(self) -> list["RequestBidsStep"]:
        return []

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"


def meta_from_module(module: Module) -> ModuleMeta:
    return ModuleMeta(
        name=module.name,
        description=module.description,
        module_type=module.module_type,
        config=module.config(),
    )
