"""
The ad tag: publisher API, state machine and runtime configuration.
"""

from .machine import AdTag
from .queue import CommandQueue, install_ad_tag
from .runtime import InfiniteSlotRefresh, RefreshQueues, RuntimeConfig
from .spa import allow_refresh_ad_slot, allow_request_ads
from .state import (
    Configurable,
    Configured,
    Failed,
    Finished,
    RequestingAds,
    SinglePageApp,
    State,
    TagState,
)

__all__ = [
    "AdTag",
    "CommandQueue",
    "Configurable",
    "Configured",
    "Failed",
    "Finished",
    "InfiniteSlotRefresh",
    "RefreshQueues",
    "RequestingAds",
    "RuntimeConfig",
    "SinglePageApp",
    "State",
    "TagState",
    "allow_refresh_ad_slot",
    "allow_request_ads",
    "install_ad_tag",
]
