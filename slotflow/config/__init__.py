"""
Static ad configuration: schemas and loading.
"""

from .loader import load_static_config
from .schemas import (
    AdRequestThrottlingConfig,
    AdSlot,
    BucketConfig,
    BucketSettings,
    EventTrigger,
    SlotBehaviour,
    SpaConfig,
    StaticConfig,
    Targeting,
)

__all__ = [
    "AdRequestThrottlingConfig",
    "AdSlot",
    "BucketConfig",
    "BucketSettings",
    "EventTrigger",
    "SlotBehaviour",
    "SpaConfig",
    "StaticConfig",
    "Targeting",
    "load_static_config",
]
