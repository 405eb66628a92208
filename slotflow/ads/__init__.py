"""
Ad requests: the ad service, the ad server integration contract and targeting helpers.
"""

from .service import AdServer, AdService, SlotRenderEndedEvent, SlotRequestedEvent
from .targeting import (
    AB_TEST_KEY,
    ab_test_value,
    add_infinite_slot,
    extract_top_private_domain,
    remove_child_id,
    resolve_ad_unit_path,
)

__all__ = [
    "AB_TEST_KEY",
    "AdServer",
    "AdService",
    "SlotRenderEndedEvent",
    "SlotRequestedEvent",
    "ab_test_value",
    "add_infinite_slot",
    "extract_top_private_domain",
    "remove_child_id",
    "resolve_ad_unit_path",
]
