"""
Ad pipeline: phase ordered execution of ad requests.
"""

from .builder import PipelineConfiguration, PipelineConfigurationBuilder
from .context import NIL_UUID, PipelineContext, new_auction_id
from .executor import AdPipeline, Phase, SharedFuture
from .steps import (
    HIGH_PRIORITY,
    LOW_PRIORITY,
    ConfigureStep,
    DefineSlotsStep,
    InitStep,
    PrepareRequestAdsStep,
    RequestAdsStep,
    RequestBidsStep,
    SlotDefinition,
    mk_configure_step,
    mk_configure_step_once,
    mk_define_slots_step,
    mk_init_step,
    mk_prepare_request_ads_step,
    mk_request_ads_step,
    mk_request_bids_step,
    mk_wait_for_init_step,
)

__all__ = [
    "AdPipeline",
    "ConfigureStep",
    "DefineSlotsStep",
    "HIGH_PRIORITY",
    "InitStep",
    "LOW_PRIORITY",
    "NIL_UUID",
    "Phase",
    "PipelineConfiguration",
    "PipelineConfigurationBuilder",
    "PipelineContext",
    "PrepareRequestAdsStep",
    "RequestAdsStep",
    "RequestBidsStep",
    "SharedFuture",
    "SlotDefinition",
    "mk_configure_step",
    "mk_configure_step_once",
    "mk_define_slots_step",
    "mk_init_step",
    "mk_prepare_request_ads_step",
    "mk_request_ads_step",
    "mk_request_bids_step",
    "mk_wait_for_init_step",
    "new_auction_id",
]
