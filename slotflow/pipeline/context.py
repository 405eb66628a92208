"""
Pipeline Context for slotflow.

The context provides request-scoped state to every step of a pipeline
run: which run this is, the configuration the run consumes and the page
it runs on.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

if TYPE_CHECKING:
    from slotflow.config import BucketSettings, StaticConfig
    from slotflow.dom import Window
    from slotflow.observability import TagLogger
    from slotflow.tag.runtime import RuntimeConfig

logger = logging.getLogger(__name__)

NIL_UUID = UUID(int=0)


def new_auction_id() -> UUID:
    """Random auction id; the nil UUID when no randomness source is available."""
    try:
        return uuid4()
    except NotImplementedError:
        logger.warning("no randomness source available, using nil auction id")
        return NIL_UUID


@dataclass
class PipelineContext:
    """
    Request-scoped context passed through the pipeline.

    Provides:
    - request_id: 1-based ordinal of the run() call on the pipeline
    - request_ads_calls: number of requestAds() cycles on the page
    - auction_id: unique id of this run, shared by all bidders
    - the static and runtime configuration consumed by the run
    - the page window and the tag logger
    """

    request_id: int
    request_ads_calls: int
    config: "StaticConfig"
    runtime_config: "RuntimeConfig | None"
    logger: "TagLogger"
    window: "Window"
    env: str = "production"
    bucket: "BucketSettings | None" = None
    auction_id: UUID = field(default_factory=new_auction_id)

    @property
    def page_targeting(self) -> dict[str, Any]:
        """Static key-values and labels overlaid with the runtime ones."""
        key_values: dict[str, Any] = {}
        labels: list[str] = []
        if self.config.targeting is not None:
            key_values.update(self.config.targeting.key_values)
            labels.extend(self.config.targeting.labels)
        if self.runtime_config is not None:
            key_values.update(self.runtime_config.key_values)
            labels.extend(l for l in self.runtime_config.labels if l not in labels)
        return {"key_values": key_values, "labels": labels}
