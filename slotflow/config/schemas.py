"""
Configuration Schemas for slotflow.

Pydantic models for the static ad configuration handed to
``tag.configure(...)``. The configuration is immutable once validated;
code that derives a new configuration (e.g. cloning infinite slots) uses
``model_copy(update=...)``.

Keys are accepted in snake_case or camelCase, so configurations produced
by JavaScript tooling load unchanged.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

Environment = Literal["production", "test"]
LoadingBehaviour = Literal["eager", "manual", "infinite", "backfill", "lazy", "refreshable"]
ValidateLocation = Literal["href", "path", "none"]


class _Schema(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class EventTrigger(_Schema):
    """
    Triggers when an event is dispatched on window, document or an element.

    ``source`` resolution:
    - the ``Window`` object or ``"window"`` binds the window
    - ``"document"`` binds the document
    - any other string is a CSS selector, resolved when the source is created
    - anything else binds the document
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: Literal["event"] = "event"
    event: str = Field(..., description="The event name")
    source: Any = Field("document", description="Window, 'window', 'document' or a CSS selector")


class SlotBehaviour(_Schema):
    """How and when a slot is requested."""

    loaded: LoadingBehaviour = "eager"
    bucket: str | None = Field(None, description="Separate auction this slot is loaded in")
    selector: str | None = Field(None, description="CSS selector for infinite slot clones")
    trigger: EventTrigger | None = None
    throttle: float | None = Field(None, ge=0, description="Seconds between refreshes")
    lazy: bool = Field(False, description="Refreshable slot that waits for its first trigger")

    @model_validator(mode="after")
    def _check_behaviour(self) -> "SlotBehaviour":
        if self.loaded in ("lazy", "refreshable") and self.trigger is None:
            raise ValueError(f"loading behaviour '{self.loaded}' requires a trigger")
        if self.loaded == "infinite" and not self.selector:
            raise ValueError("loading behaviour 'infinite' requires a selector")
        return self


class AdSlot(_Schema):
    """A configured ad slot."""

    dom_id: str = Field(..., description="The DOM id of the slot container")
    ad_unit_path: str = Field(..., description="Ad unit path, may contain {variables}")
    position: Literal["in-page", "out-of-page", "interstitial"] = "in-page"
    sizes: list[Any] = Field(default_factory=list)
    behaviour: SlotBehaviour = Field(default_factory=SlotBehaviour)


class Targeting(_Schema):
    """Page targeting set by the server side configuration."""

    key_values: dict[str, str | list[str]] = Field(default_factory=dict)
    labels: list[str] = Field(default_factory=list)
    ad_unit_path_variables: dict[str, str] = Field(default_factory=dict)
    ad_manager_excludes: list[str] = Field(default_factory=list)


class SpaConfig(_Schema):
    """Single page application settings."""

    enabled: bool = False
    validate_location: ValidateLocation = "href"
    destroy_all_ad_slots: bool = True
    persist_targeting: bool = Field(
        False, description="Carry key-values and labels into the next requestAds() cycle"
    )


class BucketSettings(_Schema):
    timeout: float | None = Field(None, ge=0, description="Auction timeout in milliseconds")


class BucketConfig(_Schema):
    """Run eager slots in separate auctions grouped by bucket."""

    enabled: bool = False
    bucket: dict[str, BucketSettings] = Field(default_factory=dict)


class AdRequestThrottlingConfig(_Schema):
    """Minimum time in seconds before a slot may be requested again."""

    enabled: bool = False
    throttle: float = Field(10.0, ge=0)


class StaticConfig(_Schema):
    """
    The ad configuration supplied once via ``tag.configure(...)``.

    Example:
        config = StaticConfig.model_validate({
            "slots": [{"domId": "content_1", "adUnitPath": "/123/content"}],
            "spa": {"enabled": True, "validateLocation": "path"},
        })
    """

    slots: list[AdSlot] = Field(default_factory=list)
    targeting: Targeting | None = None
    spa: SpaConfig | None = None
    environment: Environment = "production"
    domain: str | None = Field(None, description="Overrides the domain derived from the hostname")
    request_ads: bool = Field(False, description="Request ads immediately after configure()")
    buckets: BucketConfig | None = None
    ad_request_throttling: AdRequestThrottlingConfig | None = None
    modules: dict[str, dict[str, Any]] = Field(default_factory=dict)

    @property
    def spa_enabled(self) -> bool:
        return self.spa is not None and self.spa.enabled

    @property
    def validate_location(self) -> ValidateLocation:
        return self.spa.validate_location if self.spa is not None else "href"

    def slot_by_dom_id(self, dom_id: str) -> AdSlot | None:
        for slot in self.slots:
            if slot.dom_id == dom_id:
                return slot
        return None

    def slots_in_bucket(self, bucket: str) -> list[AdSlot]:
        return [slot for slot in self.slots if slot.behaviour.bucket == bucket]
