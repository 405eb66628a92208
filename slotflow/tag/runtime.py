"""
Runtime Configuration for slotflow.

The runtime configuration is the page-lifetime overlay the publisher
builds up through the tag API: targeting, labels, ad unit path variables,
hooks, a custom logger, and refreshes requested before ads could be
requested.

A pipeline run consumes a frozen runtime configuration. In single page
application mode the tag keeps a second, mutable one ("next") that
collects everything arriving while a cycle is in flight.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from slotflow.errors import FrozenRuntimeConfigError

if TYPE_CHECKING:
    from slotflow.config import StaticConfig
    from slotflow.observability import TagLogger

BeforeRequestAdsHook = Callable[["StaticConfig", "RuntimeConfig"], Any]
AfterRequestAdsHook = Callable[[str], Any]


@dataclass(frozen=True)
class InfiniteSlotRefresh:
    """A clone of a configured infinite slot, requested under a new DOM id."""

    dom_id: str
    id_of_configured_slot: str


@dataclass
class RefreshQueues:
    """Refreshes drained at the start of the next requestAds() cycle."""

    slots: list[str] = field(default_factory=list)
    infinite_slots: list[InfiniteSlotRefresh] = field(default_factory=list)
    buckets: list[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.slots or self.infinite_slots or self.buckets)


@dataclass
class RuntimeConfig:
    """
    Mutable page-lifetime configuration.

    Every mutator raises ``FrozenRuntimeConfigError`` once ``freeze()`` was
    called.
    """

    key_values: dict[str, str | list[str]] = field(default_factory=dict)
    labels: list[str] = field(default_factory=list)
    ad_unit_path_variables: dict[str, str] = field(default_factory=dict)
    before_request_ads: list[BeforeRequestAdsHook] = field(default_factory=list)
    after_request_ads: list[AfterRequestAdsHook] = field(default_factory=list)
    logger: "TagLogger | None" = None
    refresh_slots: list[str] = field(default_factory=list)
    refresh_infinite_slots: list[InfiniteSlotRefresh] = field(default_factory=list)
    refresh_buckets: list[str] = field(default_factory=list)
    frozen: bool = field(default=False, compare=False)

    def _check(self) -> None:
        if self.frozen:
            raise FrozenRuntimeConfigError("runtime config is in use by a pipeline run and cannot change")

    # =========================================================================
    # Mutators
    # =========================================================================

    def set_targeting(self, key: str, value: str | list[str]) -> None:
        self._check()
        self.key_values[key] = value

    def add_label(self, label: str) -> None:
        self._check()
        if label not in self.labels:
            self.labels.append(label)

    def set_ad_unit_path_variables(self, variables: dict[str, str]) -> None:
        self._check()
        self.ad_unit_path_variables = dict(variables)

    def set_logger(self, logger: "TagLogger") -> None:
        self._check()
        self.logger = logger

    def add_before_request_ads(self, hook: BeforeRequestAdsHook) -> None:
        self._check()
        self.before_request_ads.append(hook)

    def add_after_request_ads(self, hook: AfterRequestAdsHook) -> None:
        self._check()
        self.after_request_ads.append(hook)

    def queue_refresh_slots(self, dom_ids: list[str]) -> None:
        self._check()
        self.refresh_slots.extend(d for d in dom_ids if d not in self.refresh_slots)

    def queue_refresh_infinite_slot(self, dom_id: str, id_of_configured_slot: str) -> None:
        self._check()
        self.refresh_infinite_slots.append(InfiniteSlotRefresh(dom_id, id_of_configured_slot))

    def queue_refresh_bucket(self, bucket: str) -> None:
        self._check()
        if bucket not in self.refresh_buckets:
            self.refresh_buckets.append(bucket)

    # =========================================================================
    # Cycle handling
    # =========================================================================

    def freeze(self) -> "RuntimeConfig":
        self.frozen = True
        return self

    def take_refresh_queues(self) -> RefreshQueues:
        """Drain the one-shot refresh queues. Allowed on a frozen config."""
        queues = RefreshQueues(
            slots=self.refresh_slots,
            infinite_slots=self.refresh_infinite_slots,
            buckets=self.refresh_buckets,
        )
        self.refresh_slots = []
        self.refresh_infinite_slots = []
        self.refresh_buckets = []
        return queues

    def next_cycle(self, sticky: bool = False) -> "RuntimeConfig":
        """
        A fresh buffer for the next requestAds() cycle.

        Hooks, the logger and ad unit path variables carry over. Targeting
        and labels only when ``sticky``. Refresh queues never do.
        """
        return RuntimeConfig(
            key_values=dict(self.key_values) if sticky else {},
            labels=list(self.labels) if sticky else [],
            ad_unit_path_variables=dict(self.ad_unit_path_variables),
            before_request_ads=list(self.before_request_ads),
            after_request_ads=list(self.after_request_ads),
            logger=self.logger,
        )

    def copy(self) -> "RuntimeConfig":
        return replace(
            self,
            key_values=dict(self.key_values),
            labels=list(self.labels),
            ad_unit_path_variables=dict(self.ad_unit_path_variables),
            before_request_ads=list(self.before_request_ads),
            after_request_ads=list(self.after_request_ads),
            refresh_slots=list(self.refresh_slots),
            refresh_infinite_slots=list(self.refresh_infinite_slots),
            refresh_buckets=list(self.refresh_buckets),
            frozen=False,
        )
