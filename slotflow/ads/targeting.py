"""
Targeting helpers for slotflow.

- Ad unit path variables: ``/123/{device}/content`` → ``/123/mobile/content``
- Child network ids: ``/123,456/content`` → ``/123/content``
- Top private domain of the page, used as a domain label
- The ``ABtest`` key-value
- Clones of infinite slots
"""

from __future__ import annotations

import random
import re
from collections.abc import Mapping
from typing import TYPE_CHECKING

from slotflow.errors import ConfigurationError
from slotflow.observability import StdlibTagLogger, TagLogger

if TYPE_CHECKING:
    from slotflow.config import StaticConfig
    from slotflow.dom import Window

SOURCE = "targeting"

AB_TEST_KEY = "ABtest"

_VARIABLE = re.compile(r"{([^{}]+)}")

# country code second level domains
_SPECIAL_SUFFIXES = frozenset({"co.uk", "com.br", "com.mx", "com.au"})


def resolve_ad_unit_path(ad_unit_path: str, variables: Mapping[str, str]) -> str:
    """
    Replace ``{variable}`` placeholders.

    Raises:
        ConfigurationError: If a placeholder has no value
    """

    def replace(match: re.Match) -> str:
        key = match.group(1)
        if key not in variables:
            raise ConfigurationError(f"path variable '{key}' is not defined in {ad_unit_path}")
        return variables[key]

    return _VARIABLE.sub(replace, ad_unit_path)


def remove_child_id(ad_unit_path: str) -> str:
    """Drop the child network id of a multiple customer management path."""
    parts = ad_unit_path.split("/")
    if len(parts) < 2:
        return ad_unit_path
    parent, _, child = parts[1].partition(",")
    if not child:
        return ad_unit_path
    return "/".join(["", parent, *parts[2:]])


def extract_top_private_domain(hostname: str | None) -> str | None:
    """
    Top private domain of a hostname, e.g. ``www.example.co.uk`` → ``example.co.uk``.

    Covers a minimal set of public suffixes only. Publishers with other
    suffixes set ``StaticConfig.domain``.
    """
    if not hostname:
        return None
    labels = list(reversed(hostname.split(".")))
    tld = labels[0]
    sub1 = labels[1] if len(labels) > 1 else None
    if sub1 is None:
        return tld
    if f"{sub1}.{tld}" in _SPECIAL_SUFFIXES and len(labels) > 2:
        return f"{labels[2]}.{sub1}.{tld}"
    return f"{sub1}.{tld}"


def ab_test_value(window: "Window", rng: random.Random | None = None) -> str:
    """The ``?ABtest=`` query parameter, or a random value in 1..100."""
    param = window.location.query_param(AB_TEST_KEY)
    if param:
        return param
    return str((rng or random).randint(1, 100))


def add_infinite_slot(
    config: "StaticConfig",
    id_of_configured_slot: str,
    dom_id: str,
    logger: TagLogger | None = None,
) -> "StaticConfig":
    """
    Clone the configured infinite slot under a new DOM id.

    The configuration is returned unchanged when there is no infinite slot
    ``id_of_configured_slot`` or when ``dom_id`` is already configured.
    """
    if config.slot_by_dom_id(dom_id) is not None:
        return config
    configured = config.slot_by_dom_id(id_of_configured_slot)
    if configured is None or configured.behaviour.loaded != "infinite":
        (logger or StdlibTagLogger()).warn(
            SOURCE, f"No infinite slot '{id_of_configured_slot}' configured, skipping {dom_id}"
        )
        return config
    clone = configured.model_copy(update={"dom_id": dom_id})
    return config.model_copy(update={"slots": [*config.slots, clone]})
