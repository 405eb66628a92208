"""
Publisher command queue for slotflow.

Publishers load the ad tag asynchronously and cannot know when it is ready.
Until then they push commands onto a plain list in the page globals:

    window.globals["slotflow"] = {"que": []}
    window.globals["slotflow"]["que"].append(lambda tag: tag.set_targeting("k", "v"))

``install_ad_tag`` creates the tag, runs every pending command in order and
replaces the global with the tag. From then on ``tag.que.push(cmd)`` runs
the command right away.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from slotflow.observability import get_logger

from .machine import AdTag

if TYPE_CHECKING:
    from slotflow.ads import AdServer
    from slotflow.dom import Window
    from slotflow.observability import TagLogger

GLOBAL_NAME = "slotflow"

SOURCE = "CommandQueue"

Command = Callable[[AdTag], Any]


class CommandQueue:
    """Runs commands against the installed tag as soon as they are pushed."""

    def __init__(self, tag: AdTag) -> None:
        self.tag = tag

    def push(self, command: Command) -> None:
        try:
            command(self.tag)
        except Exception as e:
            self.tag.logger.error(SOURCE, f"command failed: {e}")

    append = push


def _pending_commands(window: "Window") -> list[Command]:
    existing = window.globals.get(GLOBAL_NAME)
    if isinstance(existing, dict):
        return list(existing.get("que") or [])
    return []


def install_ad_tag(window: "Window", ad_server: "AdServer", logger: "TagLogger | None" = None) -> AdTag:
    """
    Create the tag singleton for ``window`` and drain the pending commands.

    Installing twice returns the tag that is already installed. Lifecycle
    commands (configure, requestAds, refreshes) need a running event loop;
    without one they are logged and ignored.
    """
    existing = window.globals.get(GLOBAL_NAME)
    if isinstance(existing, AdTag):
        get_logger(logger, window).warn(SOURCE, "ad tag is already installed")
        return existing

    tag = AdTag(window, ad_server, logger)
    tag.que = CommandQueue(tag)
    pending = _pending_commands(window)
    window.globals[GLOBAL_NAME] = tag

    for command in pending:
        tag.que.push(command)
    if pending:
        tag.logger.debug(SOURCE, f"ran {len(pending)} queued commands")
    return tag
