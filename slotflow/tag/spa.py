"""
Single page application location rules.

A requestAds() cycle remembers the page href it started on. The configured
``validate_location`` strategy then decides:

- whether a refresh may run right away or must wait for the next cycle
  (``allow_refresh_ad_slot``: the user is still on the same page)
- whether requestAds() may start a new cycle
  (``allow_request_ads``: the user navigated to a new page)

Strategies:
- ``href``: compare the full URL
- ``path``: compare the path only, query and fragment changes are ignored
- ``none``: no validation
"""

from __future__ import annotations

from urllib.parse import urlsplit

from slotflow.dom import Location


def _path(href: str) -> str | None:
    try:
        parts = urlsplit(href)
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    return parts.path or "/"


def allow_refresh_ad_slot(validate_location: str, href: str, location: Location) -> bool:
    """True if a refresh may execute immediately for the cycle started on ``href``."""
    if validate_location == "href":
        return href == location.href
    if validate_location == "path":
        path = _path(href)
        # an unparsable stored href cannot prove a navigation
        return path is None or path == location.pathname
    return True


def allow_request_ads(validate_location: str, href: str, location: Location) -> bool:
    """True if a new requestAds() cycle may start after the cycle started on ``href``."""
    if validate_location == "href":
        return href != location.href
    if validate_location == "path":
        return _path(href) != location.pathname
    return True
