"""
Pytest configuration and fixtures for slotflow tests.
"""

import sys
from pathlib import Path

import pytest

# Add the repository root to path for imports
# This allows `from slotflow.pipeline import ...` to work
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from slotflow.ads import SlotRenderEndedEvent, SlotRequestedEvent  # noqa: E402
from slotflow.dom import Document, Element, Window  # noqa: E402
from slotflow.observability import NoopLogger  # noqa: E402
from slotflow.pipeline import (  # noqa: E402
    SlotDefinition,
    mk_define_slots_step,
    mk_init_step,
    mk_request_ads_step,
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeAdServer:
    """
    In-memory ad server integration.

    Records every ad request as the list of requested DOM ids and emits
    ``slotRequested`` for each requested slot.
    """

    def __init__(self, fail_requests: bool = False):
        self.fail_requests = fail_requests
        self.init_calls = 0
        self.requests: list[list[str]] = []
        self.contexts = []
        self.destroyed: list = []
        self.listeners: dict[str, list] = {}

    # pipeline steps

    def init_steps(self):
        return [mk_init_step("fake-ad-server-init", self._init)]

    def configure_steps(self):
        return []

    def define_slots_step(self):
        return mk_define_slots_step("fake-define-slots", self._define_slots)

    def prepare_request_ads_steps(self):
        return []

    def request_ads_step(self):
        return mk_request_ads_step("fake-request-ads", self._request_ads)

    async def _init(self, ctx):
        self.init_calls += 1

    def _define_slots(self, ctx, slots):
        return [SlotDefinition(slot=slot, ad_server_slot=f"handle-{slot.dom_id}") for slot in slots]

    async def _request_ads(self, ctx, definitions):
        if self.fail_requests:
            raise RuntimeError("ad server unavailable")
        self.contexts.append(ctx)
        self.requests.append([d.dom_id for d in definitions])
        for definition in definitions:
            self.emit("slotRequested", SlotRequestedEvent(definition.dom_id, definition.slot.ad_unit_path))

    # slot lifecycle

    def destroy_slots(self, dom_ids=None):
        self.destroyed.append(dom_ids)

    def add_event_listener(self, event_name, callback):
        self.listeners.setdefault(event_name, []).append(callback)

    def emit(self, event_name, event):
        for callback in list(self.listeners.get(event_name, [])):
            callback(event)

    def render(self, dom_id: str) -> None:
        self.emit("slotRenderEnded", SlotRenderEndedEvent(dom_id))

    @property
    def requested_ids(self) -> list[str]:
        return [dom_id for request in self.requests for dom_id in request]


@pytest.fixture
def fake_clock():
    """A manually advanced clock."""
    return FakeClock()


@pytest.fixture
def ad_server():
    """A recording ad server integration."""
    return FakeAdServer()


@pytest.fixture
def failing_ad_server():
    """An ad server whose ad requests always fail."""
    return FakeAdServer(fail_requests=True)


@pytest.fixture
def logger():
    """A logger that only reports errors."""
    return NoopLogger()


@pytest.fixture
def document():
    """A page with slot containers and a trigger element."""
    return Document(
        [
            Element(id="top"),
            Element(id="sidebar"),
            Element(id="footer"),
            Element(id="lazy-slot"),
            Element(id="infinite-1"),
            Element(id="infinite-2"),
            Element("button", id="load-more", classes=["load-more"]),
        ]
    )


@pytest.fixture
def window(document):
    """The page window."""
    return Window("https://www.example.com/news/article-1", document)


@pytest.fixture
def static_config():
    """A classic page configuration as a camelCase dict."""
    return {
        "slots": [
            {"domId": "top", "adUnitPath": "/1234/top"},
            {"domId": "sidebar", "adUnitPath": "/1234/sidebar", "behaviour": {"loaded": "manual"}},
            {"domId": "footer", "adUnitPath": "/1234/footer", "behaviour": {"loaded": "manual"}},
            {
                "domId": "infinite",
                "adUnitPath": "/1234/infinite",
                "behaviour": {"loaded": "infinite", "selector": ".infinite"},
            },
        ],
        "targeting": {"keyValues": {"site": "example"}, "labels": ["desktop"]},
    }


@pytest.fixture
def spa_config(static_config):
    """The same configuration in single page application mode."""
    return {**static_config, "spa": {"enabled": True, "validateLocation": "href"}}
