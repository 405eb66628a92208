"""
Classic Page Example

This example demonstrates a page with a single requestAds() cycle:
1. Publisher commands queued before the tag is loaded
2. A consent module that the Init phase waits for
3. Eager, lazy and manual slots

Run: python -m examples.01-classic-page.main
"""

import asyncio

from slotflow import Document, Element, Module, ModuleType, Window, install_ad_tag
from slotflow.pipeline import (
    SlotDefinition,
    mk_define_slots_step,
    mk_init_step,
    mk_request_ads_step,
    mk_wait_for_init_step,
)

# =============================================================================
# Ad Server
# =============================================================================


class ConsoleAdServer:
    """Prints ad requests instead of sending them."""

    def __init__(self):
        self.listeners = {}

    def init_steps(self):
        return [mk_init_step("console-ad-server", self._load)]

    def configure_steps(self):
        return []

    def define_slots_step(self):
        return mk_define_slots_step("console-define-slots", self._define)

    def prepare_request_ads_steps(self):
        return []

    def request_ads_step(self):
        return mk_request_ads_step("console-request-ads", self._request)

    async def _load(self, ctx):
        await asyncio.sleep(0.01)

    def _define(self, ctx, slots):
        return [SlotDefinition(slot=slot) for slot in slots]

    def _request(self, ctx, definitions):
        targeting = ctx.page_targeting
        print(f"  request #{ctx.request_id}: {[d.dom_id for d in definitions]} {targeting['key_values']}")

    def destroy_slots(self, dom_ids=None):
        print(f"  destroy slots: {dom_ids or 'all'}")

    def add_event_listener(self, event_name, callback):
        self.listeners.setdefault(event_name, []).append(callback)


# =============================================================================
# Consent Module
# =============================================================================


class ConsentModule(Module):
    """Waits for the consent management platform."""

    def __init__(self):
        self.consent = asyncio.Event()
        self._config = {}

    @property
    def name(self) -> str:
        return "consent"

    @property
    def description(self) -> str:
        return "waits for user consent"

    @property
    def module_type(self) -> ModuleType:
        return ModuleType.CMP

    def config(self):
        return self._config

    def configure(self, module_config):
        self._config = module_config

    def init_steps(self):
        timeout = self._config.get("timeout", 1.0)
        return [mk_wait_for_init_step("consent-ready", self._ready, timeout)]

    async def _ready(self, ctx):
        await self.consent.wait()


# =============================================================================
# Main
# =============================================================================


CONFIG = {
    "slots": [
        {"domId": "top", "adUnitPath": "/1234/{domain}/top"},
        {
            "domId": "comments",
            "adUnitPath": "/1234/{domain}/comments",
            "behaviour": {"loaded": "lazy", "trigger": {"event": "comments-visible"}},
        },
        {"domId": "sidebar", "adUnitPath": "/1234/{domain}/sidebar", "behaviour": {"loaded": "manual"}},
    ],
    "targeting": {"keyValues": {"site": "example"}},
    "modules": {"consent": {"timeout": 2.0}},
}


async def main():
    document = Document([Element(id="top"), Element(id="comments"), Element(id="sidebar")])
    window = Window("https://www.example.com/news/article-1", document)

    # Commands pushed before the tag is loaded
    consent = ConsentModule()
    window.globals["slotflow"] = {
        "que": [
            lambda tag: tag.register_module(consent),
            lambda tag: tag.set_targeting("section", "news"),
            lambda tag: tag.after_request_ads(lambda state: print(f"  afterRequestAds: {state}")),
        ]
    }

    tag = install_ad_tag(window, ConsoleAdServer())
    tag.configure(CONFIG)

    print("requestAds()")
    cycle = tag.request_ads()
    consent.consent.set()
    state = await cycle
    print(f"state: {state.name.value}")
    print()

    print("refreshAdSlot('sidebar')")
    print(f"  {await tag.refresh_ad_slot('sidebar')}")

    print("comments become visible")
    document.dispatch_event("comments-visible")
    await tag.ad_service.wait_for_background_tasks()

    print()
    print(f"modules: {[m.name for m in tag.get_module_meta()]}")
    print(f"page targeting: {tag.get_page_targeting()}")


if __name__ == "__main__":
    asyncio.run(main())
