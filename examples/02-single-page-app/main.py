"""
Single Page Application Example

This example demonstrates requestAds() cycles across client-side
navigations:
1. Loading the static configuration from YAML
2. Targeting set while a cycle is running lands on the next page
3. Infinite scrolling slots cloned from a configured slot

Run: python -m examples.02-single-page-app.main
"""

import asyncio
from pathlib import Path

from slotflow import Document, Element, Window, install_ad_tag, load_static_config
from slotflow.errors import LocationValidationError
from slotflow.pipeline import SlotDefinition, mk_define_slots_step, mk_request_ads_step


class ConsoleAdServer:
    """Prints ad requests instead of sending them."""

    def init_steps(self):
        return []

    def configure_steps(self):
        return []

    def define_slots_step(self):
        return mk_define_slots_step("console-define-slots", lambda ctx, slots: [SlotDefinition(slot=s) for s in slots])

    def prepare_request_ads_steps(self):
        return []

    def request_ads_step(self):
        return mk_request_ads_step("console-request-ads", self._request)

    def _request(self, ctx, definitions):
        print(f"  request: {[d.dom_id for d in definitions]} {ctx.page_targeting['key_values']}")

    def destroy_slots(self, dom_ids=None):
        print("  destroy all slots")

    def add_event_listener(self, event_name, callback):
        pass


async def main():
    config = load_static_config(Path(__file__).parent / "config.yaml")
    document = Document([Element(id="top"), Element(id="feed-1", classes=["feed-ad"])])
    window = Window("https://www.example.com/", document)

    tag = install_ad_tag(window, ConsoleAdServer())
    tag.configure(config)

    print("page 1")
    cycle = tag.request_ads()
    tag.set_targeting("page", "2")  # collected for the next cycle
    await cycle
    print(f"  infinite: {await tag.refresh_infinite_ad_slot('feed-1', 'feed')}")
    await tag.ad_service.wait_for_background_tasks()

    try:
        await tag.request_ads()
    except LocationValidationError as e:
        print(f"  {e}")

    print("page 2")
    window.navigate("https://www.example.com/page-2")
    state = await tag.request_ads()
    print(f"state: {state.name.value}, cycle {state.cycle}")


if __name__ == "__main__":
    asyncio.run(main())
