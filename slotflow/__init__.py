"""
slotflow - An asyncio ad tag for coordinating ad slot requests on a page.

slotflow sequences ad requests across asynchronous third-party subsystems
(consent, identity, header bidding, the ad server) with features like:

- **Ad Pipeline**: Phase ordered steps, Init shared across runs
- **Tag State Machine**: Classic pages and single page applications
- **Loading Behaviours**: Eager, lazy, refreshable, manual and infinite slots
- **Event Sources**: One native listener per trigger, throttling, teardown
- **Modules**: Pluggable pipeline step contributors

Quick Start:
    >>> from slotflow import Window, install_ad_tag
    >>>
    >>> window = Window("https://www.example.com/")
    >>> tag = install_ad_tag(window, ad_server)
    >>> tag.configure({"slots": [{"domId": "top", "adUnitPath": "/123/top"}]})
    >>> state = await tag.request_ads()
"""

__version__ = "0.1.0"
__license__ = "MIT"

from slotflow.config import StaticConfig, load_static_config
from slotflow.dom import Document, Element, Event, Window
from slotflow.modules import Module, ModuleMeta, ModuleType
from slotflow.pipeline import AdPipeline, PipelineContext, SlotDefinition
from slotflow.tag import AdTag, RuntimeConfig, TagState, install_ad_tag

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Page
    "Document",
    "Element",
    "Event",
    "Window",
    # Tag
    "AdTag",
    "RuntimeConfig",
    "StaticConfig",
    "TagState",
    "install_ad_tag",
    "load_static_config",
    # Pipeline
    "AdPipeline",
    "Module",
    "ModuleMeta",
    "ModuleType",
    "PipelineContext",
    "SlotDefinition",
]
