"""Engine components."""
from hxengine.services.engine import HypermediaEngine
from hxengine.services.history import HistoryManager
from hxengine.services.lifecycle import EventBus
from hxengine.services.request_builder import RequestBuilder
from hxengine.services.swap_engine import SwapEngine
from hxengine.services.sync_coordinator import SyncCoordinator
from hxengine.services.transport import Transport
from hxengine.services.trigger_resolver import TriggerResolver

__all__ = [
    "EventBus",
    "HistoryManager",
    "HypermediaEngine",
    "RequestBuilder",
    "SwapEngine",
    "SyncCoordinator",
    "Transport",
    "TriggerResolver",
]
