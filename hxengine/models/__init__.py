"""hxengine models."""
from hxengine.models.events import LifecycleEvent, LifecycleEventKind
from hxengine.models.history import HistoryEntry
from hxengine.models.request import (
    BodyEncoding,
    HttpMethod,
    HxRequestInfo,
    RequestDescriptor,
    SyncSpec,
    SyncStrategy,
)
from hxengine.models.response import HxResponse, ResponseDirectives
from hxengine.models.swap import OobFragment, SwapDirective, SwapResult, SwapSpec, SwapStrategy
from hxengine.models.trigger import RuntimeEvent, TriggerSpec

__all__ = [
    "BodyEncoding",
    "HistoryEntry",
    "HttpMethod",
    "HxRequestInfo",
    "HxResponse",
    "LifecycleEvent",
    "LifecycleEventKind",
    "OobFragment",
    "RequestDescriptor",
    "ResponseDirectives",
    "RuntimeEvent",
    "SwapDirective",
    "SwapResult",
    "SwapSpec",
    "SwapStrategy",
    "SyncSpec",
    "SyncStrategy",
    "TriggerSpec",
]
