"""
Lifecycle events for hxengine
"""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from bs4 import Tag


class LifecycleEventKind(str, Enum):
    # Per-request pipeline, in firing order
    BEFORE_REQUEST = "before-request"
    AFTER_REQUEST = "after-request"
    BEFORE_SWAP = "before-swap"
    AFTER_SWAP = "after-swap"
    AFTER_SETTLE = "after-settle"

    # Transport outcomes
    RESPONSE_ERROR = "response-error"
    SEND_ERROR = "send-error"
    TIMEOUT = "timeout"

    # History
    BEFORE_HISTORY_SAVE = "before-history-save"
    HISTORY_RESTORE = "history-restore"
    HISTORY_CACHE_MISS = "history-cache-miss"
    PUSH_URL = "push-url"
    REPLACE_URL = "replace-url"

    # Diagnostics
    TRIGGER_ERROR = "trigger-error"
    BUILD_ERROR = "build-error"
    SWAP_ERROR = "swap-error"
    PIPELINE_ERROR = "pipeline-error"

    # Binding
    LOAD = "load"


@dataclass
class LifecycleEvent:
    """An event delivered synchronously to listeners.

    ``detail`` is mutable: ``before-request`` listeners edit headers and
    parameters there, ``before-swap`` listeners may flip ``should_swap``.
    """
    kind: str
    request: Optional[Any] = None
    response: Optional[Any] = None
    error: Optional[BaseException] = None
    element: Optional[Tag] = None
    detail: Dict[str, Any] = field(default_factory=dict)
    vetoed: bool = False

    def veto(self):
        """Cancel the action this event announces (send, swap)."""
        self.vetoed = True
