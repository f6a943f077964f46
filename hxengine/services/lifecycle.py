"""
Lifecycle event bus for hxengine

Listeners are plain callables invoked synchronously, in registration order.
A failing listener is logged and skipped; it never breaks the pipeline that
emitted the event.
"""
from __future__ import annotations
import logging
from collections import defaultdict
from typing import Callable, Dict, List, Union

from hxengine.models.events import LifecycleEvent, LifecycleEventKind

logger = logging.getLogger(__name__)

Listener = Callable[[LifecycleEvent], None]
EventName = Union[str, LifecycleEventKind]


def _name(kind: EventName) -> str:
    return kind.value if isinstance(kind, LifecycleEventKind) else str(kind)


class EventBus:
    """Delivers lifecycle and server-triggered events to listeners."""

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)

    def on(self, kind: EventName, listener: Listener) -> Listener:
        self._listeners[_name(kind)].append(listener)
        return listener

    def off(self, kind: EventName, listener: Listener):
        listeners = self._listeners.get(_name(kind), [])
        if listener in listeners:
            listeners.remove(listener)

    def emit(self, kind: EventName, **kwargs) -> LifecycleEvent:
        event = LifecycleEvent(kind=_name(kind), **kwargs)
        for listener in list(self._listeners.get(event.kind, ())):
            try:
                listener(event)
            except Exception:
                logger.exception("Listener %r failed on %s", listener, event.kind)
        return event
