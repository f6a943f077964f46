"""
Synchronization Coordinator for hxengine

One state machine per sync scope (``idle``, ``active``, ``queued(n)``).
Every state change goes through ``_transition``, which runs synchronously on
the event loop, so no two requests are ever active in the same scope.
"""
from __future__ import annotations
import asyncio
import logging
import weakref
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Dict, List, Optional, Tuple

from bs4 import Tag

from hxengine.models.request import RequestDescriptor, SyncStrategy

logger = logging.getLogger(__name__)

TRANSITION_LOG_SIZE = 256


@dataclass(eq=False)
class Ticket:
    """One request attempt as tracked by the coordinator."""
    descriptor: RequestDescriptor
    cancelled: bool = False
    released: bool = False
    task: Optional[asyncio.Task] = None
    done: Optional[asyncio.Future] = None

    @property
    def scope(self) -> Tag:
        return self.descriptor.sync.scope

    @property
    def strategy(self) -> SyncStrategy:
        return self.descriptor.sync.strategy


@dataclass(eq=False)
class SyncScope:
    key: int
    element: Tag
    active: Optional[Ticket] = None
    queue: Deque[Ticket] = field(default_factory=deque)

    @property
    def state(self) -> str:
        if self.active is None:
            return "idle"
        if self.queue:
            return f"queued({len(self.queue)})"
        return "active"


class SyncDecision(str, Enum):
    PROCEED = "proceed"
    QUEUED = "queued"
    DROPPED = "dropped"
    IGNORED = "ignored"


@dataclass
class Transition:
    decision: SyncDecision
    activated: Optional[Ticket] = None
    aborted: Optional[Ticket] = None
    discarded: List[Ticket] = field(default_factory=list)


class SyncCoordinator:
    """Resolves overlapping requests per scope: drop, abort, or queue."""

    def __init__(self, log_size: int = TRANSITION_LOG_SIZE):
        self._scopes: Dict[int, SyncScope] = {}
        self._idle: Dict[int, Tuple[weakref.ref, int]] = {}
        # Most recent state changes only, as (scope key, new state)
        self.transitions: Deque[Tuple[int, str]] = deque(maxlen=log_size)

    def state(self, element: Tag) -> str:
        scope = self._scopes.get(id(element))
        if scope is None or scope.element is not element:
            return "idle"
        return scope.state

    def active(self, element: Tag) -> Optional[Ticket]:
        scope = self._scopes.get(id(element))
        return scope.active if scope is not None and scope.element is element else None

    def idle_count(self, element: Tag) -> int:
        """How many times the scope keyed by ``element`` returned to idle."""
        entry = self._idle.get(id(element))
        if entry is None or entry[0]() is not element:
            return 0
        return entry[1]

    def submit(self, ticket: Ticket) -> Transition:
        return self._transition("submit", ticket)

    def complete(self, ticket: Ticket) -> Transition:
        return self._transition("complete", ticket)

    def cancel(self, ticket: Ticket) -> Transition:
        return self._transition("cancel", ticket)

    def _scope_for(self, ticket: Ticket) -> SyncScope:
        key = id(ticket.scope)
        scope = self._scopes.get(key)
        if scope is None or scope.element is not ticket.scope:
            scope = SyncScope(key=key, element=ticket.scope)
            self._scopes[key] = scope
        return scope

    def _transition(self, action: str, ticket: Ticket) -> Transition:
        scope = self._scope_for(ticket)
        before = scope.state

        if action == "submit":
            result = self._on_submit(scope, ticket)
        elif action == "complete":
            result = self._on_complete(scope, ticket)
        else:
            result = self._on_cancel(scope, ticket)

        after = scope.state
        if after != before:
            self.transitions.append((scope.key, after))
            logger.debug("sync scope %x: %s -> %s (%s)", scope.key, before, after, action)
        if after == "idle":
            del self._scopes[scope.key]
            if before != "idle":
                self._count_idle(scope.element)
        return result

    def _count_idle(self, element: Tag):
        entry = self._idle.get(id(element))
        if entry is None or entry[0]() is not element:
            for key, (ref, _) in list(self._idle.items()):
                if ref() is None:
                    del self._idle[key]
            entry = (weakref.ref(element), 0)
        self._idle[id(element)] = (entry[0], entry[1] + 1)

    def _on_submit(self, scope: SyncScope, ticket: Ticket) -> Transition:
        if scope.active is None:
            scope.active = ticket
            return Transition(SyncDecision.PROCEED, activated=ticket)

        strategy = ticket.strategy
        if strategy.aborts_active:
            aborted = scope.active
            aborted.cancelled = True
            aborted.released = True
            scope.active = ticket
            return Transition(SyncDecision.PROCEED, activated=ticket, aborted=aborted)
        if strategy == SyncStrategy.DROP:
            return Transition(SyncDecision.DROPPED, discarded=[ticket])
        if strategy == SyncStrategy.QUEUE_FIRST:
            if scope.queue:
                return Transition(SyncDecision.DROPPED, discarded=[ticket])
            scope.queue.append(ticket)
            return Transition(SyncDecision.QUEUED)
        if strategy == SyncStrategy.QUEUE_LAST:
            discarded = list(scope.queue)
            scope.queue.clear()
            scope.queue.append(ticket)
            return Transition(SyncDecision.QUEUED, discarded=discarded)
        scope.queue.append(ticket)
        return Transition(SyncDecision.QUEUED)

    def _on_complete(self, scope: SyncScope, ticket: Ticket) -> Transition:
        if scope.active is not ticket:
            return Transition(SyncDecision.IGNORED)
        ticket.released = True
        if scope.queue:
            scope.active = scope.queue.popleft()
            return Transition(SyncDecision.PROCEED, activated=scope.active)
        scope.active = None
        return Transition(SyncDecision.IGNORED)

    def _on_cancel(self, scope: SyncScope, ticket: Ticket) -> Transition:
        ticket.cancelled = True
        if scope.active is ticket:
            return self._on_complete(scope, ticket)
        for queued in list(scope.queue):
            if queued is ticket:
                scope.queue.remove(queued)
                return Transition(SyncDecision.DROPPED, discarded=[ticket])
        return Transition(SyncDecision.IGNORED)
