"""
Hypermedia engine for hxengine

Owns the control flow: runtime event -> Trigger Resolver -> Request Builder
-> Synchronization Coordinator -> Transport -> Swap Engine -> History &
Cache Manager, with lifecycle events on one EventBus.

Everything runs on a single asyncio loop. The only awaits in a request
pipeline are the transport send and the configured swap/settle delays; the
swap section between the last cancellation check and ``after-swap`` is
synchronous, so swaps of different requests never interleave.
"""
from __future__ import annotations
import asyncio
import logging
from typing import Any, Dict, List, Optional, Set, Tuple
from urllib.parse import urljoin

import httpx
from bs4 import Tag

from hxengine.config import EngineSettings
from hxengine.dom.document import Document
from hxengine.errors import BuildError, SwapError, TriggerSpecError
from hxengine.models.events import LifecycleEventKind
from hxengine.models.request import RequestDescriptor, SyncSpec
from hxengine.models.response import HxResponse, ResponseDirectives
from hxengine.models.swap import SwapDirective, SwapSpec
from hxengine.models.trigger import RuntimeEvent, TriggerSpec
from hxengine.services.binder import Binding, ElementBinder
from hxengine.services.history import HistoryManager, extract_root_html
from hxengine.services.lifecycle import EventBus, EventName, Listener
from hxengine.services.request_builder import RequestBuilder
from hxengine.services.swap_engine import SwapEngine
from hxengine.services.sync_coordinator import SyncCoordinator, Ticket, Transition
from hxengine.services.transport import Transport
from hxengine.services.trigger_resolver import TriggerResolver

logger = logging.getLogger(__name__)


class SwapPlan:
    """Where, how and whether one response is swapped, after header overrides."""

    def __init__(
        self,
        target: Optional[Tag],
        swap: SwapSpec,
        select: Optional[str],
        should_swap: bool,
        push_url: Optional[str],
        replace_url: Optional[str],
    ):
        self.target = target
        self.swap = swap
        self.select = select
        self.should_swap = should_swap
        self.push_url = push_url
        self.replace_url = replace_url


class HypermediaEngine:
    """Drives one Document against an HTTP server."""

    def __init__(
        self,
        document: Document,
        client: httpx.AsyncClient,
        settings: Optional[EngineSettings] = None,
    ):
        self.document = document
        self.client = client
        self.settings = settings or EngineSettings()
        self.bus = EventBus()
        self.binder = ElementBinder(self.settings)
        self.resolver = TriggerResolver(document, self._fire)
        self.builder = RequestBuilder(document, self.settings)
        self.coordinator = SyncCoordinator()
        self.transport = Transport(client, self.bus, self.settings.timeout)
        self.swapper = SwapEngine(document, self.settings, self.bus)
        self.history = HistoryManager(document, self.settings, self.bus, self.swapper)
        self._tasks: Set[asyncio.Task] = set()
        self._tickets: Set[Ticket] = set()
        self._closed = False

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def on(self, kind: EventName, listener: Listener) -> Listener:
        return self.bus.on(kind, listener)

    def off(self, kind: EventName, listener: Listener):
        self.bus.off(kind, listener)

    # ------------------------------------------------------------------
    # Binding and events
    # ------------------------------------------------------------------

    def process(self, root: Optional[Tag] = None) -> int:
        """Bind every request-issuing element under ``root`` (default: body).

        Already bound elements are left alone. Returns the number of new
        bindings. Must be called with a running event loop: polling and
        ``load`` triggers schedule work immediately.
        """
        root = root if root is not None else self.document.body
        count = 0
        for element in [root] + root.find_all(True):
            if self.resolver.binding_for(element) is not None:
                continue
            binding = self.binder.bind(element)
            if binding is None:
                continue
            self._report_trigger_errors(binding)
            self.resolver.register(binding)
            self.bus.emit(LifecycleEventKind.LOAD, element=element)
            count += 1
        return count

    def dispatch(self, element: Tag, event: str, detail: Optional[Dict[str, Any]] = None) -> int:
        """Raise a runtime event on ``element``; returns how many bindings fired."""
        return self.resolver.handle(RuntimeEvent(event, element, dict(detail or {})))

    def _report_trigger_errors(self, binding: Binding):
        for spec in binding.triggers:
            if not spec.inert:
                continue
            logger.warning("Ignoring trigger %r on <%s>: %s", spec.source, binding.element.name, spec.error)
            self.bus.emit(
                LifecycleEventKind.TRIGGER_ERROR,
                element=binding.element,
                error=TriggerSpecError(spec.error, spec.source),
                detail={"spec": spec.source},
            )

    def _fire(self, binding: Binding, spec: TriggerSpec, event: RuntimeEvent):
        try:
            descriptor = self.builder.build(binding, event.name)
        except BuildError as e:
            logger.warning("Request not built for <%s> on %s: %s", binding.element.name, event.name, e)
            self.bus.emit(
                LifecycleEventKind.BUILD_ERROR,
                element=binding.element,
                error=e,
                detail={"event": event.name},
            )
            return
        self._submit(descriptor)

    # ------------------------------------------------------------------
    # Programmatic requests
    # ------------------------------------------------------------------

    async def ajax(
        self,
        method: str,
        url: str,
        source: Optional[Tag] = None,
        target: Optional[str] = None,
        swap: Optional[str] = None,
        values: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Ticket:
        """Issue a request without markup and wait until it is finished."""
        descriptor = self.builder.build_ad_hoc(method, url, source, target, swap, values, headers)
        ticket = self._submit(descriptor)
        await ticket.done
        return ticket

    def navigate(self, url: str) -> Ticket:
        """Fetch ``url`` into the history root and push it."""
        return self._submit(self.builder.build_navigation(url))

    def abort(self, element: Tag) -> bool:
        """Cancel the active request of the sync scope keyed by ``element``."""
        ticket = self.coordinator.active(element)
        if ticket is None:
            return False
        transition = self.coordinator.cancel(ticket)
        if ticket.task is not None:
            ticket.task.cancel()
        self._finish(ticket)
        self._apply(transition)
        return True

    async def back(self) -> bool:
        return await self._traverse(-1)

    async def forward(self) -> bool:
        return await self._traverse(1)

    async def _traverse(self, delta: int) -> bool:
        if not self.history.can_go(delta):
            return False
        self.history.save(self.history.current_url)
        url = self.history.go(delta)
        entry = self.history.lookup(url)
        if entry is not None:
            self.history.restore(entry)
            self.resolver.prune()
            self.process(self.history.root)
            return True

        logger.debug("History cache miss for %s", url)
        self.bus.emit(LifecycleEventKind.HISTORY_CACHE_MISS, element=self.history.root, detail={"url": url})
        ticket = self._submit(self.builder.build_navigation(url, history_restore=True))
        await ticket.done
        return True

    async def wait_idle(self):
        """Wait until no request is in flight and no debounce is pending."""
        while True:
            pending = [task for task in self._tasks if not task.done()] + self.resolver.pending()
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def aclose(self):
        self._closed = True
        self.resolver.close()
        for ticket in self._tickets:
            ticket.cancelled = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        # Queued tickets and tasks cancelled before their first step
        for ticket in list(self._tickets):
            self._finish(ticket)

    # ------------------------------------------------------------------
    # Coordination
    # ------------------------------------------------------------------

    def _submit(self, descriptor: RequestDescriptor) -> Ticket:
        if descriptor.sync is None:
            scope = descriptor.target or descriptor.element or self.document.body
            descriptor = descriptor.model_copy(update={"sync": SyncSpec(scope=scope)})
        ticket = Ticket(descriptor=descriptor, done=asyncio.get_running_loop().create_future())
        self._tickets.add(ticket)
        self._apply(self.coordinator.submit(ticket))
        return ticket

    def _apply(self, transition: Transition):
        if transition.aborted is not None:
            aborted = transition.aborted
            logger.debug("Aborting request %s", aborted.descriptor.request_id)
            if aborted.task is not None:
                aborted.task.cancel()
            self._finish(aborted)
        for ticket in transition.discarded:
            logger.debug("Dropping request %s (%s)", ticket.descriptor.request_id, ticket.strategy.value)
            self._finish(ticket)
        if transition.activated is not None:
            self._start(transition.activated)

    def _start(self, ticket: Ticket):
        if self._closed:
            ticket.cancelled = True
            self._finish(ticket)
            return
        task = asyncio.create_task(self._execute(ticket))
        ticket.task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _release(self, ticket: Ticket):
        if not ticket.released:
            self._apply(self.coordinator.complete(ticket))

    def _finish(self, ticket: Ticket):
        self._tickets.discard(ticket)
        if ticket.done is not None and not ticket.done.done():
            ticket.done.set_result(ticket)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _execute(self, ticket: Ticket):
        descriptor = ticket.descriptor
        try:
            await self._pipeline(ticket)
        except asyncio.CancelledError:
            logger.debug("Request %s cancelled", descriptor.request_id)
            raise
        except Exception as e:
            logger.exception("Request %s failed inside the pipeline", descriptor.request_id)
            self.bus.emit(
                LifecycleEventKind.PIPELINE_ERROR,
                request=descriptor,
                element=descriptor.element,
                error=e,
            )
        finally:
            self._release(ticket)
            self._finish(ticket)

    async def _pipeline(self, ticket: Ticket):
        descriptor = ticket.descriptor
        indicators = list(descriptor.indicators)
        self.swapper.begin_request(indicators)
        try:
            response = await self.transport.send(descriptor)
        finally:
            self.swapper.end_request(indicators)
        if response is None or ticket.cancelled:
            return

        directives = response.directives
        if not response.is_success:
            logger.info("Request %s answered %d", descriptor.request_id, response.status_code)
            self.bus.emit(
                LifecycleEventKind.RESPONSE_ERROR,
                request=descriptor,
                response=response,
                element=descriptor.element,
                detail={"status_code": response.status_code},
            )
        if directives.redirect:
            self._release(ticket)
            self.navigate(directives.redirect)
            return

        plan = self._plan(descriptor, response, directives)
        if plan.should_swap and plan.swap.swap_delay:
            await asyncio.sleep(plan.swap.swap_delay)
        if ticket.cancelled:
            logger.debug("Request %s cancelled before swap", descriptor.request_id)
            return

        before = self.bus.emit(
            LifecycleEventKind.BEFORE_SWAP,
            request=descriptor,
            response=response,
            element=descriptor.element,
            detail={"should_swap": plan.should_swap, "target": plan.target},
        )
        # From here on the request owns the swap; it can no longer be aborted.
        self._release(ticket)
        if before.vetoed or not before.detail.get("should_swap"):
            self._dispatch_server_events(directives.trigger, descriptor.element)
            return
        plan.target = before.detail.get("target", plan.target)

        result = self._swap(descriptor, response, plan)
        if result is None:
            return

        self.bus.emit(
            LifecycleEventKind.AFTER_SWAP,
            request=descriptor,
            response=response,
            element=descriptor.element,
            detail={"target": plan.target, "result": result},
        )
        self._dispatch_server_events(directives.trigger, descriptor.element)

        if plan.swap.settle_delay:
            await asyncio.sleep(plan.swap.settle_delay)
        self.swapper.settle(result)
        self.bus.emit(
            LifecycleEventKind.AFTER_SETTLE,
            request=descriptor,
            response=response,
            element=descriptor.element,
            detail={"target": plan.target, "result": result},
        )
        self._dispatch_server_events(directives.trigger_after_settle, descriptor.element)

    def _plan(self, descriptor: RequestDescriptor, response: HxResponse, directives: ResponseDirectives) -> SwapPlan:
        """Combine element directives with response headers; headers win."""
        target = descriptor.target
        if directives.retarget:
            source = descriptor.element if self.document.contains(descriptor.element) else self.document.body
            target = self.document.resolve_one(source, directives.retarget)
            if target is None:
                self.bus.emit(
                    LifecycleEventKind.SWAP_ERROR,
                    request=descriptor,
                    response=response,
                    error=SwapError("HX-Retarget matched nothing", directives.retarget),
                    detail={"selector": directives.retarget, "reason": "HX-Retarget matched nothing"},
                )

        swap = descriptor.swap
        if directives.reswap:
            try:
                swap = SwapSpec.parse(
                    directives.reswap,
                    default_strategy=swap.strategy.value,
                    default_swap_delay=swap.swap_delay,
                    default_settle_delay=swap.settle_delay,
                )
            except ValueError as e:
                logger.warning("Ignoring HX-Reswap %r: %s", directives.reswap, e)

        if response.status_code == 204:
            should_swap = False
        elif directives.swap_response is not None:
            should_swap = directives.swap_response
        else:
            should_swap = response.is_success or not self.settings.swap_only_on_success
        if target is None and not descriptor.navigation:
            should_swap = False

        return SwapPlan(
            target=target,
            swap=swap,
            select=directives.reselect or descriptor.select,
            should_swap=should_swap,
            push_url=self._history_url(directives.push_url, descriptor.push_url),
            replace_url=self._history_url(directives.replace_url, descriptor.replace_url),
        )

    def _history_url(self, header: Optional[str], own: Optional[str]) -> Optional[str]:
        if header is None:
            return own
        header = header.strip()
        if header == "false":
            return None
        return urljoin(self.document.url, header)

    def _swap(self, descriptor: RequestDescriptor, response: HxResponse, plan: SwapPlan):
        """The synchronous swap section: snapshot, mutate, bind, record history."""
        history_url = plan.push_url or plan.replace_url
        if history_url and descriptor.history_cache:
            if self.settings.history_snapshot == "pre-swap":
                self.history.save(self.document.url, descriptor.element)
            elif self.history.lookup(self.document.url) is None:
                self.history.save(self.document.url, descriptor.element)

        content, title = response.text, None
        if descriptor.navigation:
            content, title = extract_root_html(response.text)
        directive = SwapDirective(target=plan.target, swap=plan.swap, select=plan.select)
        try:
            result = self.swapper.apply(content, directive)
        except SwapError as e:
            logger.warning("Swap failed for request %s: %s", descriptor.request_id, e)
            self.bus.emit(
                LifecycleEventKind.SWAP_ERROR,
                request=descriptor,
                response=response,
                element=descriptor.element,
                error=e,
                detail={"selector": e.selector, "reason": str(e)},
            )
            return None
        if title is not None and not plan.swap.ignore_title:
            self.swapper.update_title(title, result)

        self.resolver.prune()
        for element in result.inserted:
            self.process(element)
        if plan.target is not None and self.document.contains(plan.target):
            self.process(plan.target)

        if plan.push_url:
            self.history.push(plan.push_url)
        elif plan.replace_url:
            self.history.replace(plan.replace_url)
        if history_url and descriptor.history_cache and self.settings.history_snapshot == "post-swap":
            self.history.save(history_url, descriptor.element)
        return result

    def _dispatch_server_events(self, events: List[Tuple[str, Dict[str, Any]]], element: Optional[Tag]):
        if not events:
            return
        if element is None or not self.document.contains(element):
            element = self.document.body
        for name, detail in events:
            logger.debug("Dispatching server event %s", name)
            self.bus.emit(name, element=element, detail=dict(detail))
            self.resolver.handle(RuntimeEvent(name, element, dict(detail)))
