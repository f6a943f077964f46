"""
Trigger Resolver for hxengine

Parses ``hx-trigger`` directives into TriggerSpecs at bind time and decides,
for each runtime event, which bound elements fire a request. Debounce
(``delay``), ``throttle``, ``changed``, ``once``, ``from:`` listening and
``every`` polling all live here.
"""
from __future__ import annotations
import asyncio
import logging
import re
import time
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Set, Tuple

import soupsieve
from bs4 import BeautifulSoup, Tag

from hxengine.dom.document import Document
from hxengine.errors import TriggerSpecError
from hxengine.models.trigger import FilterTerm, RuntimeEvent, TriggerFilter, TriggerSpec
from hxengine.utils.timing import parse_interval

if TYPE_CHECKING:
    from hxengine.services.binder import Binding

logger = logging.getLogger(__name__)

Fire = Callable[["Binding", TriggerSpec, RuntimeEvent], None]

_TOKEN_RE = re.compile(r"\[[^\]]*\]|[^\s\[]+")
_TRUTHY_RE = re.compile(r"^(!)?\s*([A-Za-z_][\w.]*)$")
_COMPARE_RE = re.compile(
    r"""^([A-Za-z_][\w.]*)\s*(==|!=)\s*(?:'([^']*)'|"([^"]*)"|([\w.+-]+))$"""
)
_RELATIVE_KEYWORDS = ("closest", "find", "next", "previous")


# =============================================================================
# Parsing
# =============================================================================

def split_specs(value: str) -> List[str]:
    """Split an ``hx-trigger`` value on commas outside ``[...]`` filters."""
    parts, depth, current = [], 0, []
    for char in value:
        if char == "[":
            depth += 1
        elif char == "]":
            depth = max(depth - 1, 0)
        if char == "," and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    parts.append("".join(current))
    return [part.strip() for part in parts if part.strip()]


def parse_filter(source: str) -> TriggerFilter:
    body = source.strip()[1:-1].strip()
    if not body:
        raise TriggerSpecError("empty trigger filter", source)
    terms = []
    for raw in body.split("&&"):
        raw = raw.strip()
        match = _TRUTHY_RE.match(raw)
        if match:
            op = "falsy" if match.group(1) else "truthy"
            terms.append(FilterTerm(key=match.group(2), op=op))
            continue
        match = _COMPARE_RE.match(raw)
        if match:
            literal = next(group for group in match.groups()[2:] if group is not None)
            terms.append(FilterTerm(key=match.group(1), op=match.group(2), literal=literal))
            continue
        raise TriggerSpecError(f"unsupported filter expression: {raw}", source)
    return TriggerFilter(source=source, terms=tuple(terms))


def _duration(token: str, argument: str) -> float:
    seconds = parse_interval(argument)
    if seconds is None:
        raise TriggerSpecError(f"invalid duration in {token}", token)
    return seconds


def parse_trigger_spec(text: str) -> TriggerSpec:
    """Parse one trigger entry, e.g. ``keyup[key=='Enter'] changed delay:300ms``."""
    tokens = _TOKEN_RE.findall(text)
    if not tokens:
        raise TriggerSpecError("empty trigger", text)

    options = {"source": text.strip()}
    event = tokens.pop(0)
    if event.startswith("["):
        raise TriggerSpecError("trigger filter without an event", text)
    if event == "every":
        if not tokens:
            raise TriggerSpecError("every requires an interval", text)
        options["every"] = _duration("every", tokens.pop(0))
    if tokens and tokens[0].startswith("["):
        options["filter"] = parse_filter(tokens.pop(0))

    while tokens:
        token = tokens.pop(0)
        name, _, argument = token.partition(":")
        if token in ("once", "changed", "consume"):
            options[token] = True
        elif name == "delay":
            options["delay"] = _duration(token, argument)
        elif name == "throttle":
            options["throttle"] = _duration(token, argument)
        elif name == "from":
            if argument in _RELATIVE_KEYWORDS and tokens and ":" not in tokens[0]:
                argument = f"{argument} {tokens.pop(0)}"
            if not argument:
                raise TriggerSpecError("from: requires a selector", text)
            options["from_selector"] = argument
        elif name == "target":
            if not argument:
                raise TriggerSpecError("target: requires a selector", text)
            options["target_selector"] = argument
        else:
            raise TriggerSpecError(f"unknown trigger modifier: {token}", text)

    return TriggerSpec(event=event, **options)


def default_trigger(element: Tag) -> str:
    if element.name == "form":
        return "submit"
    if element.name in ("input", "select", "textarea"):
        return "change"
    return "click"


def parse_triggers(value: Optional[str], element: Tag) -> List[TriggerSpec]:
    """Parse a whole ``hx-trigger`` value.

    A malformed entry becomes an inert spec carrying its error; the other
    entries are unaffected.
    """
    specs = []
    for part in split_specs(value or default_trigger(element)):
        try:
            specs.append(parse_trigger_spec(part))
        except TriggerSpecError as e:
            event = part.split()[0] if part.split() else part
            specs.append(TriggerSpec(event=event, source=part, error=str(e)))
    return specs


# =============================================================================
# Resolution
# =============================================================================

class TriggerResolver:
    """Tracks bound elements and turns runtime events into request intents."""

    def __init__(self, document: Document, fire: Fire):
        self.document = document
        self._fire = fire
        self._bindings: Dict[int, "Binding"] = {}
        self._last_values: Dict[Tuple["Binding", int, int], Tuple[Tag, Optional[str]]] = {}
        self._fired_once: Set[Tuple["Binding", int]] = set()
        self._throttled_until: Dict[Tuple["Binding", int], float] = {}
        self._pending: Dict[Tuple["Binding", int], asyncio.Task] = {}
        self._polls: Dict[Tuple["Binding", int], asyncio.Task] = {}

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def binding_for(self, element: Tag) -> Optional["Binding"]:
        binding = self._bindings.get(id(element))
        if binding is not None and binding.element is element:
            return binding
        return None

    def bindings(self) -> List["Binding"]:
        return list(self._bindings.values())

    def register(self, binding: "Binding"):
        self._bindings[id(binding.element)] = binding
        for index, spec in enumerate(binding.triggers):
            if spec.inert:
                continue
            if spec.from_selector and not spec.listens_globally:
                binding.sources[index] = self.document.resolve(binding.element, spec.from_selector)
            if spec.is_polling:
                self._polls[(binding, index)] = asyncio.create_task(self._poll(binding, index, spec))
            elif spec.event == "load":
                self._evaluate(binding, index, spec, RuntimeEvent("load", binding.element))

    def unregister(self, binding: "Binding"):
        if self._bindings.get(id(binding.element)) is binding:
            del self._bindings[id(binding.element)]
        for store in (self._pending, self._polls):
            for key in [key for key in store if key[0] is binding]:
                store.pop(key).cancel()
        for key in [key for key in self._last_values if key[0] is binding]:
            del self._last_values[key]
        self._fired_once = {key for key in self._fired_once if key[0] is not binding}
        for key in [key for key in self._throttled_until if key[0] is binding]:
            del self._throttled_until[key]

    def prune(self) -> int:
        """Drop bindings whose element left the document."""
        stale = [b for b in self._bindings.values() if not self.document.contains(b.element)]
        for binding in stale:
            self.unregister(binding)
        if stale:
            logger.debug("Pruned %d detached bindings", len(stale))
        return len(stale)

    def pending(self) -> List[asyncio.Task]:
        return list(self._pending.values())

    def close(self):
        for store in (self._pending, self._polls):
            for task in store.values():
                task.cancel()
            store.clear()

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    def handle(self, event: RuntimeEvent) -> int:
        """Evaluate an event against every listening binding.

        Returns the number of intents fired or scheduled.
        """
        path = [event.target] + [
            node for node in event.target.parents if not isinstance(node, BeautifulSoup)
        ]
        fired: List["Binding"] = []

        for node in path:
            binding = self.binding_for(node)
            if binding is None:
                continue
            for index, spec in enumerate(binding.triggers):
                if spec.inert or spec.from_selector or spec.is_polling or spec.event != event.name:
                    continue
                if self._evaluate(binding, index, spec, event):
                    fired.append(binding)
                    if spec.consume:
                        return len(fired)
                    break

        for binding in self.bindings():
            if any(binding is done for done in fired):
                continue
            for index, spec in enumerate(binding.triggers):
                if spec.inert or not spec.from_selector or spec.event != event.name:
                    continue
                if not self._from_matches(binding, index, spec, path):
                    continue
                if self._evaluate(binding, index, spec, event):
                    fired.append(binding)
                    break

        return len(fired)

    def _from_matches(self, binding: "Binding", index: int, spec: TriggerSpec, path: List[Tag]) -> bool:
        if spec.listens_globally:
            return True
        sources = binding.sources.get(index, [])
        return any(node is source for node in path for source in sources)

    def _evaluate(self, binding: "Binding", index: int, spec: TriggerSpec, event: RuntimeEvent) -> bool:
        if spec.target_selector:
            try:
                if not event.target.css.match(spec.target_selector):
                    return False
            except soupsieve.SelectorSyntaxError:
                logger.warning("Invalid target: selector %r", spec.target_selector)
                return False
        if spec.filter is not None and not spec.filter.matches(event.detail):
            return False

        key = (binding, index)
        if spec.once and key in self._fired_once:
            return False
        if spec.changed:
            value = Document.value_of(event.target)
            value_key = (binding, index, id(event.target))
            last = self._last_values.get(value_key)
            if last is not None and last[0] is event.target and last[1] == value:
                return False
            self._last_values[value_key] = (event.target, value)
        if spec.throttle:
            now = time.monotonic()
            if now < self._throttled_until.get(key, 0.0):
                return False
            self._throttled_until[key] = now + spec.throttle
        if spec.once:
            self._fired_once.add(key)

        if spec.delay:
            previous = self._pending.pop(key, None)
            if previous is not None:
                previous.cancel()
            self._pending[key] = asyncio.create_task(self._delayed(binding, index, spec, event))
            return True

        self._fire(binding, spec, event)
        return True

    async def _delayed(self, binding: "Binding", index: int, spec: TriggerSpec, event: RuntimeEvent):
        await asyncio.sleep(spec.delay)
        self._pending.pop((binding, index), None)
        if self.binding_for(binding.element) is binding:
            self._fire(binding, spec, event)

    async def _poll(self, binding: "Binding", index: int, spec: TriggerSpec):
        while True:
            await asyncio.sleep(spec.every)
            if self.binding_for(binding.element) is not binding:
                break
            if not self.document.contains(binding.element):
                break
            event = RuntimeEvent("every", binding.element)
            if spec.filter is None or spec.filter.matches(event.detail):
                self._fire(binding, spec, event)
        self._polls.pop((binding, index), None)
