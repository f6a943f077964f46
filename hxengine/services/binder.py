"""
Element binder for hxengine

Reads an element's ``hx-*`` directives once, when the element is processed,
into a typed Binding. The hot path (event to request) never re-parses
attribute strings.
"""
from __future__ import annotations
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup, Tag

from hxengine.config import EngineSettings
from hxengine.dom.document import attr, closest_attr, closest_attr_with_owner
from hxengine.models.request import HttpMethod, SyncStrategy
from hxengine.models.swap import SwapSpec
from hxengine.models.trigger import TriggerSpec
from hxengine.services.trigger_resolver import parse_triggers

logger = logging.getLogger(__name__)

VERB_ATTRIBUTES = {
    "hx-get": HttpMethod.GET,
    "hx-post": HttpMethod.POST,
    "hx-put": HttpMethod.PUT,
    "hx-patch": HttpMethod.PATCH,
    "hx-delete": HttpMethod.DELETE,
}


@dataclass(eq=False)
class Binding:
    """Parsed directives of one request-issuing element."""
    element: Tag
    method: HttpMethod
    url: str
    triggers: List[TriggerSpec]
    target: Optional[str] = None
    swap: SwapSpec = field(default_factory=SwapSpec)
    select: Optional[str] = None
    sync_selector: Optional[str] = None
    sync_strategy: SyncStrategy = SyncStrategy.ABORT
    push_url: Optional[str] = None
    replace_url: Optional[str] = None
    params: Optional[str] = None
    include: List[str] = field(default_factory=list)
    vals: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    encoding: Optional[str] = None
    history: bool = True
    indicator: Optional[str] = None
    timeout: Optional[float] = None
    errors: List[str] = field(default_factory=list)
    sources: Dict[int, List[Tag]] = field(default_factory=dict)
    owners: Dict[str, Tag] = field(default_factory=dict)

    def anchor(self, name: str, expression: str) -> Tag:
        """The element an extended selector in directive ``name`` starts from.

        An inherited ``this`` means the ancestor that declares the directive;
        every other expression starts from the bound element.
        """
        if expression.strip() == "this":
            return self.owners.get(name, self.element)
        return self.element


def is_bindable(element: Tag) -> bool:
    return any(attr(element, name) is not None for name in VERB_ATTRIBUTES)


def _ancestry(element: Tag) -> List[Tag]:
    """The element and its ancestors, outermost first."""
    chain = [element] + [node for node in element.parents if not isinstance(node, BeautifulSoup)]
    return list(reversed(chain))


def _inherited(element: Tag, name: str, owners: Dict[str, Tag]) -> Optional[str]:
    value, owner = closest_attr_with_owner(element, name)
    if owner is not None:
        owners[name] = owner
    return value


def _merged_json(element: Tag, name: str, errors: List[str]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {}
    for node in _ancestry(element):
        raw = attr(node, name)
        if raw is None:
            continue
        raw = raw.strip()
        if raw.startswith(("js:", "javascript:")):
            errors.append(f"{name}: script values are not supported")
            continue
        if not raw.startswith("{"):
            raw = "{" + raw + "}"
        try:
            value = json.loads(raw)
        except json.JSONDecodeError as e:
            errors.append(f"{name}: invalid JSON ({e.msg})")
            continue
        merged.update(value)
    return merged


class ElementBinder:
    """Builds Bindings from markup."""

    def __init__(self, settings: EngineSettings):
        self.settings = settings

    def bind(self, element: Tag) -> Optional[Binding]:
        method, url = None, None
        for name, verb in VERB_ATTRIBUTES.items():
            value = attr(element, name)
            if value is not None:
                method, url = verb, value
                break
        if method is None:
            return None

        errors: List[str] = []
        owners: Dict[str, Tag] = {}
        binding = Binding(
            element=element,
            method=method,
            url=url,
            triggers=parse_triggers(attr(element, "hx-trigger"), element),
            target=_inherited(element, "hx-target", owners),
            swap=self._swap(element, errors),
            select=closest_attr(element, "hx-select"),
            push_url=closest_attr(element, "hx-push-url"),
            replace_url=closest_attr(element, "hx-replace-url"),
            params=closest_attr(element, "hx-params"),
            include=self._include(element, owners),
            vals=_merged_json(element, "hx-vals", errors),
            headers={k: str(v) for k, v in _merged_json(element, "hx-headers", errors).items()},
            encoding=closest_attr(element, "hx-encoding"),
            history=(closest_attr(element, "hx-history") or "true").strip() != "false",
            indicator=_inherited(element, "hx-indicator", owners),
            timeout=self._timeout(element, errors),
            errors=errors,
            owners=owners,
        )
        self._sync(element, binding, owners)
        if errors:
            logger.warning("Binding errors on <%s>: %s", element.name, "; ".join(errors))
        return binding

    def _swap(self, element: Tag, errors: List[str]) -> SwapSpec:
        value = closest_attr(element, "hx-swap")
        try:
            return SwapSpec.parse(
                value,
                default_strategy=self.settings.default_swap_style,
                default_swap_delay=self.settings.default_swap_delay,
                default_settle_delay=self.settings.default_settle_delay,
            )
        except ValueError as e:
            errors.append(f"hx-swap: {e}")
            return SwapSpec.parse(
                None,
                default_strategy=self.settings.default_swap_style,
                default_swap_delay=self.settings.default_swap_delay,
                default_settle_delay=self.settings.default_settle_delay,
            )

    @staticmethod
    def _include(element: Tag, owners: Dict[str, Tag]) -> List[str]:
        value = _inherited(element, "hx-include", owners)
        if not value:
            return []
        return [part.strip() for part in value.split(",") if part.strip()]

    @staticmethod
    def _timeout(element: Tag, errors: List[str]) -> Optional[float]:
        options = _merged_json(element, "hx-request", errors)
        timeout = options.get("timeout")
        if timeout is None:
            return None
        try:
            return float(timeout) / 1000.0
        except (TypeError, ValueError):
            errors.append(f"hx-request: invalid timeout {timeout!r}")
            return None

    def _sync(self, element: Tag, binding: Binding, owners: Dict[str, Tag]):
        default = SyncStrategy.lookup(self.settings.default_sync_strategy) or SyncStrategy.ABORT
        binding.sync_strategy = default
        value = _inherited(element, "hx-sync", owners)
        if not value:
            return
        value = value.strip()
        strategy = SyncStrategy.lookup(value)
        if strategy is not None:
            binding.sync_strategy = strategy
            return
        selector, _, strategy_name = value.rpartition(":")
        strategy = SyncStrategy.lookup(strategy_name) if selector else None
        if strategy is None:
            # A bare selector keeps the default strategy.
            binding.sync_selector = value
            return
        binding.sync_selector = selector.strip()
        binding.sync_strategy = strategy
