"""
Swap Engine for hxengine

Applies response content to the document: out-of-band fragments first, then
``hx-select`` and the primary swap, with preserved elements carried across
and settle classes applied until ``settle``. Every method here is
synchronous; the engine owns the swap and settle delays.
"""
from __future__ import annotations
import copy
import logging
from typing import Dict, List, Optional, Tuple

from bs4 import Tag
from bs4.element import PageElement

from hxengine.config import EngineSettings
from hxengine.dom.document import Document, add_class, attr, remove_class
from hxengine.errors import SwapError
from hxengine.models.events import LifecycleEventKind
from hxengine.models.swap import OobFragment, SwapDirective, SwapResult, SwapStrategy
from hxengine.services.lifecycle import EventBus

logger = logging.getLogger(__name__)

OOB_ATTRIBUTES = ("hx-swap-oob", "data-hx-swap-oob")
PRESERVE_SELECTOR = "[hx-preserve], [data-hx-preserve]"


def parse_content(content: str) -> Tuple[Tag, Optional[str]]:
    """Parse response text into a container of nodes plus its title.

    A full document contributes its ``<body>`` children; a ``<title>`` found
    anywhere is taken out of the content and returned separately.
    """
    soup = Document.parse(content)
    title_tag = soup.find("title")
    title = title_tag.get_text() if title_tag is not None else None
    if title_tag is not None:
        title_tag.extract()
    container = soup.body if soup.body is not None else soup
    return container, title


class SwapEngine:
    """Mutates one Document with response content."""

    def __init__(self, document: Document, settings: EngineSettings, bus: EventBus):
        self.document = document
        self.settings = settings
        self.bus = bus
        self._indicators: Dict[int, Tuple[Tag, int]] = {}

    # ------------------------------------------------------------------
    # Request indicators
    # ------------------------------------------------------------------

    def begin_request(self, elements: List[Tag]):
        for element in elements:
            _, count = self._indicators.get(id(element), (element, 0))
            self._indicators[id(element)] = (element, count + 1)
            add_class(element, self.settings.request_class)

    def end_request(self, elements: List[Tag]):
        for element in elements:
            entry = self._indicators.get(id(element))
            if entry is None or entry[0] is not element:
                continue
            count = entry[1] - 1
            if count > 0:
                self._indicators[id(element)] = (element, count)
            else:
                del self._indicators[id(element)]
                remove_class(element, self.settings.request_class)

    # ------------------------------------------------------------------
    # Swapping
    # ------------------------------------------------------------------

    def extract_oob(self, container: Tag) -> List[OobFragment]:
        """Remove top-level out-of-band elements from parsed content."""
        fragments = []
        for child in list(container.find_all(recursive=False)):
            value = attr(child, "hx-swap-oob")
            if value is None:
                continue
            child.extract()
            for name in OOB_ATTRIBUTES:
                if child.has_attr(name):
                    del child[name]
            value = value.strip()
            if value in ("", "true"):
                strategy, selector = SwapStrategy.OUTER_HTML, None
            else:
                name, _, selector = value.partition(":")
                strategy = SwapStrategy.lookup(name)
                if strategy is None:
                    self._report(None, value, f"unknown out-of-band strategy: {name}")
                    continue
            if not selector:
                element_id = child.get("id")
                if not element_id:
                    self._report(None, value, "out-of-band fragment has neither id nor selector")
                    continue
                selector = f"#{element_id}"
            fragments.append(OobFragment(element=child, strategy=strategy, selector=selector.strip()))
        return fragments

    def prepare(self, content: str, directive: SwapDirective) -> Tuple[SwapDirective, Tag, Optional[str]]:
        """Parse ``content`` and fill ``directive.oob`` from it.

        Returns the completed directive, the remaining primary content and
        the response title.
        """
        container, title = parse_content(content)
        oob = tuple(self.extract_oob(container))
        return directive.model_copy(update={"oob": oob}), container, title

    def apply(self, content: str, directive: SwapDirective) -> SwapResult:
        """Swap ``content`` into the document as ``directive`` says."""
        directive, container, title = self.prepare(content, directive)
        strategy = directive.swap.strategy
        result = SwapResult(target=directive.target, strategy=strategy)

        for fragment in directive.oob:
            self._apply_oob(fragment, result)

        if strategy != SwapStrategy.NONE:
            nodes = self._primary_nodes(container, directive.select, result)
            if nodes is not None:
                target = directive.target
                if not self.document.contains(target):
                    self._report(result, self._describe(target), "swap target is no longer in the document")
                else:
                    try:
                        self._swap_into(target, strategy, nodes, result)
                    except SwapError as e:
                        self._report(result, self._describe(target), str(e))

            if title is not None and not directive.swap.ignore_title:
                self.update_title(title, result)
        return result

    def update_title(self, title: str, result: Optional[SwapResult] = None):
        self.document.title = title
        if result is not None:
            result.title = title

    def settle(self, result: SwapResult):
        for element in result.settling:
            remove_class(element, self.settings.settling_class)
        for element in result.inserted:
            remove_class(element, self.settings.added_class)

    def replace_contents(self, root: Tag, content: str, title: Optional[str] = None):
        """Replace the inner HTML of ``root`` outright (history restoration)."""
        container = Document.parse(content)
        nodes = list(container.contents)
        self._mutate(root, SwapStrategy.INNER_HTML, nodes)
        if title is not None:
            self.update_title(title)

    # ------------------------------------------------------------------

    def _primary_nodes(self, container: Tag, select: Optional[str], result: SwapResult) -> Optional[List[PageElement]]:
        if not select:
            return list(container.contents)
        selected = self.document.select(select, container)
        if not selected:
            self._report(result, select, "hx-select matched nothing in the response")
            return None
        # Nested matches travel with their outermost selected ancestor.
        outermost = [
            node for node in selected
            if not any(parent is other for other in selected for parent in node.parents)
        ]
        return outermost

    def _apply_oob(self, fragment: OobFragment, result: SwapResult):
        targets = self.document.select(fragment.selector)
        if not targets:
            self._report(result, fragment.selector, "out-of-band target not found")
            return
        sources = [fragment.element] + [copy.copy(fragment.element) for _ in targets[1:]]
        for target, source in zip(targets, sources):
            if fragment.strategy == SwapStrategy.OUTER_HTML:
                nodes = [source]
            else:
                nodes = list(source.contents)
            try:
                self._swap_into(target, fragment.strategy, nodes, result)
            except SwapError as e:
                self._report(result, fragment.selector, str(e))
                return
        result.oob_applied.append(fragment.selector)
        logger.debug("Applied out-of-band swap %s into %s", fragment.strategy.value, fragment.selector)

    def _swap_into(self, target: Tag, strategy: SwapStrategy, nodes: List[PageElement], result: SwapResult):
        kept = [live for live in self.document.select(PRESERVE_SELECTOR) if live.get("id")]
        if strategy == SwapStrategy.OUTER_HTML:
            inserted = self._replace_outer(target, nodes, kept)
        else:
            nodes = self._preserve(nodes, kept, target, strategy)
            inserted = self._mutate(target, strategy, nodes)
        for element in inserted:
            add_class(element, self.settings.added_class)
            result.inserted.append(element)
        if strategy not in (SwapStrategy.OUTER_HTML, SwapStrategy.DELETE, SwapStrategy.NONE):
            add_class(target, self.settings.settling_class)
            result.settling.append(target)

    def _replace_outer(self, target: Tag, nodes: List[PageElement], kept: List[Tag]) -> List[Tag]:
        """outerHTML that leaves a preserved target in the document.

        The new nodes go in ahead of the target first, so a preserved target
        can move into its placeholder while it still has a position.
        """
        if target.parent is None:
            raise SwapError("cannot replace an element without a parent", self._describe(target))
        self._mutate(target, SwapStrategy.BEFORE_BEGIN, nodes)
        nodes = self._preserve(nodes, kept, target, SwapStrategy.OUTER_HTML)
        if not any(node is target or _is_ancestor(node, target) for node in nodes):
            target.extract()
        return [node for node in nodes if isinstance(node, Tag)]

    def _preserve(self, nodes: List[PageElement], kept: List[Tag], target: Tag, strategy: SwapStrategy) -> List[PageElement]:
        """Put live ``hx-preserve`` elements in place of their placeholders.

        A live element that holds the target (or is the target of anything
        but outerHTML) stays where it is and its placeholder is dropped.
        """
        nodes = list(nodes)
        for live in kept:
            live_id = live.get("id")
            stays = _is_ancestor(live, target) or (live is target and strategy != SwapStrategy.OUTER_HTML)
            for index, node in enumerate(nodes):
                if not isinstance(node, Tag) or node is live:
                    continue
                if node.get("id") == live_id:
                    if stays:
                        node.extract()
                        nodes[index] = None
                    elif node.parent is not None:
                        node.replace_with(live)
                        nodes[index] = live
                    else:
                        live.extract()
                        nodes[index] = live
                    break
                placeholder = node.find(id=live_id)
                if placeholder is not None:
                    if stays:
                        placeholder.decompose()
                    else:
                        live.extract()
                        placeholder.replace_with(live)
                    break
        return [node for node in nodes if node is not None]

    def _mutate(self, target: Tag, strategy: SwapStrategy, nodes: List[PageElement]) -> List[Tag]:
        for node in nodes:
            node.extract()

        if strategy == SwapStrategy.INNER_HTML:
            target.clear()
            for node in nodes:
                target.append(node)
        elif strategy == SwapStrategy.OUTER_HTML:
            if target.parent is None:
                raise SwapError("cannot replace an element without a parent", self._describe(target))
            if nodes:
                target.replace_with(*nodes)
            else:
                target.extract()
        elif strategy == SwapStrategy.BEFORE_BEGIN:
            for node in nodes:
                target.insert_before(node)
        elif strategy == SwapStrategy.AFTER_BEGIN:
            for index, node in enumerate(nodes):
                target.insert(index, node)
        elif strategy == SwapStrategy.BEFORE_END:
            for node in nodes:
                target.append(node)
        elif strategy == SwapStrategy.AFTER_END:
            anchor = target
            for node in nodes:
                anchor.insert_after(node)
                anchor = node
        elif strategy == SwapStrategy.DELETE:
            target.extract()
            return []
        else:
            return []
        return [node for node in nodes if isinstance(node, Tag)]

    def _describe(self, target: Optional[Tag]) -> str:
        if target is None:
            return ""
        return self.document.selector_for(target)

    def _report(self, result: Optional[SwapResult], selector: str, reason: str):
        logger.warning("Swap skipped (%s): %s", selector, reason)
        if result is not None:
            result.skipped.append((selector, reason))
        self.bus.emit(
            LifecycleEventKind.SWAP_ERROR,
            error=SwapError(reason, selector),
            detail={"selector": selector, "reason": reason},
        )


def _is_ancestor(element: Tag, node: PageElement) -> bool:
    return any(parent is element for parent in node.parents)
