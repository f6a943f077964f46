"""
History & Cache Manager for hxengine

Keeps the session history stack (URL + cursor) and a bounded, ordered cache
of history-root snapshots keyed by URL. Restoring from the cache never
touches the network; a miss is left to the engine, which re-fetches.
"""
from __future__ import annotations
import copy
import logging
import time
from collections import OrderedDict
from typing import List, Optional, Tuple

from bs4 import Tag

from hxengine.config import EngineSettings
from hxengine.dom.document import Document, closest_attr, remove_class
from hxengine.models.events import LifecycleEventKind
from hxengine.models.history import HistoryEntry
from hxengine.services.lifecycle import EventBus
from hxengine.services.swap_engine import SwapEngine

logger = logging.getLogger(__name__)

HISTORY_ROOT_SELECTOR = "[hx-history-elt], [data-hx-history-elt]"
NO_HISTORY_SELECTOR = '[hx-history="false"], [data-hx-history="false"]'


def find_history_root(document: Document) -> Tag:
    return document.select_one(HISTORY_ROOT_SELECTOR) or document.body


def extract_root_html(text: str) -> Tuple[str, Optional[str]]:
    """Inner HTML of the history root of a full-page response, and its title."""
    soup = Document.parse(text)
    title_tag = soup.find("title")
    title = title_tag.get_text() if title_tag is not None else None
    if title_tag is not None:
        title_tag.extract()
    root = soup.select_one(HISTORY_ROOT_SELECTOR) or soup.body or soup
    return root.decode_contents(), title


class HistoryManager:
    """Session history plus the snapshot cache."""

    def __init__(self, document: Document, settings: EngineSettings, bus: EventBus, swapper: SwapEngine):
        self.document = document
        self.settings = settings
        self.bus = bus
        self.swapper = swapper
        self.cache: "OrderedDict[str, HistoryEntry]" = OrderedDict()
        self.stack: List[str] = [document.url]
        self.cursor = 0

    @property
    def root(self) -> Tag:
        return find_history_root(self.document)

    @property
    def current_url(self) -> str:
        return self.stack[self.cursor]

    @property
    def capacity(self) -> int:
        return max(self.settings.history_cache_size, 0)

    # ------------------------------------------------------------------
    # Session history
    # ------------------------------------------------------------------

    def push(self, url: str):
        del self.stack[self.cursor + 1:]
        self.stack.append(url)
        self.cursor += 1
        self.document.url = url
        logger.debug("History push %s (depth %d)", url, len(self.stack))
        self.bus.emit(LifecycleEventKind.PUSH_URL, element=self.root, detail={"url": url})

    def replace(self, url: str):
        self.stack[self.cursor] = url
        self.document.url = url
        logger.debug("History replace %s", url)
        self.bus.emit(LifecycleEventKind.REPLACE_URL, element=self.root, detail={"url": url})

    def can_go(self, delta: int) -> bool:
        return 0 <= self.cursor + delta < len(self.stack)

    def go(self, delta: int) -> Optional[str]:
        """Move the cursor; returns the new current URL, or None at either end."""
        if not self.can_go(delta):
            return None
        self.cursor += delta
        url = self.stack[self.cursor]
        self.document.url = url
        return url

    # ------------------------------------------------------------------
    # Snapshot cache
    # ------------------------------------------------------------------

    def can_snapshot(self, element: Optional[Tag] = None) -> bool:
        if not self.settings.history_enabled or self.capacity == 0:
            return False
        if element is not None and (closest_attr(element, "hx-history") or "").strip() == "false":
            return False
        root = self.root
        if (root.get("hx-history") or root.get("data-hx-history")) == "false":
            return False
        return not root.select(NO_HISTORY_SELECTOR)

    def snapshot_html(self) -> str:
        """The history root's inner HTML without transient engine classes."""
        clone = copy.copy(self.root)
        transient = (self.settings.request_class, self.settings.settling_class, self.settings.added_class)
        for element in [clone] + clone.find_all(True):
            for name in transient:
                remove_class(element, name)
        return clone.decode_contents()

    def save(self, url: Optional[str] = None, element: Optional[Tag] = None) -> Optional[HistoryEntry]:
        """Capture the history root under ``url`` (default: current URL)."""
        url = url or self.current_url
        if not self.can_snapshot(element):
            logger.debug("History snapshot of %s skipped", url)
            return None
        event = self.bus.emit(
            LifecycleEventKind.BEFORE_HISTORY_SAVE, element=self.root, detail={"url": url}
        )
        if event.vetoed:
            return None

        entry = HistoryEntry(
            url=url,
            content=self.snapshot_html(),
            title=self.document.title,
            timestamp=time.time(),
        )
        self.cache.pop(url, None)
        self.cache[url] = entry
        while len(self.cache) > self.capacity:
            evicted, _ = self.cache.popitem(last=False)
            logger.debug("History cache evicted %s", evicted)
        return entry

    def lookup(self, url: str) -> Optional[HistoryEntry]:
        return self.cache.get(url)

    def restore(self, entry: HistoryEntry):
        """Put a cached snapshot back into the history root. No request is made."""
        root = self.root
        self.swapper.replace_contents(root, entry.content, entry.title)
        logger.debug("History restored %s from cache", entry.url)
        self.bus.emit(
            LifecycleEventKind.HISTORY_RESTORE,
            element=root,
            detail={"url": entry.url, "cached": True},
        )
