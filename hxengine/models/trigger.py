"""
Trigger models for hxengine
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Tuple

from bs4 import Tag

_MISSING = object()


@dataclass(frozen=True)
class FilterTerm:
    """One ``&&`` operand of a trigger filter."""
    key: str
    op: str  # "truthy", "falsy", "==", "!="
    literal: Optional[str] = None

    def evaluate(self, detail: Mapping[str, Any]) -> bool:
        value: Any = detail
        for part in self.key.split("."):
            if isinstance(value, Mapping) and part in value:
                value = value[part]
            else:
                value = _MISSING
                break
        if self.op == "truthy":
            return value is not _MISSING and bool(value)
        if self.op == "falsy":
            return value is _MISSING or not value
        text = "" if value is _MISSING or value is None else _as_text(value)
        if self.op == "==":
            return text == self.literal
        return text != self.literal


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass(frozen=True)
class TriggerFilter:
    source: str
    terms: Tuple[FilterTerm, ...]

    def matches(self, detail: Mapping[str, Any]) -> bool:
        return all(term.evaluate(detail) for term in self.terms)


@dataclass(frozen=True)
class TriggerSpec:
    """One parsed entry of an ``hx-trigger`` directive."""
    event: str
    filter: Optional[TriggerFilter] = None
    once: bool = False
    changed: bool = False
    consume: bool = False
    delay: Optional[float] = None
    throttle: Optional[float] = None
    from_selector: Optional[str] = None
    target_selector: Optional[str] = None
    every: Optional[float] = None
    source: str = ""
    error: Optional[str] = None

    @property
    def inert(self) -> bool:
        return self.error is not None

    @property
    def is_polling(self) -> bool:
        return self.every is not None

    @property
    def listens_globally(self) -> bool:
        return self.from_selector in ("document", "window")


@dataclass
class RuntimeEvent:
    """An event raised on an element (click, change, keyup...)."""
    name: str
    target: Tag
    detail: dict = field(default_factory=dict)
