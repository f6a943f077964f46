"""
Swap models for hxengine
"""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from bs4 import Tag
from pydantic import BaseModel, Field

from hxengine.utils.timing import parse_interval


class SwapStrategy(str, Enum):
    INNER_HTML = "innerHTML"
    OUTER_HTML = "outerHTML"
    BEFORE_BEGIN = "beforebegin"
    AFTER_BEGIN = "afterbegin"
    BEFORE_END = "beforeend"
    AFTER_END = "afterend"
    DELETE = "delete"
    NONE = "none"

    @classmethod
    def lookup(cls, name: str) -> Optional["SwapStrategy"]:
        lowered = name.strip().lower()
        for member in cls:
            if member.value.lower() == lowered:
                return member
        return None


# Scrolling and focus modifiers need a renderer; they are accepted and ignored.
_VISUAL_MODIFIERS = {"scroll", "show", "focus-scroll", "transition"}


class SwapSpec(BaseModel):
    """Parsed ``hx-swap`` value."""

    strategy: SwapStrategy = Field(SwapStrategy.INNER_HTML, description="How content is placed")
    swap_delay: float = Field(0.0, description="Seconds to wait before swapping")
    settle_delay: float = Field(0.02, description="Seconds between swap and settle")
    ignore_title: bool = Field(False, description="Do not update the title from the response")

    class Config:
        frozen = True

    @classmethod
    def parse(
        cls,
        value: Optional[str],
        default_strategy: str = "innerHTML",
        default_swap_delay: float = 0.0,
        default_settle_delay: float = 0.02,
    ) -> "SwapSpec":
        """Parse ``"outerHTML swap:100ms settle:20ms ignoreTitle:true"``.

        Raises ValueError on an unknown strategy or modifier.
        """
        strategy = SwapStrategy.lookup(default_strategy) or SwapStrategy.INNER_HTML
        swap_delay = default_swap_delay
        settle_delay = default_settle_delay
        ignore_title = False

        tokens = (value or "").split()
        if tokens and ":" not in tokens[0]:
            found = SwapStrategy.lookup(tokens[0])
            if found is None:
                raise ValueError(f"unknown swap strategy: {tokens[0]}")
            strategy = found
            tokens = tokens[1:]

        for token in tokens:
            name, _, argument = token.partition(":")
            if name == "swap":
                swap_delay = _interval(token, argument)
            elif name == "settle":
                settle_delay = _interval(token, argument)
            elif name == "ignoreTitle":
                ignore_title = argument == "true"
            elif name in _VISUAL_MODIFIERS:
                continue
            else:
                raise ValueError(f"unknown swap modifier: {token}")

        return cls(
            strategy=strategy,
            swap_delay=swap_delay,
            settle_delay=settle_delay,
            ignore_title=ignore_title,
        )


def _interval(token: str, argument: str) -> float:
    seconds = parse_interval(argument)
    if seconds is None:
        raise ValueError(f"invalid duration in {token}")
    return seconds


class OobFragment(BaseModel):
    """An out-of-band element extracted from a response."""

    element: Tag = Field(..., description="The fragment element as parsed from the response")
    strategy: SwapStrategy = Field(SwapStrategy.OUTER_HTML, description="Swap strategy")
    selector: str = Field(..., description="CSS selector of the element to swap into")

    class Config:
        arbitrary_types_allowed = True
        frozen = True


class SwapDirective(BaseModel):
    """Where and how one response is swapped. Derived fresh per response."""

    target: Optional[Tag] = Field(None, description="Primary swap target")
    swap: SwapSpec = Field(default_factory=SwapSpec, description="Primary swap specification")
    select: Optional[str] = Field(None, description="Selector extracting part of the response")
    oob: Tuple[OobFragment, ...] = Field((), description="Out-of-band fragments found in the response")

    class Config:
        arbitrary_types_allowed = True
        frozen = True


@dataclass
class SwapResult:
    """What a swap did to the document."""
    target: Optional[Tag]
    strategy: SwapStrategy
    inserted: List[Tag] = field(default_factory=list)
    oob_applied: List[str] = field(default_factory=list)
    skipped: List[Tuple[str, str]] = field(default_factory=list)
    settling: List[Tag] = field(default_factory=list)
    title: Optional[str] = None

