"""
Duration parsing for directive values such as ``delay:300ms``.
"""
from __future__ import annotations
import re
from typing import Optional

_INTERVAL_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m)?\s*$")


def parse_interval(value: str) -> Optional[float]:
    """Parse ``300ms``, ``1s``, ``2m`` or a bare millisecond count into seconds.

    Returns None when the value is not a duration.
    """
    match = _INTERVAL_RE.match(value or "")
    if not match:
        return None
    amount = float(match.group(1))
    unit = match.group(2) or "ms"
    if unit == "ms":
        return amount / 1000.0
    if unit == "s":
        return amount
    return amount * 60.0
