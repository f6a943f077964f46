"""
Exception types raised inside hxengine components.

The engine converts these into lifecycle events; none of them escape the
event loop.
"""
from __future__ import annotations
from typing import Optional


class HxError(Exception):
    """Base class for engine errors."""


class TriggerSpecError(HxError):
    """A trigger specification could not be parsed."""

    def __init__(self, message: str, spec: Optional[str] = None):
        super().__init__(message)
        self.spec = spec


class BuildError(HxError):
    """A request could not be built; nothing is sent."""


class TargetNotFoundError(BuildError):
    def __init__(self, selector: str):
        super().__init__(f"target not found: {selector}")
        self.selector = selector


class IncludeNotFoundError(BuildError):
    def __init__(self, selector: str):
        super().__init__(f"include selector matched nothing: {selector}")
        self.selector = selector


class SwapError(HxError):
    """One fragment of a response could not be swapped."""

    def __init__(self, message: str, selector: Optional[str] = None):
        super().__init__(message)
        self.selector = selector
