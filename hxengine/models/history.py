"""
History models for hxengine
"""
from __future__ import annotations
from dataclasses import dataclass


@dataclass(frozen=True)
class HistoryEntry:
    """Snapshot of the history root for one URL. Never mutated."""
    url: str
    content: str
    title: str
    timestamp: float
