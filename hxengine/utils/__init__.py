"""Utility helpers."""
from hxengine.utils.timing import parse_interval

__all__ = ["parse_interval"]
