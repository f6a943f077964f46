"""hxengine: a hypermedia exchange engine driving an in-memory HTML document."""
from hxengine.config import EngineSettings
from hxengine.dom import Document, FileField
from hxengine.services.engine import HypermediaEngine

__all__ = ["Document", "EngineSettings", "FileField", "HypermediaEngine"]
