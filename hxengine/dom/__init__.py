"""Document model."""
from hxengine.dom.document import Document, FileField, add_class, remove_class

__all__ = ["Document", "FileField", "add_class", "remove_class"]
