"""
Document model for hxengine

A live HTML tree backed by BeautifulSoup. Elements are ``bs4.Tag`` objects and
are always compared by identity (``is``); ``Tag.__eq__`` compares markup,
which is never what the engine wants.
"""
from __future__ import annotations
import logging
from typing import Dict, List, NamedTuple, Optional, Tuple

import soupsieve
from bs4 import BeautifulSoup, Tag

logger = logging.getLogger(__name__)

DEFAULT_HTML = "<html><head><title></title></head><body></body></html>"

FIELD_TAGS = ["input", "select", "textarea"]
BUTTON_INPUT_TYPES = {"submit", "button", "reset", "image"}


class FileField(NamedTuple):
    """A file selected into an ``<input type="file">``."""
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


def attr(element: Tag, name: str) -> Optional[str]:
    """Read a directive written either ``hx-foo`` or ``data-hx-foo``."""
    value = element.get(name)
    if value is None:
        value = element.get(f"data-{name}")
    if isinstance(value, list):
        value = " ".join(value)
    return value


def has_attr(element: Tag, name: str) -> bool:
    return element.has_attr(name) or element.has_attr(f"data-{name}")


def closest_attr(element: Tag, name: str) -> Optional[str]:
    """Directive value from the element or its nearest ancestor that sets it."""
    return closest_attr_with_owner(element, name)[0]


def closest_attr_with_owner(element: Tag, name: str) -> Tuple[Optional[str], Optional[Tag]]:
    """Like ``closest_attr``, also returning the element that declares the value."""
    node = element
    while isinstance(node, Tag):
        value = attr(node, name)
        if value is not None:
            return value, node
        node = node.parent
    return None, None


def option_value(option: Tag) -> str:
    value = option.get("value")
    return value if value is not None else option.get_text()


class Document:
    """An HTML document plus the live state a browser would keep for it."""

    def __init__(self, html: str = DEFAULT_HTML, url: str = "http://localhost/"):
        self.soup = self.parse(html)
        self.url = url
        self._files: Dict[int, Tuple[Tag, List[FileField]]] = {}

    @staticmethod
    def parse(html: str) -> BeautifulSoup:
        return BeautifulSoup(html, "html.parser")

    @property
    def body(self) -> Tag:
        return self.soup.body or self.soup

    @property
    def title(self) -> str:
        title = self.soup.title
        return title.get_text() if title else ""

    @title.setter
    def title(self, value: str):
        title = self.soup.title
        if title is None:
            title = self.soup.new_tag("title")
            (self.soup.head or self.soup).insert(0, title)
        title.string = value

    def html(self) -> str:
        return str(self.soup)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select(self, selector: str, root: Optional[Tag] = None) -> List[Tag]:
        try:
            return (root or self.soup).select(selector)
        except soupsieve.SelectorSyntaxError:
            logger.warning("Invalid CSS selector: %r", selector)
            return []

    def select_one(self, selector: str, root: Optional[Tag] = None) -> Optional[Tag]:
        found = self.select(selector, root)
        return found[0] if found else None

    def get_by_id(self, element_id: str) -> Optional[Tag]:
        return self.soup.find(id=element_id)

    def contains(self, element: Optional[Tag]) -> bool:
        """True when the element is attached to this document's tree."""
        if element is None:
            return False
        if element is self.soup:
            return True
        return any(parent is self.soup for parent in element.parents)

    def resolve(self, element: Tag, expression: str) -> List[Tag]:
        """Resolve an extended selector relative to ``element``.

        Supports ``this``, ``closest <sel>``, ``find <sel>``, ``next [<sel>]``,
        ``previous [<sel>]``, ``document``/``body`` and plain CSS.
        """
        expression = expression.strip()
        if expression == "this":
            return [element]
        if expression in ("document", "body"):
            return [self.body]
        keyword, _, rest = expression.partition(" ")
        rest = rest.strip()
        try:
            if keyword == "closest" and rest:
                found = element.css.closest(rest)
            elif keyword == "find" and rest:
                found = element.css.select_one(rest)
            elif keyword == "next":
                if rest:
                    found = element.find_next(lambda tag: tag.css.match(rest))
                else:
                    found = element.find_next_sibling()
            elif keyword == "previous":
                if rest:
                    found = element.find_previous(lambda tag: tag.css.match(rest))
                else:
                    found = element.find_previous_sibling()
            else:
                return self.select(expression)
        except soupsieve.SelectorSyntaxError:
            logger.warning("Invalid CSS selector: %r", expression)
            return []
        return [found] if found is not None else []

    def resolve_one(self, element: Tag, expression: str) -> Optional[Tag]:
        found = self.resolve(element, expression)
        return found[0] if found else None

    def selector_for(self, element: Tag) -> str:
        """A CSS selector identifying ``element``: its id, or a tag path."""
        parts = []
        node = element
        while isinstance(node, Tag) and node is not self.soup:
            node_id = node.get("id")
            if node_id:
                parts.append(f"#{node_id}")
                break
            if node.name in ("html", "body"):
                parts.append(node.name)
                break
            index = 1 + len(node.find_previous_siblings(node.name))
            parts.append(f"{node.name}:nth-of-type({index})")
            node = node.parent
        return " > ".join(reversed(parts))

    # ------------------------------------------------------------------
    # Values
    # ------------------------------------------------------------------

    @staticmethod
    def value_of(element: Tag) -> Optional[str]:
        """The element's current value, like ``element.value`` in a browser."""
        if element.name == "textarea":
            return element.get_text()
        if element.name == "select":
            options = element.find_all("option")
            selected = [option for option in options if option.has_attr("selected")]
            if not selected and options:
                selected = options[:1]
            return option_value(selected[0]) if selected else None
        if element.name in ("input", "button"):
            kind = (element.get("type") or "text").lower()
            default = "on" if kind in ("checkbox", "radio") else ""
            return element.get("value", default)
        return None

    def set_value(self, element: Tag, value: str):
        """Simulate the user typing or choosing a value."""
        if element.name == "textarea":
            element.string = value
        elif element.name == "select":
            for option in element.find_all("option"):
                if option_value(option) == value:
                    option["selected"] = ""
                elif option.has_attr("selected"):
                    del option["selected"]
        else:
            element["value"] = value

    def set_checked(self, element: Tag, checked: bool = True):
        if checked:
            element["checked"] = ""
        elif element.has_attr("checked"):
            del element["checked"]

    def attach_files(self, element: Tag, files: List[FileField]):
        self._files[id(element)] = (element, list(files))

    def files_of(self, element: Tag) -> List[FileField]:
        entry = self._files.get(id(element))
        if entry and entry[0] is element:
            return entry[1]
        return []

    @staticmethod
    def is_file_input(element: Tag) -> bool:
        return element.name == "input" and (element.get("type") or "").lower() == "file"

    @staticmethod
    def fields_in(container: Tag) -> List[Tag]:
        """Form fields of ``container``, the container itself if it is one."""
        if container.name in FIELD_TAGS:
            return [container]
        return container.find_all(FIELD_TAGS)

    def field_values(self, element: Tag) -> List[Tuple[str, str]]:
        """Name/value pairs a form submission would send for one field."""
        name = element.get("name")
        if not name or element.has_attr("disabled"):
            return []
        if element.name == "input":
            kind = (element.get("type") or "text").lower()
            if kind in ("checkbox", "radio"):
                if element.has_attr("checked"):
                    return [(name, element.get("value", "on"))]
                return []
            if kind in BUTTON_INPUT_TYPES or kind == "file":
                return []
            return [(name, element.get("value", ""))]
        if element.name == "select":
            options = element.find_all("option")
            selected = [option for option in options if option.has_attr("selected")]
            if not selected and options and not element.has_attr("multiple"):
                selected = options[:1]
            return [(name, option_value(option)) for option in selected]
        if element.name == "textarea":
            return [(name, element.get_text())]
        return []


def add_class(element: Tag, name: str):
    classes = list(element.get("class") or [])
    if name not in classes:
        classes.append(name)
        element["class"] = classes


def remove_class(element: Tag, name: str):
    classes = [value for value in (element.get("class") or []) if value != name]
    if classes:
        element["class"] = classes
    elif element.has_attr("class"):
        del element["class"]
