"""
Page Service for the hxengine demo server

Loads HTML page shells from the demo pages folder and fills them in.
"""
from pathlib import Path
from string import Template
from typing import Optional
import logging

import aiofiles

from hxengine.services.catalog import DEFAULT_DEMO_PATH

logger = logging.getLogger(__name__)

FALLBACK_LAYOUT = """<!DOCTYPE html>
<html>
<head><title>$title</title></head>
<body><main id="main" hx-history-elt>$content</main></body>
</html>
"""


class PageService:
    """
    Renders demo pages.

    Every page is a content template (``pages/<name>.html``) placed into
    ``pages/layout.html``. Templates use ``string.Template`` placeholders;
    values are inserted as given, so callers escape user input.
    """

    def __init__(self, demo_path: Path = None):
        self.pages_path = (demo_path or DEFAULT_DEMO_PATH) / "pages"
        self._cache: dict[str, str] = {}

    async def render_page(self, page_name: str, title: str, **values) -> str:
        """A full HTML document: layout plus the named content template."""
        content = await self.render_content(page_name, **values)
        layout = await self._read_file(self.pages_path / "layout.html") or FALLBACK_LAYOUT
        return Template(layout).safe_substitute(title=title, content=content)

    async def render_content(self, page_name: str, **values) -> str:
        """Only the content template, as sent to hypermedia requests."""
        template = await self._read_file(self.pages_path / f"{page_name}.html")
        if template is None:
            raise FileNotFoundError(f"page template not found: {page_name}")
        return Template(template).safe_substitute(values)

    async def _read_file(self, path: Path) -> Optional[str]:
        """Read a file with caching."""
        cache_key = str(path)

        if cache_key in self._cache:
            return self._cache[cache_key]

        if not path.exists():
            return None

        async with aiofiles.open(path, 'r', encoding='utf-8') as f:
            content = await f.read()
            self._cache[cache_key] = content
            return content


# Global instance
_page_service: Optional[PageService] = None


def get_page_service() -> PageService:
    """Get the global page service instance."""
    global _page_service
    if _page_service is None:
        from hxengine.config import get_settings
        settings = get_settings()
        _page_service = PageService(Path(settings.demo_path) if settings.demo_path else None)
    return _page_service
