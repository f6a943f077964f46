"""
Catalog for the hxengine demo server

Loads the demo products and preserve-demo items from catalog.yaml.
"""
from __future__ import annotations
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import yaml

DEFAULT_DEMO_PATH = Path(__file__).parent.parent.parent / "demo"


@dataclass
class Product:
    """A product in the demo catalog."""
    id: int
    name: str
    description: str
    price: float
    category: str


@dataclass
class SearchResult:
    """One page of product search results."""
    products: List[Product]
    total_count: int
    page: int
    page_size: int
    query: str = ""
    categories: List[str] = field(default_factory=list)

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size) if self.page_size else 0


class Catalog:
    """In-memory product catalog."""

    def __init__(self, demo_path: Path = None):
        self.demo_path = demo_path or DEFAULT_DEMO_PATH
        self.page_size = 6
        self._products: Dict[int, Product] = {}
        self._preserve_items: List[str] = []
        self._load_config()

    def _load_config(self):
        """Load products from catalog.yaml."""
        config_path = self.demo_path / "catalog.yaml"

        if not config_path.exists():
            return

        with open(config_path) as f:
            config = yaml.safe_load(f) or {}

        defaults = config.get("defaults", {})
        self.page_size = defaults.get("page_size", self.page_size)

        for entry in config.get("products", []):
            product = Product(
                id=int(entry["id"]),
                name=entry["name"],
                description=entry.get("description", ""),
                price=float(entry.get("price", 0)),
                category=entry.get("category", ""),
            )
            self._products[product.id] = product
        self._preserve_items = list(config.get("preserve_items", []))

    def search(
        self,
        query: str = "",
        categories: Optional[List[str]] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> SearchResult:
        """Case-insensitive search on name and description, filtered by category."""
        categories = [c.lower() for c in (categories or [])]
        page_size = page_size or self.page_size
        page = max(page, 1)

        matches = list(self._products.values())
        if query:
            needle = query.lower()
            matches = [
                p for p in matches
                if needle in p.name.lower() or needle in p.description.lower()
            ]
        if categories:
            matches = [p for p in matches if p.category.lower() in categories]

        start = (page - 1) * page_size
        return SearchResult(
            products=matches[start:start + page_size],
            total_count=len(matches),
            page=page,
            page_size=page_size,
            query=query,
            categories=categories,
        )

    def get(self, product_id: int) -> Optional[Product]:
        return self._products.get(product_id)

    def related(self, product_id: int, limit: int = 3) -> List[Product]:
        """Other products from the same category."""
        product = self.get(product_id)
        if product is None:
            return []
        same = self.search(categories=[product.category], page_size=limit).products
        return [p for p in same if p.id != product_id][:limit]

    def filter_items(self, query: str = "", status: str = "all") -> List[str]:
        """Preserve-demo search: substring match plus an active/archived filter."""
        query = (query or "").lower()
        results = []
        for item in self._preserve_items:
            if query and query not in item.lower():
                continue
            if status == "active" and "Active" not in item:
                continue
            if status == "archived" and "Archived" not in item:
                continue
            if status not in ("all", "active", "archived"):
                continue
            results.append(item)
        return results

    def list_products(self) -> List[Product]:
        return list(self._products.values())


# Global instance
_catalog: Optional[Catalog] = None


def get_catalog() -> Catalog:
    """Get the global catalog instance."""
    global _catalog
    if _catalog is None:
        from hxengine.config import get_settings
        settings = get_settings()
        _catalog = Catalog(Path(settings.demo_path) if settings.demo_path else None)
    return _catalog
