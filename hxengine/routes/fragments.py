"""
HTML fragments returned to hypermedia requests by the demo server.
"""
from html import escape
from typing import List
from urllib.parse import urlencode

from hxengine.services.catalog import Product, SearchResult
from hxengine.utils.message_board import Message


def product_item(product: Product) -> str:
    return (
        f'<li class="product" data-product-id="{product.id}">'
        f'<a href="/products/{product.id}" hx-get="/products/{product.id}" '
        f'hx-target="#main" hx-push-url="true">{escape(product.name)}</a> '
        f'<span class="price">${product.price:.2f}</span> '
        f'<span class="category">{escape(product.category)}</span>'
        f"</li>"
    )


def search_results(result: SearchResult) -> str:
    if not result.products:
        return '<p class="summary">No products found.</p>'

    items = "".join(product_item(p) for p in result.products)
    html = (
        f'<p class="summary">{result.total_count} products found</p>'
        f'<ul class="products">{items}</ul>'
    )
    if result.total_pages > 1:
        links = []
        for page in range(1, result.total_pages + 1):
            query = urlencode(
                [("query", result.query)] + [("category", c) for c in result.categories] + [("page", page)]
            )
            css = ' class="current"' if page == result.page else ""
            links.append(
                f'<a{css} href="/search?{query}" hx-get="/search?{query}" '
                f'hx-target="#search-results" hx-push-url="true">{page}</a>'
            )
        html += f'<nav class="pagination">{" ".join(links)}</nav>'
    return html


def related_products(products: List[Product]) -> str:
    if not products:
        return "<p>No related products.</p>"
    items = "".join(product_item(p) for p in products)
    return f'<h2>Related products</h2><ul class="related">{items}</ul>'


def preserve_panel(items: List[str]) -> str:
    """Results panel; the note input is a placeholder for the preserved one."""
    rows = "".join(f"<li>{escape(item)}</li>" for item in items) or "<li>No items.</li>"
    return (
        '<div id="preserve-panel">'
        '<label>Notes: <input id="preserve-note" type="text" name="note" hx-preserve></label>'
        f'<ul id="preserve-results">{rows}</ul>'
        "</div>"
    )


def message_items(messages: List[Message]) -> str:
    return "".join(
        f'<li class="message" data-message-id="{m.message_id}">{escape(m.text)}</li>' for m in messages
    )


def unread_counter(count: int, oob: bool = False) -> str:
    marker = ' hx-swap-oob="true"' if oob else ""
    return f'<div id="unread-count"{marker}>Messages: {count}</div>'


def spinner_results(query: str) -> str:
    if not query.strip():
        return "<div>Please enter a search query.</div>"
    query = escape(query)
    users = "".join(f"<li>User {n} matching '{query}'</li>" for n in range(1, 4))
    return f"<div>Results for '<strong>{query}</strong>':<ul>{users}</ul></div>"


def feedback_thanks(submitted_at: str, user_role: str) -> str:
    return (
        "<p><strong>Thank you for your feedback!</strong></p>"
        f"<p><em>Received at {escape(submitted_at)} from a {escape(user_role)} user.</em></p>"
    )
