"""
Demo Routes for the hxengine companion server

Every page is served whole to plain requests and to history restore
requests, and as a fragment to hypermedia requests.
"""
from fastapi import APIRouter, Request, Query, HTTPException
from fastapi.responses import HTMLResponse
from typing import Dict, List
from datetime import datetime, timezone
from html import escape
from urllib.parse import parse_qs
import asyncio
import json
import logging

from hxengine.config import get_settings
from hxengine.models.request import HxRequestInfo
from hxengine.routes import fragments
from hxengine.services.catalog import get_catalog
from hxengine.services.page_service import get_page_service
from hxengine.utils.message_board import get_message_board

logger = logging.getLogger(__name__)

router = APIRouter()


def get_hx(request: Request) -> HxRequestInfo:
    """Hypermedia request info attached by HxRequestMiddleware."""
    return getattr(request.state, "hx", None) or HxRequestInfo.from_headers(request.headers)


async def read_form(request: Request) -> Dict[str, List[str]]:
    """Decode an application/x-www-form-urlencoded body."""
    body = await request.body()
    return parse_qs(body.decode("utf-8"), keep_blank_values=True)


def first(form: Dict[str, List[str]], name: str, default: str = "") -> str:
    values = form.get(name)
    return values[0] if values else default


async def page_or_fragment(request: Request, page_name: str, title: str, **values) -> HTMLResponse:
    pages = get_page_service()
    if get_hx(request).wants_fragment:
        return HTMLResponse(content=await pages.render_content(page_name, **values))
    return HTMLResponse(content=await pages.render_page(page_name, title, **values))


@router.get("/", response_class=HTMLResponse)
async def index(request: Request):
    return await page_or_fragment(request, "index", "hxengine demos")


@router.get("/search", response_class=HTMLResponse)
async def search(
    request: Request,
    query: str = Query(""),
    category: List[str] = Query([]),
    page: int = Query(1),
):
    """Product search; the results list alone for requests targeting it."""
    settings = get_settings()
    result = get_catalog().search(query, category, page, settings.page_size)
    results_html = fragments.search_results(result)

    hx = get_hx(request)
    if hx.wants_fragment and hx.target == "#search-results":
        return HTMLResponse(content=results_html)

    selected = set(result.categories)
    return await page_or_fragment(
        request,
        "search",
        "Product search",
        query=escape(query),
        books_checked="checked" if "books" in selected else "",
        electronics_checked="checked" if "electronics" in selected else "",
        clothing_checked="checked" if "clothing" in selected else "",
        results=results_html,
    )


@router.get("/products/{product_id}", response_class=HTMLResponse)
async def product_detail(request: Request, product_id: int):
    product = get_catalog().get(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail=f"Product not found: {product_id}")
    return await page_or_fragment(
        request,
        "product",
        escape(product.name),
        product_id=product.id,
        name=escape(product.name),
        description=escape(product.description),
        price=f"${product.price:.2f}",
        category=escape(product.category),
    )


@router.get("/products/{product_id}/related", response_class=HTMLResponse)
async def related_products(product_id: int):
    catalog = get_catalog()
    if catalog.get(product_id) is None:
        raise HTTPException(status_code=404, detail=f"Product not found: {product_id}")
    return HTMLResponse(content=fragments.related_products(catalog.related(product_id)))


@router.get("/preserve", response_class=HTMLResponse)
async def preserve_page(request: Request):
    items = get_catalog().filter_items()
    return await page_or_fragment(
        request, "preserve", "Preserved input", query="", panel=fragments.preserve_panel(items)
    )


@router.post("/preserve/search", response_class=HTMLResponse)
async def preserve_search(request: Request):
    form = await read_form(request)
    items = get_catalog().filter_items(first(form, "query"), first(form, "filter", "all"))
    return HTMLResponse(content=fragments.preserve_panel(items))


@router.get("/feedback", response_class=HTMLResponse)
async def feedback_page(request: Request):
    submitted_at = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%SZ")
    return await page_or_fragment(request, "feedback", "Feedback", submitted_at=submitted_at)


@router.post("/feedback", response_class=HTMLResponse)
async def submit_feedback(request: Request):
    form = await read_form(request)
    message = first(form, "message")
    if not message.strip():
        return HTMLResponse(content="<p class=\"error\">Please write some feedback.</p>", status_code=422)
    logger.info("Feedback received: %d characters", len(message))
    return HTMLResponse(
        content=fragments.feedback_thanks(first(form, "submitted_at"), first(form, "user_role", "anonymous"))
    )


@router.get("/spinner", response_class=HTMLResponse)
async def spinner_page(request: Request):
    return await page_or_fragment(request, "spinner", "Slow search")


@router.get("/spinner/search", response_class=HTMLResponse)
async def spinner_search(query: str = Query("")):
    """Deliberately slow, so the request indicator is visible."""
    await asyncio.sleep(get_settings().spinner_delay_seconds)
    return HTMLResponse(content=fragments.spinner_results(query))


@router.get("/messages", response_class=HTMLResponse)
async def messages_page(request: Request):
    board = get_message_board()
    return await page_or_fragment(
        request,
        "messages",
        "Messages",
        unread_count=board.unread_count,
        messages=fragments.message_items(board.messages()),
    )


@router.post("/messages", response_class=HTMLResponse)
async def post_message(request: Request):
    """New list, the unread counter out of band, and a toast event."""
    form = await read_form(request)
    board = get_message_board()
    message = board.post(first(form, "text"))

    html = fragments.message_items(board.messages()) + fragments.unread_counter(board.unread_count, oob=True)
    headers = {}
    if message is not None:
        headers["HX-Trigger"] = json.dumps({"showToast": {"message": f"Message sent: {message.text}"}})
    return HTMLResponse(content=html, headers=headers)


@router.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "framework": "hxengine",
        "products": len(get_catalog().list_products()),
        "messages": len(get_message_board().messages()),
    }
