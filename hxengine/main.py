"""
hxengine Demo Server - Main Application

A small companion server whose pages exercise the engine end to end:
history-aware search, preserved inputs, hx-vals, request indicators,
out-of-band swaps and server-triggered events.
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hxengine.config import Settings, get_settings
from hxengine.middleware import HxRequestMiddleware
from hxengine.models import headers as hx
from hxengine.routes import router
from hxengine.services.catalog import get_catalog

logger = logging.getLogger(__name__)

# Response headers a cross-origin engine has to be able to read
EXPOSED_HEADERS = [
    hx.HX_TRIGGER,
    hx.HX_TRIGGER_AFTER_SETTLE,
    hx.HX_PUSH_URL,
    hx.HX_REPLACE_URL,
    hx.HX_RETARGET,
    hx.HX_RESWAP,
    hx.HX_RESELECT,
    hx.HX_REDIRECT,
]


def create_app(settings: Settings = None) -> FastAPI:
    """Build the demo application for the given settings."""
    settings = settings or get_settings()
    demo = FastAPI(
        title=settings.app_name,
        description="Companion server for the hxengine hypermedia engine",
        version="0.1.0",
        debug=settings.debug,
    )

    # Last added runs first: CORS wraps the HX-* header parsing
    demo.add_middleware(HxRequestMiddleware)
    demo.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=EXPOSED_HEADERS,
    )
    demo.include_router(router)

    @demo.on_event("startup")
    async def announce_catalog():
        count = len(get_catalog().list_products())
        logger.info("%s ready with %d demo products", settings.app_name, count)

    @demo.on_event("shutdown")
    async def announce_shutdown():
        logger.info("%s stopped", settings.app_name)

    return demo


app = create_app()
