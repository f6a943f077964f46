"""
Hypermedia Request Middleware for the hxengine demo server

Parses the HX-* headers of each request into ``request.state.hx``.
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from hxengine.models.request import HxRequestInfo


class HxRequestMiddleware(BaseHTTPMiddleware):
    """Middleware that attaches hypermedia request context to each request."""

    async def dispatch(self, request: Request, call_next):
        request.state.hx = HxRequestInfo.from_headers(request.headers)

        response = await call_next(request)

        # Fragments and full pages share URLs; caches must key on HX-Request.
        response.headers.setdefault("Vary", "HX-Request")
        return response
