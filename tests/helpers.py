"""Test helpers: a scriptable fake server and an event recorder."""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx

from hxengine import HypermediaEngine

BASE_URL = "http://localhost"

Handler = Callable[[httpx.Request], Any]


def page(body: str, title: str = "Test") -> str:
    return f"<html><head><title>{title}</title></head><body>{body}</body></html>"


class FakeServer:
    """Scriptable httpx.MockTransport handler that records every request."""

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Union[Handler, Tuple[int, str, Dict[str, str], float]]] = {}
        self.requests: List[httpx.Request] = []

    def route(
        self,
        method: str,
        path: str,
        body: str = "",
        status: int = 200,
        headers: Optional[Dict[str, str]] = None,
        delay: float = 0.0,
    ):
        self.routes[(method.upper(), path)] = (status, body, headers or {}, delay)

    def handle(self, method: str, path: str, handler: Handler):
        self.routes[(method.upper(), path)] = handler

    def requests_to(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        entry = self.routes.get((request.method, request.url.path))
        if entry is None:
            return httpx.Response(404, text="<p>not found</p>")
        if callable(entry):
            result = entry(request)
            if inspect.isawaitable(result):
                result = await result
            return result
        status, body, headers, delay = entry
        if delay:
            await asyncio.sleep(delay)
        return httpx.Response(status, text=body, headers=headers)


class EventLog:
    """Records lifecycle events of the given kinds, in order."""

    def __init__(self, engine: HypermediaEngine, kinds: List[str]):
        self.events = []
        for kind in kinds:
            engine.on(kind, self.events.append)

    @property
    def kinds(self) -> List[str]:
        return [event.kind for event in self.events]

    def of(self, kind: str):
        return [event for event in self.events if event.kind == kind]
