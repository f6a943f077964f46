"""Pytest configuration for the hxengine test suite."""

from __future__ import annotations

from typing import List, Optional

import httpx
import pytest
import pytest_asyncio

from hxengine import Document, EngineSettings, HypermediaEngine
from tests.helpers import BASE_URL, FakeServer, page


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def settings() -> EngineSettings:
    """Engine settings with no settle delay, so tests stay fast."""
    return EngineSettings(default_settle_delay=0.0, default_swap_delay=0.0, history_cache_size=10)


@pytest_asyncio.fixture
async def client(server):
    async with httpx.AsyncClient(transport=httpx.MockTransport(server)) as http_client:
        yield http_client


@pytest_asyncio.fixture
async def make_engine(client, settings):
    """Factory building a processed engine over a page body; closed afterwards."""
    engines: List[HypermediaEngine] = []

    def factory(
        body: str,
        url: str = f"{BASE_URL}/",
        engine_settings: Optional[EngineSettings] = None,
        title: str = "Test",
    ) -> HypermediaEngine:
        document = Document(page(body, title), url=url)
        engine = HypermediaEngine(document, client, engine_settings or settings)
        engines.append(engine)
        engine.process()
        return engine

    yield factory

    for engine in engines:
        await engine.aclose()
