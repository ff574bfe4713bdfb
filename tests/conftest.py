# File: tests/conftest.py
from collections.abc import AsyncIterator, Awaitable, Callable
from pathlib import Path
from typing import Dict, List

import pytest
import pytest_asyncio
from aiohttp import web

from knee_scraper.config import CrawlConfig

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def html(body: str) -> Handler:
    """Handler returning a fixed HTML page."""

    async def handle(_):
        return web.Response(text=body, content_type="text/html")

    return handle


def robots(text: str = "User-agent: *\nDisallow:") -> Handler:
    async def handle(_):
        return web.Response(text=text, content_type="text/plain")

    return handle


async def _serve_app(app: web.Application, port: int) -> AsyncIterator[str]:
    """Start *app* on *port*, yield base URL, ensure cleanup."""
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()
    try:
        yield f"http://127.0.0.1:{port}"
    finally:
        await runner.cleanup()


@pytest_asyncio.fixture
async def serve(unused_tcp_port_factory) -> AsyncIterator[Callable[[Dict[str, Handler]], Awaitable[str]]]:
    """
    Factory: ``base = await serve({"/": html(...), ...})`` starts a test site.
    Every request path is recorded in ``serve.hits``.
    """
    generators: List[AsyncIterator[str]] = []
    hits: List[str] = []

    @web.middleware
    async def record(request, handler):
        hits.append(request.path)
        return await handler(request)

    async def start(routes: Dict[str, Handler]) -> str:
        app = web.Application(middlewares=[record])
        for path, handler in routes.items():
            app.router.add_get(path, handler)
        gen = _serve_app(app, unused_tcp_port_factory())
        generators.append(gen)
        return await gen.__anext__()

    start.hits = hits  # type: ignore[attr-defined]
    yield start
    for gen in generators:
        await gen.aclose()


@pytest.fixture()
def wordlist_file(tmp_path) -> Path:
    """Temporary open-directory wordlist."""
    path = tmp_path / "paths.txt"
    path.write_text("# extra paths\n/private\n\nadmin\n", encoding="utf-8")
    return path


@pytest.fixture()
def fast_config() -> CrawlConfig:
    """Config without politeness delays for local test servers."""
    return CrawlConfig(max_depth=3, timeout=2.0, user_agent="TestAgent/1.0")
