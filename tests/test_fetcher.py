# File: tests/test_fetcher.py
import pytest
from aiohttp import web

from knee_scraper.config import CrawlConfig
from knee_scraper.crawler.fetcher import Fetcher
from knee_scraper.errors import DecodeError, StatusError, TransportError
from tests.conftest import html

CONFIG = CrawlConfig(timeout=2.0, user_agent="TestAgent/1.0")


@pytest.mark.asyncio()
async def test_fetch_success_sends_user_agent(serve):
    seen = {}

    async def echo(request):
        seen["ua"] = request.headers.get("User-Agent")
        return web.Response(text="<p>ok</p>", content_type="text/html")

    base = await serve({"/": echo})
    async with Fetcher(CONFIG) as fetcher:
        response = await fetcher.fetch(f"{base}/")
    assert response.status == 200
    assert response.text == "<p>ok</p>"
    assert seen["ua"] == "TestAgent/1.0"


@pytest.mark.asyncio()
async def test_fetch_follows_redirect(serve):
    async def redirect(_):
        raise web.HTTPFound("/target")

    base = await serve({"/old": redirect, "/target": html("<p>new</p>")})
    async with Fetcher(CONFIG) as fetcher:
        response = await fetcher.fetch(f"{base}/old")
    assert response.url == f"{base}/target"


@pytest.mark.asyncio()
async def test_fetch_status_error(serve):
    base = await serve({})
    async with Fetcher(CONFIG) as fetcher:
        with pytest.raises(StatusError) as info:
            await fetcher.fetch(f"{base}/missing")
    assert info.value.code == 404
    assert info.value.reason == "status"


@pytest.mark.asyncio()
async def test_fetch_binary_is_decode_error(serve):
    async def png(_):
        return web.Response(body=b"\x89PNG\r\n", content_type="image/png")

    base = await serve({"/logo.png": png})
    async with Fetcher(CONFIG) as fetcher:
        with pytest.raises(DecodeError):
            await fetcher.fetch(f"{base}/logo.png")
        assert await fetcher.fetch_bytes(f"{base}/logo.png") == b"\x89PNG\r\n"


@pytest.mark.asyncio()
async def test_fetch_transport_error(unused_tcp_port):
    async with Fetcher(CONFIG) as fetcher:
        with pytest.raises(TransportError) as info:
            await fetcher.fetch(f"http://127.0.0.1:{unused_tcp_port}/")
    assert info.value.reason == "transport"


@pytest.mark.asyncio()
async def test_fetch_with_cookies_persists(serve):
    async def set_cookie(_):
        resp = web.Response(text="<p>hi</p>", content_type="text/html")
        resp.set_cookie("session", "abc")
        return resp

    async def check(request):
        return web.Response(text=request.cookies.get("session", "none"), content_type="text/plain")

    base = await serve({"/": set_cookie, "/check": check})
    async with Fetcher(CONFIG, cookies=True) as fetcher:
        await fetcher.fetch_with_cookies(f"{base}/")
        assert fetcher.cookies() == {"session": "abc"}
        assert (await fetcher.fetch(f"{base}/check")).text == "abc"


@pytest.mark.asyncio()
async def test_cookieless_fetcher_drops_cookies(serve):
    async def set_cookie(_):
        resp = web.Response(text="x", content_type="text/plain")
        resp.set_cookie("session", "abc")
        return resp

    base = await serve({"/": set_cookie})
    async with Fetcher(CONFIG) as fetcher:
        await fetcher.fetch(f"{base}/")
        assert fetcher.cookies() == {}
        with pytest.raises(RuntimeError):
            await fetcher.fetch_with_cookies(f"{base}/")


@pytest.mark.asyncio()
async def test_fetch_without_session():
    fetcher = Fetcher(CONFIG)
    with pytest.raises(RuntimeError, match="Session not initialized"):
        await fetcher.fetch("http://example.com/")
