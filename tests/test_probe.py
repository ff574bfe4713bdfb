# File: tests/test_probe.py
import pytest
from aiohttp import web

from knee_scraper.config import CrawlConfig
from knee_scraper.crawler.fetcher import Fetcher
from knee_scraper.probe import OpenDirectoryProber, probe_open_directories
from knee_scraper.crawler.robots import RobotsCache
from tests.conftest import html, robots

CONFIG = CrawlConfig(timeout=2.0)


@pytest.mark.asyncio()
async def test_probe_reports_accessible_paths(serve):
    async def archive(_):
        return web.Response(body=b"PK", content_type="application/zip")

    base = await serve(
        {
            "/backup": html("<h1>Index of /backup</h1>"),
            "/config": html("<p>config page</p>"),
            "/uploads": archive,
        }
    )
    async with Fetcher(CONFIG) as fetcher:
        prober = OpenDirectoryProber(fetcher, ["/backup", "config", "/logs", "/uploads", "/backup"])
        found = await prober.probe(f"{base}/some/page")

    assert [(d.url, d.status, d.listing) for d in found] == [
        (f"{base}/backup", 200, True),
        (f"{base}/config", 200, False),
        (f"{base}/uploads", 200, False),
    ]
    assert sorted(serve.hits) == ["/backup", "/config", "/logs", "/uploads"]


@pytest.mark.asyncio()
async def test_probe_with_wordlist(serve, wordlist_file):
    base = await serve({"/private": html("ok"), "/admin": html("ok")})
    async with Fetcher(CONFIG) as fetcher:
        found = await probe_open_directories(fetcher, base, [], wordlist_file)
    assert [d.url for d in found] == [f"{base}/private", f"{base}/admin"]


@pytest.mark.asyncio()
async def test_probe_unreachable_host(unused_tcp_port):
    async with Fetcher(CONFIG) as fetcher:
        found = await probe_open_directories(fetcher, f"http://127.0.0.1:{unused_tcp_port}/", ["/backup"])
    assert found == []


@pytest.mark.asyncio()
async def test_open_directory_scan_skips_robots_disallowed_paths(serve):
    base = await serve(
        {
            "/robots.txt": robots("User-agent: *\nDisallow: /backup"),
            "/backup": html("<h1>Index of /backup</h1>"),
            "/logs": html("<h1>Index of /logs</h1>"),
        }
    )
    async with Fetcher(CONFIG) as fetcher:
        found = await probe_open_directories(
            fetcher, base, ["/backup", "/logs"], robots=RobotsCache(fetcher), agent="TestAgent/1.0"
        )

    assert [d.url for d in found] == [f"{base}/logs"]
    assert "/backup" not in serve.hits
