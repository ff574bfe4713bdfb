# File: tests/test_media.py
import pytest
from aiohttp import web

from knee_scraper.config import CrawlConfig
from knee_scraper.crawler.fetcher import Fetcher
from knee_scraper.crawler.models import PageArtifact
from knee_scraper.logger import ErrorLog
from knee_scraper.media import DiskSink, MediaKind, MediaPipeline, classify, suggested_filename


@pytest.mark.parametrize(
    "url,hint,kind",
    [
        ("https://example.com/a.JPG", None, MediaKind.IMAGE),
        ("https://example.com/clip.webm?x=1", None, MediaKind.VIDEO),
        ("https://example.com/song.mp3", None, MediaKind.AUDIO),
        ("https://example.com/doc.pdf", None, MediaKind.DOCUMENT),
        ("https://example.com/src.tar.gz", None, MediaKind.ARCHIVE),
        ("https://example.com/stream", "video", MediaKind.VIDEO),
        ("https://example.com/page.html", None, None),
        ("https://example.com/stream", "", None),
        ("https://example.com/stream", "unknown", None),
    ],
)
def test_classify(url, hint, kind):
    assert classify(url, hint) is kind


@pytest.mark.parametrize(
    "url,kind,name",
    [
        ("https://example.com/img/photo.png", MediaKind.IMAGE, "photo.png"),
        ("https://example.com/", MediaKind.IMAGE, "image.jpg"),
        ("https://example.com/", MediaKind.VIDEO, "video.mp4"),
        ("https://example.com/stream", MediaKind.VIDEO, "stream.mp4"),
        ("https://example.com/my%20file%3F.pdf", MediaKind.DOCUMENT, "my_file_.pdf"),
    ],
)
def test_suggested_filename(url, kind, name):
    assert suggested_filename(url, kind) == name


class FlakySink:
    def __init__(self):
        self.stored = []

    async def store(self, source_url, suggested_name):
        if "bad" in source_url:
            raise OSError("disk full")
        self.stored.append(suggested_name)
        return f"/tmp/{suggested_name}"


@pytest.mark.asyncio()
async def test_pipeline_isolates_sink_failure():
    artifact = PageArtifact(
        url="https://example.com/",
        media_urls=[
            "https://example.com/bad.png",
            "https://example.com/good.png",
            "https://example.com/page",
            "https://example.com/good.png",
        ],
    )
    error_log = ErrorLog(path=None)
    pipeline = MediaPipeline(FlakySink(), error_log)
    assets = await pipeline.classify_and_dispatch(artifact)

    assert [(a.suggested_name, a.ok) for a in assets] == [("bad.png", False), ("good.png", True)]
    assert "disk full" in assets[0].error
    assert error_log.entries[0].error_type == "DispatchFailure"
    assert await pipeline.classify_and_dispatch(artifact) == []


@pytest.mark.asyncio()
async def test_disk_sink_writes_under_host(serve, tmp_path):
    async def image(_):
        return web.Response(body=b"PNGDATA", content_type="image/png")

    base = await serve({"/logo.png": image})
    async with Fetcher(CrawlConfig(timeout=2.0)) as fetcher:
        sink = DiskSink(fetcher, tmp_path / "media")
        first = await sink.store(f"{base}/logo.png", "logo.png")
        second = await sink.store(f"{base}/logo.png", "logo.png")

    assert first == str(tmp_path / "media" / "127.0.0.1" / "logo.png")
    assert second.endswith("logo-1.png")
    assert (tmp_path / "media" / "127.0.0.1" / "logo.png").read_bytes() == b"PNGDATA"
