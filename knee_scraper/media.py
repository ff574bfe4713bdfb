# File: knee_scraper/media.py
"""knee_scraper.media: классификация медиа-ресурсов страницы и передача их в хранилище.

Пайплайн сам не пишет на диск: каждый ресурс отдаётся объекту StorageSink.
Сбой одного ресурса записывается в ErrorLog и не влияет на остальные.
"""

from __future__ import annotations

import asyncio
import re
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional, Protocol, Set, Union
from urllib.parse import unquote, urlparse

from knee_scraper.crawler.fetcher import Fetcher
from knee_scraper.crawler.models import DispatchedAsset, PageArtifact
from knee_scraper.errors import DispatchFailure
from knee_scraper.logger import ErrorLog, logger
from knee_scraper.utils import extract_domain

__all__ = [
    "MediaKind",
    "classify",
    "suggested_filename",
    "StorageSink",
    "DiskSink",
    "MediaPipeline",
]


class MediaKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    ARCHIVE = "archive"


_EXTENSIONS: Dict[MediaKind, tuple[str, ...]] = {
    MediaKind.IMAGE: (".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".bmp", ".ico", ".avif", ".tif", ".tiff"),
    MediaKind.VIDEO: (".mp4", ".webm", ".mov", ".avi", ".mkv", ".m4v", ".ogv"),
    MediaKind.AUDIO: (".mp3", ".wav", ".ogg", ".oga", ".flac", ".m4a", ".aac"),
    MediaKind.DOCUMENT: (".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx", ".odt"),
    MediaKind.ARCHIVE: (".zip", ".rar", ".7z", ".tar", ".gz", ".bz2", ".xz"),
}
_BY_EXTENSION: Dict[str, MediaKind] = {ext: kind for kind, exts in _EXTENSIONS.items() for ext in exts}

_DEFAULT_NAMES: Dict[MediaKind, str] = {
    MediaKind.IMAGE: "image.jpg",
    MediaKind.VIDEO: "video.mp4",
    MediaKind.AUDIO: "audio.mp3",
    MediaKind.DOCUMENT: "document.bin",
    MediaKind.ARCHIVE: "archive.bin",
}
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def classify(url: str, hint: Optional[str] = None) -> Optional[MediaKind]:
    """Определяет тип ресурса по расширению или по тегу-источнику."""
    suffix = PurePosixPath(unquote(urlparse(url).path)).suffix.lower()
    if suffix in _BY_EXTENSION:
        return _BY_EXTENSION[suffix]
    if hint:
        try:
            return MediaKind(hint)
        except ValueError:
            return None
    return None


def suggested_filename(url: str, kind: MediaKind) -> str:
    """Последний сегмент пути URL, очищенный для файловой системы."""
    name = PurePosixPath(unquote(urlparse(url).path)).name
    name = _UNSAFE_CHARS.sub("_", name).strip("._")
    if not name:
        return _DEFAULT_NAMES[kind]
    if not PurePosixPath(name).suffix:
        name += PurePosixPath(_DEFAULT_NAMES[kind]).suffix
    return name


class StorageSink(Protocol):
    """Куда отдаются найденные медиа-ресурсы."""

    async def store(self, source_url: str, suggested_name: str) -> str:
        ...


class DiskSink:
    """Скачивает ресурс и сохраняет его в ``root/<host>/<name>``."""

    def __init__(self, fetcher: Fetcher, root: Union[str, Path] = "scraped_data") -> None:
        self.fetcher = fetcher
        self.root = Path(root)

    async def store(self, source_url: str, suggested_name: str) -> str:
        data = await self.fetcher.fetch_bytes(source_url)
        target = self._free_path(self.root / extract_domain(source_url) / suggested_name)
        await asyncio.to_thread(self._write, target, data)
        logger.info("Saved media file %s (%d bytes)", target, len(data))
        return str(target)

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    @staticmethod
    def _free_path(path: Path) -> Path:
        candidate, n = path, 1
        while candidate.exists():
            candidate = path.with_name(f"{path.stem}-{n}{path.suffix}")
            n += 1
        return candidate


class MediaPipeline:
    """Классифицирует медиа-URL артефакта и отдаёт каждый ресурс в StorageSink (один раз за запуск)."""

    def __init__(self, sink: StorageSink, error_log: Optional[ErrorLog] = None) -> None:
        self.sink = sink
        self.error_log = error_log
        self._dispatched: Set[str] = set()

    async def classify_and_dispatch(self, artifact: PageArtifact) -> List[DispatchedAsset]:
        assets: List[DispatchedAsset] = []
        for url in artifact.media_urls:
            kind = classify(url, artifact.media_hints.get(url))
            if kind is None or url in self._dispatched:
                continue
            self._dispatched.add(url)
            asset = DispatchedAsset(source_url=url, kind=kind.value, suggested_name=suggested_filename(url, kind))
            try:
                asset.stored_path = await self.sink.store(url, asset.suggested_name)
            except Exception as exc:  # any sink failure stays local to this asset
                failure = DispatchFailure(url, exc)
                asset.error = str(failure)
                if self.error_log is not None:
                    self.error_log.record(f"media {url}", failure)
                else:
                    logger.warning("%s", failure)
            assets.append(asset)
        return assets
