"""Модуль для проверки общеизвестных путей (открытых директорий) на хосте."""

import asyncio
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Union

from knee_scraper.crawler.fetcher import Fetcher
from knee_scraper.crawler.models import OpenDirectory
from knee_scraper.crawler.robots import RobotsCache
from knee_scraper.errors import DecodeError, FetchError
from knee_scraper.utils import origin_of, read_wordlist, remove_duplicates

logger = logging.getLogger(__name__)

_LISTING_MARKERS = ("index of /", "directory listing for", "parent directory")


class OpenDirectoryProber:
    """Проверяет ограниченный список путей; ошибки никогда не прерывают обход."""

    def __init__(
        self,
        fetcher: Fetcher,
        paths: Iterable[str],
        concurrency: int = 4,
        *,
        robots: Optional[RobotsCache] = None,
        agent: str = "*",
    ) -> None:
        """Инициализирует проверку с клиентом, списком путей и уровнем конкуренции.

        С *robots* пути, запрещённые robots.txt для *agent*, не запрашиваются.
        """
        self.fetcher = fetcher
        self.paths: List[str] = remove_duplicates(
            [p if p.startswith("/") else f"/{p}" for p in paths]
        )
        self.semaphore = asyncio.Semaphore(concurrency)
        self.robots = robots
        self.agent = agent

    async def check(self, url: str) -> Optional[OpenDirectory]:
        """Запрашивает URL и возвращает OpenDirectory при статусе 2xx."""
        if self.robots is not None and not await self.robots.allowed(url, self.agent):
            logger.debug("Probe %s skipped: disallowed by robots.txt", url)
            return None
        async with self.semaphore:
            try:
                response = await self.fetcher.fetch(url)
            except DecodeError as exc:
                # binary answer: reachable, but not a listing
                return OpenDirectory(url=url, status=exc.status or 200, listing=False)
            except FetchError as exc:
                logger.debug("Probe %s: %s", url, exc)
                return None
        listing = any(marker in response.text.lower() for marker in _LISTING_MARKERS)
        return OpenDirectory(url=url, status=response.status, listing=listing)

    async def probe(self, base_url: str) -> List[OpenDirectory]:
        """Проверяет все пути относительно origin базового URL."""
        origin = origin_of(base_url)
        results = await asyncio.gather(*(self.check(f"{origin}{path}") for path in self.paths))
        found = [r for r in results if r is not None]
        for item in found:
            logger.info("Open directory found: %s (HTTP %s%s)", item.url, item.status, ", listing" if item.listing else "")
        return found


async def probe_open_directories(
    fetcher: Fetcher,
    base_url: str,
    paths: Iterable[str],
    wordlist_path: Union[str, Path, None] = None,
    *,
    robots: Optional[RobotsCache] = None,
    agent: str = "*",
) -> List[OpenDirectory]:
    """Проверяет пути из списка и (опционально) файла-словаря."""
    all_paths = list(paths)
    if wordlist_path is not None:
        all_paths.extend(read_wordlist(wordlist_path))
    prober = OpenDirectoryProber(fetcher, all_paths, robots=robots, agent=agent)
    return await prober.probe(base_url)
