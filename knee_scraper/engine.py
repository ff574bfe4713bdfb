# File: knee_scraper/engine.py
"""knee_scraper.engine: полный сценарий обхода для одного или нескольких стартовых URL."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List, Optional, Sequence, Set, Union

from knee_scraper.config import CrawlConfig
from knee_scraper.crawler.captcha import CaptchaSolver
from knee_scraper.crawler.crawler import PageHandler, RecursiveCrawler
from knee_scraper.crawler.fetcher import Fetcher
from knee_scraper.crawler.models import CrawlReport
from knee_scraper.crawler.registry import VisitedRegistry
from knee_scraper.crawler.robots import RobotsCache
from knee_scraper.logger import ErrorLog, logger
from knee_scraper.media import DiskSink, MediaPipeline
from knee_scraper.probe import OpenDirectoryProber
from knee_scraper.utils import read_wordlist, validate_seed

__all__ = ["run", "run_many"]


async def run(
    seed: str,
    config: Optional[CrawlConfig] = None,
    *,
    visited: Union[VisitedRegistry, Set[str], None] = None,
    target_phrase: Optional[str] = None,
    captcha_solver: Optional[CaptchaSolver] = None,
    media_dir: Union[str, Path, None] = None,
    page_handler: Optional[PageHandler] = None,
    error_log: Optional[ErrorLog] = None,
    stop_event: Optional[asyncio.Event] = None,
) -> CrawlReport:
    """Полный сценарий для одного URL.

    1. robots.txt хоста (правила кешируются и используются обходом);
    2. проверка открытых директорий (пути, запрещённые robots.txt, пропускаются);
    3. рекурсивный обход клиентом с cookies: стартовая страница запрашивается
       один раз, cookies сервера сохраняются для всех следующих запросов.
    """
    config = config or CrawlConfig()
    seed = validate_seed(seed)
    registry = visited if isinstance(visited, VisitedRegistry) else VisitedRegistry(visited)
    error_log = error_log if error_log is not None else ErrorLog(path=None)
    logger.info("Starting scraping workflow for %s", seed)

    agent = config.user_agent or "*"
    async with Fetcher(config, cookies=True) as fetcher:
        robots = RobotsCache(fetcher)
        rules = await robots.rules_for(seed)
        if rules is None:
            logger.info("robots.txt: no restrictions for %s", seed)
        else:
            for path in rules.disallowed_paths(agent):
                logger.info("Disallowed path found: %s", path)

        paths = list(config.open_directory_paths)
        if config.open_directory_wordlist is not None:
            paths.extend(read_wordlist(config.open_directory_wordlist))
        prober = OpenDirectoryProber(
            fetcher, paths, robots=robots if config.respect_robots else None, agent=agent
        )
        open_dirs = await prober.probe(seed)

        crawler = RecursiveCrawler(
            config,
            fetcher,
            registry=registry,
            target_phrase=target_phrase,
            robots=robots if config.respect_robots else None,
            prober=prober if config.probe_open_directories else None,
            captcha_solver=captcha_solver,
            media_pipeline=MediaPipeline(DiskSink(fetcher, media_dir), error_log) if media_dir else None,
            page_handler=page_handler,
            error_log=error_log,
            stop_event=stop_event,
        )
        crawler.mark_host_probed(seed)
        report = await crawler.crawl(seed)

    report.open_directories[:0] = open_dirs
    logger.info("Scraping workflow completed for %s", seed)
    return report


async def run_many(
    seeds: Sequence[str],
    config: Optional[CrawlConfig] = None,
    *,
    error_log: Optional[ErrorLog] = None,
    stop_event: Optional[asyncio.Event] = None,
    media_dir: Union[str, Path, None] = None,
) -> List[CrawlReport]:
    """Независимые запуски (каждый со своим реестром) для нескольких URL одновременно."""
    checked = [validate_seed(seed) for seed in seeds]
    error_log = error_log if error_log is not None else ErrorLog(path=None)
    return list(
        await asyncio.gather(
            *(
                run(seed, config, error_log=error_log, stop_event=stop_event, media_dir=media_dir)
                for seed in checked
            )
        )
    )
