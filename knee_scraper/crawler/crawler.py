# === FILE: knee_scraper/crawler/crawler.py ===
from __future__ import annotations

import asyncio
import inspect
import time
from collections import deque
from contextlib import AsyncExitStack
from typing import Awaitable, Deque, Dict, Iterable, List, Optional, Protocol, Set, Tuple, Union
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from knee_scraper.config import CrawlConfig
from knee_scraper.crawler.captcha import CaptchaSolver, detect_challenge, resolve_challenge
from knee_scraper.crawler.extractor import extract_from_soup, find_keyword_contexts, parse_document
from knee_scraper.crawler.fetcher import Fetcher
from knee_scraper.crawler.models import (
    CrawlReport,
    CrawlTask,
    DispatchedAsset,
    FailureRecord,
    PageArtifact,
    PageDocument,
    PageRecord,
    RawResponse,
    TaskState,
)
from knee_scraper.crawler.policy import PolicyEngine
from knee_scraper.crawler.registry import VisitedRegistry
from knee_scraper.crawler.robots import RobotsCache
from knee_scraper.errors import CaptchaUnsolved, ExtractionDegraded, FetchError, SkipReason
from knee_scraper.logger import ErrorLog, logger
from knee_scraper.media import MediaPipeline, StorageSink
from knee_scraper.probe import OpenDirectoryProber
from knee_scraper.utils import normalize_url, random_delay, read_wordlist, validate_seed

__all__ = ("PageHandler", "RecursiveCrawler", "rec_scrape")


class PageHandler(Protocol):
    """Caller-supplied hook invoked once per extracted page."""

    def handle(self, document: PageDocument) -> Union[None, Awaitable[None]]:
        ...


class RecursiveCrawler:
    """Обход от стартового URL с учётом глубины, robots.txt и целевой фразы.

    Work list instead of recursion: a stack for ``strategy="depth"``, a queue
    for ``"breadth"``. Children are processed in extraction order either way.
    """

    def __init__(
        self,
        config: CrawlConfig,
        fetcher: Fetcher,
        *,
        registry: Optional[VisitedRegistry] = None,
        target_phrase: Optional[str] = None,
        robots: Optional[RobotsCache] = None,
        prober: Optional[OpenDirectoryProber] = None,
        captcha_solver: Optional[CaptchaSolver] = None,
        media_pipeline: Optional[MediaPipeline] = None,
        page_handler: Optional[PageHandler] = None,
        error_log: Optional[ErrorLog] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> None:
        self.config = config
        self.fetcher = fetcher
        self.registry = registry if registry is not None else VisitedRegistry()
        self.target_phrase = target_phrase or None
        if robots is None and config.respect_robots:
            robots = RobotsCache(fetcher)
        self.robots = robots
        if prober is None and config.probe_open_directories:
            paths = list(config.open_directory_paths)
            if config.open_directory_wordlist is not None:
                paths.extend(read_wordlist(config.open_directory_wordlist))
            prober = OpenDirectoryProber(
                fetcher,
                paths,
                robots=robots if config.respect_robots else None,
                agent=config.user_agent or "*",
            )
        self.prober = prober
        self.captcha_solver = captcha_solver
        self.media_pipeline = media_pipeline
        self.page_handler = page_handler
        self.error_log = error_log if error_log is not None else ErrorLog(path=None)
        self.stop_event = stop_event
        self.policy = PolicyEngine(config, self.robots)

        self._attempted: Set[str] = set()
        self._seen_hosts: Set[str] = set()
        self._rate_lock = asyncio.Lock()
        self._last_request_ts = 0.0
        self.fetch_count = 0

    # ------------------------------------------------------------------ #
    # Public API                                                         #
    # ------------------------------------------------------------------ #

    def mark_host_probed(self, url: str) -> None:
        """Skip the open-directory side-scan for the host of *url*."""
        self._seen_hosts.add(urlparse(url).netloc.lower())

    async def crawl(self, seed: str) -> CrawlReport:
        seed = validate_seed(seed)
        self.policy = PolicyEngine(self.config, self.robots, seed_host=urlparse(seed).netloc)
        report = CrawlReport(seed=seed)
        logger.info("Старт обхода: %s (max_depth=%d)", seed, self.config.max_depth)
        start = time.monotonic()
        deadline = start + self.config.run_timeout if self.config.run_timeout else None
        depth_first = self.config.strategy == "depth"

        frontier: Deque[CrawlTask] = deque([CrawlTask(seed, 0)])
        while frontier:
            stop_reason = self._stop_reason(deadline, report)
            if stop_reason is not None:
                report.stopped, report.stop_reason, report.pending = True, stop_reason, len(frontier)
                logger.warning("Обход остановлен (%s), в очереди осталось %d", stop_reason, len(frontier))
                break
            task = frontier.pop() if depth_first else frontier.popleft()
            children = await self.process(task, report)
            frontier.extend(reversed(children) if depth_first else children)

        report.cookies = self.fetcher.cookies()
        report.elapsed = round(time.monotonic() - start, 3)
        logger.info(
            "Завершено: %d страниц, %d ошибок за %.2f с",
            len(report.pages), len(report.failures), report.elapsed,
        )
        if report.robots_blocked:
            logger.info("Заблокировано robots.txt: %d", len(report.robots_blocked))
        return report

    async def process(self, task: CrawlTask, report: CrawlReport) -> List[CrawlTask]:
        """Run one task through its state machine; return the child tasks to schedule."""
        key = normalize_url(task.url)
        if key in self._attempted:
            report.record_skip(SkipReason.DUPLICATE.value)
            return []
        reason = await self.policy.check_fetch(task, self.registry)
        if reason is not None:
            if reason is SkipReason.ROBOTS:
                report.robots_blocked.append(task.url)
            report.record_skip(reason.value)
            return []
        if not self.registry.reserve(task.url):
            # taken by another run sharing this registry
            report.record_skip(SkipReason.DUPLICATE.value)
            return []

        try:
            await self._probe_new_host(task.url, report)
            self._attempted.add(key)
            await self._wait_politely(task.url)
            logger.info("Scraping: %s (depth %d)", task.url, task.depth)
            self.fetch_count += 1
            response = await self._fetch_page(task.url)
        except FetchError as exc:
            self.registry.release(task.url)
            self._fail(task, exc, report)
            return []
        except BaseException:
            self.registry.release(task.url)
            raise
        self.registry.commit(task.url)

        final_key = normalize_url(response.url)
        if final_key != key:
            self._attempted.add(final_key)
            if not self.registry.claim(response.url):
                logger.debug("Redirect %s -> %s lands on a visited page", task.url, response.url)
                report.record_skip(SkipReason.DUPLICATE.value)
                return []

        captcha_solved = False
        challenge = detect_challenge(response.text, response.url)
        if challenge is not None:
            logger.warning("CAPTCHA challenge (%s) on %s", challenge.marker, task.url)
            try:
                response = await resolve_challenge(self.fetcher, challenge, self.captcha_solver)
            except CaptchaUnsolved as exc:
                self._fail(task, exc, report)
                return []
            captcha_solved = True

        soup, artifact = self._extract(task, response)
        await self._scan_external_scripts(artifact)
        media = await self._dispatch_media(artifact)
        await self._run_handler(task, response, soup, artifact)

        state = self.policy.recurse_outcome(artifact, task, self.target_phrase)
        matched = artifact.contains_phrase(self.target_phrase) if self.target_phrase else None
        if matched is not None:
            logger.info("Target phrase %s in: %s", "found" if matched else "not found", task.url)
        report.pages.append(self._page_record(task, response, artifact, state, matched, media, captcha_solved))

        if state is not TaskState.RECURSED:
            return []
        return self._children(task, artifact.links)

    # ------------------------------------------------------------------ #
    # Steps                                                              #
    # ------------------------------------------------------------------ #

    def _stop_reason(self, deadline: Optional[float], report: CrawlReport) -> Optional[str]:
        if self.stop_event is not None and self.stop_event.is_set():
            return "stop requested"
        if deadline is not None and time.monotonic() >= deadline:
            return "run deadline reached"
        if self.config.max_pages is not None and len(report.pages) >= self.config.max_pages:
            return "page limit reached"
        return None

    def _children(self, task: CrawlTask, links: Iterable[str]) -> List[CrawlTask]:
        children: Dict[str, CrawlTask] = {}
        for link in links:
            key = normalize_url(link)
            if key in children or key in self._attempted or self.registry.contains(link):
                continue
            children[key] = task.child(link)
        return list(children.values())

    def _extract(self, task: CrawlTask, response: RawResponse) -> Tuple[BeautifulSoup, PageArtifact]:
        """One parse per page: the same tree goes to extraction and to the page handler."""
        soup: Optional[BeautifulSoup] = None
        try:
            soup = parse_document(response.text)
            return soup, extract_from_soup(soup, response.text, response.url, self.config.js_keywords)
        except Exception as exc:  # malformed markup must not abort the run
            self.error_log.record(f"extract {task.url}", ExtractionDegraded(task.url, exc))
            return soup if soup is not None else parse_document(""), PageArtifact(url=response.url, degraded=True)

    async def _scan_external_scripts(self, artifact: PageArtifact) -> None:
        if not (self.config.fetch_external_scripts and self.config.js_keywords):
            return
        for src in artifact.script_sources:
            try:
                script = await self.fetcher.fetch(src)
            except FetchError as exc:
                self.error_log.record(f"script {src}", exc)
                continue
            for keyword, contexts in find_keyword_contexts(script.text, self.config.js_keywords).items():
                artifact.js_matches.setdefault(keyword, []).extend(f"{src}: {c}" for c in contexts)

    async def _fetch_page(self, url: str) -> RawResponse:
        if self.fetcher.cookie_aware:
            return await self.fetcher.fetch_with_cookies(url)
        return await self.fetcher.fetch(url)

    async def _dispatch_media(self, artifact: PageArtifact) -> List[DispatchedAsset]:
        if self.media_pipeline is None:
            return []
        return await self.media_pipeline.classify_and_dispatch(artifact)

    async def _run_handler(
        self, task: CrawlTask, response: RawResponse, soup: BeautifulSoup, artifact: PageArtifact
    ) -> None:
        if self.page_handler is None:
            return
        document = PageDocument(
            url=response.url,
            depth=task.depth,
            html=response.text,
            soup=soup,
            artifact=artifact,
        )
        try:
            result = self.page_handler.handle(document)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:  # handler is caller code; its failure stays with this page
            self.error_log.record(f"handler {task.url}", exc)

    async def _probe_new_host(self, url: str, report: CrawlReport) -> None:
        host = urlparse(url).netloc.lower()
        if self.prober is None or host in self._seen_hosts:
            return
        self._seen_hosts.add(host)
        try:
            report.open_directories.extend(await self.prober.probe(url))
        except Exception as exc:  # side-scan only, never gates traversal
            self.error_log.record(f"probe {host}", exc)

    async def _wait_politely(self, url: str) -> None:
        interval = 1 / self.config.rate_limit if self.config.rate_limit else 0.0
        crawl_delay = await self.policy.crawl_delay(url)
        interval = max(interval, crawl_delay or 0.0)
        async with self._rate_lock:
            wait = interval - (time.monotonic() - self._last_request_ts)
            if self._last_request_ts and wait > 0:
                await asyncio.sleep(wait)
            if self.config.delay_range is not None:
                await random_delay(*self.config.delay_range)
            self._last_request_ts = time.monotonic()

    def _fail(self, task: CrawlTask, exc: FetchError, report: CrawlReport) -> None:
        report.failures.append(
            FailureRecord(
                url=task.url,
                depth=task.depth,
                reason=exc.reason,
                message=str(exc),
                status=getattr(exc, "code", None),
            )
        )
        self.error_log.record(f"fetch {task.url}", exc)

    @staticmethod
    def _page_record(
        task: CrawlTask,
        response: RawResponse,
        artifact: PageArtifact,
        state: TaskState,
        matched: Optional[bool],
        media: List[DispatchedAsset],
        captcha_solved: bool,
    ) -> PageRecord:
        return PageRecord(
            url=task.url,
            depth=task.depth,
            status=response.status,
            state=state.value,
            title=artifact.title,
            links=list(artifact.links),
            meta=dict(artifact.meta),
            forms=[{"action": f.action, "method": f.method, "fields": list(f.fields)} for f in artifact.forms],
            js_matches={k: list(v) for k, v in artifact.js_matches.items()},
            emails=list(artifact.emails),
            error_markers=list(artifact.error_markers),
            media=[
                {"source_url": a.source_url, "kind": a.kind, "stored_path": a.stored_path, "error": a.error}
                for a in media
            ],
            target_matched=matched,
            degraded=artifact.degraded,
            captcha_solved=captcha_solved,
        )


async def rec_scrape(
    seed: str,
    config: Optional[CrawlConfig] = None,
    visited: Union[VisitedRegistry, Set[str], None] = None,
    target_phrase: Optional[str] = None,
    *,
    fetcher: Optional[Fetcher] = None,
    captcha_solver: Optional[CaptchaSolver] = None,
    media_sink: Optional[StorageSink] = None,
    page_handler: Optional[PageHandler] = None,
    error_log: Optional[ErrorLog] = None,
    stop_event: Optional[asyncio.Event] = None,
) -> CrawlReport:
    """
    Recursive scrape of *seed* with an explicit configuration.

    *visited* may be a VisitedRegistry or a plain set (mutated in place); a
    fresh registry is used when omitted. With *target_phrase*, links are only
    followed from pages whose visible text contains it.
    Raises ConfigError for an unusable seed before any request is made.
    """
    config = config or CrawlConfig()
    seed = validate_seed(seed)
    registry = visited if isinstance(visited, VisitedRegistry) else VisitedRegistry(visited)
    async with AsyncExitStack() as stack:
        if fetcher is None:
            fetcher = await stack.enter_async_context(Fetcher(config))
        pipeline = MediaPipeline(media_sink, error_log) if media_sink is not None else None
        crawler = RecursiveCrawler(
            config,
            fetcher,
            registry=registry,
            target_phrase=target_phrase,
            captcha_solver=captcha_solver,
            media_pipeline=pipeline,
            page_handler=page_handler,
            error_log=error_log,
            stop_event=stop_event,
        )
        return await crawler.crawl(seed)
