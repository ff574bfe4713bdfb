# knee_scraper/crawler/policy.py
"""
Policy engine: decides per task whether to fetch and whether to follow links.

``max_depth`` is inclusive: a page at depth ``max_depth`` is fetched but its
links are not followed. The target phrase is an exact, case-sensitive
substring match against the page's visible text.
"""
from __future__ import annotations

from typing import Optional
from urllib.parse import urlparse

from knee_scraper.config import CrawlConfig
from knee_scraper.crawler.models import CrawlTask, PageArtifact, TaskState
from knee_scraper.crawler.registry import VisitedRegistry
from knee_scraper.crawler.robots import RobotsCache
from knee_scraper.errors import SkipReason
from knee_scraper.logger import logger


def recurse_outcome(
    artifact: PageArtifact,
    task: CrawlTask,
    config: CrawlConfig,
    predicate: Optional[str] = None,
) -> TaskState:
    """Terminal state of an extracted task: RECURSED, PRUNED or DEPTH_EXHAUSTED."""
    if not config.follow_links or task.depth >= config.max_depth:
        return TaskState.DEPTH_EXHAUSTED
    if predicate and not artifact.contains_phrase(predicate):
        return TaskState.PRUNED
    return TaskState.RECURSED


def should_recurse(
    artifact: PageArtifact,
    task: CrawlTask,
    config: CrawlConfig,
    predicate: Optional[str] = None,
) -> bool:
    return recurse_outcome(artifact, task, config, predicate) is TaskState.RECURSED


class PolicyEngine:
    """Fetch/recurse decisions for one run."""

    def __init__(
        self,
        config: CrawlConfig,
        robots: Optional[RobotsCache] = None,
        seed_host: Optional[str] = None,
    ) -> None:
        self.config = config
        self.robots = robots if config.respect_robots else None
        self.seed_host = seed_host.lower() if seed_host else None

    @property
    def agent(self) -> str:
        return self.config.user_agent or "*"

    async def check_fetch(self, task: CrawlTask, registry: VisitedRegistry) -> Optional[SkipReason]:
        """None if the task may be fetched, otherwise the reason it is skipped."""
        if registry.contains(task.url):
            return SkipReason.DUPLICATE
        if task.depth > self.config.max_depth:
            return SkipReason.DEPTH
        if self.config.same_host_only and self.seed_host is not None:
            if (urlparse(task.url).netloc or "").lower() != self.seed_host:
                return SkipReason.OFF_HOST
        if self.robots is not None and not await self.robots.allowed(task.url, self.agent):
            logger.debug("Blocked by robots.txt: %s", task.url)
            return SkipReason.ROBOTS
        return None

    async def should_fetch(self, task: CrawlTask, registry: VisitedRegistry) -> bool:
        return await self.check_fetch(task, registry) is None

    def should_recurse(
        self, artifact: PageArtifact, task: CrawlTask, predicate: Optional[str] = None
    ) -> bool:
        return should_recurse(artifact, task, self.config, predicate)

    def recurse_outcome(
        self, artifact: PageArtifact, task: CrawlTask, predicate: Optional[str] = None
    ) -> TaskState:
        return recurse_outcome(artifact, task, self.config, predicate)

    async def crawl_delay(self, url: str) -> Optional[float]:
        if self.robots is None:
            return None
        rules = await self.robots.rules_for(url)
        return None if rules is None else rules.crawl_delay(self.agent)
