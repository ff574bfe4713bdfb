# knee_scraper/crawler/robots.py
"""
Parser and per-host cache for robots.txt rules.

Empty ``Disallow`` means "allow everything". Any failure to load robots.txt is
treated as "no restrictions".
"""
from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse, urlunparse

from knee_scraper.crawler.fetcher import Fetcher
from knee_scraper.errors import FetchError
from knee_scraper.logger import logger

__all__ = ("RobotsTxtRules", "RobotsCache")


@dataclass
class _Group:
    agents: List[str] = field(default_factory=list)
    directives: List[Tuple[str, str]] = field(default_factory=list)
    crawl_delay: Optional[float] = None

    @property
    def has_rules(self) -> bool:
        return bool(self.directives) or self.crawl_delay is not None


class RobotsTxtRules:
    """
    Парсит robots.txt (RFC 9309).
    Самое длинное совпадение побеждает; при равной длине Allow сильнее Disallow.
    """
    _WILDCARD_RE = re.compile(r"(\*|\$)")

    def __init__(self, text: str) -> None:
        self._groups: List[_Group] = []
        self._regex_cache: Dict[str, re.Pattern[str]] = {}
        self.sitemaps: List[str] = []
        self._parse(text)

    def can_fetch(self, user_agent: str, path: str) -> bool:
        group = self._match_group(user_agent)
        if group is None:
            return True
        best_len = -1
        allow: Optional[bool] = None
        for directive, pattern in group.directives:
            if not self._match_path(path, pattern):
                continue
            length = self._rule_len(pattern)
            if length > best_len or (length == best_len and directive == "allow"):
                best_len = length
                allow = directive == "allow"
        return True if allow is None else allow

    def crawl_delay(self, user_agent: str) -> Optional[float]:
        group = self._match_group(user_agent)
        return None if group is None else group.crawl_delay

    def disallowed_paths(self, user_agent: str = "*") -> List[str]:
        group = self._match_group(user_agent)
        if group is None:
            return []
        return [pattern for directive, pattern in group.directives if directive == "disallow"]

    def _parse(self, text: str) -> None:
        current: Optional[_Group] = None
        for raw in text.splitlines():
            line = raw.split("#", 1)[0].strip()
            if not line:
                continue
            key, _, val = line.partition(":")
            key = key.lower().strip()
            val = val.strip()
            if key == "sitemap":
                if val:
                    self.sitemaps.append(val)
                continue
            if key == "user-agent":
                # consecutive User-agent lines share one group
                if current is None or current.has_rules:
                    current = _Group()
                    self._groups.append(current)
                current.agents.append(val.lower())
                continue
            if key not in ("allow", "disallow", "crawl-delay"):
                continue
            if current is None:
                current = _Group(agents=["*"])
                self._groups.append(current)
            if key == "crawl-delay":
                try:
                    current.crawl_delay = float(val)
                except ValueError:
                    logger.debug("Ignoring malformed Crawl-delay %r", val)
            elif val:
                current.directives.append((key, val))

    def _match_group(self, user_agent: str) -> Optional[_Group]:
        ua = user_agent.lower()
        for group in self._groups:
            if any(agent != "*" and agent in ua for agent in group.agents):
                return group
        for group in self._groups:
            if "*" in group.agents:
                return group
        return None

    def _match_path(self, path: str, pattern: str) -> bool:
        if pattern not in self._regex_cache:
            esc = re.escape(pattern).replace(r"\*", ".*")
            if pattern.endswith("$"):
                esc = esc[:-2] + "$"
            self._regex_cache[pattern] = re.compile(f"^{esc}")
        return bool(self._regex_cache[pattern].match(path))

    @classmethod
    def _rule_len(cls, pattern: str) -> int:
        return len(cls._WILDCARD_RE.sub("", pattern))


class RobotsCache:
    """Loads robots.txt at most once per host for the lifetime of a run."""

    def __init__(self, fetcher: Fetcher) -> None:
        self.fetcher = fetcher
        self._rules: Dict[str, asyncio.Future[Optional[RobotsTxtRules]]] = {}
        self.fetch_count = 0

    async def fetch_robots(self, scheme: str, host: str) -> Optional[RobotsTxtRules]:
        """Return the ruleset for *host*, or None when there is nothing to obey."""
        key = f"{scheme.lower()}://{host.lower()}"
        if key not in self._rules:
            self._rules[key] = asyncio.ensure_future(self._load(key))
        return await self._rules[key]

    async def rules_for(self, url: str) -> Optional[RobotsTxtRules]:
        parsed = urlparse(url)
        return await self.fetch_robots(parsed.scheme, parsed.netloc)

    async def allowed(self, url: str, user_agent: str) -> bool:
        rules = await self.rules_for(url)
        if rules is None:
            return True
        parsed = urlparse(url)
        path = parsed.path or "/"
        if parsed.query:
            path = f"{path}?{parsed.query}"
        return rules.can_fetch(user_agent, path)

    async def _load(self, origin: str) -> Optional[RobotsTxtRules]:
        scheme, _, netloc = origin.partition("://")
        robots_url = urlunparse((scheme, netloc, "/robots.txt", "", "", ""))
        self.fetch_count += 1
        try:
            response = await self.fetcher.fetch(robots_url)
        except FetchError as exc:
            # default allow all
            logger.debug("robots.txt %s unavailable (%s), crawling without restrictions", robots_url, exc)
            return None
        return RobotsTxtRules(response.text)
