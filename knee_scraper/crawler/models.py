# knee_scraper/crawler/models.py
"""
Data models for the KneeScraper crawler.
"""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from bs4 import BeautifulSoup


@dataclass(frozen=True, slots=True)
class CrawlTask:
    """Unit of work scheduled by the crawler: a URL at a given depth."""

    url: str
    depth: int = 0

    def child(self, url: str) -> CrawlTask:
        return CrawlTask(url=url, depth=self.depth + 1)


class TaskState(str, Enum):
    """Terminal states of a task."""

    SKIPPED = "skipped"
    FETCH_FAILED = "fetch_failed"
    RECURSED = "recursed"
    PRUNED = "pruned"
    DEPTH_EXHAUSTED = "depth_exhausted"


@dataclass(slots=True)
class RawResponse:
    """Successful fetch: final URL, status, headers and decoded body."""

    url: str
    status: int
    headers: Mapping[str, str]
    text: str


@dataclass(slots=True)
class FormDescriptor:
    """A form found on a page (recorded, never submitted)."""

    action: str
    method: str = "get"
    fields: List[str] = field(default_factory=list)


@dataclass(slots=True)
class PageArtifact:
    """Everything extracted from one page."""

    url: str
    links: List[str] = field(default_factory=list)
    title: str = ""
    headings: List[str] = field(default_factory=list)
    text_blocks: List[str] = field(default_factory=list)
    meta: Dict[str, str] = field(default_factory=dict)
    forms: List[FormDescriptor] = field(default_factory=list)
    media_urls: List[str] = field(default_factory=list)
    media_hints: Dict[str, str] = field(default_factory=dict)
    script_sources: List[str] = field(default_factory=list)
    js_matches: Dict[str, List[str]] = field(default_factory=dict)
    emails: List[str] = field(default_factory=list)
    error_markers: List[str] = field(default_factory=list)
    degraded: bool = False

    @property
    def text(self) -> str:
        return " ".join(self.text_blocks)

    def contains_phrase(self, phrase: str) -> bool:
        """Exact, case-sensitive substring match against the visible text."""
        return phrase in self.text


@dataclass(slots=True)
class PageDocument:
    """What a custom page handler receives."""

    url: str
    depth: int
    html: str
    soup: BeautifulSoup
    artifact: PageArtifact


@dataclass(slots=True)
class DispatchedAsset:
    """A media asset handed to the storage sink."""

    source_url: str
    kind: str
    suggested_name: str
    stored_path: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class OpenDirectory:
    """Accessible well-known path found by the open-directory probe."""

    url: str
    status: int
    listing: bool = False


@dataclass(slots=True)
class PageRecord:
    """Report entry for a fetched and extracted page."""

    url: str
    depth: int
    status: int
    state: str
    title: str = ""
    links: List[str] = field(default_factory=list)
    meta: Dict[str, str] = field(default_factory=dict)
    forms: List[Dict[str, Any]] = field(default_factory=list)
    js_matches: Dict[str, List[str]] = field(default_factory=dict)
    emails: List[str] = field(default_factory=list)
    error_markers: List[str] = field(default_factory=list)
    media: List[Dict[str, Any]] = field(default_factory=list)
    target_matched: Optional[bool] = None
    degraded: bool = False
    captcha_solved: bool = False


@dataclass(slots=True)
class FailureRecord:
    """Report entry for a task that ended in FETCH_FAILED."""

    url: str
    depth: int
    reason: str
    message: str
    status: Optional[int] = None


@dataclass(slots=True)
class CrawlReport:
    """Outcome of one crawl run."""

    seed: str
    pages: List[PageRecord] = field(default_factory=list)
    failures: List[FailureRecord] = field(default_factory=list)
    skipped: Dict[str, int] = field(default_factory=dict)
    robots_blocked: List[str] = field(default_factory=list)
    open_directories: List[OpenDirectory] = field(default_factory=list)
    cookies: Dict[str, str] = field(default_factory=dict)
    stopped: bool = False
    stop_reason: Optional[str] = None
    pending: int = 0
    elapsed: float = 0.0

    @property
    def visited_urls(self) -> List[str]:
        return [p.url for p in self.pages]

    def record_skip(self, reason: str) -> None:
        self.skipped[reason] = self.skipped.get(reason, 0) + 1

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def json(self, *, pretty: bool = False) -> str:
        """JSON-представление отчёта."""
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=2 if pretty else None)
