# knee_scraper/crawler/extractor.py
"""
Content extraction for KneeScraper.

Turns fetched HTML into a :class:`PageArtifact`: outbound links, visible text,
meta tags, forms, media URLs, e-mail addresses and keyword hits inside
``<script>`` bodies. Script scanning is a plain text search; values computed
by the page at runtime are invisible to it.
"""
from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from typing import Dict, List, Optional, Tuple
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup
from bs4.element import CData, NavigableString, Tag

from knee_scraper.crawler.models import FormDescriptor, PageArtifact
from knee_scraper.errors import ExtractionDegraded
from knee_scraper.logger import logger
from knee_scraper.media import classify

__all__: Sequence[str] = (
    "parse_document",
    "extract",
    "extract_links",
    "scrape_js_content",
    "find_keyword_contexts",
    "find_emails",
    "find_error_markers",
)

_SKIP_SCHEMES = ("mailto:", "javascript:", "tel:", "data:")
_INVISIBLE_TAGS = frozenset({"script", "style", "noscript", "template"})
_EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
ERROR_MARKERS: Tuple[str, ...] = ("Exception", "Stack trace", "Traceback (most recent call last)")

# (selector tag, attribute, media hint)
_MEDIA_SOURCES: Tuple[Tuple[str, str, str], ...] = (
    ("img", "src", "image"),
    ("video", "src", "video"),
    ("video", "poster", "image"),
    ("audio", "src", "audio"),
    ("source", "src", ""),
)

#: lines longer than this are treated as minified and clipped around the match
_MAX_CONTEXT = 200
_CONTEXT_RADIUS = 80


def parse_document(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def _resolve(base_url: str, raw: Optional[str]) -> Optional[str]:
    """Absolute http(s) URL for *raw*, or None when it should be ignored."""
    if not isinstance(raw, str):
        return None
    href = raw.strip()
    if not href or href.startswith("#") or href.lower().startswith(_SKIP_SCHEMES):
        return None
    absolute = urljoin(base_url, href)
    if urlparse(absolute).scheme not in ("http", "https"):
        return None
    return absolute


def _links_from(soup: BeautifulSoup, base_url: str) -> List[str]:
    links: List[str] = []
    for tag in soup.find_all(["a", "area"], href=True):
        if not isinstance(tag, Tag):
            continue
        absolute = _resolve(base_url, tag.get("href"))  # type: ignore[arg-type]
        if absolute is not None:
            links.append(absolute)
    return links


def extract_links(html: str, base_url: str) -> List[str]:
    """
    Extract absolute HTTP(S) links from anchor-style elements, in document order.

    Duplicates are kept. Fragment-only and empty hrefs (the page itself),
    mailto:, javascript:, tel: and data: references are dropped.
    """
    return _links_from(parse_document(html), base_url)


def find_keyword_contexts(source: str, keywords: Iterable[str]) -> Dict[str, List[str]]:
    """Return, per keyword found in *source*, the lines containing it."""
    matches: Dict[str, List[str]] = {}
    lines = source.splitlines()
    for keyword in keywords:
        if not keyword or keyword not in source:
            continue
        contexts: List[str] = []
        for line in lines:
            start = line.find(keyword)
            while start != -1:
                contexts.append(_context_window(line, start, len(keyword)))
                if len(line) <= _MAX_CONTEXT:
                    break
                start = line.find(keyword, start + len(keyword))
        matches[keyword] = contexts
    return matches


def _context_window(line: str, start: int, length: int) -> str:
    if len(line) <= _MAX_CONTEXT:
        return line.strip()
    # minified code: cut at the nearest statement boundaries inside the radius
    lo = max(0, start - _CONTEXT_RADIUS)
    hi = min(len(line), start + length + _CONTEXT_RADIUS)
    left = line.rfind(";", lo, start)
    right = line.find(";", start + length, hi)
    lo = left + 1 if left != -1 else lo
    hi = right + 1 if right != -1 else hi
    return line[lo:hi].strip()


def _inline_scripts(soup: BeautifulSoup) -> List[str]:
    bodies: List[str] = []
    for script in soup.find_all("script"):
        if isinstance(script, Tag):
            body = script.string if script.string is not None else script.get_text()
            if body and body.strip():
                bodies.append(str(body))
    return bodies


def _merge_matches(target: Dict[str, List[str]], found: Dict[str, List[str]]) -> None:
    for keyword, contexts in found.items():
        target.setdefault(keyword, []).extend(contexts)


def scrape_js_content(html: str, base_url: str, keywords: Sequence[str]) -> Dict[str, List[str]]:
    """
    Search inline ``<script>`` bodies for *keywords*.

    Returns a mapping keyword -> list of contexts (the statement or line that
    contains the keyword). Keywords that never occur are absent. External
    scripts are not fetched here; see ``PageArtifact.script_sources``.
    """
    soup = parse_document(html)
    matches: Dict[str, List[str]] = {}
    for body in _inline_scripts(soup):
        _merge_matches(matches, find_keyword_contexts(body, keywords))
    if matches:
        logger.debug("Keyword hits on %s: %s", base_url, ", ".join(matches))
    return matches


def find_emails(text: str) -> List[str]:
    return list(dict.fromkeys(_EMAIL_RE.findall(text)))


def find_error_markers(html: str) -> List[str]:
    return [marker for marker in ERROR_MARKERS if marker in html]


def _visible_text_blocks(soup: BeautifulSoup) -> List[str]:
    """Stripped text nodes outside script, style, noscript and template; leaves the tree intact."""
    blocks: List[str] = []
    for node in soup.find_all(string=True):
        # comments, doctype and script/style string subclasses are not page text
        if type(node) not in (NavigableString, CData):
            continue
        if any(parent.name in _INVISIBLE_TAGS for parent in node.parents):
            continue
        text = node.strip()
        if text:
            blocks.append(text)
    return blocks


def _forms_from(soup: BeautifulSoup, base_url: str) -> List[FormDescriptor]:
    forms: List[FormDescriptor] = []
    for form in soup.find_all("form"):
        if not isinstance(form, Tag):
            continue
        action = form.get("action")
        target = urljoin(base_url, action.strip()) if isinstance(action, str) and action.strip() else base_url
        method = form.get("method")
        fields = [
            str(field.get("name"))
            for field in form.find_all(["input", "select", "textarea", "button"])
            if isinstance(field, Tag) and field.get("name")
        ]
        forms.append(
            FormDescriptor(
                action=target,
                method=method.lower() if isinstance(method, str) else "get",
                fields=fields,
            )
        )
    return forms


def _media_from(soup: BeautifulSoup, base_url: str, links: List[str]) -> Tuple[List[str], Dict[str, str]]:
    hints: Dict[str, str] = {}
    for tag_name, attr, hint in _MEDIA_SOURCES:
        for tag in soup.find_all(tag_name):
            if not isinstance(tag, Tag):
                continue
            absolute = _resolve(base_url, tag.get(attr))  # type: ignore[arg-type]
            if absolute is None:
                continue
            kind = hint
            if not kind and isinstance(tag.parent, Tag):
                kind = {"video": "video", "audio": "audio", "picture": "image"}.get(tag.parent.name, "")
            hints.setdefault(absolute, kind)
    # anchors pointing straight at media files
    for link in links:
        if classify(link) is not None:
            hints.setdefault(link, "")
    return list(hints), hints


def extract(html: str, base_url: str, keywords: Sequence[str] = ()) -> PageArtifact:
    """
    Build a PageArtifact for *html* fetched from *base_url*.

    Never raises: unparsable markup yields an empty artifact flagged
    ``degraded`` so the crawl can go on.
    """
    try:
        soup = parse_document(html)
        return extract_from_soup(soup, html, base_url, keywords)
    except Exception as exc:  # parser internals can fail in many ways on hostile markup
        logger.warning("%s", ExtractionDegraded(base_url, exc))
        return PageArtifact(url=base_url, degraded=True)


def extract_from_soup(
    soup: BeautifulSoup, html: str, base_url: str, keywords: Sequence[str] = ()
) -> PageArtifact:
    links = _links_from(soup, base_url)

    meta: Dict[str, str] = {}
    for tag in soup.find_all("meta"):
        if not isinstance(tag, Tag):
            continue
        name = tag.get("name") or tag.get("property")
        content = tag.get("content")
        if isinstance(name, str) and isinstance(content, str):
            meta[name] = content

    title_tag = soup.find("title")
    title = title_tag.get_text(strip=True) if title_tag else ""
    headings = [h.get_text(" ", strip=True) for h in soup.find_all(["h1", "h2", "h3", "h4", "h5", "h6"])]

    script_sources: List[str] = []
    for script in soup.find_all("script", src=True):
        if isinstance(script, Tag):
            src = _resolve(base_url, script.get("src"))  # type: ignore[arg-type]
            if src is not None:
                script_sources.append(src)

    js_matches: Dict[str, List[str]] = {}
    if keywords:
        for body in _inline_scripts(soup):
            _merge_matches(js_matches, find_keyword_contexts(body, keywords))

    forms = _forms_from(soup, base_url)
    media_urls, media_hints = _media_from(soup, base_url, links)

    text_blocks = _visible_text_blocks(soup)

    return PageArtifact(
        url=base_url,
        links=links,
        title=title,
        headings=headings,
        text_blocks=text_blocks,
        meta=meta,
        forms=forms,
        media_urls=media_urls,
        media_hints=media_hints,
        script_sources=script_sources,
        js_matches=js_matches,
        emails=find_emails(html),
        error_markers=find_error_markers(html),
    )
