# File: knee_scraper/utils.py
"""knee_scraper.utils: Утилитарные функции для обработки URL, словарей путей и задержек."""

from __future__ import annotations

import asyncio
import posixpath
import random
from pathlib import Path
from typing import Collection, List, Sequence, Union
from urllib.parse import parse_qsl, quote, unquote, urlencode, urlparse, urlunparse

from knee_scraper.errors import ConfigError
from knee_scraper.logger import logger

__all__: Sequence[str] = (
    "normalize_url",
    "is_http_url",
    "validate_seed",
    "extract_domain",
    "origin_of",
    "read_wordlist",
    "remove_duplicates",
    "random_user_agent",
    "random_delay",
)

_DEFAULT_PORTS = {"http": 80, "https": 443}

USER_AGENTS: Sequence[str] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) "
    "Version/17.4 Safari/605.1.15",
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_4 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.4 Mobile/15E148 Safari/604.1",
    "Mozilla/5.0 (X11; Linux x86_64; rv:125.0) Gecko/20100101 Firefox/125.0",
)


def normalize_url(url: str) -> str:
    """Каноническая форма URL для дедупликации.

    Схема и хост в нижнем регистре, порт по умолчанию убирается, точечные
    сегменты пути схлопываются, завершающий слеш отбрасывается (кроме корня),
    фрагмент удаляется, параметры запроса сортируются.
    """
    parsed = urlparse(url.strip())
    scheme = parsed.scheme.lower()
    host = (parsed.hostname or "").lower()
    try:
        port = parsed.port
    except ValueError:
        port = None
    netloc = f"[{host}]" if ":" in host else host
    if parsed.username:
        userinfo = parsed.username + (f":{parsed.password}" if parsed.password else "")
        netloc = f"{userinfo}@{netloc}"
    if port is not None and port != _DEFAULT_PORTS.get(scheme):
        netloc = f"{netloc}:{port}"

    path = unquote(parsed.path or "/")
    norm = posixpath.normpath(path) if path not in ("", "/") else "/"
    if not norm.startswith("/"):
        norm = "/" + norm
    # posixpath keeps a leading "//"
    if norm.startswith("//"):
        norm = "/" + norm.lstrip("/")
    norm = quote(norm, safe="/:@!$&'()*+,;=-._~")

    qs = parse_qsl(parsed.query, keep_blank_values=True)
    qs.sort()
    query = urlencode(qs, doseq=True)
    return urlunparse((scheme, netloc, norm, "", query, ""))


def is_http_url(url: str) -> bool:
    """Проверяет, что URL абсолютный и использует http(s)."""
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_seed(seed: str) -> str:
    """Проверяет стартовый URL до любой сетевой активности."""
    if not isinstance(seed, str) or not seed.strip():
        raise ConfigError(f"Seed URL must be a non-empty string, got {seed!r}")
    seed = seed.strip()
    try:
        parsed = urlparse(seed)
        _ = parsed.port
    except ValueError as exc:
        raise ConfigError(f"Unparsable seed URL {seed!r}: {exc}") from exc
    if parsed.scheme not in ("http", "https"):
        raise ConfigError(f"Seed URL must use http or https: {seed!r}")
    if not parsed.hostname:
        raise ConfigError(f"Seed URL has no host: {seed!r}")
    return seed


def extract_domain(url: str) -> str:
    """Возвращает хост из URL (без порта) или ``unknown_domain``."""
    return (urlparse(url).hostname or "unknown_domain").lower()


def origin_of(url: str) -> str:
    """``scheme://netloc`` для URL."""
    parsed = urlparse(url)
    return urlunparse((parsed.scheme.lower(), parsed.netloc.lower(), "", "", "", ""))


def read_wordlist(path: Union[str, Path]) -> List[str]:
    """Читает wordlist, возвращает непустые строки без пробелов и комментариев."""
    p = Path(path)
    if not p.exists():
        logger.error("Wordlist not found: %s", p)
        raise FileNotFoundError(f"Wordlist file not found: {p}")
    words = [
        line.strip()
        for line in p.read_text(encoding="utf-8").splitlines()
        if line.strip() and not line.lstrip().startswith("#")
    ]
    logger.debug("Loaded %d entries from wordlist %s", len(words), p)
    return words


def remove_duplicates(urls: Collection[str]) -> List[str]:
    """Удаляет дубликаты из списка, сохраняя порядок."""
    unique = list(dict.fromkeys(urls))
    removed = len(urls) - len(unique)
    if removed:
        logger.debug("Removed %d duplicate entries", removed)
    return unique


def random_user_agent() -> str:
    """Случайная строка User-Agent браузера."""
    return random.choice(USER_AGENTS)


async def random_delay(min_secs: float, max_secs: float) -> float:
    """Пауза случайной длительности в диапазоне [min_secs, max_secs]."""
    delay = random.uniform(min_secs, max_secs)
    if delay > 0:
        await asyncio.sleep(delay)
    return delay
