"""Exception taxonomy for KneeScraper.

Only :class:`ConfigError` is ever fatal for a run; everything else is caught by
the traversal, recorded for the page it belongs to and reported at the end.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional

__all__ = [
    "KneeScraperError",
    "ConfigError",
    "FetchError",
    "TransportError",
    "StatusError",
    "DecodeError",
    "CaptchaUnsolved",
    "ExtractionDegraded",
    "DispatchFailure",
    "SkipReason",
]


class KneeScraperError(Exception):
    """Base class for all project errors."""


class ConfigError(KneeScraperError, ValueError):
    """Invalid run configuration (bad seed URL etc.); detected before any request."""


class FetchError(KneeScraperError):
    """A page could not be loaded."""

    reason: str = "fetch"

    def __init__(self, url: str, message: str = "") -> None:
        self.url = url
        super().__init__(message or f"failed to fetch {url}")


class TransportError(FetchError):
    """Connection problem or timeout."""

    reason = "transport"


class StatusError(FetchError):
    """Non-success HTTP status (4xx, 5xx, redirect exhaustion)."""

    reason = "status"

    def __init__(self, url: str, code: int, message: str = "") -> None:
        self.code = code
        super().__init__(url, message or f"HTTP {code} for {url}")


class DecodeError(FetchError):
    """Body is not interpretable as text."""

    reason = "decode"

    def __init__(self, url: str, message: str = "", status: Optional[int] = None) -> None:
        self.status = status
        super().__init__(url, message)


class CaptchaUnsolved(FetchError):
    """The page is blocked by a challenge that could not be solved."""

    reason = "captcha"


class ExtractionDegraded(KneeScraperError):
    """HTML could not be parsed; the page yielded an empty artifact."""

    def __init__(self, url: str, cause: Optional[BaseException] = None) -> None:
        self.url = url
        self.cause = cause
        super().__init__(f"extraction degraded for {url}: {cause}")


class DispatchFailure(KneeScraperError):
    """A media asset could not be handed to the storage sink."""

    def __init__(self, source_url: str, cause: BaseException) -> None:
        self.source_url = source_url
        self.cause = cause
        super().__init__(f"dispatch failed for {source_url}: {cause}")


class SkipReason(str, Enum):
    """Why a task was dropped without a fetch."""

    DUPLICATE = "duplicate"
    DEPTH = "depth"
    ROBOTS = "robots"
    OFF_HOST = "off_host"
