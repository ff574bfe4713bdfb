# knee_scraper/crawler/fetcher.py
"""
Fetcher module: wraps an aiohttp session, applies the configured User-Agent and
classifies every outcome into a RawResponse or a FetchError subclass.

No retries happen here; retry policy belongs to the caller.
"""
from __future__ import annotations

import asyncio
from types import TracebackType
from typing import Dict, Mapping, Optional, Type

from aiohttp import (
    ClientError,
    ClientResponseError,
    ClientSession,
    ClientTimeout,
    CookieJar,
    DummyCookieJar,
)

from knee_scraper.config import CrawlConfig
from knee_scraper.crawler.models import RawResponse
from knee_scraper.errors import DecodeError, StatusError, TransportError
from knee_scraper.logger import logger

_TEXTUAL_MARKERS = ("text/", "html", "xml", "json", "javascript", "ecmascript")


class Fetcher:
    """Handles HTTP fetching with timeout, optional User-Agent and cookie jar."""

    def __init__(
        self,
        config: CrawlConfig,
        *,
        cookies: bool = False,
        session: Optional[ClientSession] = None,
    ) -> None:
        self.config = config
        self.cookie_aware = cookies
        self.session = session
        self._owns_session = session is None

    async def __aenter__(self) -> Fetcher:
        if self.session is None:
            headers = {"User-Agent": self.config.user_agent} if self.config.user_agent else None
            jar = CookieJar(unsafe=True) if self.cookie_aware else DummyCookieJar()
            self.session = ClientSession(
                timeout=ClientTimeout(total=self.config.timeout),
                headers=headers,
                cookie_jar=jar,
                raise_for_status=False,
            )
            self._owns_session = True
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self.session is not None and not self.session.closed:
            await self.session.close()

    def _require_session(self) -> ClientSession:
        if self.session is None:
            raise RuntimeError("Session not initialized")
        return self.session

    def _request_headers(self) -> Optional[Dict[str, str]]:
        # An injected session does not carry our default headers.
        if not self._owns_session and self.config.user_agent:
            return {"User-Agent": self.config.user_agent}
        return None

    async def fetch(self, url: str, params: Optional[Mapping[str, str]] = None) -> RawResponse:
        """
        GET *url* and return its decoded body.

        Raises StatusError for non-2xx answers (including redirect exhaustion),
        TransportError for connection problems and timeouts, DecodeError when
        the body is not text.
        """
        session = self._require_session()
        try:
            async with session.get(url, params=params, headers=self._request_headers()) as resp:
                if not 200 <= resp.status < 300:
                    raise StatusError(url, resp.status)
                mime = resp.headers.get("Content-Type", "").split(";", 1)[0].strip().lower()
                if mime and not any(marker in mime for marker in _TEXTUAL_MARKERS):
                    raise DecodeError(url, f"non-text content type {mime!r}", status=resp.status)
                body = await resp.read()
                charset = resp.charset or "utf-8"
                try:
                    text = body.decode(charset)
                except (UnicodeDecodeError, LookupError) as exc:
                    raise DecodeError(url, f"cannot decode body as {charset}: {exc}", status=resp.status) from exc
                return RawResponse(url=str(resp.url), status=resp.status, headers=dict(resp.headers), text=text)
        except ClientResponseError as exc:
            # TooManyRedirects and friends
            raise StatusError(url, exc.status, f"HTTP {exc.status} for {url}: {exc.message}") from exc
        except (ClientError, asyncio.TimeoutError) as exc:
            raise TransportError(url, f"{type(exc).__name__}: {exc}") from exc

    async def fetch_bytes(self, url: str) -> bytes:
        """GET *url* and return the raw body (media, challenge images, scripts)."""
        session = self._require_session()
        try:
            async with session.get(url, headers=self._request_headers()) as resp:
                if not 200 <= resp.status < 300:
                    raise StatusError(url, resp.status)
                return await resp.read()
        except ClientResponseError as exc:
            raise StatusError(url, exc.status) from exc
        except (ClientError, asyncio.TimeoutError) as exc:
            raise TransportError(url, f"{type(exc).__name__}: {exc}") from exc

    async def fetch_with_cookies(self, url: str) -> RawResponse:
        """Same contract as :meth:`fetch`; cookies set by the server persist on this instance."""
        if not self.cookie_aware:
            raise RuntimeError("fetch_with_cookies requires Fetcher(..., cookies=True)")
        response = await self.fetch(url)
        logger.info("Response status %s for %s (%d cookies stored)", response.status, url, len(self.cookies()))
        return response

    def cookies(self) -> Dict[str, str]:
        if self.session is None:
            return {}
        return {cookie.key: cookie.value for cookie in self.session.cookie_jar}
