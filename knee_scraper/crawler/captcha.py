# knee_scraper/crawler/captcha.py
"""
CAPTCHA challenge detection and resolution.

Detection is a heuristic over the page markup (known widget classes, block
page phrases, captcha images and inputs). Recognition itself is delegated to
an external :class:`CaptchaSolver`.
"""
from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Awaitable, Dict, Optional, Protocol, Union
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from bs4.element import Tag

from knee_scraper.crawler.fetcher import Fetcher
from knee_scraper.crawler.models import RawResponse
from knee_scraper.errors import CaptchaUnsolved, FetchError
from knee_scraper.logger import logger

__all__ = ("Challenge", "CaptchaSolver", "detect_challenge", "resolve_challenge", "CHALLENGE_MARKERS")

CHALLENGE_MARKERS = (
    "g-recaptcha",
    "h-captcha",
    "cf-turnstile",
    "please verify you are human",
    "complete the captcha",
    "prove you are not a robot",
    "datadome captcha",
    "human challenge",
)
_DEFAULT_FIELD = "captcha"


@dataclass(slots=True)
class Challenge:
    """A detected challenge and what is needed to answer it."""

    page_url: str
    marker: str
    image_url: Optional[str] = None
    form_action: Optional[str] = None
    field_name: str = _DEFAULT_FIELD
    hidden_fields: Dict[str, str] = field(default_factory=dict)


class CaptchaSolver(Protocol):
    """External recognition capability: image bytes in, token (or None) out."""

    def solve(self, challenge_asset: bytes) -> Union[Optional[str], Awaitable[Optional[str]]]:
        ...


def _mentions_captcha(tag: Tag) -> bool:
    values = [tag.get("id"), tag.get("name"), tag.get("alt"), tag.get("src")]
    classes = tag.get("class") or []
    values.extend(classes if isinstance(classes, list) else [classes])
    return any(isinstance(v, str) and "captcha" in v.lower() for v in values)


def detect_challenge(html: str, base_url: str) -> Optional[Challenge]:
    """Return a Challenge when the page looks like a CAPTCHA block, else None."""
    lowered = html.lower()
    marker = next((m for m in CHALLENGE_MARKERS if m in lowered), None)
    if marker is None and "captcha" not in lowered:
        return None

    soup = BeautifulSoup(html, "html.parser")
    captcha_tags = [t for t in soup.find_all(True) if isinstance(t, Tag) and _mentions_captcha(t)]
    if marker is None:
        if not captcha_tags:
            # the word alone (e.g. in an article) is not a challenge
            return None
        marker = "captcha"

    challenge = Challenge(page_url=base_url, marker=marker)
    image = next((t for t in captcha_tags if t.name == "img" and t.get("src")), None)
    if image is not None:
        challenge.image_url = urljoin(base_url, str(image.get("src")))

    field_tag = next((t for t in captcha_tags if t.name == "input" and t.get("name")), None)
    form = field_tag.find_parent("form") if field_tag is not None else None
    if form is None and image is not None:
        form = image.find_parent("form")
    if isinstance(field_tag, Tag):
        challenge.field_name = str(field_tag.get("name"))
    if isinstance(form, Tag):
        action = form.get("action")
        challenge.form_action = urljoin(base_url, action) if isinstance(action, str) and action.strip() else base_url
        for hidden in form.find_all("input", attrs={"type": "hidden"}):
            name = hidden.get("name")
            if isinstance(name, str) and name != challenge.field_name:
                challenge.hidden_fields[name] = str(hidden.get("value") or "")
    return challenge


async def resolve_challenge(
    fetcher: Fetcher,
    challenge: Challenge,
    solver: Optional[CaptchaSolver],
) -> RawResponse:
    """
    Solve *challenge* and resubmit the token.

    Returns the page obtained after submitting; raises CaptchaUnsolved when
    no solver is available, the solver fails, or the challenge persists.
    """
    url = challenge.page_url
    if solver is None:
        raise CaptchaUnsolved(url, f"challenge detected ({challenge.marker}) and no solver configured")
    if challenge.image_url is None:
        raise CaptchaUnsolved(url, f"challenge ({challenge.marker}) has no image to solve")

    try:
        asset = await fetcher.fetch_bytes(challenge.image_url)
    except FetchError as exc:
        raise CaptchaUnsolved(url, f"cannot load challenge image: {exc}") from exc

    try:
        token = solver.solve(asset)
        if inspect.isawaitable(token):
            token = await token
    except Exception as exc:  # solver is third-party code
        raise CaptchaUnsolved(url, f"solver failed: {exc}") from exc
    if not token:
        raise CaptchaUnsolved(url, "solver returned no token")

    params = dict(challenge.hidden_fields)
    params[challenge.field_name] = str(token)
    target = challenge.form_action or url
    logger.info("Submitting CAPTCHA token for %s", url)
    try:
        response = await fetcher.fetch(target, params=params)
    except FetchError as exc:
        raise CaptchaUnsolved(url, f"resubmission failed: {exc}") from exc

    if detect_challenge(response.text, response.url) is not None:
        raise CaptchaUnsolved(url, "challenge persisted after submitting the token")
    return response
