# File: tests/test_utils.py
import asyncio

import pytest

from knee_scraper.errors import ConfigError
from knee_scraper.utils import (
    USER_AGENTS,
    extract_domain,
    is_http_url,
    normalize_url,
    origin_of,
    random_delay,
    random_user_agent,
    read_wordlist,
    remove_duplicates,
    validate_seed,
)


@pytest.mark.parametrize(
    "url,expected",
    [
        ("HTTP://Example.COM", "http://example.com/"),
        ("https://example.com:443/a", "https://example.com/a"),
        ("http://example.com:8080/a", "http://example.com:8080/a"),
        ("https://example.com/a/", "https://example.com/a"),
        ("https://example.com/a/./b/../c", "https://example.com/a/c"),
        ("https://example.com/page#section", "https://example.com/page"),
        ("https://example.com/?b=2&a=1", "https://example.com/?a=1&b=2"),
        ("https://example.com/a%20b", "https://example.com/a%20b"),
        ("http://Example.com:80/a/./b/?y=2&x=1#frag", "http://example.com/a/b?x=1&y=2"),
    ],
)
def test_normalize_url(url, expected):
    assert normalize_url(url) == expected


def test_normalize_url_equivalent_forms_collapse():
    forms = [
        "https://example.com/docs",
        "https://EXAMPLE.com/docs/",
        "https://example.com:443/docs#top",
        "https://example.com/x/../docs",
    ]
    assert len({normalize_url(u) for u in forms}) == 1


def test_normalize_url_keeps_ipv6_brackets():
    assert normalize_url("http://[::1]:8080/a") == "http://[::1]:8080/a"


@pytest.mark.parametrize(
    "url,ok",
    [
        ("http://example.com", True),
        ("https://example.com/x", True),
        ("ftp://example.com", False),
        ("/relative/path", False),
        ("mailto:a@example.com", False),
    ],
)
def test_is_http_url(url, ok):
    assert is_http_url(url) is ok


@pytest.mark.parametrize("seed", ["", "   ", "example.com", "ftp://example.com", "http://", "http://host:notaport/"])
def test_validate_seed_rejects(seed):
    with pytest.raises(ConfigError):
        validate_seed(seed)


def test_validate_seed_strips():
    assert validate_seed("  https://example.com/ ") == "https://example.com/"


def test_extract_domain_and_origin():
    assert extract_domain("https://Sub.Example.com:8443/x") == "sub.example.com"
    assert extract_domain("not a url") == "unknown_domain"
    assert origin_of("HTTPS://Example.com:8443/x?y=1") == "https://example.com:8443"


def test_read_wordlist(wordlist_file):
    assert read_wordlist(wordlist_file) == ["/private", "admin"]


def test_read_wordlist_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        read_wordlist(tmp_path / "nope.txt")


def test_remove_duplicates_keeps_order():
    assert remove_duplicates(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]


def test_random_user_agent():
    assert random_user_agent() in USER_AGENTS


def test_random_delay_range(monkeypatch):
    slept = []

    async def fake_sleep(seconds):
        slept.append(seconds)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)
    delay = asyncio.run(random_delay(0.5, 1.5))
    assert 0.5 <= delay <= 1.5
    assert slept == [delay]
