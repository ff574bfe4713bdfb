# File: tests/test_extractor.py
"""Тесты извлечения контента: ссылки, текст, meta, формы, скрипты."""
import pytest

from knee_scraper.crawler.extractor import (
    extract,
    extract_from_soup,
    extract_links,
    find_error_markers,
    find_keyword_contexts,
    parse_document,
    scrape_js_content,
)

BASE = "https://example.com/x/"


@pytest.mark.parametrize(
    "href,expected",
    [
        ("/about", ["https://example.com/about"]),
        ("page", ["https://example.com/x/page"]),
        ("../up", ["https://example.com/up"]),
        ("https://other.org/p", ["https://other.org/p"]),
        ("//cdn.example.net/a", ["https://cdn.example.net/a"]),
        ("#top", []),
        ("", []),
        ("mailto:me@example.com", []),
        ("javascript:void(0)", []),
        ("tel:+100", []),
        ("ftp://files.example.com/f", []),
    ],
)
def test_extract_links_resolution(href, expected):
    assert extract_links(f'<a href="{href}">x</a>', BASE) == expected


def test_extract_links_order_and_duplicates():
    page = '<a href="/b">b</a><area href="/a"><a href="/b">again</a><a>no href</a>'
    assert extract_links(page, BASE) == [
        "https://example.com/b",
        "https://example.com/a",
        "https://example.com/b",
    ]


def test_extract_links_fragment_kept_on_other_page():
    assert extract_links('<a href="/doc#part">d</a>', BASE) == ["https://example.com/doc#part"]


def test_scrape_js_content_finds_keyword_context():
    page = """
    <html><head>
    <script>
      var config = {};
      config.apiKey = "abc123";
    </script>
    <script src="/app.js"></script>
    </head><body>token in text is not scanned</body></html>
    """
    found = scrape_js_content(page, BASE, ["apiKey", "token"])
    assert found == {"apiKey": ['config.apiKey = "abc123";']}


def test_find_keyword_contexts_minified_window():
    minified = "var a=1;" * 60 + 'window.token="secret";' + "var b=2;" * 60
    contexts = find_keyword_contexts(minified, ["token"])["token"]
    assert contexts == ['window.token="secret";']


def test_extract_full_artifact():
    page = """
    <html>
      <head>
        <title> Demo page </title>
        <meta name="description" content="first">
        <meta name="description" content="second">
        <meta property="og:title" content="OG">
        <style>.hidden { display: none }</style>
        <script>var token = "t";</script>
      </head>
      <body>
        <h1>Header One</h1>
        <p>Contact us at info@example.com or info@example.com</p>
        <img src="/img/logo.png">
        <video poster="/p.jpg"><source src="/clip"></video>
        <a href="/files/report.pdf">report</a>
        <form action="/search" method="POST">
          <input name="q"><input type="submit"><select name="lang"></select>
        </form>
        <form><textarea name="msg"></textarea></form>
      </body>
    </html>
    """
    artifact = extract(page, BASE, ["token"])
    assert not artifact.degraded
    assert artifact.title == "Demo page"
    assert artifact.headings == ["Header One"]
    assert artifact.meta == {"description": "second", "og:title": "OG"}
    assert artifact.emails == ["info@example.com"]
    assert artifact.js_matches == {"token": ['var token = "t";']}
    assert "Header One" in artifact.text
    assert "display: none" not in artifact.text
    assert 'var token' not in artifact.text

    assert [(f.action, f.method, f.fields) for f in artifact.forms] == [
        ("https://example.com/search", "post", ["q", "lang"]),
        (BASE, "get", ["msg"]),
    ]
    assert artifact.media_urls == [
        "https://example.com/img/logo.png",
        "https://example.com/p.jpg",
        "https://example.com/clip",
        "https://example.com/files/report.pdf",
    ]
    assert artifact.media_hints["https://example.com/clip"] == "video"


def test_extract_malformed_html_does_not_raise():
    artifact = extract("<html><body><div><p>unclosed <a href='/ok'>ok</b></body", BASE)
    assert artifact.links == ["https://example.com/ok"]
    assert "unclosed" in artifact.text


def test_extract_from_soup_leaves_tree_intact():
    page = "<!-- note --><p>Hello</p><script>var token = 1;</script><style>p {}</style><p>world</p>"
    soup = parse_document(page)
    artifact = extract_from_soup(soup, page, BASE)
    assert artifact.text == "Hello world"
    assert soup.find("script") is not None
    assert soup.find("style") is not None


def test_extract_degrades_instead_of_raising(monkeypatch):
    import knee_scraper.crawler.extractor as extractor

    def boom(_html):
        raise RuntimeError("parser exploded")

    monkeypatch.setattr(extractor, "parse_document", boom)
    artifact = extractor.extract("<html></html>", BASE)
    assert artifact.degraded is True
    assert artifact.links == []


def test_contains_phrase_is_case_sensitive():
    artifact = extract("<p>Hello World</p><script>var secret='Goodbye';</script>", BASE)
    assert artifact.contains_phrase("Hello World")
    assert not artifact.contains_phrase("hello world")
    assert not artifact.contains_phrase("Goodbye")


def test_find_error_markers():
    assert find_error_markers("<pre>java.lang.NullPointerException\nStack trace:</pre>") == [
        "Exception",
        "Stack trace",
    ]
    assert find_error_markers("<p>all good</p>") == []
