from __future__ import annotations

import asyncio
from collections import Counter

import httpx

from prospector.models.search import SearchContext
from prospector.services.discovery.crawler import (
    WebsiteCrawler,
    WebsiteCrawlerAdapter,
    normalize_start_url,
    parse_page,
)

PAGES = {
    "/": """
        <html><body>
          <script>var hidden = "bot@globex.com";</script>
          <p>Personal notes go to maria@gmail.com</p>
          <a href="/about">About us</a>
          <a href="/team">Our Team</a>
          <a href="/pricing">Pricing</a>
          <a href="https://partner.example.org/contact">Contact our partner</a>
          <a href="mailto:info@globex.com?subject=Hi">Email us</a>
        </body></html>
    """,
    "/about": """
        <html><body>
          <p>Maria Gonzalez, CEO: maria.gonzalez@globex.com</p>
          <a href="/contact">Contact</a>
          <a href="/">About home</a>
        </body></html>
    """,
    "/contact": """
        <html><body>
          <p>Sales: ravi@globex.com</p>
          <a href="/contact/deep">Contact more</a>
          <a href="/about">About</a>
        </body></html>
    """,
    "/team": "<html><body><p>Meet the team.</p></body></html>",
    "/contact/deep": "<html><body><p>deep@globex.com</p></body></html>",
}


def _transport(requested: Counter, failing: dict[str, object] | None = None) -> httpx.MockTransport:
    failing = failing or {}

    def handler(request: httpx.Request) -> httpx.Response:
        requested[(request.url.host, request.url.path)] += 1
        failure = failing.get(request.url.path)
        if isinstance(failure, Exception):
            raise failure
        if isinstance(failure, int):
            return httpx.Response(failure)
        body = PAGES.get(request.url.path)
        if body is None:
            return httpx.Response(404)
        return httpx.Response(200, html=body)

    return httpx.MockTransport(handler)


def test_crawl_is_bounded_by_depth_and_host():
    requested: Counter = Counter()
    crawler = WebsiteCrawler(
        max_depth=2,
        max_pages=20,
        timeout=5,
        transport=_transport(requested, {"/team": 500}),
    )

    report = asyncio.run(crawler.crawl("globex.com"))

    assert set(report.emails) == {"info@globex.com", "maria.gonzalez@globex.com", "ravi@globex.com"}
    assert report.crawled_pages == [
        "https://globex.com/",
        "https://globex.com/about",
        "https://globex.com/contact",
    ]
    assert report.skipped_pages == [{"url": "https://globex.com/team", "reason": "http_500"}]
    assert report.total_pages_scanned == 4
    assert report.depth_reached == 2
    assert ("globex.com", "/contact/deep") not in requested
    assert all(host == "globex.com" for host, _ in requested)
    assert all(count == 1 for count in requested.values())


def test_crawl_respects_page_budget():
    requested: Counter = Counter()
    crawler = WebsiteCrawler(max_depth=2, max_pages=2, transport=_transport(requested))

    report = asyncio.run(crawler.crawl("https://globex.com"))

    assert report.total_pages_scanned == 2
    assert sum(requested.values()) == 2


def test_fetch_errors_are_recorded_as_skipped_pages():
    requested: Counter = Counter()
    failing = {"/about": httpx.ConnectError("refused")}
    crawler = WebsiteCrawler(max_depth=1, transport=_transport(requested, failing))

    report = asyncio.run(crawler.crawl("https://www.globex.com"))

    assert {"url": "https://www.globex.com/about", "reason": "ConnectError"} in report.skipped_pages
    assert "https://www.globex.com/team" in report.crawled_pages


def test_depth_zero_fetches_only_start_page():
    requested: Counter = Counter()
    crawler = WebsiteCrawler(max_depth=0, transport=_transport(requested))

    report = asyncio.run(crawler.crawl("https://globex.com"))

    assert report.crawled_pages == ["https://globex.com/"]
    assert report.emails == ["info@globex.com"]


def test_parse_page_strips_scripts_and_collects_links():
    page = parse_page("https://globex.com", PAGES["/"])

    assert "bot@globex.com" not in page.emails
    assert "info@globex.com" in page.emails
    assert "https://globex.com/pricing" not in page.links
    assert "https://globex.com/about" in page.links


def test_adapter_reports_crawl_metadata():
    requested: Counter = Counter()
    adapter = WebsiteCrawlerAdapter(
        WebsiteCrawler(max_depth=2, transport=_transport(requested, {"/team": 500}))
    )

    result = adapter.execute(SearchContext(company_name="Globex", website="globex.com"))

    assert result.source == "website_crawler"
    assert result.metadata["total_pages_scanned"] == 4
    assert result.metadata["emails_found"] == 3
    assert "maria.gonzalez@globex.com" in result.metadata["page_text"]


def test_adapter_without_website_returns_error():
    result = WebsiteCrawlerAdapter().execute(SearchContext(company_name="Globex"))

    assert result.error == "No website URL provided"
    assert result.emails == ()


def test_normalize_start_url():
    assert normalize_start_url(" globex.com ") == "https://globex.com/"
    assert normalize_start_url("http://globex.com/#top") == "http://globex.com/"
