"""Breadth-first company website crawler that harvests business email addresses."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from urllib.parse import urldefrag, urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from prospector.config import settings
from prospector.models.search import ProviderResult, SearchContext
from prospector.observability.metrics import metrics
from prospector.services.validation.patterns import extract_emails, is_business_email

logger = logging.getLogger(__name__)

CONTACT_LINK_KEYWORDS: tuple[str, ...] = ("contact", "about", "team", "people", "staff")
MAX_PAGE_TEXT_CHARS = 200_000


@dataclass(frozen=True)
class PageResult:
    url: str
    text: str = ""
    emails: tuple[str, ...] = ()
    links: tuple[str, ...] = ()
    skipped_reason: str | None = None


@dataclass
class CrawlReport:
    start_url: str
    emails: list[str] = field(default_factory=list)
    crawled_pages: list[str] = field(default_factory=list)
    skipped_pages: list[dict[str, str]] = field(default_factory=list)
    page_texts: dict[str, str] = field(default_factory=dict)
    depth_reached: int = 0

    @property
    def total_pages_scanned(self) -> int:
        return len(self.crawled_pages) + len(self.skipped_pages)

    def combined_text(self) -> str:
        return "\n".join(self.page_texts.values())[:MAX_PAGE_TEXT_CHARS]


def _canonical(url: str) -> str:
    url = urldefrag(url)[0]
    parsed = urlparse(url)
    if not parsed.path:
        url = parsed._replace(path="/").geturl()
    return url


def normalize_start_url(website: str) -> str:
    candidate = website.strip()
    if "://" not in candidate:
        candidate = f"https://{candidate}"
    return _canonical(candidate)


def _host(url: str) -> str:
    host = (urlparse(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


class WebsiteCrawler:
    """Level-by-level crawl bounded by depth, page budget and per-request timeout."""

    def __init__(
        self,
        *,
        max_depth: int | None = None,
        max_pages: int | None = None,
        timeout: float | None = None,
        concurrency: int | None = None,
        user_agent: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._max_depth = settings.crawler_max_depth if max_depth is None else max_depth
        self._max_pages = max_pages or settings.crawler_max_pages
        self._timeout = timeout or settings.crawler_timeout_seconds
        self._concurrency = max(1, concurrency or settings.crawler_concurrency)
        self._user_agent = user_agent or settings.crawler_user_agent
        self._transport = transport

    async def crawl(self, website: str) -> CrawlReport:
        start_url = normalize_start_url(website)
        origin = _host(start_url)
        report = CrawlReport(start_url=start_url)
        visited = {start_url}
        level = [start_url]
        depth = 0
        seen_emails: dict[str, None] = {}

        async with httpx.AsyncClient(
            timeout=self._timeout,
            follow_redirects=True,
            headers={"User-Agent": self._user_agent},
            transport=self._transport,
        ) as client:
            semaphore = asyncio.Semaphore(self._concurrency)
            while level and depth <= self._max_depth:
                budget = self._max_pages - report.total_pages_scanned
                if budget <= 0:
                    break
                batch = level[:budget]
                pages = await self._fetch_level(client, semaphore, batch)
                report.depth_reached = depth

                next_level: list[str] = []
                for page in pages:
                    if page.skipped_reason:
                        report.skipped_pages.append({"url": page.url, "reason": page.skipped_reason})
                        continue
                    report.crawled_pages.append(page.url)
                    report.page_texts[page.url] = page.text
                    seen_emails.update(dict.fromkeys(page.emails))
                    if depth >= self._max_depth:
                        continue
                    for link in page.links:
                        if link in visited or _host(link) != origin:
                            continue
                        visited.add(link)
                        next_level.append(link)
                level = next_level
                depth += 1

        report.emails = [email for email in seen_emails if is_business_email(email)]
        return report

    async def _fetch_level(
        self,
        client: httpx.AsyncClient,
        semaphore: asyncio.Semaphore,
        urls: Sequence[str],
    ) -> list[PageResult]:
        coroutines = [self._with_semaphore(client, semaphore, url) for url in urls]
        outcomes = await asyncio.gather(*coroutines, return_exceptions=True)
        pages: list[PageResult] = []
        for url, outcome in zip(urls, outcomes, strict=False):
            if isinstance(outcome, PageResult):
                pages.append(outcome)
                continue
            logger.warning(
                "crawler.page_failed",
                extra={"url": url, "error": type(outcome).__name__},
            )
            pages.append(PageResult(url=url, skipped_reason=type(outcome).__name__))
        return pages

    async def _with_semaphore(
        self, client: httpx.AsyncClient, semaphore: asyncio.Semaphore, url: str
    ) -> PageResult:
        async with semaphore:
            return await self._fetch_page(client, url)

    async def _fetch_page(self, client: httpx.AsyncClient, url: str) -> PageResult:
        response = await client.get(url)
        if response.status_code >= 400:
            return PageResult(url=url, skipped_reason=f"http_{response.status_code}")
        content_type = response.headers.get("content-type", "")
        if "text/html" not in content_type.lower():
            return PageResult(url=url, skipped_reason="non_html")
        return parse_page(url, response.text)


def parse_page(url: str, html: str) -> PageResult:
    """Extract visible text, emails and keyword-matched links from one HTML page."""
    soup = BeautifulSoup(html, "html.parser")
    for element in soup(["script", "style", "noscript"]):
        element.decompose()
    text = soup.get_text(" ", strip=True)

    emails = dict.fromkeys(extract_emails(text))
    links: dict[str, None] = {}
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if href.lower().startswith("mailto:"):
            address = href[len("mailto:") :].split("?", 1)[0].strip().lower()
            if address:
                emails[address] = None
            continue
        label = anchor.get_text(" ", strip=True).lower()
        if not any(keyword in label for keyword in CONTACT_LINK_KEYWORDS):
            continue
        absolute = _canonical(urljoin(url, href))
        if absolute.startswith(("http://", "https://")):
            links[absolute] = None
    return PageResult(url=url, text=text, emails=tuple(emails), links=tuple(links))


class WebsiteCrawlerAdapter:
    """Provider-adapter face of the crawler."""

    source = "website_crawler"

    def __init__(self, crawler: WebsiteCrawler | None = None) -> None:
        self._crawler = crawler

    def execute(self, context: SearchContext) -> ProviderResult:
        if not context.website:
            return ProviderResult.empty(self.source, error="No website URL provided")
        return asyncio.run(self.execute_async(context))

    async def execute_async(self, context: SearchContext) -> ProviderResult:
        if not context.website:
            return ProviderResult.empty(self.source, error="No website URL provided")
        crawler = self._crawler or WebsiteCrawler(
            max_depth=context.max_depth,
            max_pages=context.max_pages,
            timeout=context.timeout,
        )
        started = time.perf_counter()
        report = await crawler.crawl(context.website)
        elapsed_ms = (time.perf_counter() - started) * 1000
        metrics.timing("crawler.duration_ms", elapsed_ms)
        metrics.increment("crawler.pages_scanned", value=report.total_pages_scanned)
        logger.info(
            "crawler.completed",
            extra={
                "website": report.start_url,
                "pages": report.total_pages_scanned,
                "skipped": len(report.skipped_pages),
                "emails": len(report.emails),
            },
        )
        return ProviderResult(
            source=self.source,
            emails=tuple(report.emails),
            metadata={
                "crawled_pages": report.crawled_pages,
                "crawl_depth": report.depth_reached,
                "total_pages_scanned": report.total_pages_scanned,
                "emails_found": len(report.emails),
                "skipped_pages": report.skipped_pages,
                "page_text": report.combined_text(),
            },
        )
