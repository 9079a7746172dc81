"""
Search discovery: paginated plain fetch with a headless-browser fallback.

The browser strategy first listens for the marketplace's own search API
responses while the results page loads; only when none arrive does it fall
back to scrolling the page and collecting offer anchors.
"""

import asyncio
import logging
from typing import Any, List, Optional
from urllib.parse import urlencode, urljoin

from offer_scout.config import settings
from offer_scout.ingest.base import SearchHit
from offer_scout.ingest.browser import BrowserManager, browser_manager
from offer_scout.ingest.http_client import FetchClient
from offer_scout.ingest.search_extractor import (
    OFFER_PATH_PATTERN,
    extract_search_results,
    hits_from_search_api,
)
from offer_scout.logging_config import get_logger
from offer_scout.metrics import record_browser_fallback, record_discovered

logger = logging.getLogger(__name__)

# Consecutive empty result pages that end a fetch crawl
MAX_EMPTY_PAGES = 2

COLLECT_ANCHORS_JS = "anchors => anchors.map(a => a.href)"
SCROLL_TO_BOTTOM_JS = "() => window.scrollTo(0, document.body.scrollHeight)"


def build_search_url(term: str, page: int = 1, base_url: Optional[str] = None) -> str:
    """
    Search results URL for a term.

    The page parameter is only added past the first page; the locale
    parameter only when a locale is configured.
    """
    base_url = base_url or settings.marketplace_base_url
    params = {settings.marketplace_search_query_param: term}
    if page > 1:
        params[settings.marketplace_page_param] = str(page)
    if settings.marketplace_locale:
        params[settings.marketplace_locale_param] = settings.marketplace_locale
    return f"{urljoin(base_url, settings.marketplace_search_path)}?{urlencode(params)}"


def dedupe_hits(hits: List[SearchHit], max_items: Optional[int] = None) -> List[SearchHit]:
    """Drop repeated URLs (first occurrence wins) and truncate to max_items."""
    seen: dict[str, SearchHit] = {}
    for hit in hits:
        seen.setdefault(hit.url, hit)
    result = list(seen.values())
    return result[:max_items] if max_items else result


class SearchCrawler:
    """Discovers offer URLs for a search term."""

    def __init__(
        self,
        http: FetchClient,
        browser: Optional[BrowserManager] = None,
        base_url: Optional[str] = None,
    ):
        self.http = http
        self.browser = browser or browser_manager
        self.base_url = base_url or settings.marketplace_base_url

    async def fetch_page(self, term: str, page: int) -> List[SearchHit]:
        """Fetch one search results page and extract its offers."""
        url = build_search_url(term, page, self.base_url)
        html = await self.http.get_text(url)
        extracted = extract_search_results(html, self.base_url)
        logger.debug(f"Search page {page} for {term!r}: {len(extracted.offers)} offers")
        return extracted.offers

    async def crawl_with_fetch(
        self,
        term: str,
        max_pages: Optional[int] = None,
        max_items: Optional[int] = None,
    ) -> List[SearchHit]:
        """
        Walk search result pages over plain HTTP.

        Stops at max_pages, once max_items offers are collected, or after
        two consecutive empty pages.
        """
        offers: List[SearchHit] = []
        page = 1
        empty_pages = 0

        while True:
            if max_pages and page > max_pages:
                break

            page_offers = await self.fetch_page(term, page)
            if page_offers:
                empty_pages = 0
                offers.extend(page_offers)
            else:
                empty_pages += 1

            if max_items and len(offers) >= max_items:
                break
            if empty_pages >= MAX_EMPTY_PAGES:
                break
            page += 1

        return dedupe_hits(offers, max_items)

    async def _collect_api_hits(self, page, search_url: str, max_items: Optional[int]) -> List[SearchHit]:
        """Navigate while capturing search API responses."""
        pending: List[asyncio.Future] = []

        def on_response(response) -> None:
            if settings.search_api_url_pattern not in response.url:
                return
            if response.request.method != "POST":
                return
            pending.append(asyncio.ensure_future(response.json()))

        page.on("response", on_response)
        try:
            await page.goto(search_url, wait_until="networkidle")
            await page.wait_for_timeout(settings.search_api_wait_ms)
        finally:
            page.remove_listener("response", on_response)

        hits: List[SearchHit] = []
        for payload in await asyncio.gather(*pending, return_exceptions=True):
            if isinstance(payload, BaseException):
                logger.debug(f"Ignoring unreadable search API response: {payload}")
                continue
            hits.extend(hits_from_search_api(payload, self.base_url))

        return dedupe_hits(hits, max_items)

    async def _scroll_for_anchors(self, page, max_items: Optional[int]) -> List[SearchHit]:
        """Scroll to the bottom until no new offer anchors appear."""
        found: dict[str, SearchHit] = {}
        previous_count = 0
        stagnant_rounds = 0

        while True:
            hrefs: List[Any] = await page.eval_on_selector_all("a[href]", COLLECT_ANCHORS_JS)
            for href in hrefs:
                if isinstance(href, str) and OFFER_PATH_PATTERN.search(href):
                    found.setdefault(href, SearchHit(url=href))

            if max_items and len(found) >= max_items:
                break

            if len(found) == previous_count:
                stagnant_rounds += 1
            else:
                stagnant_rounds = 0
            if stagnant_rounds >= settings.scroll_stagnant_rounds:
                break
            previous_count = len(found)

            await page.evaluate(SCROLL_TO_BOTTOM_JS)
            await page.wait_for_timeout(settings.scroll_wait_ms)

        return dedupe_hits(list(found.values()), max_items)

    async def crawl_with_browser(self, term: str, max_items: Optional[int] = None) -> List[SearchHit]:
        """Render the first results page; API interception first, scrolling second."""
        search_url = build_search_url(term, 1, self.base_url)
        logger.info(f"Browser search navigation: {search_url}")

        async with self.browser.page() as page:
            hits = await self._collect_api_hits(page, search_url, max_items)
            if hits:
                record_discovered("search_api", len(hits))
                return hits

            hits = await self._scroll_for_anchors(page, max_items)
            record_discovered("scroll", len(hits))
            return hits

    async def crawl(
        self,
        term: str,
        max_pages: Optional[int] = None,
        max_items: Optional[int] = None,
        mode: Optional[str] = None,
    ) -> List[SearchHit]:
        """
        Discover offers for a term.

        Modes:
            always: browser only
            never: fetch only, even when it finds nothing
            auto: fetch first, browser when fetch found nothing
        """
        mode = mode or settings.crawl_mode
        log = get_logger(__name__, term=term, mode=mode)

        if mode == "always":
            return await self.crawl_with_browser(term, max_items)

        fetched = await self.crawl_with_fetch(term, max_pages, max_items)
        record_discovered("fetch", len(fetched))
        if fetched or mode == "never":
            log.info(f"Fetch search found {len(fetched)} offers")
            return fetched

        log.info("Fetch-based search returned no offers; falling back to the browser")
        record_browser_fallback("search_empty")
        return await self.crawl_with_browser(term, max_items)
