"""Poll loops: periodic scrape and match sweeps over active searches."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from offer_scout.ai.judgment_client import JudgmentClient
from offer_scout.config import settings
from offer_scout.db.offers import upsert_offer
from offer_scout.db.searches import list_active_searches, parse_string_list
from offer_scout.db.session import AsyncSessionLocal
from offer_scout.ingest.base import SearchHit
from offer_scout.ingest.browser import BrowserManager, browser_manager
from offer_scout.ingest.http_client import FetchClient
from offer_scout.ingest.offer_crawler import OfferCrawler
from offer_scout.ingest.search_crawler import SearchCrawler
from offer_scout.logging_config import get_logger
from offer_scout import metrics
from offer_scout.worker.evaluation_worker import EvaluationOptions, EvaluationWorker

logger = logging.getLogger(__name__)


@dataclass
class CrawlSummary:
    """Counts for one term crawl."""

    discovered: int = 0
    processed: int = 0
    inserted: int = 0
    updated: int = 0
    errors: int = 0


class TaskRunner:
    """
    Runs crawl and evaluation work for stored searches.

    The scrape and match loops each sweep all active searches, then sleep.
    A failure for one offer, term or search is logged with its context and
    never ends a sweep; a failed sweep never ends a loop.
    """

    def __init__(
        self,
        http: Optional[FetchClient] = None,
        browser: Optional[BrowserManager] = None,
        judgment_client: Optional[JudgmentClient] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        self.http = http or FetchClient()
        self.browser = browser or browser_manager
        self.session_factory = session_factory or AsyncSessionLocal
        self.search_crawler = SearchCrawler(self.http, self.browser)
        self.offer_crawler = OfferCrawler(self.http, self.browser)
        self._judgment_client = judgment_client

    @property
    def judgment_client(self) -> JudgmentClient:
        """Created on first use so crawling works without an API key."""
        if self._judgment_client is None:
            self._judgment_client = JudgmentClient()
        return self._judgment_client

    async def close(self):
        """Clean up resources."""
        await self.http.close()
        await self.browser.close()

    async def _crawl_offer(self, search_id, term: str, hit: SearchHit, mode: Optional[str], summary: CrawlSummary):
        log = get_logger(__name__, search_id=str(search_id), term=term, url=hit.url)
        try:
            offer, images = await self.offer_crawler.crawl(term, hit.url, hit.native_external_id, mode=mode)
            offer.search_id = search_id
            async with self.session_factory() as db:
                _, is_new = await upsert_offer(db, offer, images)
        except Exception as e:
            summary.errors += 1
            metrics.record_crawl_error(e)
            log.error(f"Failed to crawl offer {hit.url}: {type(e).__name__}: {e}")
            return

        summary.processed += 1
        if is_new:
            summary.inserted += 1
        else:
            summary.updated += 1
        metrics.record_upsert(is_new)

    async def crawl_term(
        self,
        search_id,
        term: str,
        max_pages: Optional[int] = None,
        max_items: Optional[int] = None,
        mode: Optional[str] = None,
    ) -> CrawlSummary:
        """
        Discover offers for one term and crawl and store each of them.

        Discovery errors propagate; per-offer errors are counted.
        """
        hits = await self.search_crawler.crawl(
            term,
            max_pages=max_pages if max_pages is not None else settings.max_pages,
            max_items=max_items if max_items is not None else settings.max_items,
            mode=mode,
        )
        summary = CrawlSummary(discovered=len(hits))

        semaphore = asyncio.Semaphore(max(1, settings.crawl_concurrency))

        async def bounded(hit: SearchHit):
            async with semaphore:
                await self._crawl_offer(search_id, term, hit, mode, summary)

        await asyncio.gather(*(bounded(hit) for hit in hits))

        logger.info(
            f"Crawl of {term!r}: {summary.discovered} discovered, {summary.processed} processed, "
            f"{summary.inserted} inserted, {summary.updated} updated, {summary.errors} errors"
        )
        return summary

    async def scrape_sweep(self) -> dict:
        """Crawl every term of every active search once."""
        stats = {"searches": 0, "terms": 0, "offers": 0, "errors": 0}

        async with self.session_factory() as db:
            searches = [(s.id, parse_string_list(s.search_terms)) for s in await list_active_searches(db)]

        for search_id, terms in searches:
            if not terms:
                continue
            stats["searches"] += 1
            for term in terms:
                try:
                    summary = await self.crawl_term(search_id, term)
                    stats["terms"] += 1
                    stats["offers"] += summary.processed
                    stats["errors"] += summary.errors
                except Exception as e:
                    stats["errors"] += 1
                    get_logger(__name__, search_id=str(search_id), term=term).error(
                        f"Scrape failed for term {term!r}: {type(e).__name__}: {e}"
                    )

        logger.info(
            f"Scrape sweep complete: {stats['searches']} searches, {stats['terms']} terms, "
            f"{stats['offers']} offers, {stats['errors']} errors"
        )
        return stats

    async def match_sweep(self) -> dict:
        """Run one evaluation pass for every active search that has a prompt and reference images."""
        stats = {"searches": 0, "processed": 0, "matched": 0, "failed": 0}

        async with self.session_factory() as db:
            searches = [
                (s.id, s.search_prompt, parse_string_list(s.example_images))
                for s in await list_active_searches(db)
            ]

        worker = EvaluationWorker(self.judgment_client, self.session_factory)
        for search_id, prompt, example_images in searches:
            if not prompt or not example_images:
                continue
            stats["searches"] += 1
            try:
                summary = await worker.run(EvaluationOptions.from_settings(search_id))
                stats["processed"] += summary.processed
                stats["matched"] += summary.matched
                stats["failed"] += summary.failed
            except Exception as e:
                stats["failed"] += 1
                get_logger(__name__, search_id=str(search_id)).error(
                    f"Match run failed: {type(e).__name__}: {e}"
                )

        logger.info(
            f"Match sweep complete: {stats['searches']} searches, {stats['processed']} processed, "
            f"{stats['matched']} matched, {stats['failed']} failed"
        )
        return stats

    async def _loop(self, name: str, sweep, interval: float, iterations: Optional[int] = None):
        runs = 0
        while iterations is None or runs < iterations:
            try:
                await sweep()
                metrics.record_sweep(name, success=True)
            except Exception as e:
                metrics.record_sweep(name, success=False)
                logger.exception(f"{name} sweep failed: {e}")
            runs += 1
            if iterations is None or runs < iterations:
                await asyncio.sleep(interval)

    async def run_scrape_loop(self, iterations: Optional[int] = None):
        """Sweep, sleep scrape_poll_seconds, repeat."""
        await self._loop("scrape", self.scrape_sweep, settings.scrape_poll_seconds, iterations)

    async def run_match_loop(self, iterations: Optional[int] = None):
        """Sweep, sleep match_poll_seconds, repeat."""
        await self._loop("match", self.match_sweep, settings.match_poll_seconds, iterations)

    async def run_forever(self):
        """Run both loops concurrently."""
        await asyncio.gather(self.run_scrape_loop(), self.run_match_loop())
