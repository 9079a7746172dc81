"""Per-offer pipeline: fetch, extract, render when needed, normalize."""

import logging
from typing import List, Optional

from offer_scout.config import settings
from offer_scout.ingest.base import ImageRecord, OfferDetails, OfferRecord
from offer_scout.ingest.browser import BrowserManager, browser_manager
from offer_scout.ingest.http_client import FetchClient
from offer_scout.ingest.image_extractor import extract_images_from_html
from offer_scout.ingest.offer_extractor import extract_offer_details
from offer_scout.ingest.screenshot import capture_image_screenshots
from offer_scout.logging_config import get_logger
from offer_scout.metrics import record_browser_fallback
from offer_scout.normalize.processor import resolve_external_id, resolve_price

logger = logging.getLogger(__name__)


def needs_render(details: OfferDetails, mode: str) -> bool:
    """Whether the fetched page should be re-read through a rendered browser page."""
    if mode == "always":
        return True
    if mode == "never":
        return False
    return not details.title and not details.image_urls


class OfferCrawler:
    """
    Turns an offer URL into an offer record plus its ordered images.

    Plain fetch is always tried first. The browser is used to render the
    page when extraction came back empty, and to screenshot images when no
    image URL could be found at all.
    """

    def __init__(
        self,
        http: FetchClient,
        browser: Optional[BrowserManager] = None,
        source: Optional[str] = None,
    ):
        self.http = http
        self.browser = browser or browser_manager
        self.source = source or settings.marketplace_source

    async def render_html(self, url: str) -> str:
        """Load a URL in an isolated browser page and return the rendered HTML."""
        async with self.browser.page() as page:
            await page.goto(url, wait_until="networkidle")
            return await page.content()

    async def screenshot_images(self, url: str) -> List[ImageRecord]:
        """Capture on-page images as inline PNG data."""
        async with self.browser.page() as page:
            await page.goto(url, wait_until="networkidle")
            return await capture_image_screenshots(page, url)

    async def crawl(
        self,
        search_term: str,
        url: str,
        native_external_id: Optional[str] = None,
        mode: Optional[str] = None,
    ) -> tuple[OfferRecord, List[ImageRecord]]:
        """
        Crawl one offer page.

        Args:
            search_term: Term the offer was discovered under
            url: Offer page URL
            native_external_id: Marketplace id known from discovery, if any
            mode: auto, always or never (defaults to settings.crawl_mode)

        Returns:
            (offer record, ordered image records)
        """
        mode = mode or settings.crawl_mode
        log = get_logger(__name__, url=url, term=search_term)

        html = await self.http.get_text(url)
        details = extract_offer_details(html)

        if needs_render(details, mode):
            if mode == "auto":
                log.info("Fetched page has no title or images; rendering in browser")
                record_browser_fallback("offer_empty")
            html = await self.render_html(url)
            details = extract_offer_details(html)

        image_urls = details.image_urls or extract_images_from_html(html, base_url=url)
        images = [ImageRecord(position=i, image_url=image_url) for i, image_url in enumerate(image_urls)]

        if not images and mode != "never":
            log.info("No image URLs found; falling back to element screenshots")
            record_browser_fallback("screenshot")
            images = await self.screenshot_images(url)

        external_id = resolve_external_id(url, native_external_id, details.external_id)
        price_amount, price_currency = resolve_price(details.price_amount, details.price_currency)

        offer = OfferRecord(
            source=self.source,
            external_id=external_id,
            search_term=search_term,
            url=url,
            title=details.title,
            description=details.description,
            price_amount=price_amount,
            price_currency=price_currency,
            brand=details.brand,
            category=details.category,
            subcategory=details.subcategory,
            condition=details.condition,
            size=details.size,
            color=details.color,
            material=details.material,
            availability=details.availability,
            created_at_source=details.created_at_source,
            raw_metadata=details.raw_metadata,
        )

        log.debug(f"Parsed offer {external_id} with {len(images)} images")
        return offer, images
