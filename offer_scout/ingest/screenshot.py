"""Screenshot fallback for offers whose image URLs cannot be recovered."""

import base64
import logging
from typing import List, Optional
from urllib.parse import urljoin

from playwright.async_api import Page

from offer_scout.config import settings
from offer_scout.ingest.base import ImageRecord

logger = logging.getLogger(__name__)

CONSENT_BUTTON_LABELS = [
    "Accept all",
    "Accept all cookies",
    "Accept",
    "Allow all",
    "I agree",
    "Alle akzeptieren",
    "Akzeptieren",
    "Godkänn alla",
    "Acceptera alla",
    "Tout accepter",
]

CONSENT_SELECTORS = [
    "[id*='cookie']",
    "[class*='cookie']",
    "[id*='consent']",
    "[class*='consent']",
    "[aria-label*='cookie' i]",
]

HIDE_CONSENT_JS = """
selectors => {
  for (const selector of selectors) {
    for (const el of document.querySelectorAll(selector)) {
      el.style.setProperty('display', 'none', 'important');
    }
  }
}
"""


async def dismiss_cookie_consent(page: Page) -> None:
    """
    Best-effort removal of cookie banners.

    Clicks the first visible button with a known accept label, then hides
    anything still matching a cookie/consent selector.
    """
    for label in CONSENT_BUTTON_LABELS:
        button = page.get_by_role("button", name=label, exact=True)
        try:
            if await button.count() and await button.first.is_visible():
                await button.first.click(timeout=2000)
                logger.debug(f"Clicked consent button {label!r}")
                break
        except Exception as e:
            logger.debug(f"Consent button {label!r} not clickable: {e}")

    try:
        await page.evaluate(HIDE_CONSENT_JS, CONSENT_SELECTORS)
    except Exception as e:
        logger.debug(f"Could not hide consent overlays: {e}")


async def capture_image_screenshots(
    page: Page,
    offer_url: str,
    min_size: Optional[int] = None,
    max_images: Optional[int] = None,
) -> List[ImageRecord]:
    """
    Screenshot every sufficiently large <img> on an already loaded page.

    Returns image records carrying base64 PNG data. The image URL is the
    element's src when it has one, otherwise a synthetic per-offer anchor.
    """
    min_size = settings.screenshot_min_size if min_size is None else min_size
    max_images = settings.screenshot_max_images if max_images is None else max_images

    await dismiss_cookie_consent(page)

    images: List[ImageRecord] = []
    for element in await page.query_selector_all("img"):
        if len(images) >= max_images:
            break
        try:
            box = await element.bounding_box()
            if not box or box["width"] < min_size or box["height"] < min_size:
                continue
            png = await element.screenshot(type="png")
            src = await element.get_attribute("src")
        except Exception as e:
            logger.debug(f"Skipping image element on {offer_url}: {e}")
            continue

        position = len(images)
        if src and not src.startswith("data:"):
            image_url = urljoin(offer_url, src)
        else:
            image_url = f"{offer_url}#screenshot-{position}"
        images.append(ImageRecord(
            position=position,
            image_url=image_url,
            image_data=base64.b64encode(png).decode("ascii"),
            image_mime="image/png",
        ))

    logger.info(f"Captured {len(images)} image screenshots for {offer_url}")
    return images
