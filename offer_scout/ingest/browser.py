"""Process-wide headless browser shared by the crawlers."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional

from playwright.async_api import Browser, BrowserContext, Page, async_playwright

from offer_scout.config import settings

logger = logging.getLogger(__name__)

LAUNCH_ARGS = [
    "--disable-gpu",
    "--disable-dev-shm-usage",
    "--no-zygote",
    "--single-process",
]

# Launch failures with these signatures mean the OS refused to fork
TRANSIENT_LAUNCH_MARKERS = ("EAGAIN", "Resource temporarily unavailable")


class BrowserLaunchError(RuntimeError):
    """Raised when the browser cannot be launched after retries."""
    pass


def is_transient_launch_error(error: BaseException) -> bool:
    """Whether a launch failure looks like transient resource exhaustion."""
    message = str(error)
    return any(marker in message for marker in TRANSIENT_LAUNCH_MARKERS)


class BrowserManager:
    """
    Lazily launches and supervises one shared Chromium instance.

    Features:
    - Concurrent callers share a single in-flight launch
    - Launch retries with exponential backoff on resource exhaustion only
    - Cached instance dropped when the browser disconnects
    - Isolated context + page per caller, released on every exit path
    - Self-healing page creation (reset and retry once)
    """

    def __init__(
        self,
        headless: Optional[bool] = None,
        user_agent: Optional[str] = None,
        launch_retries: Optional[int] = None,
        launch_base_delay: Optional[float] = None,
        launcher: Optional[Callable[[], Awaitable[Browser]]] = None,
    ):
        """
        Args:
            headless: Run Chromium headless (defaults to settings.headless)
            user_agent: User agent for new contexts
            launch_retries: Extra launch attempts on transient failures
            launch_base_delay: Backoff after the first transient failure
            launcher: Override for the raw launch call (used by tests)
        """
        self.headless = settings.headless if headless is None else headless
        self.user_agent = user_agent or settings.user_agent
        self.launch_retries = (
            settings.browser_launch_retries if launch_retries is None else launch_retries
        )
        self.launch_base_delay = (
            settings.browser_launch_base_delay if launch_base_delay is None else launch_base_delay
        )
        self._launcher = launcher
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._launch_task: Optional[asyncio.Task] = None

    async def _launch_once(self) -> Browser:
        """Start Playwright if needed and launch Chromium."""
        if self._launcher is not None:
            return await self._launcher()
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        return await self._playwright.chromium.launch(
            headless=self.headless,
            args=LAUNCH_ARGS,
        )

    async def _launch(self) -> Browser:
        """Launch with bounded retries on transient resource exhaustion."""
        attempt = 0
        while True:
            try:
                browser = await self._launch_once()
                break
            except Exception as e:
                if not is_transient_launch_error(e):
                    raise
                if attempt >= self.launch_retries:
                    raise BrowserLaunchError(
                        f"Browser launch failed after {attempt + 1} attempts: {e}"
                    ) from e
                delay = self.launch_base_delay * (2 ** attempt)
                logger.warning(
                    f"Browser launch failed ({e}); retrying in {delay:.2f}s "
                    f"(attempt {attempt + 1}/{self.launch_retries})"
                )
                await asyncio.sleep(delay)
                attempt += 1

        self._browser = browser
        browser.on("disconnected", lambda *_: self._on_disconnected(browser))
        logger.info("Browser launched (headless=%s)", self.headless)
        return browser

    def _on_disconnected(self, browser: Browser) -> None:
        """Forget the cached browser so the next caller relaunches."""
        # Late events from a browser that was already reset or replaced
        if self._browser is not browser:
            logger.debug("Ignoring disconnect of a browser that is no longer current")
            return
        logger.warning("Browser disconnected; it will be relaunched on next use")
        self._browser = None
        self._launch_task = None

    async def get_browser(self) -> Browser:
        """Return the shared browser, launching it if necessary."""
        if self._browser is not None and self._browser.is_connected():
            return self._browser

        # A finished task here belongs to a browser that is gone
        if self._launch_task is None or self._launch_task.done():
            self._launch_task = asyncio.ensure_future(self._launch())
        task = self._launch_task

        try:
            # shield: one caller being cancelled must not abort the shared launch
            return await asyncio.shield(task)
        except Exception:
            if self._launch_task is task:
                self._launch_task = None
            raise

    async def _new_page(self) -> tuple[BrowserContext, Page]:
        browser = await self.get_browser()
        context = await browser.new_context(user_agent=self.user_agent)
        try:
            page = await context.new_page()
        except Exception:
            await self._close_quietly(context)
            raise
        page.set_default_navigation_timeout(settings.browser_navigation_timeout_ms)
        return context, page

    async def create_page(self) -> tuple[BrowserContext, Page]:
        """
        Open an isolated context and page.

        The caller owns both and must close the context. If creation fails,
        the browser is reset and creation is retried once.
        """
        try:
            return await self._new_page()
        except Exception as e:
            logger.warning(f"Failed to open browser page ({e}); resetting browser and retrying")
            await self.reset()
            return await self._new_page()

    @asynccontextmanager
    async def page(self) -> AsyncIterator[Page]:
        """Scoped page: context and page are closed on every exit path."""
        context, page = await self.create_page()
        try:
            yield page
        finally:
            await self._close_quietly(page)
            await self._close_quietly(context)

    @staticmethod
    async def _close_quietly(resource) -> None:
        try:
            await resource.close()
        except Exception as e:
            logger.debug(f"Error closing {type(resource).__name__}: {e}")

    async def reset(self):
        """Drop the current browser so the next caller launches a fresh one."""
        browser = self._browser
        self._browser = None
        self._launch_task = None
        if browser is not None:
            await self._close_quietly(browser)

    async def close(self):
        """Close the browser and stop Playwright."""
        await self.reset()
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None


# Global browser manager instance
browser_manager = BrowserManager()
