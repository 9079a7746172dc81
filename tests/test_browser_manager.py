"""Tests for the shared browser lifecycle."""

import asyncio

import pytest

from offer_scout.ingest.browser import BrowserLaunchError, BrowserManager, is_transient_launch_error


class FakePage:
    def __init__(self):
        self.closed = False
        self.navigation_timeout = None

    def set_default_navigation_timeout(self, timeout):
        self.navigation_timeout = timeout

    async def close(self):
        self.closed = True


class FakeContext:
    def __init__(self, user_agent):
        self.user_agent = user_agent
        self.closed = False
        self.pages = []

    async def new_page(self):
        page = FakePage()
        self.pages.append(page)
        return page

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self, broken=False):
        self.broken = broken
        self.connected = True
        self.closed = False
        self.handlers = {}
        self.contexts = []

    def on(self, event, handler):
        self.handlers[event] = handler

    def is_connected(self):
        return self.connected

    async def new_context(self, user_agent=None):
        if self.broken:
            raise RuntimeError("Target page, context or browser has been closed")
        context = FakeContext(user_agent)
        self.contexts.append(context)
        return context

    async def close(self):
        self.closed = True

    def disconnect(self):
        self.connected = False
        self.handlers["disconnected"]()


class Launcher:
    """Scripted launcher: each call takes the next outcome."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0
        self.launched = []

    async def __call__(self):
        self.calls += 1
        await asyncio.sleep(0)
        outcome = self.outcomes.pop(0) if self.outcomes else FakeBrowser()
        if isinstance(outcome, BaseException):
            raise outcome
        self.launched.append(outcome)
        return outcome


def make_manager(launcher, retries=3):
    return BrowserManager(
        headless=True,
        user_agent="offer-scout-tests",
        launch_retries=retries,
        launch_base_delay=0,
        launcher=launcher,
    )


def test_transient_error_detection():
    assert is_transient_launch_error(OSError("spawn EAGAIN"))
    assert is_transient_launch_error(RuntimeError("Resource temporarily unavailable"))
    assert not is_transient_launch_error(RuntimeError("Executable doesn't exist"))


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_launch():
    launcher = Launcher()
    manager = make_manager(launcher)

    browsers = await asyncio.gather(*(manager.get_browser() for _ in range(5)))

    assert launcher.calls == 1
    assert all(browser is browsers[0] for browser in browsers)


@pytest.mark.asyncio
async def test_eagain_is_retried():
    launcher = Launcher(OSError("spawn EAGAIN"), OSError("spawn EAGAIN"))
    manager = make_manager(launcher)

    browser = await manager.get_browser()

    assert launcher.calls == 3
    assert browser is launcher.launched[0]


@pytest.mark.asyncio
async def test_retries_exhausted():
    launcher = Launcher(*(OSError("spawn EAGAIN") for _ in range(5)))
    manager = make_manager(launcher, retries=1)

    with pytest.raises(BrowserLaunchError, match="after 2 attempts"):
        await manager.get_browser()
    assert launcher.calls == 2


@pytest.mark.asyncio
async def test_other_launch_errors_propagate_and_allow_relaunch():
    launcher = Launcher(RuntimeError("Executable doesn't exist"))
    manager = make_manager(launcher)

    with pytest.raises(RuntimeError, match="Executable"):
        await manager.get_browser()
    assert launcher.calls == 1

    assert await manager.get_browser() is launcher.launched[0]
    assert launcher.calls == 2


@pytest.mark.asyncio
async def test_disconnect_triggers_relaunch():
    launcher = Launcher()
    manager = make_manager(launcher)

    first = await manager.get_browser()
    first.disconnect()
    second = await manager.get_browser()

    assert second is not first
    assert launcher.calls == 2


@pytest.mark.asyncio
async def test_page_scope_closes_on_error():
    launcher = Launcher()
    manager = make_manager(launcher)

    with pytest.raises(ValueError):
        async with manager.page() as page:
            raise ValueError("extraction blew up")

    [context] = launcher.launched[0].contexts
    assert page.closed
    assert context.closed
    assert context.user_agent == "offer-scout-tests"


@pytest.mark.asyncio
async def test_create_page_resets_a_broken_browser_once():
    broken = FakeBrowser(broken=True)
    launcher = Launcher(broken)
    manager = make_manager(launcher)

    context, page = await manager.create_page()

    assert broken.closed
    assert launcher.calls == 2
    assert context in launcher.launched[1].contexts
    assert page.navigation_timeout is not None


class SlowClosingBrowser(FakeBrowser):
    """Fires its disconnect event only once `released` is set."""

    def __init__(self):
        super().__init__()
        self.released = asyncio.Event()

    async def close(self):
        await self.released.wait()
        self.closed = True
        self.disconnect()


@pytest.mark.asyncio
async def test_late_disconnect_of_reset_browser_keeps_the_new_one():
    old = SlowClosingBrowser()
    launcher = Launcher(old)
    manager = make_manager(launcher)
    assert await manager.get_browser() is old

    async def relaunch():
        browser = await manager.get_browser()
        old.released.set()
        return browser

    _, new = await asyncio.gather(manager.reset(), relaunch())

    assert old.closed
    assert new is not old
    assert await manager.get_browser() is new
    assert launcher.calls == 2
    assert not new.closed
