"""Tests for server/session.py module.

Playwright itself is replaced with mocks; these tests cover how sessions
are launched, driven and released.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from server import session
from server.session import BrowserSession, BrowserSettings, open_session


@pytest.fixture
def page():
    page = MagicMock()
    for name in (
        "goto",
        "screenshot",
        "pdf",
        "eval_on_selector",
        "evaluate",
        "content",
        "set_viewport_size",
    ):
        setattr(page, name, AsyncMock())
    return page


@pytest.fixture
def browser(page):
    browser = MagicMock()
    browser.new_page = AsyncMock(return_value=page)
    browser.close = AsyncMock()
    return browser


@pytest.fixture
def playwright(browser):
    playwright = MagicMock()
    playwright.chromium.launch = AsyncMock(return_value=browser)
    playwright.chromium.connect_over_cdp = AsyncMock(return_value=browser)
    playwright.stop = AsyncMock()
    return playwright


@pytest.fixture
def patched_playwright(playwright):
    with patch.object(session, "async_playwright") as factory:
        factory.return_value.start = AsyncMock(return_value=playwright)
        yield factory


class TestLaunchSession:
    """Test suite for launch_session."""

    @pytest.mark.asyncio
    async def test_launches_local_chromium(
        self, patched_playwright, playwright, page
    ):
        result = await session.launch_session(
            BrowserSettings(headless=False, executable_path="/usr/bin/chromium")
        )

        assert isinstance(result, BrowserSession)
        assert result.page is page
        playwright.chromium.launch.assert_awaited_once_with(
            headless=False,
            args=list(session.DEFAULT_BROWSER_ARGS),
            executable_path="/usr/bin/chromium",
        )
        playwright.chromium.connect_over_cdp.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_omits_executable_path_when_unset(
        self, patched_playwright, playwright
    ):
        await session.launch_session(BrowserSettings())

        kwargs = playwright.chromium.launch.await_args.kwargs
        assert "executable_path" not in kwargs
        assert kwargs["headless"] is True

    @pytest.mark.asyncio
    async def test_connects_to_remote_endpoint(self, patched_playwright, playwright):
        endpoint = "wss://chrome.browserless.io?token=abc"

        await session.launch_session(BrowserSettings(remote_endpoint=endpoint))

        playwright.chromium.connect_over_cdp.assert_awaited_once_with(endpoint)
        playwright.chromium.launch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_launch_failure_stops_playwright(
        self, patched_playwright, playwright
    ):
        playwright.chromium.launch.side_effect = RuntimeError("no chromium")

        with pytest.raises(RuntimeError, match="no chromium"):
            await session.launch_session(BrowserSettings())

        playwright.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_new_page_failure_releases_browser(
        self, patched_playwright, playwright, browser
    ):
        browser.new_page.side_effect = RuntimeError("page crashed")

        with pytest.raises(RuntimeError):
            await session.launch_session(BrowserSettings())

        browser.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()


class TestBrowserSession:
    @pytest.fixture
    def browser_session(self, playwright, browser, page):
        return BrowserSession(playwright, browser, page)

    @pytest.mark.asyncio
    async def test_navigate(self, browser_session, page):
        await browser_session.navigate("https://example.com", 10000)
        page.goto.assert_awaited_once_with(
            "https://example.com", wait_until="domcontentloaded", timeout=10000
        )

    @pytest.mark.asyncio
    async def test_set_viewport(self, browser_session, page):
        await browser_session.set_viewport(800, 600)
        page.set_viewport_size.assert_awaited_once_with(
            {"width": 800, "height": 600}
        )

    @pytest.mark.asyncio
    async def test_screenshot_and_pdf(self, browser_session, page):
        page.screenshot.return_value = b"png"
        page.pdf.return_value = b"pdf"

        assert await browser_session.screenshot(full_page=True) == b"png"
        assert await browser_session.pdf("Letter", landscape=True) == b"pdf"

        page.screenshot.assert_awaited_once_with(type="png", full_page=True)
        page.pdf.assert_awaited_once_with(
            format="Letter", landscape=True, print_background=True
        )

    @pytest.mark.asyncio
    async def test_extract_text_uses_selector(self, browser_session, page):
        page.eval_on_selector.return_value = "Heading"

        assert await browser_session.extract_text("h1") == "Heading"
        page.eval_on_selector.assert_awaited_once_with("h1", "el => el.textContent")
        page.evaluate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_extract_text_empty_body(self, browser_session, page):
        page.evaluate.return_value = None
        assert await browser_session.extract_text() == ""

    @pytest.mark.asyncio
    async def test_extract_html_whole_page(self, browser_session, page):
        page.content.return_value = "<html></html>"
        assert await browser_session.extract_html() == "<html></html>"

    @pytest.mark.asyncio
    async def test_runtime_metrics_flattened(self, browser_session, page):
        cdp = MagicMock()
        cdp.send = AsyncMock(
            side_effect=[
                {},
                {
                    "metrics": [
                        {"name": "Nodes", "value": 12},
                        {"name": "JSHeapUsedSize", "value": 2048},
                    ]
                },
            ]
        )
        cdp.detach = AsyncMock()
        page.context.new_cdp_session = AsyncMock(return_value=cdp)

        metrics = await browser_session.runtime_metrics()

        assert metrics == {"Nodes": 12, "JSHeapUsedSize": 2048}
        cdp.detach.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, browser_session, browser, playwright):
        await browser_session.close()
        await browser_session.close()

        assert browser_session.closed
        browser.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_close_swallows_errors(self, browser_session, browser, playwright):
        browser.close.side_effect = RuntimeError("already gone")

        await browser_session.close()

        # Playwright is still stopped after a failed browser close
        playwright.stop.assert_awaited_once()


class TestOpenSession:
    @pytest.mark.asyncio
    async def test_closes_on_error(self, stub_session, fake_launcher):
        with pytest.raises(RuntimeError):
            async with open_session(BrowserSettings(), fake_launcher):
                raise RuntimeError("capture failed")

        stub_session.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_closes_on_success(self, stub_session, fake_launcher):
        settings = BrowserSettings()
        async with open_session(settings, fake_launcher) as active:
            assert active is stub_session

        fake_launcher.assert_awaited_once_with(settings)
        stub_session.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_launch_failure_propagates(self):
        launcher = AsyncMock(side_effect=RuntimeError("browser missing"))

        with pytest.raises(RuntimeError, match="browser missing"):
            async with open_session(BrowserSettings(), launcher):
                pytest.fail("body must not run when launch fails")
