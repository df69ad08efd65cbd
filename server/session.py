"""Browser session lifecycle for the capture tools.

Each tool call owns exactly one browser: it is launched (or connected to a
remote endpoint) on entry and released on every exit path. Sessions are
never pooled or shared across requests.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from playwright.async_api import Browser, Page, Playwright, async_playwright

logger = logging.getLogger(__name__)

DEFAULT_BROWSER_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
)

_PERFORMANCE_SCRIPT = """
() => {
    const nav = performance.getEntriesByType('navigation')[0];
    const paint = (name) => {
        const entry = performance.getEntriesByName(name)[0];
        return entry ? entry.startTime : 0;
    };
    return {
        loadTime: nav ? nav.loadEventEnd - nav.loadEventStart : 0,
        domContentLoaded: nav
            ? nav.domContentLoadedEventEnd - nav.domContentLoadedEventStart
            : 0,
        firstContentfulPaint: paint('first-contentful-paint'),
        largestContentfulPaint: paint('largest-contentful-paint'),
    };
}
"""


@dataclass(frozen=True)
class BrowserSettings:
    """How to obtain a browser for one session."""

    headless: bool = True
    executable_path: Optional[str] = None
    args: tuple = DEFAULT_BROWSER_ARGS
    # When set, connect over CDP instead of launching locally
    remote_endpoint: Optional[str] = None


class BrowserSession:
    """One browser and one page, driven by a single tool call."""

    def __init__(
        self,
        playwright: Playwright,
        browser: Browser,
        page: Page,
    ):
        self._playwright = playwright
        self._browser = browser
        self.page = page
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def set_viewport(self, width: int, height: int) -> None:
        await self.page.set_viewport_size(
            {"width": int(width), "height": int(height)}
        )

    async def navigate(
        self,
        url: str,
        timeout_ms: int,
        wait_until: str = "domcontentloaded",
    ) -> None:
        """Load `url`; raises Playwright's TimeoutError past `timeout_ms`."""
        logger.debug("Navigating to %s (timeout %sms)", url, timeout_ms)
        await self.page.goto(url, wait_until=wait_until, timeout=timeout_ms)

    async def screenshot(self, full_page: bool = False) -> bytes:
        return await self.page.screenshot(type="png", full_page=full_page)

    async def pdf(self, format: str = "A4", landscape: bool = False) -> bytes:
        return await self.page.pdf(
            format=format, landscape=landscape, print_background=True
        )

    async def extract_text(self, selector: Optional[str] = None) -> str:
        if selector:
            text = await self.page.eval_on_selector(
                selector, "el => el.textContent"
            )
        else:
            text = await self.page.evaluate("() => document.body.textContent")
        return text or ""

    async def extract_html(self, selector: Optional[str] = None) -> str:
        if selector:
            return await self.page.eval_on_selector(
                selector, "el => el.outerHTML"
            )
        return await self.page.content()

    async def metrics(self) -> Dict[str, float]:
        """Navigation and paint timings; missing paint entries report 0."""
        return await self.page.evaluate(_PERFORMANCE_SCRIPT)

    async def runtime_metrics(self) -> Dict[str, float]:
        """Browser runtime counters from the DevTools Performance domain."""
        cdp = await self.page.context.new_cdp_session(self.page)
        try:
            await cdp.send("Performance.enable")
            response = await cdp.send("Performance.getMetrics")
        finally:
            await cdp.detach()
        return {
            item["name"]: item["value"]
            for item in response.get("metrics", [])
        }

    async def close(self) -> None:
        """Release the browser. Safe to call twice; never raises."""
        if self._closed:
            return
        self._closed = True

        try:
            await self._browser.close()
        except Exception as e:
            logger.debug("Ignoring error while closing browser: %s", e)

        try:
            await self._playwright.stop()
        except Exception as e:
            logger.debug("Ignoring error while stopping playwright: %s", e)


Launcher = Callable[[BrowserSettings], Awaitable[BrowserSession]]


async def launch_session(settings: BrowserSettings) -> BrowserSession:
    """Start Playwright and return a session with a fresh page.

    Args:
        settings: Launch or remote connection parameters

    Returns:
        BrowserSession owning the browser and its page
    """
    playwright = await async_playwright().start()
    try:
        if settings.remote_endpoint:
            logger.info("Connecting to remote browser")
            browser = await playwright.chromium.connect_over_cdp(
                settings.remote_endpoint
            )
        else:
            launch_kwargs: Dict[str, Any] = {
                "headless": settings.headless,
                "args": list(settings.args),
            }
            if settings.executable_path:
                launch_kwargs["executable_path"] = settings.executable_path
            browser = await playwright.chromium.launch(**launch_kwargs)
    except Exception:
        await playwright.stop()
        raise

    try:
        page = await browser.new_page()
    except Exception:
        await browser.close()
        await playwright.stop()
        raise

    return BrowserSession(playwright, browser, page)


@asynccontextmanager
async def open_session(
    settings: BrowserSettings,
    launcher: Launcher = launch_session,
) -> AsyncIterator[BrowserSession]:
    """Scoped browser session; closed on normal and error exit alike."""
    session = await launcher(settings)
    try:
        yield session
    finally:
        await session.close()
