"""Tool execution on top of a scoped browser session.

`AutomationExecutor` runs the unrestricted catalog and returns artifacts
in full. `CompliantExecutor` runs `search`/`retrieve`, validates every
target against the domain allowlist before a browser exists, and caps
text and HTML so responses fit an LLM context window.
"""

import asyncio
import base64
import logging
import re
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from server.domains import DomainGuard
from server.session import (
    BrowserSession,
    BrowserSettings,
    Launcher,
    launch_session,
    open_session,
)

logger = logging.getLogger(__name__)

SCRAPE_ACTIONS = ("screenshot", "pdf", "text", "html", "performance")
PDF_FORMATS = ("A4", "Letter")

_URL_SCHEME = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://")

ToolResult = Dict[str, Any]


def encode_bytes(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def truncate(text: Optional[str], limit: Optional[int]) -> str:
    """Cut `text` to at most `limit` characters (no limit when None)."""
    text = text or ""
    if limit is None:
        return text
    return text[:limit]


def looks_like_url(value: str) -> bool:
    return bool(_URL_SCHEME.match(value))


def require_argument(arguments: Dict[str, Any], key: str) -> str:
    value = arguments.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Missing required argument '{key}'")
    return value


async def pause(wait_for: Any) -> None:
    """Sleep for the caller-requested number of milliseconds."""
    if not wait_for:
        return
    if isinstance(wait_for, bool) or not isinstance(wait_for, (int, float)):
        raise ValueError("waitFor must be a number of milliseconds")
    if wait_for < 0:
        raise ValueError("waitFor must not be negative")
    await asyncio.sleep(wait_for / 1000)


async def apply_viewport(session: BrowserSession, viewport: Any) -> None:
    if not viewport:
        return
    if not isinstance(viewport, dict):
        raise ValueError("viewport must be an object with width and height")
    width = viewport.get("width")
    height = viewport.get("height")
    for name, value in (("width", width), ("height", height)):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"viewport.{name} must be a number")
        if value <= 0:
            raise ValueError(f"viewport.{name} must be positive")
    await session.set_viewport(int(width), int(height))


def _selector_suffix(selector: Optional[str]) -> str:
    return f" (selector: {selector})" if selector else ""


class ToolExecutor:
    """Base for catalog executors.

    Args:
        settings: How each call obtains its browser
        launcher: Coroutine producing a `BrowserSession` from settings
        timeout_ms: Navigation bound for every call
        guard: Allowlist consulted before any browser is launched
    """

    def __init__(
        self,
        settings: BrowserSettings,
        launcher: Launcher = launch_session,
        timeout_ms: int = 15000,
        guard: Optional[DomainGuard] = None,
    ):
        self.settings = settings
        self.launcher = launcher
        self.timeout_ms = timeout_ms
        self.guard = guard

    def _check_url(self, url: str) -> None:
        if self.guard is not None:
            self.guard.check(url)

    async def execute(self, name: str, arguments: Dict[str, Any]) -> ToolResult:
        raise NotImplementedError


class AutomationExecutor(ToolExecutor):
    """Executes the unrestricted tools. No truncation is applied."""

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._handlers: Dict[
            str,
            Callable[[BrowserSession, str, Dict[str, Any]], Awaitable[ToolResult]],
        ] = {
            "take_screenshot": self._take_screenshot,
            "generate_pdf": self._generate_pdf,
            "extract_text": self._extract_text,
            "extract_html": self._extract_html,
            "get_performance_metrics": self._get_performance_metrics,
        }

    async def execute(self, name: str, arguments: Dict[str, Any]) -> ToolResult:
        handler = self._handlers.get(name)
        if handler is None:
            raise ValueError(f"Unknown tool: {name}")

        url = require_argument(arguments, "url")
        self._check_url(url)
        logger.info("Running %s against %s", name, url)

        async with open_session(self.settings, self.launcher) as session:
            await apply_viewport(session, arguments.get("viewport"))
            await session.navigate(url, self.timeout_ms)
            await pause(arguments.get("waitFor"))
            return await handler(session, url, arguments)

    async def _take_screenshot(
        self, session: BrowserSession, url: str, arguments: Dict[str, Any]
    ) -> ToolResult:
        data = await session.screenshot(
            full_page=bool(arguments.get("fullPage", False))
        )
        return {
            "type": "image",
            "data": encode_bytes(data),
            "mimeType": "image/png",
            "description": f"Screenshot of {url}",
        }

    async def _generate_pdf(
        self, session: BrowserSession, url: str, arguments: Dict[str, Any]
    ) -> ToolResult:
        page_format = arguments.get("format") or "A4"
        if page_format not in PDF_FORMATS:
            raise ValueError(
                f"Invalid format: {page_format}. "
                f"Supported formats: {', '.join(PDF_FORMATS)}"
            )
        data = await session.pdf(
            format=page_format,
            landscape=bool(arguments.get("landscape", False)),
        )
        return {
            "type": "document",
            "data": encode_bytes(data),
            "mimeType": "application/pdf",
            "description": f"PDF of {url}",
        }

    async def _extract_text(
        self, session: BrowserSession, url: str, arguments: Dict[str, Any]
    ) -> ToolResult:
        selector = arguments.get("selector")
        return {
            "type": "text",
            "content": await session.extract_text(selector),
            "description": (
                f"Text content from {url}{_selector_suffix(selector)}"
            ),
        }

    async def _extract_html(
        self, session: BrowserSession, url: str, arguments: Dict[str, Any]
    ) -> ToolResult:
        selector = arguments.get("selector")
        return {
            "type": "html",
            "content": await session.extract_html(selector),
            "description": (
                f"HTML content from {url}{_selector_suffix(selector)}"
            ),
        }

    async def _get_performance_metrics(
        self, session: BrowserSession, url: str, arguments: Dict[str, Any]
    ) -> ToolResult:
        return {
            "type": "metrics",
            "metrics": await session.runtime_metrics(),
            "performance": await session.metrics(),
            "description": f"Performance metrics for {url}",
        }


class CompliantExecutor(ToolExecutor):
    """Executes `search` and `retrieve` against approved domains only."""

    def __init__(
        self,
        settings: BrowserSettings,
        guard: DomainGuard,
        launcher: Launcher = launch_session,
        timeout_ms: int = 10000,
        text_limit: int = 2000,
        html_limit: int = 5000,
        default_search_url: str = "https://example.com",
    ):
        super().__init__(settings, launcher, timeout_ms, guard)
        self.text_limit = text_limit
        self.html_limit = html_limit
        self.default_search_url = default_search_url

    def resolve_target(self, name: str, arguments: Dict[str, Any]) -> str:
        """Pick the navigation target for a tool call."""
        if name == "search":
            query = require_argument(arguments, "query")
            # Non-URL queries go to a fixed page instead of a search engine
            if looks_like_url(query):
                return query
            return self.default_search_url
        if name == "retrieve":
            return require_argument(arguments, "url")
        raise ValueError(f"Unknown tool: {name}")

    async def execute(self, name: str, arguments: Dict[str, Any]) -> ToolResult:
        target = self.resolve_target(name, arguments)
        self._check_url(target)
        mode = arguments.get("mode") or arguments.get("content_type") or "text"
        logger.info("Running %s (%s) against %s", name, mode, target)

        async with open_session(self.settings, self.launcher) as session:
            await session.navigate(target, self.timeout_ms)

            if mode == "screenshot":
                # Viewport only, never the full page
                data = await session.screenshot(full_page=False)
                return {
                    "type": "image",
                    "data": encode_bytes(data),
                    "mimeType": "image/png",
                    "description": f"Screenshot of {target}",
                    "url": target,
                }

            selector = arguments.get("selector")
            if mode == "html":
                html = await session.extract_html(selector)
                return {
                    "type": "html",
                    "content": truncate(html, self.html_limit),
                    "description": f"HTML content from {target}",
                    "url": target,
                }

            text = await session.extract_text(selector)
            return {
                "type": "text",
                "content": truncate(text, self.text_limit),
                "description": f"Text content from {target}",
                "url": target,
            }


async def scrape(
    url: str,
    action: str,
    options: Dict[str, Any],
    settings: BrowserSettings,
    launcher: Launcher = launch_session,
    timeout_ms: int = 30000,
) -> Union[bytes, Dict[str, Any]]:
    """Capture one artifact for the REST routes.

    Screenshots and PDFs come back as raw bytes; everything else as a
    JSON-ready dict.
    """
    if action not in SCRAPE_ACTIONS:
        raise ValueError(
            "Invalid action. Supported actions: " + ", ".join(SCRAPE_ACTIONS)
        )

    async with open_session(settings, launcher) as session:
        await apply_viewport(session, options.get("viewport"))
        await session.navigate(url, timeout_ms, wait_until="networkidle")
        await pause(options.get("waitFor"))

        if action == "screenshot":
            return await session.screenshot(
                full_page=bool(options.get("fullPage", False))
            )
        if action == "pdf":
            return await session.pdf(
                format=options.get("format") or "A4",
                landscape=bool(options.get("landscape", False)),
            )
        if action == "text":
            return {"text": await session.extract_text(options.get("selector"))}
        if action == "html":
            return {"html": await session.extract_html(options.get("selector"))}
        return {
            "metrics": await session.runtime_metrics(),
            "performance": await session.metrics(),
        }


async def capture_screenshot(
    url: str,
    settings: BrowserSettings,
    launcher: Launcher = launch_session,
    timeout_ms: int = 15000,
    full_page: bool = False,
    wait_until: str = "domcontentloaded",
) -> bytes:
    """PNG bytes of `url`, for the plain screenshot routes."""
    async with open_session(settings, launcher) as session:
        await session.navigate(url, timeout_ms, wait_until=wait_until)
        return await session.screenshot(full_page=full_page)
