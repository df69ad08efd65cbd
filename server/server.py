"""
Web Capture MCP Server

This module implements an HTTP gateway that exposes headless-browser
captures (screenshots, PDFs, text and HTML extraction, performance
metrics) through the Model Context Protocol's JSON-RPC methods and a few
plain REST routes.

Two MCP endpoints are served. `/api/mcp` carries the full automation
catalog and supports a Server-Sent Events keep-alive transport.
`/api/mcp-compliant` carries only `search` and `retrieve`, is gated by an
optional bearer token, and only navigates to approved domains.
"""

# Standard library imports
import hmac
import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
from urllib.parse import quote

# Third-party imports
import click
import mcp.types as types
import uvicorn
from dotenv import load_dotenv
from pythonjsonlogger import jsonlogger
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import (
    JSONResponse,
    PlainTextResponse,
    Response,
    StreamingResponse,
)
from starlette.routing import Route

from server.dispatcher import UNAUTHORIZED, RpcDispatcher, rpc_error
from server.domains import DomainGuard, DomainNotAllowedError, parse_domain_list
from server.executor import (
    SCRAPE_ACTIONS,
    AutomationExecutor,
    CompliantExecutor,
    capture_screenshot,
    scrape,
)
from server.session import (
    DEFAULT_BROWSER_ARGS,
    BrowserSettings,
    Launcher,
    launch_session,
)
from server.streaming import KeepAliveStream
from server.tools import AUTOMATION_REGISTRY, COMPLIANT_REGISTRY

SERVER_VERSION = "1.0.0"

# Configure logging
logger = logging.getLogger()
logger.handlers = []  # Remove any existing handlers
handler = logging.StreamHandler(sys.stderr)
formatter = jsonlogger.JsonFormatter(
    '{"time":"%(asctime)s","level":"%(levelname)s",'
    '"name":"%(name)s","message":"%(message)s"}'
)
handler.setFormatter(formatter)
logger.addHandler(handler)
# Do not set root logger level at import time; allow `main()` to control levels
logger.setLevel(logging.NOTSET)

uvicorn_logger = logging.getLogger("uvicorn")
uvicorn_logger.handlers = []
uvicorn_logger.addHandler(handler)

# Load environment variables
load_dotenv()


def parse_bool_env(env_var: str, default: bool = False) -> bool:
    """
    Parse a boolean environment variable.

    Args:
        env_var: The environment variable name
        default: Default value if not set

    Returns:
        Boolean value of the environment variable
    """
    value = os.environ.get(env_var)
    if value is None:
        return default

    # Consider various representations of boolean values
    return value.lower() in ("true", "yes", "1", "y", "on")


def init_configuration() -> Dict[str, Any]:
    """
    Initialize configuration from environment variables with defaults.

    Returns:
        Dictionary containing all configuration parameters
    """
    config = {
        # Authentication for the restricted endpoint
        "MCP_AUTH_TOKEN": os.environ.get("MCP_AUTH_TOKEN") or None,
        "REQUIRE_AUTH": parse_bool_env("REQUIRE_AUTH", False),
        # Navigation allowlist
        "APPROVED_DOMAINS": parse_domain_list(
            os.environ.get("APPROVED_DOMAINS")
        ),
        "RESTRICT_AUTOMATION_DOMAINS": parse_bool_env(
            "RESTRICT_AUTOMATION_DOMAINS", False
        ),
        "DEFAULT_SEARCH_URL": os.environ.get(
            "DEFAULT_SEARCH_URL", "https://example.com"
        ),
        # Timeouts in milliseconds
        "NAVIGATION_TIMEOUT_MS": int(
            os.environ.get("NAVIGATION_TIMEOUT_MS", 15000)
        ),
        "COMPLIANT_NAVIGATION_TIMEOUT_MS": int(
            os.environ.get("COMPLIANT_NAVIGATION_TIMEOUT_MS", 10000)
        ),
        "SCRAPE_TIMEOUT_MS": int(os.environ.get("SCRAPE_TIMEOUT_MS", 30000)),
        # Content caps for the restricted catalog
        "TEXT_CONTENT_LIMIT": int(os.environ.get("TEXT_CONTENT_LIMIT", 2000)),
        "HTML_CONTENT_LIMIT": int(os.environ.get("HTML_CONTENT_LIMIT", 5000)),
        # SSE keep-alive
        "KEEPALIVE_INTERVAL_SECONDS": float(
            os.environ.get("KEEPALIVE_INTERVAL_SECONDS", 30)
        ),
        # Browser settings
        "BROWSER_HEADLESS": parse_bool_env("BROWSER_HEADLESS", True),
        "CHROME_PATH": os.environ.get("CHROME_PATH") or None,
        "BROWSER_ARGS": list(DEFAULT_BROWSER_ARGS),
        # Remote browser (cloud) connection
        "BLESS_TOKEN": os.environ.get("BLESS_TOKEN") or None,
        "BROWSERLESS_URL": os.environ.get(
            "BROWSERLESS_URL", "wss://chrome.browserless.io"
        ),
        "CACHE_MAX_AGE": int(os.environ.get("CACHE_MAX_AGE", 3600)),
    }

    return config


# Initialize configuration
CONFIG = init_configuration()


def check_configuration(config: Dict[str, Any]) -> None:
    """Validate settings that must hold before serving requests.

    Raises:
        ValueError: If a setting is out of range or auth is required but
            no token is configured
    """
    if not config.get("MCP_AUTH_TOKEN"):
        if config.get("REQUIRE_AUTH"):
            raise ValueError(
                "REQUIRE_AUTH is set but MCP_AUTH_TOKEN is not configured"
            )
        logger.warning(
            "MCP_AUTH_TOKEN is not set: /api/mcp-compliant accepts "
            "unauthenticated requests. Set MCP_AUTH_TOKEN (and REQUIRE_AUTH) "
            "for any deployment reachable by untrusted clients."
        )

    for key in (
        "NAVIGATION_TIMEOUT_MS",
        "COMPLIANT_NAVIGATION_TIMEOUT_MS",
        "SCRAPE_TIMEOUT_MS",
        "TEXT_CONTENT_LIMIT",
        "HTML_CONTENT_LIMIT",
        "KEEPALIVE_INTERVAL_SECONDS",
    ):
        if config[key] <= 0:
            raise ValueError(f"Invalid {key}: {config[key]}")

    if not config.get("RESTRICT_AUTOMATION_DOMAINS"):
        logger.warning(
            "Automation tools on /api/mcp may navigate to any URL; set "
            "RESTRICT_AUTOMATION_DOMAINS=true to apply the domain allowlist"
        )


def cors_headers(
    allow_headers: str = "Content-Type",
    allow_methods: str = "POST, OPTIONS",
) -> Dict[str, str]:
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": allow_methods,
        "Access-Control-Allow-Headers": allow_headers,
    }


def validate_auth(request: Request, expected_token: Optional[str]) -> bool:
    """Check the bearer token. No configured token admits every request."""
    if not expected_token:
        return True

    auth_header = request.headers.get("authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return False

    token = auth_header[len("Bearer ") :]
    return hmac.compare_digest(token.encode(), expected_token.encode())


def browser_settings(config: Dict[str, Any]) -> BrowserSettings:
    return BrowserSettings(
        headless=config["BROWSER_HEADLESS"],
        executable_path=config.get("CHROME_PATH"),
        args=tuple(config["BROWSER_ARGS"]),
    )


def create_app(
    config: Optional[Dict[str, Any]] = None,
    launcher: Launcher = launch_session,
) -> Starlette:
    """
    Build the Starlette application serving every route.

    Args:
        config: Configuration dict (defaults to the process `CONFIG`)
        launcher: Coroutine that produces a browser session

    Returns:
        Configured Starlette application
    """
    if config is None:
        config = CONFIG

    guard = DomainGuard(config["APPROVED_DOMAINS"])
    automation_guard = guard if config["RESTRICT_AUTOMATION_DOMAINS"] else None
    settings = browser_settings(config)
    max_age = config["CACHE_MAX_AGE"]

    automation = RpcDispatcher(
        AUTOMATION_REGISTRY,
        AutomationExecutor(
            settings,
            launcher,
            timeout_ms=config["NAVIGATION_TIMEOUT_MS"],
            guard=automation_guard,
        ),
        {
            "name": "puppeteer-mcp-server",
            "version": SERVER_VERSION,
            "description": "Browser-based web scraping and automation tools",
        },
    )
    compliant = RpcDispatcher(
        COMPLIANT_REGISTRY,
        CompliantExecutor(
            settings,
            guard,
            launcher,
            timeout_ms=config["COMPLIANT_NAVIGATION_TIMEOUT_MS"],
            text_limit=config["TEXT_CONTENT_LIMIT"],
            html_limit=config["HTML_CONTENT_LIMIT"],
            default_search_url=config["DEFAULT_SEARCH_URL"],
        ),
        {
            "name": "puppeteer-mcp-compliant",
            "version": SERVER_VERSION,
            "description": (
                "ChatGPT-compliant web content retrieval tools with "
                "security restrictions"
            ),
        },
    )

    mcp_cors = cors_headers()
    compliant_cors = cors_headers("Content-Type, Authorization")

    async def _dispatch(
        request: Request, dispatcher: RpcDispatcher, headers: Dict[str, str]
    ) -> Response:
        try:
            body = await request.json()
        except ValueError as e:
            logger.error("MCP request parse error: %s", e)
            return JSONResponse(
                rpc_error(None, types.PARSE_ERROR, "Parse error", str(e)),
                status_code=400,
                headers=headers,
            )

        if not isinstance(body, dict):
            return JSONResponse(
                rpc_error(
                    None,
                    types.PARSE_ERROR,
                    "Parse error",
                    "Request body must be a JSON object",
                ),
                status_code=400,
                headers=headers,
            )

        response = await dispatcher.handle(body)
        return JSONResponse(response, status_code=200, headers=headers)

    async def mcp_endpoint(request: Request) -> Response:
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=mcp_cors)

        if request.method == "POST":
            return await _dispatch(request, automation, mcp_cors)

        if request.query_params.get("transport") == "sse":
            stream = KeepAliveStream(config["KEEPALIVE_INTERVAL_SECONDS"])
            return StreamingResponse(
                stream.events(),
                media_type="text/event-stream",
                headers={
                    "Cache-Control": "no-cache",
                    "Connection": "keep-alive",
                    "Access-Control-Allow-Origin": "*",
                    "Access-Control-Allow-Headers": "Cache-Control",
                },
            )

        return JSONResponse(
            {
                "name": "Puppeteer MCP Server",
                "description": (
                    "Web scraping and automation tools via Model Context "
                    "Protocol"
                ),
                "version": SERVER_VERSION,
                "capabilities": ["tools"],
                "tools": AUTOMATION_REGISTRY.summary(),
            },
            headers=mcp_cors,
        )

    async def compliant_endpoint(request: Request) -> Response:
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=compliant_cors)

        if request.method == "GET":
            return JSONResponse(
                {
                    "name": "Puppeteer MCP Server (ChatGPT Compliant)",
                    "description": (
                        "ChatGPT-compliant web content retrieval with "
                        "security restrictions"
                    ),
                    "version": SERVER_VERSION,
                    "capabilities": ["tools"],
                    "compliance": {
                        "openai_chatgpt": True,
                        "allowed_tools": COMPLIANT_REGISTRY.names,
                        "security_features": [
                            "domain_whitelist",
                            "content_length_limits",
                            "authentication",
                        ],
                    },
                    "approved_domains": list(guard.domains),
                    "tools": COMPLIANT_REGISTRY.summary(),
                },
                headers=compliant_cors,
            )

        if not validate_auth(request, config.get("MCP_AUTH_TOKEN")):
            logger.warning("Rejected unauthenticated MCP request")
            return JSONResponse(
                rpc_error(
                    None,
                    UNAUTHORIZED,
                    "Unauthorized: Invalid or missing authentication token",
                ),
                status_code=401,
                headers=compliant_cors,
            )

        return await _dispatch(request, compliant, compliant_cors)

    def _artifact_response(data: bytes, media_type: str) -> Response:
        headers = {"Cache-Control": f"public, max-age={max_age}"}
        headers.update(cors_headers())
        return Response(content=data, media_type=media_type, headers=headers)

    def _failure(message: str, status_code: int = 500, **extra: Any) -> Response:
        body: Dict[str, Any] = {"message": message}
        body.update(extra)
        return JSONResponse(
            body, status_code=status_code, headers=cors_headers()
        )

    async def _read_json(request: Request) -> Optional[Dict[str, Any]]:
        try:
            body = await request.json()
        except ValueError:
            return None
        return body if isinstance(body, dict) else None

    async def scrape_endpoint(request: Request) -> Response:
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=cors_headers())

        body = await _read_json(request)
        if body is None:
            return _failure("Request body must be a JSON object", 400)

        url = body.get("url")
        action = body.get("action")
        options = body.get("options") or {}
        if not url or not isinstance(url, str):
            return _failure("URL is required in request body", 400)
        if action not in SCRAPE_ACTIONS:
            return _failure(
                "Invalid action. Supported actions: "
                + ", ".join(SCRAPE_ACTIONS),
                400,
            )
        if not isinstance(options, dict):
            return _failure("options must be an object", 400)

        try:
            if automation_guard is not None:
                automation_guard.check(url)
            result = await scrape(
                url,
                action,
                options,
                settings,
                launcher,
                timeout_ms=config["SCRAPE_TIMEOUT_MS"],
            )
        except DomainNotAllowedError as e:
            return _failure(str(e), 403)
        except Exception as e:
            logger.error("Scraping error: %s", e)
            return _failure(
                "Failed to perform scraping action", error=str(e)
            )

        if action == "screenshot":
            return _artifact_response(result, "image/png")
        if action == "pdf":
            return _artifact_response(result, "application/pdf")
        return JSONResponse(
            result,
            headers={
                "Cache-Control": f"public, max-age={max_age}",
                **cors_headers(),
            },
        )

    async def _screenshot_request(
        request: Request,
    ) -> tuple[Optional[str], Dict[str, Any]]:
        if request.method == "GET":
            return request.query_params.get("url"), {}
        body = await _read_json(request) or {}
        options = body.get("options")
        return body.get("url"), options if isinstance(options, dict) else {}

    async def _screenshot(
        request: Request,
        capture_settings: BrowserSettings,
        wait_until: str,
        timeout_ms: int,
    ) -> Response:
        url, options = await _screenshot_request(request)
        if not url:
            if request.method == "GET":
                return _failure("URL parameter is required", 400)
            return _failure("URL is required in request body", 400)

        try:
            if automation_guard is not None:
                automation_guard.check(url)
            data = await capture_screenshot(
                url,
                capture_settings,
                launcher,
                timeout_ms=timeout_ms,
                full_page=bool(options.get("fullPage", False)),
                wait_until=wait_until,
            )
        except DomainNotAllowedError as e:
            return _failure(str(e), 403)
        except Exception as e:
            logger.error("Screenshot error: %s", e)
            return _failure("Failed to take screenshot", error=str(e))

        return _artifact_response(data, "image/png")

    async def screenshot_endpoint(request: Request) -> Response:
        return await _screenshot(
            request, settings, "domcontentloaded", config["NAVIGATION_TIMEOUT_MS"]
        )

    async def browserless_screenshot_endpoint(request: Request) -> Response:
        token = config.get("BLESS_TOKEN")
        if not token:
            return _failure(
                "BLESS_TOKEN environment variable is not configured"
            )
        endpoint = f"{config['BROWSERLESS_URL']}?token={quote(token, safe='')}"
        remote = BrowserSettings(remote_endpoint=endpoint)
        return await _screenshot(
            request, remote, "networkidle", config["SCRAPE_TIMEOUT_MS"]
        )

    async def _health(request: Request) -> Response:
        """Simple health endpoint for Docker and load balancers."""
        return PlainTextResponse("ok")

    @asynccontextmanager
    async def lifespan(app: Starlette):
        logger.info("Starting MCP server...")
        check_configuration(config)
        logger.info("Approved domains: %s", ", ".join(guard.domains))
        yield
        logger.info("MCP server stopped")

    starlette_app = Starlette(
        routes=[
            Route("/health", endpoint=_health),
            Route(
                "/api/mcp",
                endpoint=mcp_endpoint,
                methods=["GET", "POST", "OPTIONS"],
            ),
            Route(
                "/api/mcp-compliant",
                endpoint=compliant_endpoint,
                methods=["GET", "POST", "OPTIONS"],
            ),
            Route(
                "/api/scrape",
                endpoint=scrape_endpoint,
                methods=["POST", "OPTIONS"],
            ),
            Route(
                "/api/screenshot-chromium",
                endpoint=screenshot_endpoint,
                methods=["GET", "POST"],
            ),
            Route(
                "/api/screenshot-browserless",
                endpoint=browserless_screenshot_endpoint,
                methods=["GET", "POST"],
            ),
        ],
        lifespan=lifespan,
    )
    starlette_app.state.automation = automation
    starlette_app.state.compliant = compliant
    starlette_app.state.guard = guard

    return starlette_app


@click.command()
@click.option("--port", default=8081, help="Port to listen on")
@click.option("--host", default="0.0.0.0", help="Interface to bind")  # nosec
@click.option("--chrome-path", default=None, help="Path to Chrome executable")
@click.option(
    "--headless/--no-headless",
    default=None,
    help="Run browsers in headless mode (default: from BROWSER_HEADLESS env)",
)
@click.option(
    "--log-level",
    default="INFO",
    help="Logging level for server (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
)
def main(
    port: int,
    host: str,
    chrome_path: Optional[str],
    headless: Optional[bool],
    log_level: str,
) -> int:
    """
    Run the web capture MCP server.

    Every tool call launches its own browser, performs one navigation and
    closes the browser again before the response is sent.

    Args:
        port: Port to listen on
        host: Interface to bind
        chrome_path: Path to Chrome executable
        headless: Override for BROWSER_HEADLESS
        log_level: Logging level name

    Returns:
        Exit code (0 for success)
    """
    if port <= 0 or port > 65535:
        logger.error(f"Invalid port number: {port}")
        raise click.BadParameter(f"Invalid port number: {port}")

    if chrome_path:
        CONFIG["CHROME_PATH"] = chrome_path
        logger.info(f"Using Chrome path: {chrome_path}")
    else:
        logger.info(
            "No Chrome path specified, letting Playwright use its default browser"
        )

    if headless is not None:
        CONFIG["BROWSER_HEADLESS"] = bool(headless)

    starlette_app = create_app(CONFIG)

    # Support all standard Python logging levels including CRITICAL
    chosen_level = getattr(logging, log_level.upper(), logging.INFO)
    logging.getLogger().setLevel(chosen_level)
    for logger_name in ["uvicorn", "uvicorn.error", "uvicorn.access", "playwright"]:
        logging.getLogger(logger_name).setLevel(chosen_level)

    log_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                "fmt": (
                    '{"time":"%(asctime)s","level":"%(levelname)s",'
                    '"name":"%(name)s","message":"%(message)s"}'
                ),
            }
        },
        "handlers": {
            "default": {
                "formatter": "json",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stderr",
            }
        },
        "loggers": {
            "": {"handlers": ["default"], "level": log_level.upper()},
            "uvicorn": {"handlers": ["default"], "level": log_level.upper()},
            "uvicorn.error": {
                "handlers": ["default"],
                "level": log_level.upper(),
            },
            "uvicorn.access": {
                "handlers": ["default"],
                "level": log_level.upper(),
            },
        },
    }

    logger.info(f"Serving MCP endpoints on {host}:{port}")
    uvicorn.run(
        starlette_app,
        host=host,
        port=port,
        log_config=log_config,
        log_level=log_level.lower(),
    )

    return 0


if __name__ == "__main__":
    main()
