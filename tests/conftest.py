"""Pytest configuration and fixtures for mcp-web-capture-server tests."""

# Standard library
import os
import sys
from unittest.mock import AsyncMock

# Third-party
import pytest
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Make the repository root and src/ importable when running from a checkout
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from tests._helpers import (  # noqa: E402
    HTML_CONTENT,
    PDF_BYTES,
    PERFORMANCE,
    PNG_BYTES,
    RUNTIME_METRICS,
)


@pytest.fixture
def stub_session():
    """Stand-in for a browser session returning fixed artifacts."""
    session = AsyncMock()
    session.screenshot.return_value = PNG_BYTES
    session.pdf.return_value = PDF_BYTES
    session.extract_text.return_value = "Example Domain"
    session.extract_html.return_value = HTML_CONTENT
    session.metrics.return_value = dict(PERFORMANCE)
    session.runtime_metrics.return_value = dict(RUNTIME_METRICS)
    return session


@pytest.fixture
def fake_launcher(stub_session):
    """Launcher handing out `stub_session`; records every launch."""
    return AsyncMock(return_value=stub_session)


@pytest.fixture
def test_config():
    """Server configuration with deterministic values."""
    from server.server import init_configuration

    config = init_configuration()
    config.update(
        {
            "MCP_AUTH_TOKEN": None,
            "REQUIRE_AUTH": False,
            "APPROVED_DOMAINS": (
                "example.com",
                "httpbin.org",
                "jsonplaceholder.typicode.com",
                "wikipedia.org",
                "en.wikipedia.org",
            ),
            "RESTRICT_AUTOMATION_DOMAINS": False,
            "DEFAULT_SEARCH_URL": "https://example.com",
            "NAVIGATION_TIMEOUT_MS": 15000,
            "COMPLIANT_NAVIGATION_TIMEOUT_MS": 10000,
            "SCRAPE_TIMEOUT_MS": 30000,
            "TEXT_CONTENT_LIMIT": 2000,
            "HTML_CONTENT_LIMIT": 5000,
            "KEEPALIVE_INTERVAL_SECONDS": 30.0,
            "BROWSER_HEADLESS": True,
            "CHROME_PATH": None,
            "BLESS_TOKEN": None,
            "BROWSERLESS_URL": "wss://chrome.browserless.io",
            "CACHE_MAX_AGE": 3600,
        }
    )
    return config


@pytest.fixture
def app(test_config, fake_launcher):
    """Starlette app wired to the fake launcher."""
    from server.server import create_app

    return create_app(test_config, launcher=fake_launcher)


@pytest.fixture
def client(app):
    from starlette.testclient import TestClient

    with TestClient(app) as test_client:
        yield test_client


# Pytest collection modifiers
def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers automatically."""
    for item in items:
        # Add markers based on test file names
        if "test_integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "test_e2e" in str(item.fspath):
            item.add_marker(pytest.mark.e2e)
        else:
            item.add_marker(pytest.mark.unit)
