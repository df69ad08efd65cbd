"""Web capture MCP server package."""

from server.server import create_app, main

__all__ = ["create_app", "main"]
