"""Command line entry points for the web capture MCP server."""
