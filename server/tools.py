"""Tool catalogs exposed over `tools/list`.

Two static catalogs exist. `AUTOMATION_TOOLS` exposes every capture the
browser provider supports. `COMPLIANT_TOOLS` exposes only `search` and
`retrieve`; membership in the active registry decides what may be called.
"""

from typing import Any, Dict, Iterable, List, Optional

import mcp.types as types


def _wait_for(action: str) -> Dict[str, Any]:
    return {
        "type": "number",
        "description": (
            f"Additional wait time in milliseconds before {action}"
        ),
    }


AUTOMATION_TOOLS = (
    types.Tool(
        name="take_screenshot",
        description="Take a screenshot of a web page",
        inputSchema={
            "type": "object",
            "properties": {
                "url": {
                    "type": "string",
                    "description": "The URL of the web page to screenshot",
                },
                "fullPage": {
                    "type": "boolean",
                    "description": (
                        "Whether to capture the full page or just the viewport"
                    ),
                    "default": False,
                },
                "viewport": {
                    "type": "object",
                    "properties": {
                        "width": {
                            "type": "number",
                            "description": "Viewport width",
                        },
                        "height": {
                            "type": "number",
                            "description": "Viewport height",
                        },
                    },
                    "description": "Custom viewport size",
                },
                "waitFor": _wait_for("taking screenshot"),
            },
            "required": ["url"],
        },
    ),
    types.Tool(
        name="generate_pdf",
        description="Generate a PDF from a web page",
        inputSchema={
            "type": "object",
            "properties": {
                "url": {
                    "type": "string",
                    "description": "The URL of the web page to convert to PDF",
                },
                "format": {
                    "type": "string",
                    "enum": ["A4", "Letter"],
                    "description": "PDF page format",
                    "default": "A4",
                },
                "landscape": {
                    "type": "boolean",
                    "description": "Whether to use landscape orientation",
                    "default": False,
                },
                "waitFor": _wait_for("generating PDF"),
            },
            "required": ["url"],
        },
    ),
    types.Tool(
        name="extract_text",
        description="Extract text content from a web page",
        inputSchema={
            "type": "object",
            "properties": {
                "url": {
                    "type": "string",
                    "description": "The URL of the web page to extract text from",
                },
                "selector": {
                    "type": "string",
                    "description": (
                        "CSS selector to extract text from specific elements"
                    ),
                },
                "waitFor": _wait_for("extracting text"),
            },
            "required": ["url"],
        },
    ),
    types.Tool(
        name="extract_html",
        description="Extract HTML content from a web page",
        inputSchema={
            "type": "object",
            "properties": {
                "url": {
                    "type": "string",
                    "description": "The URL of the web page to extract HTML from",
                },
                "selector": {
                    "type": "string",
                    "description": (
                        "CSS selector to extract HTML from specific elements"
                    ),
                },
                "waitFor": _wait_for("extracting HTML"),
            },
            "required": ["url"],
        },
    ),
    types.Tool(
        name="get_performance_metrics",
        description="Get performance metrics for a web page",
        inputSchema={
            "type": "object",
            "properties": {
                "url": {
                    "type": "string",
                    "description": "The URL of the web page to analyze",
                },
                "waitFor": _wait_for("collecting metrics"),
            },
            "required": ["url"],
        },
    ),
)

COMPLIANT_TOOLS = (
    types.Tool(
        name="search",
        description=(
            "Search for content on approved websites by taking screenshots "
            "and extracting text"
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": (
                        "Search query or website URL from approved domains"
                    ),
                },
                "mode": {
                    "type": "string",
                    "enum": ["screenshot", "text"],
                    "description": (
                        "Type of content to retrieve (screenshot or text)"
                    ),
                    "default": "text",
                },
            },
            "required": ["query"],
        },
    ),
    types.Tool(
        name="retrieve",
        description="Retrieve specific content from approved websites",
        inputSchema={
            "type": "object",
            "properties": {
                "url": {
                    "type": "string",
                    "description": (
                        "URL from approved domains to retrieve content from"
                    ),
                },
                "content_type": {
                    "type": "string",
                    "enum": ["text", "html", "screenshot"],
                    "description": "Type of content to retrieve",
                    "default": "text",
                },
                "selector": {
                    "type": "string",
                    "description": "CSS selector for specific content (optional)",
                },
            },
            "required": ["url"],
        },
    ),
)


def tool_to_dict(tool: types.Tool) -> Dict[str, Any]:
    """Serialize a descriptor as `{name, description, inputSchema}`."""
    return {
        "name": tool.name,
        "description": tool.description,
        "inputSchema": tool.inputSchema,
    }


class ToolRegistry:
    """Immutable catalog of callable tools.

    A restricted registry reports its permitted names in the error raised
    for a tool it does not carry.
    """

    def __init__(self, tools: Iterable[types.Tool], restricted: bool = False):
        self._tools: Dict[str, types.Tool] = {}
        for tool in tools:
            if tool.name in self._tools:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            self._tools[tool.name] = tool
        self.restricted = restricted

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def names(self) -> List[str]:
        return list(self._tools)

    def list(self) -> List[Dict[str, Any]]:
        return [tool_to_dict(tool) for tool in self._tools.values()]

    def resolve(self, name: Optional[str]) -> Optional[types.Tool]:
        if not isinstance(name, str):
            return None
        return self._tools.get(name)

    def require(self, name: Optional[str]) -> types.Tool:
        """Resolve `name` or raise ValueError describing what is allowed."""
        tool = self.resolve(name)
        if tool is not None:
            return tool
        if self.restricted:
            permitted = " and ".join(f"'{n}'" for n in self._tools)
            raise ValueError(
                f"Tool not allowed: {name}. Only {permitted} are permitted."
            )
        raise ValueError(f"Unknown tool: {name}")

    def summary(self) -> List[Dict[str, Any]]:
        """Name and description pairs for the metadata endpoints."""
        return [
            {"name": tool.name, "description": tool.description}
            for tool in self._tools.values()
        ]


AUTOMATION_REGISTRY = ToolRegistry(AUTOMATION_TOOLS)
COMPLIANT_REGISTRY = ToolRegistry(COMPLIANT_TOOLS, restricted=True)
