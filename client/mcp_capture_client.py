#!/usr/bin/env python3
"""Smoke client for a running web capture MCP server.

This script posts JSON-RPC envelopes to the server's HTTP endpoints and
walks through initialize, tools/list and one tools/call per catalog.

Usage:
    uv run python client/mcp_capture_client.py

Environment:
    MCP_SERVER_URL: Base URL of the server (default: http://127.0.0.1:8081)
    MCP_AUTH_TOKEN: Bearer token for the restricted endpoint, if configured
"""

import base64
import json
import os
import sys
from itertools import count
from typing import Any, Dict, Optional

import requests

_ids = count(1)


def rpc(
    endpoint: str,
    method: str,
    params: Optional[Dict[str, Any]] = None,
    token: Optional[str] = None,
) -> Dict[str, Any]:
    headers = {"Content-Type": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"

    payload: Dict[str, Any] = {
        "jsonrpc": "2.0",
        "id": next(_ids),
        "method": method,
    }
    if params is not None:
        payload["params"] = params

    resp = requests.post(endpoint, headers=headers, json=payload, timeout=60)
    body = resp.json()
    if resp.status_code != 200:
        print(f"HTTP {resp.status_code}: {json.dumps(body)}")
    return body


def describe(item: Dict[str, Any]) -> str:
    if "data" in item:
        size = len(base64.b64decode(item["data"]))
        return f"{item['type']} ({item.get('mimeType')}, {size} bytes)"
    if "content" in item:
        return f"{item['type']}: {str(item['content'])[:120]!r}"
    return json.dumps(item)[:200]


def check_endpoint(
    endpoint: str, call: Dict[str, Any], token: Optional[str] = None
) -> bool:
    print(f"== {endpoint}")
    init = rpc(endpoint, "initialize", {"protocolVersion": "2024-11-05"}, token)
    if "error" in init:
        print("initialize failed:", init["error"])
        return False
    print("Server:", init["result"]["serverInfo"]["name"])

    tools = rpc(endpoint, "tools/list", {}, token)
    if "error" in tools:
        print("tools/list failed:", tools["error"])
        return False
    print("Tools:", [t["name"] for t in tools["result"]["tools"]])

    result = rpc(endpoint, "tools/call", call, token)
    if "error" in result:
        print("tools/call failed:", result["error"]["message"])
        return False
    for item in result["result"]["content"]:
        print("Result:", describe(item))
    return True


def main() -> int:
    base_url = os.environ.get("MCP_SERVER_URL", "http://127.0.0.1:8081")
    token = os.environ.get("MCP_AUTH_TOKEN")

    ok = check_endpoint(
        f"{base_url}/api/mcp",
        {"name": "extract_text", "arguments": {"url": "https://example.com"}},
    )
    ok = (
        check_endpoint(
            f"{base_url}/api/mcp-compliant",
            {
                "name": "search",
                "arguments": {"query": "https://example.com", "mode": "text"},
            },
            token,
        )
        and ok
    )

    # A blocked domain must come back as an error envelope
    blocked = rpc(
        f"{base_url}/api/mcp-compliant",
        "tools/call",
        {"name": "retrieve", "arguments": {"url": "https://malicious-site.com"}},
        token,
    )
    print("Blocked domain:", blocked.get("error", {}).get("message"))

    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
