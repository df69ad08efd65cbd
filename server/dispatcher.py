"""JSON-RPC dispatch for the MCP endpoints.

`RpcDispatcher.handle` accepts one decoded request object and always
returns one response envelope carrying exactly one of `result` or
`error`. Nothing is kept between calls.
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional

import mcp.types as types

from server.executor import ToolExecutor
from server.tools import ToolRegistry

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
JSONRPC_VERSION = "2.0"

# Not part of the JSON-RPC reserved range; used for bearer token failures
UNAUTHORIZED = -32401


class McpMethod(str, Enum):
    INITIALIZE = "initialize"
    TOOLS_LIST = "tools/list"
    TOOLS_CALL = "tools/call"


def rpc_result(request_id: Any, result: Dict[str, Any]) -> Dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


def rpc_error(
    request_id: Any,
    code: int,
    message: str,
    data: Optional[Any] = None,
) -> Dict[str, Any]:
    error = types.ErrorData(code=code, message=message, data=data)
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id,
        "error": error.model_dump(exclude_none=True),
    }


class RpcDispatcher:
    """Routes `initialize`, `tools/list` and `tools/call`.

    Args:
        registry: Catalog of tools this endpoint exposes
        executor: Runs a resolved tool against the browser provider
        server_info: Static `serverInfo` block returned by `initialize`
    """

    def __init__(
        self,
        registry: ToolRegistry,
        executor: ToolExecutor,
        server_info: Dict[str, Any],
    ):
        self.registry = registry
        self.executor = executor
        self.server_info = dict(server_info)

    async def handle(self, request: Dict[str, Any]) -> Dict[str, Any]:
        request_id = request.get("id")
        method = request.get("method")
        params = request.get("params")

        try:
            try:
                selected = McpMethod(method)
            except ValueError:
                raise ValueError(f"Unknown method: {method}") from None

            if selected is McpMethod.INITIALIZE:
                return rpc_result(request_id, self.initialize())
            if selected is McpMethod.TOOLS_LIST:
                return rpc_result(request_id, {"tools": self.registry.list()})
            return rpc_result(request_id, await self.call_tool(params))

        except Exception as e:
            logger.error("MCP %s failed: %s", method, e)
            return rpc_error(
                request_id,
                types.INTERNAL_ERROR,
                str(e) or "Internal error",
                type(e).__name__,
            )

    def initialize(self) -> Dict[str, Any]:
        return {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {"tools": {}},
            "serverInfo": dict(self.server_info),
        }

    async def call_tool(self, params: Any) -> Dict[str, Any]:
        if not isinstance(params, dict):
            raise ValueError("tools/call requires params with a tool name")

        name = params.get("name")
        arguments = params.get("arguments") or {}
        if not isinstance(arguments, dict):
            raise ValueError("Tool arguments must be an object")

        # Registry membership is checked before any browser work
        tool = self.registry.require(name)
        result = await self.executor.execute(tool.name, arguments)
        return {"content": [result]}
