"""JSON-RPC surface over a workbook"""

from .types import (
    JsonRpcRequest,
    JsonRpcResponse,
    JsonRpcError,
    ToolDefinition,
    CallToolResult,
    PARSE_ERROR,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    INVALID_PARAMS,
    INTERNAL_ERROR,
)
from .tools import ToolHandler, ToolError, TOOL_DEFINITIONS, value_payload
from .server import RpcServer, PROTOCOL_VERSION

__all__ = [
    "JsonRpcRequest",
    "JsonRpcResponse",
    "JsonRpcError",
    "ToolDefinition",
    "CallToolResult",
    "PARSE_ERROR",
    "INVALID_REQUEST",
    "METHOD_NOT_FOUND",
    "INVALID_PARAMS",
    "INTERNAL_ERROR",
    "ToolHandler",
    "ToolError",
    "TOOL_DEFINITIONS",
    "value_payload",
    "RpcServer",
    "PROTOCOL_VERSION",
]
