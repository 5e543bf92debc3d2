"""JSON-RPC 2.0 message models and error constructors"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional, Union

JSONRPC_VERSION = "2.0"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

RequestId = Union[int, str]


class JsonRpcRequest(BaseModel):
    """Incoming request or notification"""
    jsonrpc: str
    method: str
    id: Optional[RequestId] = None
    params: Optional[Dict[str, Any]] = None


class JsonRpcError(BaseModel):
    code: int
    message: str
    data: Optional[Any] = None


class JsonRpcResponse(BaseModel):
    """Outgoing response; exactly one of result or error is set"""
    jsonrpc: str = JSONRPC_VERSION
    id: Optional[RequestId] = None
    result: Optional[Any] = None
    error: Optional[JsonRpcError] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            payload["error"] = self.error.model_dump(exclude_none=True)
        else:
            payload["result"] = self.result
        return payload


def success(request_id: Optional[RequestId], result: Any) -> JsonRpcResponse:
    return JsonRpcResponse(id=request_id, result=result)


def failure(
    request_id: Optional[RequestId], code: int, message: str, data: Any = None
) -> JsonRpcResponse:
    return JsonRpcResponse(id=request_id, error=JsonRpcError(code=code, message=message, data=data))


def parse_error(message: str = "Parse error") -> JsonRpcResponse:
    return failure(None, PARSE_ERROR, message)


def invalid_request(request_id: Optional[RequestId] = None, message: str = "Invalid Request") -> JsonRpcResponse:
    return failure(request_id, INVALID_REQUEST, message)


def method_not_found(request_id: Optional[RequestId], method: str) -> JsonRpcResponse:
    return failure(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")


def invalid_params(request_id: Optional[RequestId], message: str) -> JsonRpcResponse:
    return failure(request_id, INVALID_PARAMS, message)


def internal_error(request_id: Optional[RequestId], message: str) -> JsonRpcResponse:
    return failure(request_id, INTERNAL_ERROR, message)


# ─────────────────────────────────────────────────────────────
# Tool and resource payloads
# ─────────────────────────────────────────────────────────────

class ToolDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str
    input_schema: Dict[str, Any] = Field(alias="inputSchema")


class TextContent(BaseModel):
    type: str = "text"
    text: str


class CallToolResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: List[TextContent]
    is_error: bool = Field(default=False, alias="isError")

    @classmethod
    def text(cls, text: str, is_error: bool = False) -> "CallToolResult":
        return cls(content=[TextContent(text=text)], is_error=is_error)


class ResourceDescriptor(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    uri: str
    name: str
    description: Optional[str] = None
    mime_type: str = Field(default="application/json", alias="mimeType")
