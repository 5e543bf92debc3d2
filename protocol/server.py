"""Async JSON-RPC 2.0 server over one workbook.

Requests are handled one at a time under a single lock, so the
workbook sees exactly one writer regardless of transport.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from config import settings
from core.exceptions import SheetNotFoundError, UnitCalcError
from engine.workbook import Workbook
from formats.json_format import dumps, save_workbook
from logging_config import get_logger
from .tools import ToolHandler
from .types import (
    JSONRPC_VERSION,
    JsonRpcRequest,
    JsonRpcResponse,
    ResourceDescriptor,
    internal_error,
    invalid_params,
    invalid_request,
    method_not_found,
    parse_error,
    success,
)

logger = get_logger(__name__)

PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "unitcalc"
WORKBOOK_URI = "unitcalc://workbook"
SHEET_URI_PREFIX = "unitcalc://sheet/"


class RpcServer:
    """Dispatches JSON-RPC messages onto a ToolHandler.

    When `path` is given, the workbook is saved there after any tool call
    that leaves it dirty.
    """

    def __init__(self, workbook: Workbook, path: Optional[Union[str, Path]] = None):
        self.workbook = workbook
        self.path = Path(path) if path is not None else None
        self.tools = ToolHandler(workbook)
        self.initialized = False
        self._lock = asyncio.Lock()
        self._methods = {
            "initialize": self._initialize,
            "initialized": self._notified,
            "notifications/initialized": self._notified,
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
            "resources/list": self._list_resources,
            "resources/read": self._read_resource,
        }

    # ─────────────────────────────────────────────────────────────
    # Entry points
    # ─────────────────────────────────────────────────────────────

    async def handle_text(self, text: Union[str, bytes]) -> Optional[Dict[str, Any]]:
        """Handle one raw message; None when no response is due."""
        try:
            message = json.loads(text)
        except (ValueError, UnicodeDecodeError) as e:
            logger.warning("rpc_parse_error", error=str(e))
            return parse_error(f"Parse error: {e}").to_dict()
        return await self.handle(message)

    async def handle(self, message: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(message, dict):
            return invalid_request().to_dict()
        request_id = message.get("id")
        try:
            request = JsonRpcRequest.model_validate(message)
        except ValidationError:
            return invalid_request(request_id).to_dict()
        if request.jsonrpc != JSONRPC_VERSION:
            return invalid_request(request_id, f"Unsupported jsonrpc version {request.jsonrpc!r}").to_dict()

        async with self._lock:
            response = self._dispatch(request)
            if self.path is not None and self.workbook.dirty:
                try:
                    await asyncio.to_thread(save_workbook, self.workbook, self.path)
                except UnitCalcError as e:
                    logger.error("workbook_save_failed", path=str(self.path), error=str(e))
                    response = internal_error(request.id, str(e))

        if "id" not in message:
            return None
        return response.to_dict()

    def _dispatch(self, request: JsonRpcRequest) -> JsonRpcResponse:
        handler = self._methods.get(request.method)
        if handler is None:
            logger.info("rpc_method_not_found", method=request.method)
            return method_not_found(request.id, request.method)
        logger.debug("rpc_request", method=request.method, id=request.id)
        try:
            return handler(request)
        except UnitCalcError as e:
            logger.warning("rpc_request_failed", method=request.method, error=str(e))
            return internal_error(request.id, str(e))
        except Exception as e:
            logger.exception("rpc_unhandled_error", method=request.method)
            return internal_error(request.id, f"Internal error: {e}")

    def _require_initialized(self, request: JsonRpcRequest) -> Optional[JsonRpcResponse]:
        if not self.initialized:
            return internal_error(request.id, "Server not initialized")
        return None

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    def _initialize(self, request: JsonRpcRequest) -> JsonRpcResponse:
        self.initialized = True
        logger.info("rpc_initialized", client=(request.params or {}).get("clientInfo"))
        return success(
            request.id,
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {
                    "tools": {"listChanged": False},
                    "resources": {"subscribe": False, "listChanged": False},
                },
                "serverInfo": {"name": SERVER_NAME, "version": settings.APP_VERSION},
            },
        )

    def _notified(self, request: JsonRpcRequest) -> JsonRpcResponse:
        return success(request.id, {})

    def _ping(self, request: JsonRpcRequest) -> JsonRpcResponse:
        return success(request.id, {})

    # ─────────────────────────────────────────────────────────────
    # Tools
    # ─────────────────────────────────────────────────────────────

    def _list_tools(self, request: JsonRpcRequest) -> JsonRpcResponse:
        error = self._require_initialized(request)
        if error is not None:
            return error
        tools = [tool.model_dump(by_alias=True) for tool in self.tools.definitions()]
        return success(request.id, {"tools": tools})

    def _call_tool(self, request: JsonRpcRequest) -> JsonRpcResponse:
        error = self._require_initialized(request)
        if error is not None:
            return error
        params = request.params or {}
        name = params.get("name")
        if not isinstance(name, str):
            return invalid_params(request.id, "Missing tool name")
        arguments = params.get("arguments") or {}
        if not isinstance(arguments, dict):
            return invalid_params(request.id, "Tool arguments must be an object")

        result = self.tools.call(name, arguments)
        logger.info("tool_called", tool=name, is_error=result.is_error)
        return success(request.id, result.model_dump(by_alias=True))

    # ─────────────────────────────────────────────────────────────
    # Resources
    # ─────────────────────────────────────────────────────────────

    def resources(self) -> List[ResourceDescriptor]:
        descriptors = [
            ResourceDescriptor(
                uri=WORKBOOK_URI,
                name=self.workbook.name,
                description="Complete workbook document",
            )
        ]
        for sheet in self.workbook.sheets:
            descriptors.append(
                ResourceDescriptor(
                    uri=f"{SHEET_URI_PREFIX}{sheet.name}",
                    name=sheet.name,
                    description=f"Cells of sheet {sheet.name}",
                )
            )
        return descriptors

    def _list_resources(self, request: JsonRpcRequest) -> JsonRpcResponse:
        error = self._require_initialized(request)
        if error is not None:
            return error
        resources = [resource.model_dump(by_alias=True, exclude_none=True) for resource in self.resources()]
        return success(request.id, {"resources": resources})

    def _read_resource(self, request: JsonRpcRequest) -> JsonRpcResponse:
        error = self._require_initialized(request)
        if error is not None:
            return error
        uri = (request.params or {}).get("uri")
        if not isinstance(uri, str):
            return invalid_params(request.id, "Missing resource uri")

        if uri == WORKBOOK_URI:
            text = dumps(self.workbook)
        elif uri.startswith(SHEET_URI_PREFIX):
            try:
                snapshot = self.tools.sheet_snapshot(uri[len(SHEET_URI_PREFIX):])
            except SheetNotFoundError as e:
                return invalid_params(request.id, str(e))
            text = json.dumps(snapshot, indent=2)
        else:
            return invalid_params(request.id, f"Unknown resource: {uri}")
        return success(
            request.id,
            {"contents": [{"uri": uri, "mimeType": "application/json", "text": text}]},
        )

    # ─────────────────────────────────────────────────────────────
    # stdio transport
    # ─────────────────────────────────────────────────────────────

    async def serve_stdio(self, stdin=None, stdout=None) -> None:
        """Read one JSON message per line until end of input."""
        stdin = stdin or sys.stdin
        stdout = stdout or sys.stdout
        loop = asyncio.get_running_loop()
        logger.info("rpc_stdio_started", workbook=self.workbook.name)
        while True:
            line = await loop.run_in_executor(None, stdin.readline)
            if not line:
                break
            if not line.strip():
                continue
            response = await self.handle_text(line)
            if response is not None:
                stdout.write(json.dumps(response) + "\n")
                stdout.flush()
        logger.info("rpc_stdio_stopped")
