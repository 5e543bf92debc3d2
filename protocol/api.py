"""HTTP transport: JSON-RPC over `POST /rpc`"""

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from config import settings
from logging_config import get_logger
from .server import RpcServer

logger = get_logger(__name__)


def create_app(server: RpcServer) -> FastAPI:
    app = FastAPI(
        title="unitcalc",
        description="Unit-aware spreadsheet engine RPC",
        version=settings.APP_VERSION,
    )

    @app.post("/rpc")
    async def rpc(request: Request):
        body = await request.body()
        response = await server.handle_text(body)
        if response is None:
            return Response(status_code=204)
        return JSONResponse(response)

    @app.get("/health")
    async def health():
        return {"status": "ok", "workbook": server.workbook.name, "initialized": server.initialized}

    return app


def run_http(server: RpcServer, host: str = None, port: int = None) -> None:
    host = host or settings.RPC_HOST
    port = port or settings.RPC_PORT
    logger.info("rpc_http_started", host=host, port=port)
    uvicorn.run(create_app(server), host=host, port=port, log_level=settings.LOG_LEVEL.lower())
