"""
HTTP surface of the language runtime.

Every method is a POST to ``/pulumirpc.LanguageRuntime/<Method>`` taking and
returning JSON. InstallDependencies streams newline-delimited JSON messages.
Protocol faults are returned as ``{"code": ..., "message": ...}``.
"""

from __future__ import annotations

import json
from typing import AsyncIterator

import structlog
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

from cloudweave import __version__
from cloudweave.runtime.messages import (
    AboutResponse,
    GetProgramDependenciesResponse,
    GetRequiredPluginsResponse,
    InstallDependenciesRequest,
    LanguageHandshakeRequest,
    LanguageHandshakeResponse,
    PluginInfo,
    RunRequest,
    RunResponse,
)
from cloudweave.runtime.service import LanguageRuntime
from cloudweave.transport.errors import StatusCode, TransportError

logger = structlog.get_logger()

SERVICE_PREFIX = "/pulumirpc.LanguageRuntime"

_HTTP_STATUS = {
    StatusCode.INVALID_ARGUMENT: 400,
    StatusCode.FAILED_PRECONDITION: 412,
    StatusCode.UNIMPLEMENTED: 501,
    StatusCode.UNAVAILABLE: 503,
}


def _router(runtime: LanguageRuntime) -> APIRouter:
    router = APIRouter(prefix=SERVICE_PREFIX)

    @router.post("/Handshake", response_model=LanguageHandshakeResponse)
    async def handshake(payload: LanguageHandshakeRequest) -> LanguageHandshakeResponse:
        return await runtime.handshake(payload)

    @router.post("/GetPluginInfo", response_model=PluginInfo)
    async def get_plugin_info() -> PluginInfo:
        return await runtime.get_plugin_info()

    @router.post("/About", response_model=AboutResponse)
    async def about() -> AboutResponse:
        return await runtime.about()

    @router.post("/GetRequiredPlugins", response_model=GetRequiredPluginsResponse)
    async def get_required_plugins() -> GetRequiredPluginsResponse:
        return await runtime.get_required_plugins()

    @router.post("/GetProgramDependencies", response_model=GetProgramDependenciesResponse)
    async def get_program_dependencies() -> GetProgramDependenciesResponse:
        return await runtime.get_program_dependencies()

    @router.post("/Run", response_model=RunResponse)
    async def run(payload: RunRequest) -> RunResponse:
        return await runtime.run(payload)

    @router.post("/InstallDependencies")
    async def install_dependencies(payload: InstallDependenciesRequest) -> StreamingResponse:
        async def body() -> AsyncIterator[str]:
            async for chunk in runtime.install_dependencies(payload):
                yield json.dumps(chunk.to_wire()) + "\n"

        return StreamingResponse(body(), media_type="application/x-ndjson")

    return router


def create_app(runtime: LanguageRuntime | None = None) -> FastAPI:
    runtime = runtime or LanguageRuntime()

    app = FastAPI(title="cloudweave language runtime", version=__version__)
    app.state.runtime = runtime

    @app.exception_handler(TransportError)
    async def transport_error_handler(request: Request, exc: TransportError) -> JSONResponse:
        logger.warning("runtime_protocol_error", path=request.url.path, code=exc.code.name)
        return JSONResponse(
            status_code=_HTTP_STATUS.get(exc.code, 500),
            content={"code": exc.code.name.lower(), "message": exc.message},
        )

    app.include_router(_router(runtime), tags=["language-runtime"])
    return app
