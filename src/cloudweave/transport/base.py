from __future__ import annotations

from typing import Protocol

from cloudweave.transport.messages import (
    CallResponse,
    InvokeResponse,
    LogRequest,
    ReadResourceRequest,
    ReadResourceResponse,
    RegisterResourceOutputsRequest,
    RegisterResourceRequest,
    RegisterResourceResponse,
    ResourceCallRequest,
    ResourceInvokeRequest,
)


class ResourceMonitor(Protocol):
    """Request/response primitive for the engine's ResourceMonitor service."""

    async def register_resource(
        self, request: RegisterResourceRequest, *, timeout: float | None = None
    ) -> RegisterResourceResponse:
        ...

    async def register_resource_outputs(
        self, request: RegisterResourceOutputsRequest, *, timeout: float | None = None
    ) -> None:
        ...

    async def invoke(
        self, request: ResourceInvokeRequest, *, timeout: float | None = None
    ) -> InvokeResponse:
        ...

    async def call(
        self, request: ResourceCallRequest, *, timeout: float | None = None
    ) -> CallResponse:
        ...

    async def read_resource(
        self, request: ReadResourceRequest, *, timeout: float | None = None
    ) -> ReadResourceResponse:
        ...

    async def supports_feature(self, feature: str) -> bool:
        ...

    async def aclose(self) -> None:
        ...


class Engine(Protocol):
    """Request/response primitive for the engine's Engine service."""

    async def log(self, request: LogRequest) -> None:
        ...

    async def get_root_resource(self, *, timeout: float | None = None) -> str:
        ...

    async def aclose(self) -> None:
        ...
