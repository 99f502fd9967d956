"""
In-memory engine doubles for local development and tests.

InMemoryMonitor assigns URNs and ids the way the engine does, echoes inputs
back as outputs and records every request. Failures can be scripted per
resource name.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Callable

from cloudweave.transport.errors import StatusCode, TransportError
from cloudweave.transport.messages import (
    CallResponse,
    CheckFailure,
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
from cloudweave.urn import STACK_TYPE, URN

InvokeHandler = Callable[[dict[str, Any]], dict[str, Any]]


class InMemoryMonitor:
    """Simple asyncio-backed ResourceMonitor."""

    def __init__(
        self,
        *,
        stack: str = "dev",
        project: str = "project",
        dry_run: bool = False,
        latency: float = 0.0,
        connected: bool = True,
    ) -> None:
        self.stack = stack
        self.project = project
        self.dry_run = dry_run
        self.latency = latency
        self.connected = connected

        self.requests: list[RegisterResourceRequest] = []
        self.registered: dict[str, RegisterResourceResponse] = {}
        self.resource_outputs: dict[str, dict[str, Any]] = {}
        self.invokes: list[ResourceInvokeRequest] = []
        self.calls: list[ResourceCallRequest] = []
        self.reads: list[ReadResourceRequest] = []
        self.invoke_handlers: dict[str, InvokeHandler] = {}
        self.read_properties: dict[str, dict[str, Any]] = {}
        self.response_objects: dict[str, dict[str, Any]] = {}
        self.features: set[str] = {"secrets", "resourceReferences"}

        self._failures: dict[str, list[BaseException]] = defaultdict(list)
        self.attempts: dict[str, int] = defaultdict(int)
        self.in_flight = 0
        self.max_in_flight = 0

    def fail(self, name: str, *errors: BaseException) -> None:
        """Make the next registrations of ``name`` raise ``errors`` in order."""
        self._failures[name].extend(errors)

    def _check_connected(self) -> None:
        if not self.connected:
            raise TransportError(
                StatusCode.UNAVAILABLE, "Client not connected to ResourceMonitor", retryable=True
            )

    async def register_resource(
        self, request: RegisterResourceRequest, *, timeout: float | None = None
    ) -> RegisterResourceResponse:
        self._check_connected()
        self.attempts[request.name] += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.latency:
                await asyncio.sleep(self.latency)
            if self._failures[request.name]:
                raise self._failures[request.name].pop(0)

            urn = str(
                URN.create(
                    self.stack,
                    self.project,
                    request.type,
                    request.name,
                    parent=request.parent or None,
                )
            )
            if not request.custom or self.dry_run:
                resource_id = ""
            elif request.import_id:
                resource_id = request.import_id
            else:
                resource_id = f"{request.name}-id"

            response = RegisterResourceResponse(
                urn=urn,
                id=resource_id,
                object=self.response_objects.get(request.name, dict(request.object)),
            )
            self.requests.append(request)
            self.registered[urn] = response
            return response
        finally:
            self.in_flight -= 1

    async def register_resource_outputs(
        self, request: RegisterResourceOutputsRequest, *, timeout: float | None = None
    ) -> None:
        self._check_connected()
        self.resource_outputs[request.urn] = dict(request.outputs)

    async def invoke(
        self, request: ResourceInvokeRequest, *, timeout: float | None = None
    ) -> InvokeResponse:
        self._check_connected()
        self.invokes.append(request)
        handler = self.invoke_handlers.get(request.tok)
        if handler is None:
            return InvokeResponse(
                failures=[CheckFailure(reason=f"unknown function {request.tok}")]
            )
        return InvokeResponse(return_=handler(dict(request.args)))

    async def call(
        self, request: ResourceCallRequest, *, timeout: float | None = None
    ) -> CallResponse:
        self._check_connected()
        self.calls.append(request)
        handler = self.invoke_handlers.get(request.tok)
        if handler is None:
            return CallResponse(failures=[CheckFailure(reason=f"unknown method {request.tok}")])
        return CallResponse(return_=handler(dict(request.args)))

    async def read_resource(
        self, request: ReadResourceRequest, *, timeout: float | None = None
    ) -> ReadResourceResponse:
        self._check_connected()
        self.reads.append(request)
        urn = str(
            URN.create(self.stack, self.project, request.type, request.name, parent=request.parent or None)
        )
        properties = self.read_properties.get(request.id, dict(request.properties))
        return ReadResourceResponse(urn=urn, properties=properties)

    async def supports_feature(self, feature: str) -> bool:
        return feature in self.features

    async def aclose(self) -> None:
        self.connected = False


class InMemoryEngine:
    """Engine double that records log records."""

    def __init__(self, *, stack: str = "dev", project: str = "project") -> None:
        self.root_urn = str(URN(stack=stack, project=project, type_=STACK_TYPE, name=f"{project}-{stack}"))
        self.logs: list[LogRequest] = []
        self.fail_logs = False

    async def log(self, request: LogRequest) -> None:
        if self.fail_logs:
            raise TransportError(StatusCode.UNAVAILABLE, "engine log stream closed")
        self.logs.append(request)

    async def get_root_resource(self, *, timeout: float | None = None) -> str:
        return self.root_urn

    async def aclose(self) -> None:
        return None
