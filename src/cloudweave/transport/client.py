"""
HTTP clients for the engine services.

Each RPC is a unary JSON call: ``POST /{service}/{method}`` with the request
message as the body. Failures come back as ``{"code": "...", "message": "..."}``
and are mapped onto gRPC status codes. Clients do not retry on their own;
callers wrap them in a RetryPolicy.
"""

from __future__ import annotations

import re
from types import TracebackType
from typing import Any, TypeVar

import httpx
import structlog
from pydantic import ValidationError

from cloudweave.transport.errors import StatusCode, TransportError
from cloudweave.transport.messages import (
    CallResponse,
    GetRootResourceResponse,
    InvokeResponse,
    LogRequest,
    Message,
    ReadResourceRequest,
    ReadResourceResponse,
    RegisterResourceOutputsRequest,
    RegisterResourceRequest,
    RegisterResourceResponse,
    ResourceCallRequest,
    ResourceInvokeRequest,
    SupportsFeatureRequest,
    SupportsFeatureResponse,
)

logger = structlog.get_logger()

DEFAULT_USER_AGENT = "cloudweave/0.1.0"
DEFAULT_PORT = 50051

M = TypeVar("M", bound=Message)

# HTTP status -> status code when the body carries no code
_HTTP_STATUS_CODES = {
    400: StatusCode.INVALID_ARGUMENT,
    401: StatusCode.UNAUTHENTICATED,
    403: StatusCode.PERMISSION_DENIED,
    404: StatusCode.UNIMPLEMENTED,
    408: StatusCode.DEADLINE_EXCEEDED,
    409: StatusCode.ABORTED,
    429: StatusCode.RESOURCE_EXHAUSTED,
    499: StatusCode.CANCELLED,
    501: StatusCode.UNIMPLEMENTED,
    502: StatusCode.UNAVAILABLE,
    503: StatusCode.UNAVAILABLE,
    504: StatusCode.DEADLINE_EXCEEDED,
}


def parse_address(address: str) -> tuple[str, int]:
    """Split ``host:port`` (optionally with a scheme) into its parts."""
    addr = re.sub(r"^(https?|grpc)://", "", address).rstrip("/")
    host, sep, port = addr.rpartition(":")
    if sep and port.isdigit():
        return host, int(port)
    return addr, DEFAULT_PORT


def _status_from_response(response: httpx.Response) -> tuple[StatusCode, str]:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and "code" in body:
        code = body["code"]
        if isinstance(code, int):
            try:
                status = StatusCode(code)
            except ValueError:
                status = StatusCode.UNKNOWN
        else:
            status = StatusCode.from_name(str(code))
        return status, str(body.get("message", ""))
    status = _HTTP_STATUS_CODES.get(response.status_code, StatusCode.UNKNOWN)
    return status, response.text or f"HTTP {response.status_code}"


class _RPCClient:
    """Shared connection handling for the service clients."""

    service: str = ""

    def __init__(
        self,
        address: str,
        *,
        timeout: float = 60.0,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.address = address
        self._timeout = timeout
        self._user_agent = user_agent
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def connected(self) -> bool:
        return self._client is not None

    @property
    def base_url(self) -> str:
        host, port = parse_address(self.address)
        return f"http://{host}:{port}"

    def connect(self) -> None:
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self._timeout,
            transport=self._transport,
            headers={
                "Content-Type": "application/json",
                "Connect-Protocol-Version": "1",
                "User-Agent": self._user_agent,
            },
        )
        logger.debug("rpc_client_connected", service=self.service, address=self.address)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def _rpc(
        self,
        method: str,
        request: Message | None,
        response_model: type[M],
        *,
        timeout: float | None = None,
    ) -> M:
        if self._client is None:
            raise TransportError(
                StatusCode.UNAVAILABLE,
                f"Client not connected to {self.service}",
                retryable=True,
            )

        path = f"/{self.service}/{method}"
        body: dict[str, Any] = request.to_wire() if request is not None else {}
        try:
            response = await self._client.post(
                path,
                json=body,
                timeout=timeout if timeout is not None else self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise TransportError(
                StatusCode.DEADLINE_EXCEEDED, f"{method} timed out: {exc}"
            ) from exc
        except httpx.TransportError as exc:
            logger.warning("rpc_network_error", method=method, error=str(exc))
            raise TransportError(StatusCode.UNAVAILABLE, f"{method} failed: {exc}") from exc

        if response.status_code != 200:
            status, message = _status_from_response(response)
            logger.warning("rpc_error", method=method, code=status.name, http_status=response.status_code)
            raise TransportError(status, message or f"{method} failed")

        try:
            return response_model.model_validate(response.json() if response.content else {})
        except (ValueError, ValidationError) as exc:
            raise TransportError(
                StatusCode.INTERNAL, f"{method} returned a malformed response: {exc}"
            ) from exc


class _Empty(Message):
    pass


class MonitorClient(_RPCClient):
    """Client for the ResourceMonitor service."""

    service = "pulumirpc.ResourceMonitor"

    async def register_resource(
        self, request: RegisterResourceRequest, *, timeout: float | None = None
    ) -> RegisterResourceResponse:
        return await self._rpc("RegisterResource", request, RegisterResourceResponse, timeout=timeout)

    async def register_resource_outputs(
        self, request: RegisterResourceOutputsRequest, *, timeout: float | None = None
    ) -> None:
        await self._rpc("RegisterResourceOutputs", request, _Empty, timeout=timeout)

    async def invoke(
        self, request: ResourceInvokeRequest, *, timeout: float | None = None
    ) -> InvokeResponse:
        return await self._rpc("Invoke", request, InvokeResponse, timeout=timeout)

    async def call(
        self, request: ResourceCallRequest, *, timeout: float | None = None
    ) -> CallResponse:
        return await self._rpc("Call", request, CallResponse, timeout=timeout)

    async def read_resource(
        self, request: ReadResourceRequest, *, timeout: float | None = None
    ) -> ReadResourceResponse:
        return await self._rpc("ReadResource", request, ReadResourceResponse, timeout=timeout)

    async def supports_feature(self, feature: str) -> bool:
        if not self.connected:
            return False
        response = await self._rpc(
            "SupportsFeature", SupportsFeatureRequest(id=feature), SupportsFeatureResponse
        )
        return response.has_support


class EngineClient(_RPCClient):
    """Client for the Engine service (logging and root resource)."""

    service = "pulumirpc.Engine"

    async def log(self, request: LogRequest) -> None:
        """Send a log record; never raises."""
        if not self.connected:
            return
        try:
            await self._rpc("Log", request, _Empty)
        except Exception as exc:
            logger.debug("engine_log_dropped", error=str(exc))

    async def get_root_resource(self, *, timeout: float | None = None) -> str:
        response = await self._rpc("GetRootResource", None, GetRootResourceResponse, timeout=timeout)
        return response.urn
