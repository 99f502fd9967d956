"""
Per-run program context.

A Context owns everything one program run shares: the engine connections,
the dependency graph, stack exports, the retry policy and the in-flight
limit. Programs receive it explicitly (``main(ctx)``); there is no global.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterable, Mapping, TypeVar

import structlog

from cloudweave.config import Config
from cloudweave.dependency import DependencyGraph
from cloudweave.diagnostics import EngineLog
from cloudweave.exports import StackExports
from cloudweave.invoke import call as _call
from cloudweave.invoke import invoke as _invoke
from cloudweave.registration import Builder, ResourceDefinition, ResourceRegistrar
from cloudweave.transport.client import EngineClient, MonitorClient
from cloudweave.transport.errors import StatusCode, TransportError
from cloudweave.transport.retry import RetryPolicy

if TYPE_CHECKING:
    from cloudweave.output import Output
    from cloudweave.resource import ComponentResource, Resource, ResourceOptions
    from cloudweave.settings import RuntimeSettings
    from cloudweave.transport.base import Engine, ResourceMonitor

logger = structlog.get_logger()

T = TypeVar("T")


class Context:
    """Shared state for one program run."""

    def __init__(
        self,
        *,
        project: str,
        stack: str,
        monitor: ResourceMonitor,
        engine: Engine | None = None,
        organization: str = "",
        dry_run: bool = False,
        parallel: int = 16,
        config: Mapping[str, str] | None = None,
        config_secret_keys: Iterable[str] = (),
        retry_policy: RetryPolicy | None = None,
        rpc_timeout: float | None = 60.0,
    ) -> None:
        if parallel < 1:
            raise ValueError("parallel must be at least 1")

        self.project = project
        self.stack = stack
        self.organization = organization
        self.dry_run = dry_run
        self.parallel = parallel
        self.config: Mapping[str, str] = dict(config or {})
        self.config_secret_keys = frozenset(config_secret_keys)

        self.monitor = monitor
        self.engine = engine
        self.retry_policy = retry_policy or RetryPolicy()
        self.rpc_timeout = rpc_timeout
        # Absolute event-loop time after which pending RPCs are abandoned
        self.deadline: float | None = None

        self.graph = DependencyGraph()
        self.exports = StackExports()
        self.log = EngineLog(engine)
        self.semaphore = asyncio.Semaphore(parallel)
        self.registrar = ResourceRegistrar(self)

    @classmethod
    def from_settings(
        cls,
        settings: RuntimeSettings,
        *,
        monitor: ResourceMonitor | None = None,
        engine: Engine | None = None,
    ) -> Context:
        """Build a context from runtime settings, connecting to the engine if addressed."""
        if monitor is None:
            client = MonitorClient(settings.monitor, timeout=settings.rpc_timeout)
            if settings.monitor:
                client.connect()
            monitor = client
        if engine is None and settings.engine:
            engine_client = EngineClient(settings.engine, timeout=settings.rpc_timeout)
            engine_client.connect()
            engine = engine_client

        logger.debug(
            "context_from_settings",
            project=settings.project,
            stack=settings.stack,
            monitor=settings.monitor or None,
            engine=settings.engine or None,
        )

        return cls(
            project=settings.project,
            stack=settings.stack,
            organization=settings.organization,
            monitor=monitor,
            engine=engine,
            dry_run=settings.dry_run,
            parallel=settings.parallel,
            config=settings.config,
            config_secret_keys=settings.config_secret_keys,
            retry_policy=RetryPolicy(settings.retry_delays),
            rpc_timeout=settings.rpc_timeout,
        )

    def set_timeout(self, seconds: float | None) -> None:
        """Abandon engine calls still pending ``seconds`` from now."""
        if seconds is None:
            self.deadline = None
        else:
            self.deadline = asyncio.get_running_loop().time() + seconds

    async def rpc(self, func: Callable[..., Awaitable[T]], *args: Any) -> T:
        """Call an engine RPC under the retry policy and the run deadline."""
        try:
            async with asyncio.timeout_at(self.deadline):
                return await self.retry_policy.call(func, *args, timeout=self.rpc_timeout)
        except TimeoutError as exc:
            raise TransportError(
                StatusCode.DEADLINE_EXCEEDED, "Deadline exceeded waiting for the engine"
            ) from exc

    def get_config(self, namespace: str | None = None) -> Config:
        return Config.for_context(self, namespace)

    async def register_resource(
        self,
        type_: str,
        name: str,
        inputs: Mapping[str, Any] | None = None,
        options: ResourceOptions | None = None,
    ) -> Resource:
        return await self.registrar.register_resource(type_, name, inputs, options)

    async def component(
        self,
        type_: str,
        name: str,
        builder: Builder | None = None,
        options: ResourceOptions | None = None,
    ) -> ComponentResource:
        return await self.registrar.register_component(type_, name, builder, options)

    async def register_outputs(self, resource: Resource, outputs: Mapping[str, Any]) -> None:
        await self.registrar.register_outputs(resource, outputs)

    async def read_resource(
        self,
        type_: str,
        name: str,
        id_: str,
        properties: Mapping[str, Any] | None = None,
        options: ResourceOptions | None = None,
    ) -> Resource:
        return await self.registrar.read_resource(type_, name, id_, properties, options)

    async def register_resources(
        self, definitions: Iterable[ResourceDefinition | tuple[Any, ...]]
    ) -> list[Resource]:
        return await self.registrar.register_resources_parallel(definitions)

    async def invoke(
        self, token: str, args: Mapping[str, Any] | None = None, **kwargs: Any
    ) -> Output[Any]:
        return await _invoke(self, token, args, **kwargs)

    async def call(
        self, token: str, args: Mapping[str, Any] | None, resource: Resource, **kwargs: Any
    ) -> Output[Any]:
        return await _call(self, token, args, resource, **kwargs)

    def export(self, name: str, value: Any) -> None:
        self.exports.export(name, value)

    def export_secret(self, name: str, value: Any) -> None:
        self.exports.export_secret(name, value)

    async def close(self) -> None:
        await self.monitor.aclose()
        if self.engine is not None:
            await self.engine.aclose()

    def __repr__(self) -> str:
        return f"Context(project={self.project!r}, stack={self.stack!r}, dry_run={self.dry_run})"
