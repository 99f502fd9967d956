"""
Resource registration.

Each registration is a sequential pipeline owned by one resource:

1. walk the inputs and collect every dependency URN (plus ``depends_on``,
   the parent and the provider)
2. record those edges in the dependency graph; a structural error aborts
   before anything is sent
3. serialize the inputs and move the resource to ``creating``
4. call RegisterResource (retryable transport errors are retried)
5. decode the outputs and move to ``created``, or to ``failed`` and raise
   a ResourceError
"""

from __future__ import annotations

import asyncio
import inspect
import threading
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping, NamedTuple

import structlog

from cloudweave.core.errors import DependencyError, ResourceError
from cloudweave.output import Output
from cloudweave.resource import (
    ComponentResource,
    CustomResource,
    ProviderResource,
    Resource,
    ResourceOptions,
    ResourceState,
)
from cloudweave.serialization import UNKNOWN_VALUE, deserialize_properties, serialize_properties
from cloudweave.transport.errors import TransportError
from cloudweave.transport.messages import (
    PropertyDependencies,
    ReadResourceRequest,
    RegisterResourceOutputsRequest,
    RegisterResourceRequest,
)
from cloudweave.urn import URN
from cloudweave.values import (
    ArrayValue,
    MapValue,
    OutputValue,
    ResourceReference,
    Value,
    to_value,
)

if TYPE_CHECKING:
    from cloudweave.context import Context

logger = structlog.get_logger()

Builder = Callable[[ComponentResource], Any]


class ResourceDefinition(NamedTuple):
    """One entry of a bulk registration."""

    type_: str
    name: str
    inputs: Mapping[str, Any] | None = None
    options: ResourceOptions | None = None


def collect_dependencies(value: Value) -> list[str]:
    """Every resource URN reachable through Outputs and references in ``value``."""
    found: dict[str, None] = {}
    _walk(value, found)
    return list(found)


def _walk(value: Value, found: dict[str, None]) -> None:
    if isinstance(value, MapValue):
        for item in value.fields.values():
            _walk(item, found)
    elif isinstance(value, ArrayValue):
        for item in value.items:
            _walk(item, found)
    elif isinstance(value, OutputValue):
        output = value.output
        for urn in sorted(output.dependencies):
            found[urn] = None
        if output.is_known:
            _walk(to_value(output.value), found)
    elif isinstance(value, ResourceReference):
        found[value.urn] = None


def collect_property_dependencies(properties: MapValue) -> dict[str, list[str]]:
    """Per-property dependency map; transmitted to the engine, not used for ordering."""
    result: dict[str, list[str]] = {}
    for key, item in properties.fields.items():
        deps = collect_dependencies(item)
        if deps:
            result[key] = deps
    return result


def _lift_properties(inputs: Mapping[str, Any] | MapValue | None) -> MapValue:
    props = to_value(inputs if inputs is not None else {})
    if not isinstance(props, MapValue):
        raise TypeError("Resource inputs must be a mapping of property names to values")
    return props


def _collect_children(result: Any) -> list[Resource]:
    if result is None:
        return []
    if isinstance(result, Resource):
        return [result]
    if isinstance(result, Mapping):
        items: Iterable[Any] = result.values()
    elif isinstance(result, (list, tuple, set)):
        items = result
    else:
        return []
    return [item for item in items if isinstance(item, Resource)]


def _mark_additional_secrets(outputs: MapValue, keys: Iterable[str]) -> MapValue:
    keys = set(keys)
    if not keys:
        return outputs
    fields: dict[str, Value] = {}
    for key, item in outputs.fields.items():
        if key in keys:
            if isinstance(item, OutputValue):
                item = OutputValue(item.output.as_secret())
            else:
                item = OutputValue(Output.known(item, secret=True))
        fields[key] = item
    return MapValue(fields)


class ResourceRegistrar:
    """Runs the registration state machine against one Context."""

    def __init__(self, ctx: Context) -> None:
        self.ctx = ctx
        self._registered: dict[str, Resource] = {}
        self._lock = threading.Lock()

    @property
    def resources(self) -> list[Resource]:
        with self._lock:
            return list(self._registered.values())

    def urn_for(self, type_: str, name: str, parent: Resource | None = None) -> str:
        parent_urn = parent.urn if parent is not None and parent.urn else None
        return str(URN.create(self.ctx.stack, self.ctx.project, type_, name, parent=parent_urn))

    def _reserve(self, urn: str, resource: Resource) -> None:
        with self._lock:
            if urn in self._registered:
                raise ResourceError(f"Duplicate resource URN '{urn}'", urn=urn)
            self._registered[urn] = resource

    def _release(self, urn: str, resource: Resource) -> None:
        with self._lock:
            if self._registered.get(urn) is resource:
                del self._registered[urn]

    def _fail(self, urn: str, resource: Resource, exc: BaseException) -> None:
        resource.state = ResourceState.failed
        resource.error = exc
        self._release(urn, resource)

    async def register_resource(
        self,
        type_: str,
        name: str,
        inputs: Mapping[str, Any] | MapValue | None = None,
        options: ResourceOptions | None = None,
        *,
        resource_cls: type[Resource] = CustomResource,
    ) -> Resource:
        """Register a resource with the engine and return it once it is created."""
        options = options or ResourceOptions()
        props = _lift_properties(inputs)
        resource = resource_cls(
            type_=type_,
            name=name,
            options=options,
            inputs=props,
            dry_run=self.ctx.dry_run,
        )
        urn = self.urn_for(type_, name, options.parent)
        log = logger.bind(urn=urn, custom=resource_cls.custom)

        property_deps = collect_property_dependencies(props)
        dependencies: dict[str, None] = {}
        for deps in property_deps.values():
            dependencies.update(dict.fromkeys(deps))
        dependencies.update(dict.fromkeys(options.dependency_urns()))

        graph_deps = dict(dependencies)
        parent_urn = options.parent.urn if options.parent is not None else ""
        if parent_urn:
            graph_deps[parent_urn] = None
        if options.provider is not None and options.provider.urn:
            graph_deps[options.provider.urn] = None

        try:
            self.ctx.graph.add_edges(urn, graph_deps)
        except DependencyError as exc:
            resource.state = ResourceState.failed
            resource.error = exc
            log.error("resource_dependency_error", error=exc.message, resources=exc.resources)
            raise

        self._reserve(urn, resource)

        request = RegisterResourceRequest(
            type=type_,
            name=name,
            parent=parent_urn,
            custom=resource_cls.custom,
            object=serialize_properties(props),
            protect=options.protect,
            dependencies=list(dependencies),
            provider=(
                options.provider.provider_reference(UNKNOWN_VALUE)
                if options.provider is not None
                else ""
            ),
            property_dependencies={
                key: PropertyDependencies(urns=deps) for key, deps in property_deps.items()
            },
            delete_before_replace=options.delete_before_replace,
            version=options.version or "",
            ignore_changes=list(options.ignore_changes),
            additional_secret_outputs=list(options.additional_secret_outputs),
            alias_urns=list(options.aliases),
            import_id=options.import_id or "",
            custom_timeouts=(
                options.custom_timeouts.to_dict() if options.custom_timeouts is not None else None
            ),
            replace_on_changes=list(options.replace_on_changes),
            plugin_download_url=options.plugin_download_url or "",
            retain_on_delete=options.retain_on_delete,
        )

        resource.state = ResourceState.creating
        log.debug("resource_registering", dependencies=len(dependencies))

        try:
            async with self.ctx.semaphore:
                response = await self.ctx.rpc(self.ctx.monitor.register_resource, request)
            outputs = _mark_additional_secrets(
                deserialize_properties(response.object), options.additional_secret_outputs
            )
        except TransportError as exc:
            self._fail(urn, resource, exc)
            log.error("resource_registration_failed", code=exc.code.name, error=exc.message)
            raise ResourceError(
                f"Failed to register resource '{name}' of type '{type_}': {exc.message}",
                urn=urn,
                cause=exc,
            ) from exc
        except Exception as exc:
            self._fail(urn, resource, exc)
            log.error("resource_registration_failed", error=str(exc))
            raise ResourceError(
                f"Failed to register resource '{name}' of type '{type_}': {exc}",
                urn=urn,
                cause=exc,
            ) from exc
        except BaseException as exc:
            self._fail(urn, resource, exc)
            raise

        if response.urn and response.urn != urn:
            log.warning("resource_urn_mismatch", engine_urn=response.urn)
        resource.urn = response.urn or urn
        resource.id = response.id or None
        resource.outputs = outputs
        resource.state = ResourceState.created
        log.info("resource_registered", id=resource.id)
        return resource

    async def register_component(
        self,
        type_: str,
        name: str,
        builder: Builder | None = None,
        options: ResourceOptions | None = None,
        inputs: Mapping[str, Any] | None = None,
    ) -> ComponentResource:
        """
        Register a component, then run ``builder(component)`` to create its children.

        Any resources the builder returns (a resource, a mapping of resources or
        a sequence of resources) are recorded as the component's children.
        """
        component = await self.register_resource(
            type_, name, inputs, options, resource_cls=ComponentResource
        )
        assert isinstance(component, ComponentResource)

        if builder is not None:
            result = builder(component)
            if inspect.isawaitable(result):
                result = await result
            component.children.extend(_collect_children(result))
        return component

    async def register_provider(
        self,
        package: str,
        name: str,
        inputs: Mapping[str, Any] | None = None,
        options: ResourceOptions | None = None,
    ) -> ProviderResource:
        provider = await self.register_resource(
            f"pulumi:providers:{package}", name, inputs, options, resource_cls=ProviderResource
        )
        assert isinstance(provider, ProviderResource)
        return provider

    async def register_outputs(
        self, resource: Resource, outputs: Mapping[str, Any] | None = None
    ) -> None:
        """Register the outputs of a (component) resource."""
        if not resource.urn:
            raise ResourceError(f"Cannot register outputs for unregistered {resource!r}")
        request = RegisterResourceOutputsRequest(
            urn=resource.urn,
            outputs=serialize_properties(_lift_properties(outputs)),
        )
        try:
            await self.ctx.rpc(self.ctx.monitor.register_resource_outputs, request)
        except TransportError as exc:
            raise ResourceError(
                f"Failed to register outputs: {exc.message}", urn=resource.urn, cause=exc
            ) from exc

    async def read_resource(
        self,
        type_: str,
        name: str,
        id_: str,
        properties: Mapping[str, Any] | None = None,
        options: ResourceOptions | None = None,
    ) -> Resource:
        """Adopt the state of an existing resource without managing it."""
        options = options or ResourceOptions()
        props = _lift_properties(properties)
        resource = CustomResource(
            type_=type_, name=name, options=options, inputs=props, dry_run=self.ctx.dry_run
        )
        urn = self.urn_for(type_, name, options.parent)

        dependencies = collect_dependencies(props) + options.dependency_urns()
        graph_deps = list(dependencies)
        if options.parent is not None and options.parent.urn:
            graph_deps.append(options.parent.urn)
        self.ctx.graph.add_edges(urn, graph_deps)
        self._reserve(urn, resource)

        request = ReadResourceRequest(
            id=id_,
            type=type_,
            name=name,
            parent=options.parent.urn if options.parent is not None else "",
            properties=serialize_properties(props),
            dependencies=list(dict.fromkeys(dependencies)),
            provider=(
                options.provider.provider_reference(UNKNOWN_VALUE)
                if options.provider is not None
                else ""
            ),
            version=options.version or "",
            additional_secret_outputs=list(options.additional_secret_outputs),
        )

        resource.state = ResourceState.creating
        try:
            async with self.ctx.semaphore:
                response = await self.ctx.rpc(self.ctx.monitor.read_resource, request)
            outputs = _mark_additional_secrets(
                deserialize_properties(response.properties), options.additional_secret_outputs
            )
        except TransportError as exc:
            self._fail(urn, resource, exc)
            raise ResourceError(
                f"Failed to read resource '{name}' of type '{type_}': {exc.message}",
                urn=urn,
                cause=exc,
            ) from exc
        except Exception as exc:
            self._fail(urn, resource, exc)
            raise ResourceError(
                f"Failed to read resource '{name}' of type '{type_}': {exc}",
                urn=urn,
                cause=exc,
            ) from exc

        resource.urn = response.urn or urn
        resource.id = id_
        resource.outputs = outputs
        resource.state = ResourceState.created
        logger.info("resource_read", urn=resource.urn, id=id_)
        return resource

    async def register_resources_parallel(
        self, definitions: Iterable[ResourceDefinition | tuple[Any, ...]]
    ) -> list[Resource]:
        """
        Register independent resources concurrently.

        One failure never cancels its siblings: each entry of the result is
        either a ``created`` resource or a ``failed`` placeholder whose
        ``error`` holds the exception.
        """
        defs = [d if isinstance(d, ResourceDefinition) else ResourceDefinition(*d) for d in definitions]

        async def _register(defn: ResourceDefinition) -> Resource:
            try:
                return await self.register_resource(defn.type_, defn.name, defn.inputs, defn.options)
            except Exception as exc:
                return CustomResource(
                    type_=defn.type_,
                    name=defn.name,
                    options=defn.options or ResourceOptions(),
                    urn=exc.urn if isinstance(exc, ResourceError) and exc.urn else "",
                    state=ResourceState.failed,
                    error=exc,
                    dry_run=self.ctx.dry_run,
                )

        results = await asyncio.gather(*(_register(d) for d in defs))
        failed = sum(1 for r in results if r.state is ResourceState.failed)
        logger.info("bulk_registration_finished", total=len(results), failed=failed)
        return list(results)
