"""
Provider function invocation.

``invoke`` calls a provider function (``aws:ec2/getAmi:getAmi``) and
``call`` calls a method on a registered resource. Both return an Output that
depends on every resource referenced by the arguments and is secret when any
argument is secret. During preview, arguments that are not yet known short
circuit the call and the result stays unresolved.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping, Sequence

import structlog

from cloudweave.core.errors import InvokeError
from cloudweave.output import Output
from cloudweave.registration import collect_dependencies, collect_property_dependencies
from cloudweave.serialization import UNKNOWN_VALUE, deserialize_properties, serialize_properties
from cloudweave.transport.errors import TransportError
from cloudweave.transport.messages import (
    ArgumentDependencies,
    CheckFailure,
    ResourceCallRequest,
    ResourceInvokeRequest,
)
from cloudweave.values import ArrayValue, MapValue, OutputValue, Value, to_python, to_value

if TYPE_CHECKING:
    from cloudweave.context import Context
    from cloudweave.resource import ProviderResource, Resource

logger = structlog.get_logger()


def _scan(value: Value) -> tuple[bool, bool]:
    """(all known, any secret) for a value tree."""
    known, is_secret = True, False
    stack = [value]
    while stack:
        item = stack.pop()
        if isinstance(item, MapValue):
            stack.extend(item.fields.values())
        elif isinstance(item, ArrayValue):
            stack.extend(item.items)
        elif isinstance(item, OutputValue):
            is_secret = is_secret or item.output.is_secret
            if item.output.is_known:
                stack.append(to_value(item.output.value))
            else:
                known = False
    return known, is_secret


def _raise_failures(token: str, failures: Sequence[CheckFailure]) -> None:
    if not failures:
        return
    pairs = [(f.property, f.reason) for f in failures]
    reasons = "; ".join(f"{prop}: {reason}" if prop else reason for prop, reason in pairs)
    raise InvokeError(token, f"Invoke of '{token}' failed: {reasons}", pairs)


def _result(
    returned: Mapping[str, Any], *, secret: bool, dependencies: Sequence[str]
) -> Output[Any]:
    value = to_python(deserialize_properties(returned))
    return Output.known(value, secret=secret, dependencies=dependencies, type_=dict)


async def invoke(
    ctx: Context,
    token: str,
    args: Mapping[str, Any] | None = None,
    *,
    provider: ProviderResource | None = None,
    version: str | None = None,
) -> Output[dict[str, Any]]:
    """Invoke a provider function and return its result as an Output."""
    props = to_value(args or {})
    assert isinstance(props, MapValue)
    dependencies = collect_dependencies(props)
    known, is_secret = _scan(props)

    if not known:
        logger.debug("invoke_skipped_unknown_args", token=token)
        return Output.unresolved(secret=is_secret, dependencies=dependencies, type_=dict)

    request = ResourceInvokeRequest(
        tok=token,
        args=serialize_properties(props),
        provider=provider.provider_reference(UNKNOWN_VALUE) if provider is not None else "",
        version=version or "",
    )
    try:
        response = await ctx.rpc(ctx.monitor.invoke, request)
    except TransportError as exc:
        raise InvokeError(token, f"Failed to invoke '{token}': {exc.message}") from exc

    _raise_failures(token, response.failures)
    logger.debug("invoke_completed", token=token)
    return _result(response.return_, secret=is_secret, dependencies=dependencies)


async def call(
    ctx: Context,
    token: str,
    args: Mapping[str, Any] | None,
    resource: Resource,
    *,
    provider: ProviderResource | None = None,
    version: str | None = None,
) -> Output[dict[str, Any]]:
    """Call a method of a registered resource; ``resource`` is passed as ``__self__``."""
    props = to_value({**(args or {}), "__self__": resource})
    assert isinstance(props, MapValue)
    dependencies = collect_dependencies(props)
    known, is_secret = _scan(props)

    if not known or (ctx.dry_run and not resource.id and resource.custom):
        return Output.unresolved(secret=is_secret, dependencies=dependencies, type_=dict)

    request = ResourceCallRequest(
        tok=token,
        args=serialize_properties(props),
        arg_dependencies={
            key: ArgumentDependencies(urns=urns)
            for key, urns in collect_property_dependencies(props).items()
        },
        provider=provider.provider_reference(UNKNOWN_VALUE) if provider is not None else "",
        version=version or "",
    )
    try:
        response = await ctx.rpc(ctx.monitor.call, request)
    except TransportError as exc:
        raise InvokeError(token, f"Failed to call '{token}': {exc.message}") from exc

    _raise_failures(token, response.failures)
    for deps in response.return_dependencies.values():
        dependencies = dependencies + [urn for urn in deps.urns if urn not in dependencies]
    return _result(response.return_, secret=is_secret, dependencies=dependencies)
