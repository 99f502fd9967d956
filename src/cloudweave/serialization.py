"""
Property serialization for engine communication.

The wire shape is the JSON-compatible form of ``google.protobuf.Struct``:
dicts, lists, floats, strings, booleans and None. Secret values, unknown
values and resource references are encoded with signature keys that every
SDK speaking this protocol must reproduce byte for byte.

Numbers are always sent as doubles; integers come back as floats. This is
the only lossy step, so ``serialize(deserialize(serialize(v)))`` always
equals ``serialize(v)`` even though ``deserialize(serialize(v))`` may not
equal ``v``.
"""

from __future__ import annotations

from typing import Any, Mapping

from cloudweave.output import Output
from cloudweave.values import (
    ArrayValue,
    BoolValue,
    MapValue,
    NullValue,
    NumberValue,
    OutputValue,
    ResourceReference,
    StringValue,
    Value,
    to_value,
)

# Key whose presence marks a special (signed) object
SPECIAL_SIG_KEY = "4dabf18193072939515e22adb298388d"
SECRET_SIG = "1b47061264138c4ac30d75fd1eb44270"
RESOURCE_SIG = "5cf8f73096256a8f31e491e813e4eb8e"
OUTPUT_SIG = "d0e6a833031e9bbcd3f4e8bde6ca49a4"

# Sentinel meaning "known only after deployment" in provider references and
# engine responses; unresolved property values are sent as an empty object
UNKNOWN_VALUE = "04da6b54-80e4-46f7-96ec-b56ff0331ba9"


def serialize_value(value: Any) -> Any:
    """Serialize a value (or plain Python data) into its wire form."""
    value = to_value(value)

    if isinstance(value, NullValue):
        return None
    if isinstance(value, BoolValue):
        return value.value
    if isinstance(value, NumberValue):
        return float(value.value)
    if isinstance(value, StringValue):
        return value.value
    if isinstance(value, ArrayValue):
        return [serialize_value(item) for item in value.items]
    if isinstance(value, MapValue):
        return {key: serialize_value(item) for key, item in value.fields.items()}
    if isinstance(value, OutputValue):
        return serialize_output(value.output)
    if isinstance(value, ResourceReference):
        ref: dict[str, Any] = {SPECIAL_SIG_KEY: RESOURCE_SIG, "urn": value.urn}
        if value.id is not None:
            ref["id"] = value.id
        return ref
    raise TypeError(f"Unexpected value variant {type(value).__name__}")


def serialize_output(output: Output[Any]) -> Any:
    """
    Serialize an Output.

    Known outputs serialize transparently and secrets are wrapped in the
    secret envelope. Unresolved outputs become an empty object (inside the
    envelope when the output is also secret). An Output holding another
    Output is flattened first, so at most one envelope is emitted.
    """
    output = _flatten(output)
    inner = serialize_value(output.value) if output.is_known else {}
    if output.is_secret:
        return {SPECIAL_SIG_KEY: SECRET_SIG, "value": inner}
    return inner


def _flatten(output: Output[Any]) -> Output[Any]:
    while output.is_known:
        value = output.value
        if isinstance(value, OutputValue):
            value = value.output
        if not isinstance(value, Output):
            break
        output = Output(
            value=value.value,
            is_known=value.is_known,
            is_secret=output.is_secret or value.is_secret,
            dependencies=output.dependencies | value.dependencies,
            type_=value.type_,
        )
    return output


def serialize_properties(properties: Mapping[str, Any] | MapValue) -> dict[str, Any]:
    """Serialize a property map; the result is always a dict."""
    serialized = serialize_value(properties)
    if not isinstance(serialized, dict):
        raise TypeError("Resource properties must serialize to an object")
    return serialized


def deserialize_value(wire: Any) -> Value:
    """Rebuild a Value tree from its wire form, unwrapping special objects."""
    if wire is None:
        return NullValue()
    if isinstance(wire, bool):
        return BoolValue(wire)
    if isinstance(wire, (int, float)):
        return NumberValue(float(wire))
    if isinstance(wire, str):
        if wire == UNKNOWN_VALUE:
            return OutputValue(Output.unresolved())
        return StringValue(wire)
    if isinstance(wire, list):
        return ArrayValue(tuple(deserialize_value(item) for item in wire))
    if isinstance(wire, dict):
        if SPECIAL_SIG_KEY in wire:
            return _deserialize_special(wire)
        if not wire:
            return OutputValue(Output.unresolved())
        return MapValue({str(key): deserialize_value(item) for key, item in wire.items()})
    raise TypeError(f"Unexpected wire value of type {type(wire).__name__}")


def deserialize_properties(wire: Mapping[str, Any] | None) -> MapValue:
    """Deserialize a property map; a missing map decodes as empty."""
    if not wire:
        return MapValue({})
    value = deserialize_value(dict(wire))
    if not isinstance(value, MapValue):
        raise TypeError("Resource properties must deserialize to an object")
    return value


def _deserialize_secret(wire: dict[str, Any]) -> OutputValue:
    inner = deserialize_value(wire.get("value"))
    if isinstance(inner, OutputValue):
        return OutputValue(inner.output.as_secret())
    return OutputValue(Output.known(inner, secret=True))


def _deserialize_special(wire: dict[str, Any]) -> Value:
    sig = wire[SPECIAL_SIG_KEY]

    if sig == SECRET_SIG:
        return _deserialize_secret(wire)

    if sig == RESOURCE_SIG:
        urn = wire.get("urn")
        if not isinstance(urn, str) or not urn:
            raise ValueError("Resource reference is missing its URN")
        ref_id = wire.get("id")
        if isinstance(ref_id, str) and ref_id == UNKNOWN_VALUE:
            ref_id = None
        return ResourceReference(urn=urn, id=ref_id if isinstance(ref_id, str) else None)

    if sig == OUTPUT_SIG:
        is_secret = bool(wire.get("secret", False))
        dependencies = [str(urn) for urn in wire.get("dependencies") or []]
        if "value" not in wire:
            return OutputValue(Output.unresolved(secret=is_secret, dependencies=dependencies))
        inner = deserialize_value(wire["value"])
        if isinstance(inner, OutputValue):
            output = inner.output.with_dependencies(dependencies)
            return OutputValue(output.as_secret() if is_secret else output)
        return OutputValue(Output.known(inner, secret=is_secret, dependencies=dependencies))

    # Older SDKs sign secret envelopes with an arbitrary marker
    if "value" in wire:
        return _deserialize_secret(wire)

    raise ValueError(f"Unrecognized signature '{sig}' in property value")
