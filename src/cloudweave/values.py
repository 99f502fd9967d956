"""
Value variant shared by the wire codec and the dependency walker.

Resource inputs and outputs are trees of these variants. ``to_value`` is the
single entry point that turns plain Python data into a tree; everything past
that point dispatches on the closed set of variant classes below.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Union

from cloudweave.output import Output


@dataclass(frozen=True)
class NullValue:
    pass


@dataclass(frozen=True)
class BoolValue:
    value: bool


@dataclass(frozen=True)
class NumberValue:
    value: float


@dataclass(frozen=True)
class StringValue:
    value: str


@dataclass(frozen=True)
class ArrayValue:
    items: tuple[Value, ...] = ()


@dataclass(frozen=True)
class MapValue:
    fields: Mapping[str, Value] = field(default_factory=dict)


@dataclass(frozen=True)
class OutputValue:
    """An Output embedded in a value tree; its inner value is lifted lazily."""

    output: Output[Any]


@dataclass(frozen=True)
class ResourceReference:
    """Reference to a registered resource embedded in a value tree."""

    urn: str
    id: str | None = None


Value = Union[
    NullValue,
    BoolValue,
    NumberValue,
    StringValue,
    ArrayValue,
    MapValue,
    OutputValue,
    ResourceReference,
]

VALUE_TYPES = (
    NullValue,
    BoolValue,
    NumberValue,
    StringValue,
    ArrayValue,
    MapValue,
    OutputValue,
    ResourceReference,
)


def to_value(obj: Any) -> Value:
    """Lift plain Python data (and Outputs, Resources) into a Value tree."""
    from cloudweave.resource import Resource

    if isinstance(obj, VALUE_TYPES):
        return obj
    if obj is None:
        return NullValue()
    # bool before number: bool is an int subclass
    if isinstance(obj, bool):
        return BoolValue(obj)
    if isinstance(obj, (int, float)):
        return NumberValue(obj)
    if isinstance(obj, str):
        return StringValue(obj)
    if isinstance(obj, Output):
        return OutputValue(obj)
    if isinstance(obj, Resource):
        if not obj.urn:
            raise ValueError(f"{obj!r} has not been registered and cannot be referenced")
        return obj.to_reference()
    if isinstance(obj, Mapping):
        fields: dict[str, Value] = {}
        for key, item in obj.items():
            if not isinstance(key, str):
                raise TypeError(f"Property names must be strings, got {type(key).__name__}")
            fields[key] = to_value(item)
        return MapValue(fields)
    if isinstance(obj, (list, tuple)):
        return ArrayValue(tuple(to_value(item) for item in obj))
    raise TypeError(f"Cannot convert {type(obj).__name__} to a property value")


def to_python(value: Value) -> Any:
    """Lower a Value tree back to plain Python; Outputs stay Outputs."""
    if isinstance(value, NullValue):
        return None
    if isinstance(value, (BoolValue, NumberValue, StringValue)):
        return value.value
    if isinstance(value, ArrayValue):
        return [to_python(item) for item in value.items]
    if isinstance(value, MapValue):
        return {key: to_python(item) for key, item in value.fields.items()}
    if isinstance(value, OutputValue):
        output = value.output
        if output.is_known and isinstance(output.value, VALUE_TYPES):
            lowered = to_python(output.value)
            return Output(
                value=lowered,
                is_known=True,
                is_secret=output.is_secret,
                dependencies=output.dependencies,
                type_=type(lowered),
            )
        return output
    if isinstance(value, ResourceReference):
        return value
    raise TypeError(f"Unexpected value variant {type(value).__name__}")
