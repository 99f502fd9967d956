"""Tests for the wire codec."""

import random

import pytest
from cloudweave.output import Output
from cloudweave.serialization import (
    OUTPUT_SIG,
    RESOURCE_SIG,
    SECRET_SIG,
    SPECIAL_SIG_KEY,
    UNKNOWN_VALUE,
    deserialize_properties,
    deserialize_value,
    serialize_properties,
    serialize_value,
)
from cloudweave.values import (
    ArrayValue,
    MapValue,
    NumberValue,
    OutputValue,
    ResourceReference,
    StringValue,
    to_python,
)


def test_secret_output_envelope():
    wire = serialize_properties({"v": Output.known(42, secret=True)})

    assert wire == {"v": {SPECIAL_SIG_KEY: SECRET_SIG, "value": 42.0}}


def test_secret_envelope_round_trip():
    wire = {"v": {SPECIAL_SIG_KEY: SECRET_SIG, "value": 42.0}}

    props = deserialize_properties(wire)
    value = props.fields["v"]

    assert isinstance(value, OutputValue)
    assert value.output.is_secret
    assert value.output.get_value() == NumberValue(42.0)
    assert to_python(value).get_value() == 42


def test_scalars():
    assert serialize_value(None) is None
    assert serialize_value(True) is True
    assert serialize_value(3) == 3.0
    assert isinstance(serialize_value(3), float)
    assert serialize_value("s") == "s"
    assert serialize_value([1, "a", None]) == [1.0, "a", None]


def test_unknown_output_marker():
    assert serialize_properties({"v": Output.unresolved()}) == {"v": {}}
    assert serialize_value(Output.unresolved(secret=True)) == {
        SPECIAL_SIG_KEY: SECRET_SIG,
        "value": {},
    }


def test_empty_object_decodes_unresolved():
    value = deserialize_value({})

    assert isinstance(value, OutputValue)
    assert not value.output.is_known


def test_unknown_marker_decodes_unresolved():
    value = deserialize_value(UNKNOWN_VALUE)

    assert isinstance(value, OutputValue)
    assert not value.output.is_known


def test_secret_unknown_decodes_secret_unresolved():
    for inner in ({}, UNKNOWN_VALUE):
        value = deserialize_value({SPECIAL_SIG_KEY: SECRET_SIG, "value": inner})

        assert isinstance(value, OutputValue)
        assert value.output.is_secret
        assert not value.output.is_known


def test_empty_property_map_decodes_empty():
    assert deserialize_properties({}) == MapValue({})


def test_nested_secret_emits_one_envelope():
    value = Output.known(Output.known(42, secret=True, dependencies=["urn:a"]), secret=True)

    once = serialize_value(value)

    assert once == {SPECIAL_SIG_KEY: SECRET_SIG, "value": 42.0}
    assert serialize_value(deserialize_value(once)) == once


def test_secret_inside_plain_output_stays_secret():
    once = serialize_value(Output.known(Output.known("pw", secret=True)))

    assert once == {SPECIAL_SIG_KEY: SECRET_SIG, "value": "pw"}


def test_legacy_secret_marker_accepted():
    value = deserialize_value({SPECIAL_SIG_KEY: "1", "value": "pw"})

    assert isinstance(value, OutputValue)
    assert value.output.is_secret
    assert value.output.get_value() == StringValue("pw")


def test_resource_reference():
    ref = ResourceReference(urn="urn:pulumi:dev::p::t::n", id="i-1")
    wire = serialize_value(ref)

    assert wire == {SPECIAL_SIG_KEY: RESOURCE_SIG, "urn": "urn:pulumi:dev::p::t::n", "id": "i-1"}
    assert deserialize_value(wire) == ref


def test_output_signature_with_dependencies():
    wire = {
        SPECIAL_SIG_KEY: OUTPUT_SIG,
        "value": "x",
        "secret": True,
        "dependencies": ["urn:a"],
    }

    value = deserialize_value(wire)

    assert isinstance(value, OutputValue)
    assert value.output.is_secret
    assert value.output.dependencies == {"urn:a"}
    assert value.output.get_value() == StringValue("x")


def test_output_signature_without_value_is_unresolved():
    value = deserialize_value({SPECIAL_SIG_KEY: OUTPUT_SIG, "dependencies": ["urn:a"]})

    assert isinstance(value, OutputValue)
    assert not value.output.is_known
    assert value.output.dependencies == {"urn:a"}


def test_unknown_signature_rejected():
    with pytest.raises(ValueError, match="Unrecognized signature"):
        deserialize_value({SPECIAL_SIG_KEY: "nope"})


def test_non_string_keys_rejected():
    with pytest.raises(TypeError):
        serialize_value({1: "a"})


def test_missing_properties_decode_empty():
    assert deserialize_properties(None) == MapValue({})


def test_nested_structure():
    wire = serialize_properties(
        {"tags": {"env": "dev"}, "ports": [80, 443], "pw": Output.known("s", secret=True)}
    )

    assert wire == {
        "tags": {"env": "dev"},
        "ports": [80.0, 443.0],
        "pw": {SPECIAL_SIG_KEY: SECRET_SIG, "value": "s"},
    }
    decoded = deserialize_properties(wire)
    assert decoded.fields["ports"] == ArrayValue((NumberValue(80.0), NumberValue(443.0)))


def _random_value(rng: random.Random, depth: int = 0):
    kinds = ["str", "num", "bool", "null", "unknown"]
    if depth < 3:
        kinds += ["list", "map", "secret"]
    kind = rng.choice(kinds)
    if kind == "str":
        return rng.choice(["", "a", "hello", "über", "x::y"])
    if kind == "num":
        return rng.choice([0, 1, -7, 2.5, 1e9])
    if kind == "bool":
        return rng.random() < 0.5
    if kind == "null":
        return None
    if kind == "unknown":
        return Output.unresolved()
    if kind == "list":
        return [_random_value(rng, depth + 1) for _ in range(rng.randint(0, 3))]
    if kind == "map":
        return {f"k{i}": _random_value(rng, depth + 1) for i in range(rng.randint(0, 3))}
    return Output.known(_random_value(rng, depth + 1), secret=True)


@pytest.mark.parametrize("seed", range(50))
def test_codec_idempotence(seed):
    rng = random.Random(seed)
    value = _random_value(rng)

    once = serialize_value(value)
    twice = serialize_value(deserialize_value(once))

    assert twice == once
