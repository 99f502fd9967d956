from cloudweave.core.errors import (
    ConfigMissingError,
    DependencyError,
    ResourceError,
    format_error_message,
)
from cloudweave.transport.errors import StatusCode, TransportError


def test_resource_error_carries_urn_and_cause():
    cause = TransportError(StatusCode.UNAVAILABLE, "down")
    err = ResourceError("Failed to register", urn="urn:pulumi:dev::p::t::n", cause=cause)

    text = str(err)
    assert "Resource: urn:pulumi:dev::p::t::n" in text
    assert "Caused by" in text
    assert err.details == {"urn": "urn:pulumi:dev::p::t::n", "cause": "TransportError"}


def test_dependency_error_lists_resources():
    err = DependencyError("cycle", ["a", "b", "a"])

    assert err.resources == ["a", "b", "a"]
    assert "    - b" in str(err)


def test_config_missing_error():
    err = ConfigMissingError("region", "aws")

    assert err.full_key == "aws:region"
    assert "pulumi config set aws:region" in str(err)


def test_transport_error_retryable_default():
    assert TransportError(StatusCode.UNAVAILABLE, "x").retryable
    assert not TransportError(StatusCode.NOT_FOUND, "x").retryable


def test_format_error_message():
    err = DependencyError("cycle", ["a"])

    assert format_error_message(err) == "cycle (resources=['a'])"
