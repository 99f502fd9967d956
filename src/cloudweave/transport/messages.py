"""
Messages exchanged with the engine's ResourceMonitor and Engine services.

Field names follow the protocol's JSON mapping (lowerCamelCase); properties
travel as already-serialized wire values (see cloudweave.serialization).
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Message(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class PropertyDependencies(Message):
    urns: list[str] = Field(default_factory=list)


class RegisterResourceRequest(Message):
    type: str
    name: str
    parent: str = ""
    custom: bool = True
    object: dict[str, Any] = Field(default_factory=dict)
    protect: bool = False
    dependencies: list[str] = Field(default_factory=list)
    provider: str = ""
    property_dependencies: dict[str, PropertyDependencies] = Field(default_factory=dict)
    delete_before_replace: bool = False
    version: str = ""
    ignore_changes: list[str] = Field(default_factory=list)
    accept_secrets: bool = True
    additional_secret_outputs: list[str] = Field(default_factory=list)
    alias_urns: list[str] = Field(default_factory=list, alias="aliasURNs")
    import_id: str = ""
    custom_timeouts: dict[str, str] | None = None
    supports_partial_values: bool = True
    accept_resources: bool = True
    replace_on_changes: list[str] = Field(default_factory=list)
    plugin_download_url: str = Field(default="", alias="pluginDownloadURL")
    retain_on_delete: bool = False


class RegisterResourceResponse(Message):
    urn: str
    id: str = ""
    object: dict[str, Any] = Field(default_factory=dict)
    stable: bool = False
    stables: list[str] = Field(default_factory=list)


class RegisterResourceOutputsRequest(Message):
    urn: str
    outputs: dict[str, Any] = Field(default_factory=dict)


class CheckFailure(Message):
    property: str = ""
    reason: str = ""


class ResourceInvokeRequest(Message):
    tok: str
    args: dict[str, Any] = Field(default_factory=dict)
    provider: str = ""
    version: str = ""
    accept_resources: bool = True


class InvokeResponse(Message):
    return_: dict[str, Any] = Field(default_factory=dict, alias="return")
    failures: list[CheckFailure] = Field(default_factory=list)


class ArgumentDependencies(Message):
    urns: list[str] = Field(default_factory=list)


class ResourceCallRequest(Message):
    tok: str
    args: dict[str, Any] = Field(default_factory=dict)
    arg_dependencies: dict[str, ArgumentDependencies] = Field(default_factory=dict)
    provider: str = ""
    version: str = ""


class CallResponse(Message):
    return_: dict[str, Any] = Field(default_factory=dict, alias="return")
    return_dependencies: dict[str, ArgumentDependencies] = Field(default_factory=dict)
    failures: list[CheckFailure] = Field(default_factory=list)


class ReadResourceRequest(Message):
    id: str
    type: str
    name: str
    parent: str = ""
    properties: dict[str, Any] = Field(default_factory=dict)
    dependencies: list[str] = Field(default_factory=list)
    provider: str = ""
    version: str = ""
    accept_secrets: bool = True
    additional_secret_outputs: list[str] = Field(default_factory=list)
    accept_resources: bool = True


class ReadResourceResponse(Message):
    urn: str
    properties: dict[str, Any] = Field(default_factory=dict)


class SupportsFeatureRequest(Message):
    id: str


class SupportsFeatureResponse(Message):
    has_support: bool = False


class LogRequest(Message):
    severity: int
    message: str
    urn: str = ""
    stream_id: int = 0
    ephemeral: bool = False


class GetRootResourceResponse(Message):
    urn: str = ""
