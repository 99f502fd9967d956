"""
Resource model.

A Resource is created when a program registers it and is mutated only by its
own registration flow. Once ``created`` or ``failed`` it is treated as
immutable by the SDK.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar

from cloudweave.output import Output
from cloudweave.urn import is_urn
from cloudweave.values import MapValue, OutputValue, ResourceReference, to_python

PROVIDER_TYPE_PREFIX = "pulumi:providers:"


class ResourceState(StrEnum):
    """Lifecycle states of a resource."""

    pending = "pending"
    creating = "creating"
    created = "created"
    updating = "updating"
    deleting = "deleting"
    deleted = "deleted"
    failed = "failed"


@dataclass(frozen=True)
class CustomTimeouts:
    create: str = ""
    update: str = ""
    delete: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"create": self.create, "update": self.update, "delete": self.delete}


@dataclass
class ResourceOptions:
    """Options controlling resource behavior and relationships."""

    parent: Resource | None = None
    # Resources or raw URNs
    depends_on: list[Resource | str] = field(default_factory=list)
    protect: bool = False
    provider: ProviderResource | None = None
    aliases: list[str] = field(default_factory=list)
    ignore_changes: list[str] = field(default_factory=list)
    delete_before_replace: bool = False
    retain_on_delete: bool = False
    version: str | None = None
    plugin_download_url: str | None = None
    additional_secret_outputs: list[str] = field(default_factory=list)
    replace_on_changes: list[str] = field(default_factory=list)
    custom_timeouts: CustomTimeouts | None = None
    import_id: str | None = None

    def dependency_urns(self) -> list[str]:
        urns: list[str] = []
        for dep in self.depends_on:
            urn = dep if isinstance(dep, str) else dep.urn
            if not urn:
                raise ValueError(f"depends_on entry {dep!r} has not been registered")
            if isinstance(dep, str) and not is_urn(dep):
                raise ValueError(f"depends_on entry {dep!r} is not a resource URN")
            urns.append(urn)
        return urns


@dataclass(eq=False)
class Resource:
    """Base type for all infrastructure resources."""

    type_: str
    name: str
    options: ResourceOptions = field(default_factory=ResourceOptions)
    urn: str = ""
    id: str | None = None
    inputs: MapValue = field(default_factory=MapValue)
    outputs: MapValue = field(default_factory=MapValue)
    state: ResourceState = ResourceState.pending
    error: BaseException | None = None
    dry_run: bool = False

    custom: ClassVar[bool] = True

    def output(self, key: str) -> Output[Any]:
        """Output for one output property, depending on this resource."""
        deps = [self.urn] if self.urn else []
        value = self.outputs.fields.get(key)

        if value is None:
            if self.dry_run or self.state is not ResourceState.created:
                return Output.unresolved(dependencies=deps)
            return Output.known(None, dependencies=deps)

        if isinstance(value, OutputValue):
            lowered = to_python(value)
            if isinstance(lowered, Output):
                return lowered.with_dependencies(deps)
        return Output.known(to_python(value), dependencies=deps)

    @property
    def urn_output(self) -> Output[str]:
        if not self.urn:
            return Output.unresolved(type_=str)
        return Output.known(self.urn, dependencies=[self.urn])

    @property
    def id_output(self) -> Output[str]:
        deps = [self.urn] if self.urn else []
        if not self.id:
            return Output.unresolved(dependencies=deps, type_=str)
        return Output.known(self.id, dependencies=deps)

    def to_reference(self) -> ResourceReference:
        return ResourceReference(urn=self.urn, id=self.id)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.type_!r}, {self.name!r}, state={self.state.value})"


@dataclass(eq=False, repr=False)
class CustomResource(Resource):
    """A resource managed by a cloud provider."""


@dataclass(eq=False, repr=False)
class ComponentResource(Resource):
    """A logical grouping of resources."""

    children: list[Resource] = field(default_factory=list)

    custom: ClassVar[bool] = False

    def __repr__(self) -> str:
        return (
            f"ComponentResource({self.type_!r}, {self.name!r}, "
            f"{len(self.children)} children, state={self.state.value})"
        )


@dataclass(eq=False, repr=False)
class ProviderResource(CustomResource):
    """Explicit provider configuration."""

    @classmethod
    def for_package(cls, package: str, name: str, **kwargs: Any) -> ProviderResource:
        return cls(type_=f"{PROVIDER_TYPE_PREFIX}{package}", name=name, **kwargs)

    @property
    def package(self) -> str:
        return self.type_.removeprefix(PROVIDER_TYPE_PREFIX)

    def provider_reference(self, unknown_id: str) -> str:
        """Engine provider reference: ``{urn}::{id}``."""
        return f"{self.urn}::{self.id or unknown_id}"
