"""
Uniform Resource Names.

Format: ``urn:pulumi:{stack}::{project}::{qualified_type}::{name}`` where the
qualified type is ``{parent_type}${type}`` for resources with a parent.
"""

from __future__ import annotations

from dataclasses import dataclass

URN_PREFIX = "urn:pulumi:"
COMPONENT_SEPARATOR = "::"
TYPE_SEPARATOR = "$"


@dataclass(frozen=True)
class URN:
    """Parsed Uniform Resource Name for a resource."""

    stack: str
    project: str
    type_: str
    name: str
    parent_type: str | None = None

    def __post_init__(self) -> None:
        for label, part in (("stack", self.stack), ("project", self.project), ("type", self.type_)):
            if COMPONENT_SEPARATOR in part:
                raise ValueError(f"URN {label} cannot contain '{COMPONENT_SEPARATOR}': {part!r}")
        if TYPE_SEPARATOR in self.type_:
            raise ValueError(f"URN type cannot contain '{TYPE_SEPARATOR}': {self.type_!r}")
        if self.parent_type is not None:
            if not self.parent_type:
                raise ValueError("URN parent type cannot be empty; use None")
            if COMPONENT_SEPARATOR in self.parent_type:
                raise ValueError(f"URN parent type cannot contain '{COMPONENT_SEPARATOR}'")

    @property
    def qualified_type(self) -> str:
        if self.parent_type:
            return f"{self.parent_type}{TYPE_SEPARATOR}{self.type_}"
        return self.type_

    @classmethod
    def parse(cls, urn: str) -> URN:
        """Parse a URN string into its components."""
        if not urn.startswith(URN_PREFIX):
            raise ValueError(f"Invalid URN format: must start with '{URN_PREFIX}': {urn!r}")

        parts = urn[len(URN_PREFIX):].split(COMPONENT_SEPARATOR, 3)
        if len(parts) < 4:
            raise ValueError(
                "Invalid URN format: expected 4 parts separated by '::' "
                f"(stack::project::type::name): {urn!r}"
            )

        stack, project, qualified_type, name = parts
        parent_type, sep, type_ = qualified_type.rpartition(TYPE_SEPARATOR)
        return cls(
            stack=stack,
            project=project,
            type_=type_,
            name=name,
            parent_type=parent_type if sep else None,
        )

    @classmethod
    def create(
        cls,
        stack: str,
        project: str,
        type_: str,
        name: str,
        parent: str | URN | None = None,
    ) -> URN:
        """Build the URN of a resource, qualifying its type with its parent's."""
        if parent is None:
            return cls(stack=stack, project=project, type_=type_, name=name)
        parent_urn = cls.parse(parent) if isinstance(parent, str) else parent
        # The root stack resource does not prefix its children's types
        if parent_urn.type_ == STACK_TYPE and parent_urn.parent_type is None:
            return cls(stack=stack, project=project, type_=type_, name=name)
        return cls(
            stack=stack,
            project=project,
            type_=type_,
            name=name,
            parent_type=parent_urn.qualified_type,
        )

    def __str__(self) -> str:
        return (
            f"{URN_PREFIX}{self.stack}{COMPONENT_SEPARATOR}{self.project}"
            f"{COMPONENT_SEPARATOR}{self.qualified_type}{COMPONENT_SEPARATOR}{self.name}"
        )


STACK_TYPE = "pulumi:pulumi:Stack"


def is_urn(value: str) -> bool:
    try:
        URN.parse(value)
    except ValueError:
        return False
    return True
