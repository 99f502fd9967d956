"""
Deferred values that may be unknown until deployment.

An Output carries a value (or the UNKNOWN sentinel during preview), a secrecy
flag and the URNs of the resources it was derived from. Transforms never drop
metadata: secrecy only ever turns on and dependency sets only ever grow.
"""

from __future__ import annotations

import typing
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Iterable, TypeVar
from uuid import uuid4

T = TypeVar("T")
R = TypeVar("R")


class _Unknown:
    """Sentinel for a value that is not yet known (preview mode)."""

    _instance: _Unknown | None = None

    def __new__(cls) -> _Unknown:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "<unknown>"

    def __bool__(self) -> bool:
        return False


UNKNOWN = _Unknown()


def _type_name(type_: Any) -> str:
    if type_ is Any:
        return "Any"
    return getattr(type_, "__name__", None) or repr(type_)


@dataclass(frozen=True, eq=False)
class Output(Generic[T]):
    """Container for a value that may be unknown until deployment time."""

    value: T | _Unknown
    is_known: bool
    is_secret: bool = False
    dependencies: frozenset[str] = frozenset()
    type_: Any = Any
    id: str = field(default_factory=lambda: str(uuid4()))

    def __post_init__(self) -> None:
        if self.is_known and self.value is UNKNOWN:
            raise ValueError("is_known cannot be true when value is unknown")
        if not self.is_known and self.value is not UNKNOWN:
            raise ValueError("an unresolved Output cannot hold a value")
        object.__setattr__(self, "dependencies", frozenset(self.dependencies))

    @classmethod
    def known(
        cls,
        value: T,
        *,
        secret: bool = False,
        dependencies: Iterable[str] = (),
        type_: Any = None,
    ) -> Output[T]:
        """Create a known Output with a resolved value."""
        return cls(
            value=value,
            is_known=True,
            is_secret=secret,
            dependencies=frozenset(dependencies),
            type_=type(value) if type_ is None else type_,
        )

    @classmethod
    def unresolved(
        cls,
        *,
        secret: bool = False,
        dependencies: Iterable[str] = (),
        type_: Any = Any,
    ) -> Output[T]:
        """Create an Output whose value will only be known after deployment."""
        return cls(
            value=UNKNOWN,
            is_known=False,
            is_secret=secret,
            dependencies=frozenset(dependencies),
            type_=type_,
        )

    def get_value(self) -> T:
        """Return the resolved value; raises ValueError when unresolved."""
        if not self.is_known:
            raise ValueError("Cannot get value from unknown Output")
        return typing.cast(T, self.value)

    def as_secret(self) -> Output[T]:
        return secret(self)

    def apply(self, func: Callable[[T], R], *, result_type: Any = None) -> Output[R]:
        return apply(func, self, result_type=result_type)

    def with_dependencies(self, dependencies: Iterable[str]) -> Output[T]:
        """Return a copy whose dependency set also includes ``dependencies``."""
        return Output(
            value=self.value,
            is_known=self.is_known,
            is_secret=self.is_secret,
            dependencies=self.dependencies | frozenset(dependencies),
            type_=self.type_,
        )

    def __repr__(self) -> str:
        if not self.is_known:
            shown = "<unknown>"
        elif self.is_secret:
            shown = "[secret]"
        else:
            shown = repr(self.value)
        return f"Output[{_type_name(self.type_)}]({shown})"


def secret(output: Output[T]) -> Output[T]:
    """Mark an Output as containing a secret value."""
    return Output(
        value=output.value,
        is_known=output.is_known,
        is_secret=True,
        dependencies=output.dependencies,
        type_=output.type_,
        id=output.id,
    )


def _declared_return_type(func: Callable[..., Any]) -> Any:
    try:
        hints = typing.get_type_hints(func)
    except (TypeError, NameError):
        hints = getattr(func, "__annotations__", {}) or {}
    return hints.get("return", Any)


def apply(
    func: Callable[[T], R],
    output: Output[T],
    *,
    result_type: Any = None,
) -> Output[R]:
    """
    Transform an Output value, preserving dependencies and secret status.

    The transform runs once, eagerly, when the input is known. When the input
    is unresolved the transform is never called and the result is unresolved
    too. The result type comes from ``result_type`` or the transform's return
    annotation; it is never discovered by calling ``func``.

    A transform that itself returns an Output is flattened into the result.
    """
    declared = result_type if result_type is not None else _declared_return_type(func)

    if not output.is_known:
        return Output.unresolved(
            secret=output.is_secret,
            dependencies=output.dependencies,
            type_=declared,
        )

    result = func(typing.cast(T, output.value))

    if isinstance(result, Output):
        return Output(
            value=result.value,
            is_known=result.is_known,
            is_secret=output.is_secret or result.is_secret,
            dependencies=output.dependencies | result.dependencies,
            type_=declared if declared is not Any else result.type_,
        )

    return Output(
        value=result,
        is_known=True,
        is_secret=output.is_secret,
        dependencies=output.dependencies,
        type_=declared,
    )


def combine(*outputs: Output[Any]) -> Output[tuple[Any, ...]]:
    """
    Combine several Outputs into one Output holding a tuple of their values.

    The result is known only if every input is known, secret if any input is
    secret, and depends on the union of every input's dependencies.
    """
    dependencies: frozenset[str] = frozenset().union(*(o.dependencies for o in outputs))
    any_secret = any(o.is_secret for o in outputs)
    tuple_type = tuple[tuple(o.type_ for o in outputs)] if outputs else tuple[()]

    if all(o.is_known for o in outputs):
        return Output(
            value=tuple(o.value for o in outputs),
            is_known=True,
            is_secret=any_secret,
            dependencies=dependencies,
            type_=tuple_type,
        )
    return Output.unresolved(secret=any_secret, dependencies=dependencies, type_=tuple_type)


all_ = combine
