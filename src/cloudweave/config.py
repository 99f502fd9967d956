"""
Typed access to stack configuration.

The engine hands the program a resolved ``{"namespace:key": "value"}`` map
and the set of keys that hold secrets. Values are always strings on the
way in; the typed getters parse them on access.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Mapping, overload

from cloudweave.core.errors import ConfigMissingError
from cloudweave.output import Output

if TYPE_CHECKING:
    from cloudweave.context import Context

_TRUE_VALUES = ("true", "1", "yes")


class Config:
    """Configuration values for one namespace (the project by default)."""

    def __init__(
        self,
        values: Mapping[str, str],
        secret_keys: set[str] | frozenset[str] = frozenset(),
        namespace: str = "",
    ) -> None:
        self._values = values
        self._secret_keys = secret_keys
        self.namespace = namespace

    @classmethod
    def for_context(cls, ctx: Context, namespace: str | None = None) -> Config:
        return cls(
            ctx.config,
            ctx.config_secret_keys,
            namespace=ctx.project if namespace is None else namespace,
        )

    def full_key(self, key: str) -> str:
        if not self.namespace:
            return key
        return f"{self.namespace}:{key}"

    @overload
    def get(self, key: str) -> str | None: ...

    @overload
    def get(self, key: str, default: str) -> str: ...

    def get(self, key: str, default: str | None = None) -> str | None:
        value = self._values.get(self.full_key(key))
        return default if value is None else value

    def require(self, key: str) -> str:
        value = self.get(key)
        if value is None:
            raise ConfigMissingError(key, self.namespace)
        return value

    def __getitem__(self, key: str) -> str:
        return self.require(key)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.full_key(key) in self._values

    def is_secret(self, key: str) -> bool:
        return self.full_key(key) in self._secret_keys

    def get_secret(self, key: str) -> Output[str] | None:
        value = self.get(key)
        if value is None:
            return None
        return Output.known(value, secret=True)

    def require_secret(self, key: str) -> Output[str]:
        return Output.known(self.require(key), secret=True)

    def get_int(self, key: str) -> int | None:
        value = self.get(key)
        return None if value is None else int(value)

    def get_float(self, key: str) -> float | None:
        value = self.get(key)
        return None if value is None else float(value)

    def get_bool(self, key: str) -> bool | None:
        value = self.get(key)
        return None if value is None else value.lower() in _TRUE_VALUES

    def get_object(self, key: str) -> Any:
        value = self.get(key)
        return None if value is None else json.loads(value)

    def require_object(self, key: str) -> Any:
        return json.loads(self.require(key))

    def __repr__(self) -> str:
        return f"Config({self.namespace!r})"
