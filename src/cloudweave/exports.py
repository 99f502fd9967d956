"""
Stack outputs.

Exports accumulate while the program runs and are registered on the root
stack resource once it finishes. Concurrent registrations may export at the
same time, so every access goes through one lock.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any

import structlog

from cloudweave.output import Output, secret
from cloudweave.serialization import serialize_value
from cloudweave.transport.messages import RegisterResourceOutputsRequest

if TYPE_CHECKING:
    from cloudweave.context import Context

logger = structlog.get_logger()


class StackExports:
    """Lock-protected map of stack output name to value."""

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def export(self, name: str, value: Any) -> None:
        """Export a value (plain data or Output) as a stack output."""
        with self._lock:
            self._values[name] = value

    def export_secret(self, name: str, value: Any) -> None:
        """Export a value as a secret stack output."""
        if isinstance(value, Output):
            value = secret(value)
        else:
            value = Output.known(value, secret=True)
        self.export(name, value)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._values)

    def clear(self) -> None:
        with self._lock:
            self._values.clear()

    def serialize(self) -> dict[str, Any]:
        return {name: serialize_value(value) for name, value in self.snapshot().items()}

    async def register_stack_outputs(self, ctx: Context) -> bool:
        """
        Register the exports on the root stack resource.

        Returns False when there was nothing to register (no exports, no
        engine connection or no root resource).
        """
        outputs = self.serialize()
        if not outputs or ctx.engine is None:
            return False
        root_urn = await ctx.rpc(ctx.engine.get_root_resource)
        if not root_urn:
            logger.warning("stack_outputs_skipped", reason="no root resource")
            return False
        await ctx.rpc(
            ctx.monitor.register_resource_outputs,
            RegisterResourceOutputsRequest(urn=root_urn, outputs=outputs),
        )
        logger.info("stack_outputs_registered", urn=root_urn, count=len(outputs))
        return True
