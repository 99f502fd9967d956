"""
Program diagnostics sent to the engine.

Logging to the engine is a best-effort side channel: every failure on the
way is recorded locally through structlog and then dropped, so a broken log
stream can never abort the program.
"""

from __future__ import annotations

import random
from contextlib import contextmanager
from enum import StrEnum
from typing import TYPE_CHECKING, Iterator

import structlog

from cloudweave.transport.messages import LogRequest

if TYPE_CHECKING:
    from cloudweave.resource import Resource
    from cloudweave.transport.base import Engine

logger = structlog.get_logger()


class LogSeverity(StrEnum):
    debug = "debug"
    info = "info"
    warning = "warning"
    error = "error"

    @property
    def wire_value(self) -> int:
        """Protocol LogSeverity enum value."""
        return _WIRE_SEVERITY[self]


_WIRE_SEVERITY = {
    LogSeverity.debug: 1,
    LogSeverity.info: 2,
    LogSeverity.warning: 3,
    LogSeverity.error: 4,
}


class EngineLog:
    """Fire-and-forget log sink backed by the engine's Log RPC."""

    def __init__(self, engine: Engine | None) -> None:
        self._engine = engine

    async def log(
        self,
        severity: LogSeverity | str,
        message: str,
        *,
        resource: Resource | None = None,
        stream_id: int = 0,
        ephemeral: bool = False,
    ) -> None:
        try:
            level = LogSeverity(severity)
            urn = resource.urn if resource is not None else ""
            logger.log(_STD_LEVELS[level], "program_log", message=message, urn=urn or None)
            if self._engine is None:
                return
            await self._engine.log(
                LogRequest(
                    severity=level.wire_value,
                    message=message,
                    urn=urn,
                    stream_id=stream_id,
                    ephemeral=ephemeral,
                )
            )
        except Exception as exc:
            logger.debug("engine_log_failed", error=str(exc))

    async def debug(self, message: str, **kwargs) -> None:
        await self.log(LogSeverity.debug, message, **kwargs)

    async def info(self, message: str, **kwargs) -> None:
        await self.log(LogSeverity.info, message, **kwargs)

    async def warn(self, message: str, **kwargs) -> None:
        await self.log(LogSeverity.warning, message, **kwargs)

    async def error(self, message: str, **kwargs) -> None:
        await self.log(LogSeverity.error, message, **kwargs)

    @contextmanager
    def stream(self) -> Iterator[int]:
        """Yield a fresh stream id for grouping related messages."""
        yield random.randint(1, 2**31 - 1)


_STD_LEVELS = {
    LogSeverity.debug: 10,
    LogSeverity.info: 20,
    LogSeverity.warning: 30,
    LogSeverity.error: 40,
}
