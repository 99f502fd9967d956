"""
Retry policy for engine RPCs.

Only transport errors flagged retryable are retried, on a bounded fixed
schedule (three retries: 0.2s, 0.4s, 0.8s). Everything else propagates on
the first failure.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Sequence, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_chain,
    wait_fixed,
    wait_none,
)

from cloudweave.transport.errors import TransportError

logger = structlog.get_logger()

T = TypeVar("T")

DEFAULT_RETRY_DELAYS: tuple[float, ...] = (0.2, 0.4, 0.8)


def is_retryable_error(exc: BaseException) -> bool:
    return isinstance(exc, TransportError) and exc.retryable


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "transport_retry",
        attempt=retry_state.attempt_number,
        delay=retry_state.next_action.sleep if retry_state.next_action else None,
        code=getattr(getattr(exc, "code", None), "name", None),
        error=str(exc),
    )


class RetryPolicy:
    """Fixed-schedule retry for retryable transport failures."""

    def __init__(
        self,
        delays: Sequence[float] = DEFAULT_RETRY_DELAYS,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.delays = tuple(delays)
        self._sleep = sleep

    @property
    def max_retries(self) -> int:
        return len(self.delays)

    def _retrying(self) -> AsyncRetrying:
        wait = wait_chain(*(wait_fixed(d) for d in self.delays)) if self.delays else wait_none()
        return AsyncRetrying(
            retry=retry_if_exception(is_retryable_error),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait,
            sleep=self._sleep,
            before_sleep=_log_retry,
            reraise=True,
        )

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Await ``func(*args, **kwargs)``, retrying retryable transport errors."""
        async for attempt in self._retrying():
            with attempt:
                result = await func(*args, **kwargs)
        return result
