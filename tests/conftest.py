"""Root test configuration."""

import logging

import pytest
import structlog
from cloudweave.context import Context
from cloudweave.transport.memory import InMemoryEngine, InMemoryMonitor
from cloudweave.transport.retry import RetryPolicy


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def monitor() -> InMemoryMonitor:
    return InMemoryMonitor(stack="dev", project="demo")


@pytest.fixture
def engine() -> InMemoryEngine:
    return InMemoryEngine(stack="dev", project="demo")


@pytest.fixture
def ctx(monitor, engine, sleeper) -> Context:
    return Context(
        project="demo",
        stack="dev",
        monitor=monitor,
        engine=engine,
        retry_policy=RetryPolicy(sleep=sleeper),
    )
