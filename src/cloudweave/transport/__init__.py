"""Transport boundary: engine RPC messages, clients, retries and in-memory doubles."""

from cloudweave.transport.base import Engine, ResourceMonitor
from cloudweave.transport.client import EngineClient, MonitorClient
from cloudweave.transport.errors import StatusCode, TransportError, is_retryable_code
from cloudweave.transport.memory import InMemoryEngine, InMemoryMonitor
from cloudweave.transport.retry import DEFAULT_RETRY_DELAYS, RetryPolicy

__all__ = [
    "Engine",
    "ResourceMonitor",
    "EngineClient",
    "MonitorClient",
    "InMemoryEngine",
    "InMemoryMonitor",
    "StatusCode",
    "TransportError",
    "is_retryable_code",
    "RetryPolicy",
    "DEFAULT_RETRY_DELAYS",
]
