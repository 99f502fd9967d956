"""Core modules for cloudweave - centralized error definitions."""

from cloudweave.core.errors import (
    CloudweaveError,
    ConfigMissingError,
    DependencyError,
    InvokeError,
    ResourceError,
    RunError,
    format_error_message,
)

__all__ = [
    "CloudweaveError",
    "ResourceError",
    "DependencyError",
    "ConfigMissingError",
    "InvokeError",
    "RunError",
    "format_error_message",
]
