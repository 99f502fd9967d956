"""
Unified error hierarchy for cloudweave.

Every user-visible failure derives from CloudweaveError and carries a
human-readable message plus a details mapping. Causes are chained with
``raise ... from exc`` so the full causal chain survives.

Taxonomy:
- ResourceError: registration failed (retries exhausted or non-retryable cause)
- DependencyError: self-dependency or cycle, raised before any RPC
- ConfigMissingError: required configuration key absent
- InvokeError: provider function invocation reported failures
- RunError: the language runtime could not execute the program
- TransportError (cloudweave.transport.errors): RPC-layer failure
"""

from __future__ import annotations

from typing import Any, Sequence


class CloudweaveError(Exception):
    """Base exception for cloudweave errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ResourceError(CloudweaveError):
    """Raised when a resource could not be registered with the engine."""

    def __init__(
        self,
        message: str,
        *,
        urn: str | None = None,
        cause: BaseException | None = None,
    ):
        details: dict[str, Any] = {}
        if urn:
            details["urn"] = urn
        if cause is not None:
            details["cause"] = type(cause).__name__
        super().__init__(message, details)
        self.urn = urn
        self.cause = cause

    def __str__(self) -> str:
        text = self.message
        if self.urn:
            text = f"{text}\n  Resource: {self.urn}"
        if self.cause is not None:
            text = f"{text}\n  Caused by: {self.cause}"
        return text


class DependencyError(CloudweaveError):
    """Raised for structural violations of the dependency graph."""

    def __init__(self, message: str, resources: Sequence[str] = ()):
        super().__init__(message, {"resources": list(resources)})
        self.resources = list(resources)

    def __str__(self) -> str:
        if not self.resources:
            return self.message
        involved = "\n".join(f"    - {urn}" for urn in self.resources)
        return f"{self.message}\n  Resources involved:\n{involved}"


class ConfigMissingError(CloudweaveError):
    """Raised when a required configuration key is not set."""

    def __init__(self, key: str, namespace: str = ""):
        self.key = key
        self.namespace = namespace
        self.full_key = f"{namespace}:{key}" if namespace else key
        super().__init__(
            f"Missing required configuration key '{self.full_key}'",
            {"key": key, "namespace": namespace},
        )

    def __str__(self) -> str:
        return f"{self.message}\n  Set it with: pulumi config set {self.full_key} <value>"


class InvokeError(CloudweaveError):
    """Raised when a provider function invocation fails."""

    def __init__(self, token: str, message: str, failures: Sequence[tuple[str, str]] = ()):
        super().__init__(message, {"token": token, "failures": list(failures)})
        self.token = token
        self.failures = list(failures)


class RunError(CloudweaveError):
    """Raised when the language runtime cannot execute a program."""


def format_error_message(error: CloudweaveError) -> str:
    """Format an error message for display to users."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items())
        msg = f"{msg} ({detail_str})"
    return msg
