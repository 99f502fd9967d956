"""RPC-layer errors and status codes."""

from __future__ import annotations

from enum import IntEnum

from cloudweave.core.errors import CloudweaveError


class StatusCode(IntEnum):
    """Standard gRPC status codes."""

    OK = 0
    CANCELLED = 1
    UNKNOWN = 2
    INVALID_ARGUMENT = 3
    DEADLINE_EXCEEDED = 4
    NOT_FOUND = 5
    ALREADY_EXISTS = 6
    PERMISSION_DENIED = 7
    RESOURCE_EXHAUSTED = 8
    FAILED_PRECONDITION = 9
    ABORTED = 10
    OUT_OF_RANGE = 11
    UNIMPLEMENTED = 12
    INTERNAL = 13
    UNAVAILABLE = 14
    DATA_LOSS = 15
    UNAUTHENTICATED = 16

    @classmethod
    def from_name(cls, name: str) -> StatusCode:
        """Map a lower_snake code name (``"unavailable"``) to a StatusCode."""
        try:
            return cls[name.upper()]
        except KeyError:
            return cls.UNKNOWN


RETRYABLE_CODES = frozenset({StatusCode.UNAVAILABLE, StatusCode.RESOURCE_EXHAUSTED})


def is_retryable_code(code: int) -> bool:
    """Only UNAVAILABLE and RESOURCE_EXHAUSTED are worth retrying."""
    return code in RETRYABLE_CODES


class TransportError(CloudweaveError):
    """RPC communication error with the engine."""

    def __init__(self, code: int, message: str, retryable: bool | None = None):
        self.code = StatusCode(code)
        self.retryable = is_retryable_code(code) if retryable is None else retryable
        super().__init__(
            message,
            {"code": self.code.name, "retryable": self.retryable},
        )

    def __str__(self) -> str:
        text = f"TransportError ({self.code.name}): {self.message}"
        if self.retryable:
            text = f"{text}\n  This error is retryable"
        return text
