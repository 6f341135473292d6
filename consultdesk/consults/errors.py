"""Failure kinds reported by consult operations."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    UNAUTHORIZED = "unauthorized"
    EXTERNAL_SERVICE_FAILURE = "external_service_failure"
    CONFLICT = "conflict"
    INVALID_INPUT = "invalid_input"


class ConsultError(RuntimeError):
    """Base class for structured consult failures.

    ``reason`` is safe to show to the caller; ``retryable`` tells the calling
    surface whether a "try again" affordance makes sense.
    """

    kind: ErrorKind
    retryable = False

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class NotFoundError(ConsultError):
    kind = ErrorKind.NOT_FOUND


class InvalidStateError(ConsultError):
    kind = ErrorKind.INVALID_STATE


class UnauthorizedError(ConsultError):
    kind = ErrorKind.UNAUTHORIZED

    def __init__(self, reason: str, *, authenticated: bool = False) -> None:
        super().__init__(reason)
        # Distinguishes "who are you" from "you may not do this".
        self.authenticated = authenticated


class ExternalServiceFailure(ConsultError):
    kind = ErrorKind.EXTERNAL_SERVICE_FAILURE
    retryable = True


class ConflictError(ConsultError):
    kind = ErrorKind.CONFLICT
    retryable = True


class InvalidInputError(ConsultError):
    kind = ErrorKind.INVALID_INPUT


__all__ = [
    "ConflictError",
    "ConsultError",
    "ErrorKind",
    "ExternalServiceFailure",
    "InvalidInputError",
    "InvalidStateError",
    "NotFoundError",
    "UnauthorizedError",
]
