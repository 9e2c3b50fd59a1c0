"""
Domain error taxonomy.

Services raise these before mutating anything; the application maps them to
a JSON body of the form {"detail": message, "error": kind, ...extra}.
"""
from enum import Enum
from typing import Any

from fastapi import status


class ErrorKind(str, Enum):
    """Stable machine-readable error identifiers."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    NO_ELIGIBLE_TYPES = "NO_ELIGIBLE_TYPES"
    NOT_FOUND = "NOT_FOUND"
    NO_CONTENT_AVAILABLE = "NO_CONTENT_AVAILABLE"
    ALREADY_USED = "ALREADY_USED"
    EXPIRED = "EXPIRED"
    ALREADY_ENTITLED = "ALREADY_ENTITLED"
    ALREADY_INACTIVE = "ALREADY_INACTIVE"
    CODE_IN_USE = "CODE_IN_USE"
    ALREADY_PROCESSED = "ALREADY_PROCESSED"
    ALREADY_ACTIVE = "ALREADY_ACTIVE"
    NOT_ACTIVE = "NOT_ACTIVE"
    INVALID_STATE = "INVALID_STATE"
    ACCESS_DENIED = "ACCESS_DENIED"
    FORBIDDEN = "FORBIDDEN"
    UPSTREAM_FAILURE = "UPSTREAM_FAILURE"
    GENERATION_EXHAUSTED = "GENERATION_EXHAUSTED"


class ServiceError(Exception):
    """Base class for business-rule failures.

    Attributes:
        kind: Stable error identifier returned to clients
        message: Human-readable explanation
        extra: Additional fields merged into the error body
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, kind: ErrorKind, message: str, **extra: Any):
        self.kind = kind
        self.message = message
        self.extra = extra
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "error": self.kind.value, **self.extra}


class ValidationFailedError(ServiceError):
    """Malformed or unacceptable input."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(
        self, message: str, kind: ErrorKind = ErrorKind.VALIDATION_ERROR, **extra: Any
    ):
        super().__init__(kind, message, **extra)


class NotFoundError(ServiceError):
    """Referenced entity does not exist."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(
        self, message: str, kind: ErrorKind = ErrorKind.NOT_FOUND, **extra: Any
    ):
        super().__init__(kind, message, **extra)


class StateConflictError(ServiceError):
    """Operation is invalid for the entity's current state."""

    status_code = status.HTTP_409_CONFLICT


class AccessDeniedError(ServiceError):
    """Actor lacks the entitlement, role, or ownership required."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(
        self, message: str, kind: ErrorKind = ErrorKind.ACCESS_DENIED, **extra: Any
    ):
        super().__init__(kind, message, **extra)


class UpstreamDependencyError(ServiceError):
    """An external collaborator failed; nothing was persisted."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message: str, **extra: Any):
        super().__init__(ErrorKind.UPSTREAM_FAILURE, message, **extra)


class ExhaustionError(ServiceError):
    """A bounded retry budget ran out."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, **extra: Any):
        super().__init__(ErrorKind.GENERATION_EXHAUSTED, message, **extra)
