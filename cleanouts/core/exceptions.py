"""
Domain exceptions for the booking API.

Services raise these; the handlers registered in ``cleanouts.main`` turn them
into ``{"success": false, "error": ..., "code": ...}`` JSON responses.
"""

from typing import Any, Dict, Optional

from fastapi import status


class DomainError(Exception):
    """Base class for all expected, caller-visible failures."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_code: str = "DOMAIN_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(DomainError):
    """Malformed or missing input that passed schema parsing."""

    default_code = "VALIDATION_ERROR"


class InvalidDateError(ValidationError):
    default_code = "INVALID_DATE"


class TooManyDatesError(ValidationError):
    default_code = "TOO_MANY_DATES"


class AuthError(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_code = "UNAUTHORIZED"


class PermissionDeniedError(AuthError):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = "FORBIDDEN"


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "NOT_FOUND"


class ConflictError(DomainError):
    """The requested interval overlaps an existing booking."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "SLOT_CONFLICT"


class InvalidStateTransitionError(DomainError):
    default_code = "INVALID_STATE_TRANSITION"


class AlreadyPaidError(DomainError):
    default_code = "ALREADY_PAID"


class UpstreamError(DomainError):
    """Database or payment processor failure; not the caller's fault."""

    status_code = status.HTTP_502_BAD_GATEWAY
    default_code = "UPSTREAM_ERROR"
