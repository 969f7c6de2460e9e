"""
Domain exceptions raised by the booking, review and messaging services.

Each kind carries the HTTP status it maps to and a stable code. The API
layer renders them as {"error": message, "code": code}.
"""
from typing import Any, Dict, Optional

from fastapi import status


class ServiceError(Exception):
    """Base exception for all domain errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class AuthenticationRequired(ServiceError):
    """No valid identity on the request."""
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "AUTHENTICATION_REQUIRED"


class Forbidden(ServiceError):
    """Valid identity, insufficient role or ownership."""
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


class NotFound(ServiceError):
    """Referenced entity is absent."""
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class InvalidArgument(ServiceError):
    """Malformed or out-of-range input."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_ARGUMENT"


class Conflict(ServiceError):
    """Uniqueness violation."""
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class SchedulingConflict(Conflict):
    """The tutor already has an active booking overlapping the requested window."""
    code = "SCHEDULING_CONFLICT"


class InvalidTransition(ServiceError):
    """Status change not allowed from the booking's current status."""
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_TRANSITION"


class Internal(ServiceError):
    """Unexpected store or collaborator failure. Message is never shown to callers."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTERNAL"
