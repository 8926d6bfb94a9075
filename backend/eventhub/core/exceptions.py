"""
Domain error taxonomy.

Services raise these; the handlers registered in ``eventhub.main`` turn them
into ``ApiError`` bodies with the matching HTTP status. None of them are
retried: each one is terminal for the request that triggered it.
"""

from fastapi import status


class AppError(Exception):
    """Base class for errors that are safe to show to the caller."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    status_label: str = "INTERNAL_SERVER_ERROR"
    reason: str = "Internal server error."

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(AppError):
    """Referenced entity is absent (or hidden, e.g. an unpublished event)."""

    status_code = status.HTTP_404_NOT_FOUND
    status_label = "NOT_FOUND"
    reason = "The required object was not found."


class ValidationError(AppError):
    """Malformed input: bad date, negative limit, inverted date range."""

    status_code = status.HTTP_400_BAD_REQUEST
    status_label = "BAD_REQUEST"
    reason = "Incorrectly made request."


class ConflictError(AppError):
    """Request is incompatible with the current state of the target."""

    status_code = status.HTTP_409_CONFLICT
    status_label = "CONFLICT"
    reason = "For the requested operation the conditions are not met."


class AuthorizationError(AppError):
    """Actor has no rights over the target entity."""

    status_code = status.HTTP_403_FORBIDDEN
    status_label = "FORBIDDEN"
    reason = "The actor is not allowed to perform this operation."
