"""
Domain errors raised by the service layer.
Each carries the message returned to the client and the HTTP status it maps to.
"""

from fastapi import status


class APIError(Exception):
    """Base class for errors that end a request with ``{"message": ...}``."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BadRequestError(APIError):
    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(APIError):
    """Uniqueness violation (email, username, isbn, review per book)."""
    status_code = status.HTTP_400_BAD_REQUEST


class UnauthorizedError(APIError):
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(APIError):
    """Authenticated caller does not own the resource. Clients see a 401."""
    status_code = status.HTTP_401_UNAUTHORIZED


class NotFoundError(APIError):
    status_code = status.HTTP_404_NOT_FOUND
