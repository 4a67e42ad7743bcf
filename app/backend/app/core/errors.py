"""Typed failures raised by the data access and mutation layer.

All errors derive from ``HTTPException`` so routes let them propagate unchanged and
FastAPI renders ``{"detail": ...}`` with the matching status code.
"""

from __future__ import annotations

from fastapi import HTTPException, status


class DomainError(HTTPException):
    """Base class for every typed failure surfaced to the caller."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_detail: str = "Request could not be processed."

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail)

    @property
    def message(self) -> str:
        return str(self.detail)


class ValidationError(DomainError):
    status_code = status.HTTP_422_UNPROCESSABLE_CONTENT
    default_detail = "Missing or malformed required fields."


class AuthenticationError(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Not authorized."


class UnauthorizedError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Insufficient role permissions for this operation."


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Resource not found."


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Resource conflicts with existing state."


class TransactionError(DomainError):
    """Store failure mid-write; the caller only ever sees a generic message."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Server error while saving changes."
