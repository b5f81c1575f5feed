"""Application error taxonomy.

Every error carries the HTTP status it maps to. ``main.py`` registers a single
exception handler that renders any ``AppError`` as ``{"error": message}``.
"""
from __future__ import annotations

from fastapi import status


class AppError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    """A required field is missing or malformed."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class AuthError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class NotFoundError(AppError):
    """Resource is absent *or* not owned by the caller; both look the same."""

    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflict"


class UpstreamError(AppError):
    """The store or an external provider call failed."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"


class EmailDeliveryError(UpstreamError):
    default_message = "Failed to send email"


class PaymentGatewayError(UpstreamError):
    default_message = "Payment gateway request failed"
