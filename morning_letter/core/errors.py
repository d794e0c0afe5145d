"""Application error hierarchy shared by the services, CLI and web layer."""

from typing import Any, Dict, Optional


class ErrorCode:
    """Machine readable error codes returned in the response envelope."""

    BAD_REQUEST = "BAD_REQUEST"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    EXTERNAL_API_ERROR = "EXTERNAL_API_ERROR"
    AI_ERROR = "AI_ERROR"
    EMAIL_ERROR = "EMAIL_ERROR"


class AppError(Exception):
    """Base class for errors that are safe to show to API callers."""

    code = ErrorCode.INTERNAL_ERROR
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(AppError):
    """Bad or missing input, or an operation the current state forbids."""

    code = ErrorCode.VALIDATION_ERROR
    status_code = 400


class NotFoundError(AppError):
    """Unknown letter, news item or subscriber."""

    code = ErrorCode.NOT_FOUND
    status_code = 404

    def __init__(self, resource: str):
        super().__init__(f"{resource} not found", {"resource": resource})


class ConflictError(AppError):
    """Another dispatcher already holds the letter."""

    code = ErrorCode.CONFLICT
    status_code = 409


class NotDueError(ConflictError):
    """A due letter was cancelled, rescheduled or taken by another tick."""


class DatabaseError(AppError):
    code = ErrorCode.DATABASE_ERROR
    status_code = 500


class ExternalApiError(AppError):
    """A third-party service answered with an error."""

    code = ErrorCode.EXTERNAL_API_ERROR
    status_code = 502

    def __init__(self, service: str, message: str):
        super().__init__(f"{service} API error: {message}", {"service": service})
        self.service = service


class DeliveryError(AppError):
    """The email provider did not accept a letter."""

    code = ErrorCode.EMAIL_ERROR
    status_code = 502


class AIUnavailableError(AppError):
    """No AI provider is configured or every configured provider failed."""

    code = ErrorCode.AI_ERROR
    status_code = 503

    def __init__(self, message: str = "AI service is unavailable. Check the API keys."):
        super().__init__(message)


def validate_required(value: Any, field_name: str) -> None:
    """Reject None and empty strings."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field_name} is required", {"field": field_name})
