"""Custom exceptions for the Hookflow workflow engine."""

from typing import Optional


class HookflowException(Exception):
    """Base exception for the Hookflow workflow engine."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code.

        Args:
            message: Exception message
            status_code: HTTP status code
        """
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundError(HookflowException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize NotFoundError with 404 status code."""
        super().__init__(message, 404)


class ForbiddenError(HookflowException):
    """Forbidden access exception."""

    def __init__(self, message: str = "Forbidden"):
        """Initialize ForbiddenError with 403 status code."""
        super().__init__(message, 403)


class ValidationError(HookflowException):
    """Validation error exception."""

    def __init__(self, message: str = "Validation failed"):
        """Initialize ValidationError with 422 status code."""
        super().__init__(message, 422)


class ServiceUnavailableError(HookflowException):
    """A required backing service (queue, worker) is not available."""

    def __init__(self, message: str = "Service unavailable"):
        """Initialize ServiceUnavailableError with 503 status code."""
        super().__init__(message, 503)


class WorkflowValidationError(ValidationError):
    """Workflow steps were rejected before any operation executed.

    Attributes:
        issues: Every problem found, each prefixed with its step location
    """

    def __init__(self, message: str, issues: Optional[list[str]] = None):
        self.issues = list(issues) if issues else [message]
        super().__init__(message)


class UnresolvedSecretError(HookflowException):
    """An ``env:NAME`` marker has no configured value."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"send.http_request url references secret '{name}' which is not configured",
            422,
        )


class RunWaitTimeoutError(HookflowException):
    """No result arrived for a correlation id before the deadline."""

    def __init__(self, message: str = "Timed out waiting for workflow result"):
        super().__init__(message, 504)
