"""Custom exception classes and global exception handlers."""

import logging
import traceback

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ClassKeyException(Exception):
    """Base exception for all ClassKey-specific errors."""

    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundException(ClassKeyException):
    """Resource not found exception."""

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found", 404)


class ForbiddenException(ClassKeyException):
    """Access forbidden exception."""

    def __init__(self, message: str = "You don't have permission to perform this action"):
        super().__init__(message, 403)


class UnauthorizedException(ClassKeyException):
    """Authentication required exception."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, 401)


class ConflictException(ClassKeyException):
    """Resource conflict exception."""

    def __init__(self, message: str = "Resource already exists"):
        super().__init__(message, 409)


class ValidationException(ClassKeyException):
    """Validation error exception with field-level errors."""

    def __init__(self, errors: list[dict] | str):
        if isinstance(errors, str):
            errors = [{"field": "general", "message": errors}]
        super().__init__("Validation failed", 422)
        self.errors = errors


class UserContextError(ClassKeyException):
    """User context not set error."""

    def __init__(self, message: str = "User context is required"):
        super().__init__(message, 401)


class InvalidStatusTransition(ConflictException):
    """A code status change that the lifecycle does not allow."""

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot change code status from {current} to {target}")
        self.current = current
        self.target = target


# === Code lifecycle errors ===


class RedemptionError(ClassKeyException):
    """Base class for typed code lifecycle failures.

    Every subclass is a distinct outcome the API layer can render verbatim.
    Only errors flagged ``retryable`` may be retried by the caller.
    """

    error_code = "REDEMPTION_ERROR"
    default_message = "This code cannot be used"
    http_status = 400
    retryable = False

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message, self.http_status)


class GenerationExhausted(RedemptionError):
    error_code = "GENERATION_EXHAUSTED"
    default_message = "Failed to generate a unique code"
    http_status = 503


class CodeNotFound(RedemptionError):
    error_code = "NOT_FOUND"
    default_message = "Invalid code"
    http_status = 404


class CodeDisabled(RedemptionError):
    error_code = "DISABLED"
    default_message = "This code has been deactivated"
    http_status = 409


class CodeCancelled(RedemptionError):
    error_code = "CANCELLED"
    default_message = "This code has been cancelled"
    http_status = 410


class CodeExpired(RedemptionError):
    error_code = "EXPIRED"
    default_message = "This code has expired"
    http_status = 410


class CodeExhausted(RedemptionError):
    error_code = "EXHAUSTED"
    default_message = "This code has already been fully used"
    http_status = 409


class RoleMismatch(RedemptionError):
    error_code = "ROLE_MISMATCH"
    default_message = "This code is not valid for your role"
    http_status = 403


class EmailMismatch(RedemptionError):
    error_code = "EMAIL_MISMATCH"
    default_message = "Email does not match the invitation"
    http_status = 403


class ScopeMismatch(RedemptionError):
    error_code = "SCOPE_MISMATCH"
    default_message = "This code does not grant access to the requested resource"
    http_status = 403


class StoreUnavailable(RedemptionError):
    error_code = "STORE_UNAVAILABLE"
    default_message = "The code store is temporarily unavailable, please retry"
    http_status = 503
    retryable = True


def create_exception_handlers():
    """Create exception handlers for the JSON API."""

    async def classkey_exception_handler(request: Request, exc: ClassKeyException):
        """Handle ClassKey custom exceptions."""
        logger.warning(f"ClassKeyException on {request.method} {request.url.path}: {exc.message} (status={exc.status_code})")

        content = {
            "status": "error",
            "message": exc.message,
        }
        if hasattr(exc, "errors"):
            content["errors"] = exc.errors
        return JSONResponse(status_code=exc.status_code, content=content)

    async def redemption_exception_handler(request: Request, exc: RedemptionError):
        """Handle code lifecycle failures with their stable error code."""
        logger.info(f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}")

        headers = {"Retry-After": "1"} if exc.retryable else None
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "status": "error",
                "message": exc.message,
                "errors": [{"field": "code", "message": exc.message, "code": exc.error_code}],
                "retryable": exc.retryable,
            },
            headers=headers,
        )

    async def validation_exception_handler(request: Request, exc: ValidationException):
        """Handle validation exceptions with field-level errors."""
        logger.warning(f"ValidationException on {request.method} {request.url.path}: {exc.errors}")

        return JSONResponse(
            status_code=exc.status_code,
            content={
                "status": "error",
                "message": exc.message,
                "errors": exc.errors,
            },
        )

    async def generic_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.error(f"Unhandled exception on {request.method} {request.url.path}")
        logger.error(f"Exception: {type(exc).__name__}: {exc}")
        tb_lines = traceback.format_exception(type(exc), exc, exc.__traceback__)
        logger.error("".join(tb_lines))

        return JSONResponse(
            status_code=500,
            content={
                "status": "error",
                "message": "An unexpected error occurred",
            },
        )

    return {
        ClassKeyException: classkey_exception_handler,
        RedemptionError: redemption_exception_handler,
        ValidationException: validation_exception_handler,
        Exception: generic_exception_handler,
    }
