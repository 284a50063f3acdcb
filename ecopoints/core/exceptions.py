from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse


class AppError(Exception):
    """Base application error with consistent schema."""

    def __init__(
        self,
        message: str,
        code: str = "ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, code="UNAUTHORIZED", status_code=status.HTTP_401_UNAUTHORIZED)


class ForbiddenError(AppError):
    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, code="FORBIDDEN", status_code=status.HTTP_403_FORBIDDEN)


class AccountInactive(AppError):
    def __init__(self, message: str = "Account has been deactivated"):
        super().__init__(message, code="ACCOUNT_INACTIVE", status_code=status.HTTP_403_FORBIDDEN)


class NotFoundError(AppError):
    def __init__(self, message: str = "Not found"):
        super().__init__(message, code="NOT_FOUND", status_code=status.HTTP_404_NOT_FOUND)


class ValidationError(AppError):
    """Malformed or out-of-range input. Never retried."""

    def __init__(self, message: str = "Validation error", details: dict[str, Any] | None = None):
        super().__init__(message, code="VALIDATION_ERROR", status_code=status.HTTP_400_BAD_REQUEST, details=details)


class InsufficientBalance(AppError):
    def __init__(self, required: int | float, available: int | float):
        super().__init__(
            f"Insufficient points: {required} required, {available} available",
            code="INSUFFICIENT_BALANCE",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"required": required, "available": available},
        )


class AlreadyCheckedInToday(AppError):
    def __init__(self, message: str = "Already checked in today"):
        super().__init__(message, code="ALREADY_CHECKED_IN", status_code=status.HTTP_400_BAD_REQUEST)


class InvalidTransition(AppError):
    def __init__(self, current: str, target: str):
        super().__init__(
            f"Cannot move submission from {current} to {target}",
            code="INVALID_TRANSITION",
            status_code=status.HTTP_409_CONFLICT,
            details={"current": current, "target": target},
        )


class ConcurrencyConflict(AppError):
    """Optimistic-lock retries exhausted; transient, safe to retry the request."""

    def __init__(self, message: str = "Account was modified concurrently, please retry"):
        super().__init__(message, code="CONCURRENCY_CONFLICT", status_code=status.HTTP_409_CONFLICT)


class StorageFailure(AppError):
    def __init__(self, message: str = "Storage unavailable", details: dict[str, Any] | None = None):
        super().__init__(
            message, code="STORAGE_FAILURE", status_code=status.HTTP_503_SERVICE_UNAVAILABLE, details=details
        )


class CodeSpaceExhausted(AppError):
    def __init__(self, attempts: int):
        super().__init__(
            "Could not generate a unique voucher code",
            code="CODE_SPACE_EXHAUSTED",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"attempts": attempts},
        )


class RateLimited(AppError):
    def __init__(self, message: str = "Too many requests, please try again later"):
        super().__init__(message, code="RATE_LIMITED", status_code=status.HTTP_429_TOO_MANY_REQUESTS)


def error_response(request: Request, exc: AppError) -> ORJSONResponse:
    body = {
        "error": {
            "message": exc.message,
            "code": exc.code,
            "details": exc.details,
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(status_code=exc.status_code, content=body)


async def app_exception_handler(request: Request, exc: AppError) -> ORJSONResponse:
    return error_response(request, exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    body = {
        "error": {
            "message": "Validation error",
            "code": "VALIDATION_ERROR",
            "details": {"errors": exc.errors()},
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=body,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    from ecopoints.core.logging import get_logger
    get_logger(__name__).exception("unhandled_exception", exc_info=exc)
    body = {
        "error": {
            "message": "Internal server error",
            "code": "INTERNAL_ERROR",
            "details": {},
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=body,
    )
