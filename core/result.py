"""
core/result.py -- Success/failure values passed between layers.

Stores, usecases and the Authenticator never raise across their public
boundary. They return a Result whose ok flag tells the caller which of
data / error is populated. The HTTP layer turns failed results into the
ErrorResponse envelope; ServiceResult carries the status code to use.

Pattern: Data class (pure data container), same as auth/models.py.

Layer rule: core/ is the kernel. No imports from api/, auth/ or identity/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorCode(str, Enum):
    """Application error vocabulary. Storage codes live in core.database."""

    # Validation
    VALIDATION_ERROR = "VALIDATION_ERROR"
    REQUIRED_FIELD = "REQUIRED_FIELD"
    INVALID_FORMAT = "INVALID_FORMAT"

    # Business logic
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"

    # Authenticator verdicts
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    PERMISSION_DENIED = "PERMISSION_DENIED"

    # System
    INTERNAL_ERROR = "INTERNAL_ERROR"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"

    # Operations
    OPERATION_FAILED = "OPERATION_FAILED"
    INVALID_OPERATION = "INVALID_OPERATION"


@dataclass(frozen=True)
class AppError:
    """A failure with a stable code, a human-readable message and optional context.

    code is a plain str so storage codes (SQLSTATEs such as "23505") and
    ErrorCode members share one field.
    """

    code: str
    message: str
    details: Optional[dict[str, Any]] = None

    def __post_init__(self) -> None:
        # Enum members are stored by value so codes serialize as plain strings.
        if isinstance(self.code, Enum):
            object.__setattr__(self, "code", self.code.value)

    def to_dict(self) -> dict[str, Any]:
        """Render as the "error" member of the HTTP ErrorResponse envelope."""
        out: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            out["detail"] = self.details
        return out


@dataclass(frozen=True)
class Result(Generic[T]):
    ok: bool
    data: Optional[T] = None
    error: Optional[AppError] = None


@dataclass(frozen=True)
class ServiceResult(Generic[T]):
    """Result paired with the HTTP-equivalent status of a failure.

    status is 200 on success. Failures default to 400 unless the producer
    (e.g. the Authenticator) sets 401/403/500 explicitly.
    """

    ok: bool
    data: Optional[T] = None
    error: Optional[AppError] = None
    status: int = 200


def ok(data: T) -> Result[T]:
    return Result(ok=True, data=data)


def err(error: AppError) -> Result[Any]:
    return Result(ok=False, error=error)


def create_error(code: str, message: str, details: Optional[dict[str, Any]] = None) -> AppError:
    return AppError(code=code, message=message, details=details)


def rewrap(error: AppError) -> Result[Any]:
    """Re-wrap an error from a lower layer without reinterpreting it.

    Usecases call this on every failed store result so the code, message and
    details reach the service layer exactly as the store produced them.
    """
    return err(AppError(code=error.code, message=error.message, details=error.details))


# ---------------------------------------------------------------------------
# Service-layer mapping
# ---------------------------------------------------------------------------


def to_service_error(error: AppError, status: int = 400) -> ServiceResult[Any]:
    return ServiceResult(ok=False, error=error, status=status)


def to_service_success(data: T) -> ServiceResult[T]:
    return ServiceResult(ok=True, data=data)


def to_service_exception(
    exc: BaseException,
    default_message: str = "An unexpected error occurred",
    status: int = 500,
) -> ServiceResult[Any]:
    """Wrap an uncaught exception as an INTERNAL_ERROR failure.

    The exception's own message wins when it has one; default_message covers
    exceptions raised without arguments.
    """
    message = str(exc) or default_message
    return ServiceResult(
        ok=False,
        error=AppError(code=ErrorCode.INTERNAL_ERROR.value, message=message),
        status=status,
    )
