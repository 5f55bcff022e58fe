"""
api/errors.py -- Turning failed Results into HTTP errors.

Usecases return storage and validation codes without an HTTP status. Routes
call raise_for_error() and the status is chosen here from the code, so every
router maps the same failure to the same status. ServiceResults already carry
a status and go through raise_for_service().

The raised HTTPException has detail=AppError.to_dict(); the handler in
api/main.py wraps it as {"error": {...}}.
"""

from __future__ import annotations

from typing import NoReturn

from fastapi import HTTPException

from core.database import DatabaseErrorCode
from core.result import AppError, ErrorCode, ServiceResult

_STATUS_BY_CODE: dict[str, int] = {
    DatabaseErrorCode.NOT_FOUND.value: 404,
    DatabaseErrorCode.NO_DATA.value: 404,
    ErrorCode.NOT_FOUND.value: 404,
    DatabaseErrorCode.UNIQUE_VIOLATION.value: 409,
    ErrorCode.ALREADY_EXISTS.value: 409,
    ErrorCode.UNAUTHORIZED.value: 401,
    ErrorCode.INVALID_CREDENTIALS.value: 401,
    ErrorCode.FORBIDDEN.value: 403,
    ErrorCode.PERMISSION_DENIED.value: 403,
    ErrorCode.INTERNAL_ERROR.value: 500,
}


def status_for(error: AppError, default: int = 400) -> int:
    return _STATUS_BY_CODE.get(error.code, default)


def raise_for_error(error: AppError) -> NoReturn:
    raise HTTPException(status_code=status_for(error), detail=error.to_dict())


def raise_for_service(result: ServiceResult) -> NoReturn:
    # 400 is to_service_error()'s default, so it is refined by code.
    status = status_for(result.error) if result.status == 400 else result.status
    raise HTTPException(status_code=status, detail=result.error.to_dict())
