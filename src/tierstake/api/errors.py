from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tierstake.runtime.errors import (
    ArithmeticFault,
    AuthorizationError,
    CapExceededError,
    InvariantViolation,
    ReentrancyError,
    SolvencyError,
    StakingError,
    SystemPausedError,
    TemporalError,
    ValidationError,
)


@dataclass
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

    @staticmethod
    def bad_request(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(400, code, message, details or {})

    @staticmethod
    def forbidden(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(403, code, message, details or {})

    @staticmethod
    def not_found(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(404, code, message, details or {})

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})


# Most specific first; StakingError is the fallback.
_STATUS_BY_ERROR = (
    (ValidationError, 400),
    (AuthorizationError, 403),
    (TemporalError, 409),
    (ReentrancyError, 409),
    (SolvencyError, 422),
    (ArithmeticFault, 422),
    (SystemPausedError, 423),
    (CapExceededError, 429),
    (InvariantViolation, 500),
)


def status_for(err: StakingError) -> int:
    for cls, status in _STATUS_BY_ERROR:
        if isinstance(err, cls):
            return status
    return 400


def _jsonable(details: Any) -> Dict[str, Any]:
    if not isinstance(details, dict):
        return {}
    return {str(k): v for k, v in details.items()}


def from_staking_error(err: StakingError) -> ApiError:
    return ApiError(status_for(err), err.code, err.reason, _jsonable(err.details))


def _error_response(err: ApiError) -> JSONResponse:
    return JSONResponse(
        status_code=err.status_code,
        content={"ok": False, "error": {"code": err.code, "message": err.message, "details": err.details}},
    )


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def _api_error(_request: Request, exc: ApiError) -> JSONResponse:
        return _error_response(exc)

    @app.exception_handler(StakingError)
    async def _staking_error(_request: Request, exc: StakingError) -> JSONResponse:
        return _error_response(from_staking_error(exc))
