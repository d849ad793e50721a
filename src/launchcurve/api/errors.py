from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from launchcurve.runtime.errors import CurveError

# CurveError.code -> HTTP status
_STATUS_BY_CODE: Dict[str, int] = {
    "invalid_payload": 400,
    "arithmetic": 400,
    "slippage": 400,
    "limit": 400,
    "forbidden": 403,
    "not_found": 404,
    "invalid_state": 409,
    "conflict": 409,
    "reentrancy": 409,
    "settlement_failed": 502,
    "oracle_stale": 503,
    "config": 500,
}


@dataclass(frozen=True, slots=True)
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

    @staticmethod
    def from_curve_error(e: CurveError) -> "ApiError":
        details = e.details if isinstance(e.details, dict) else {}
        return ApiError(_STATUS_BY_CODE.get(e.code, 400), e.code, e.reason, details)


def _body(code: str, reason: str, details: Dict[str, Any]) -> Dict[str, Any]:
    return {"ok": False, "error": {"code": code, "reason": reason, "details": details}}


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=_body(exc.code, exc.message, exc.details))


async def curve_error_handler(request: Request, exc: CurveError) -> JSONResponse:
    err = ApiError.from_curve_error(exc)
    return JSONResponse(status_code=err.status_code, content=_body(err.code, err.message, err.details))
