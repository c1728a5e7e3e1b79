"""
JSON envelope for every /api response.

Success: {"success": true, "data": ..., "message": "..."}
Error:   {"success": false, "error": {"code": "...", "message": "...", "details": {...}}}
"""

import logging
from typing import Any, Optional

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# =============================================================================
# ERROR CODES
# =============================================================================

VALIDATION_ERROR = "VALIDATION_ERROR"
UNAUTHORIZED = "UNAUTHORIZED"
FORBIDDEN = "FORBIDDEN"
NOT_FOUND = "NOT_FOUND"
CONFLICT = "CONFLICT"
EMAIL_ALREADY_EXISTS = "EMAIL_ALREADY_EXISTS"
FIRE_DEPARTMENT_NOT_FOUND = "FIRE_DEPARTMENT_NOT_FOUND"
INVALID_DEPARTMENT_CODE = "INVALID_DEPARTMENT_CODE"
PROFILE_NOT_FOUND = "PROFILE_NOT_FOUND"
INCIDENT_NOT_FOUND = "INCIDENT_NOT_FOUND"
USER_NOT_FOUND = "USER_NOT_FOUND"
INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
INVALID_REFRESH_TOKEN = "INVALID_REFRESH_TOKEN"
INVALID_CURRENT_PASSWORD = "INVALID_CURRENT_PASSWORD"
INVALID_RESET_TOKEN = "INVALID_RESET_TOKEN"
NO_DEPARTMENT = "NO_DEPARTMENT"
ALREADY_ASSIGNED = "ALREADY_ASSIGNED"
TOO_MANY_REQUESTS = "TOO_MANY_REQUESTS"
SERVER_ERROR = "SERVER_ERROR"

STATUS_BY_CODE = {
    VALIDATION_ERROR: 400,
    NO_DEPARTMENT: 400,
    ALREADY_ASSIGNED: 400,
    INVALID_CURRENT_PASSWORD: 400,
    INVALID_RESET_TOKEN: 400,
    UNAUTHORIZED: 401,
    INVALID_CREDENTIALS: 401,
    INVALID_REFRESH_TOKEN: 401,
    FORBIDDEN: 403,
    INVALID_DEPARTMENT_CODE: 403,
    NOT_FOUND: 404,
    FIRE_DEPARTMENT_NOT_FOUND: 404,
    PROFILE_NOT_FOUND: 404,
    INCIDENT_NOT_FOUND: 404,
    USER_NOT_FOUND: 404,
    CONFLICT: 409,
    EMAIL_ALREADY_EXISTS: 409,
    TOO_MANY_REQUESTS: 429,
    SERVER_ERROR: 500,
}


# =============================================================================
# EXCEPTIONS
# =============================================================================

class ApiError(Exception):
    """Raised anywhere in request handling; rendered as the error envelope."""

    def __init__(self, status_code: int, code: str, message: str, details: Optional[dict] = None,
                 headers: Optional[dict] = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details
        self.headers = headers


class ServiceError(Exception):
    """Domain failure raised by the service layer, identified by an error code."""

    def __init__(self, code: str, message: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message or code)
        self.code = code
        self.message = message or code
        self.details = details

    def to_api_error(self) -> ApiError:
        return ApiError(STATUS_BY_CODE.get(self.code, 500), self.code, self.message, self.details)


# =============================================================================
# ENVELOPES
# =============================================================================

def success_response(data: Any, message: Optional[str] = None, status_code: int = 200) -> JSONResponse:
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def error_response(status_code: int, code: str, message: str, details: Optional[dict] = None,
                   headers: Optional[dict] = None) -> JSONResponse:
    error = {"code": code, "message": message}
    if details:
        error["details"] = details
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({"success": False, "error": error}),
        headers=headers,
    )


# =============================================================================
# REQUEST HELPERS
# =============================================================================

async def read_json(request: Request) -> Any:
    """Decoded JSON body; 400 VALIDATION_ERROR when it does not parse."""
    try:
        return await request.json()
    except ValueError:
        raise ApiError(400, VALIDATION_ERROR, "Invalid JSON in request body")


def raise_if_invalid(result, message: str = "Invalid input data"):
    """result is a validation.ValidationResult"""
    if not result.valid:
        raise ApiError(400, VALIDATION_ERROR, message, result.errors)


# =============================================================================
# EXCEPTION HANDLERS (registered in main.py)
# =============================================================================

async def api_error_handler(request: Request, exc: ApiError):
    return error_response(exc.status_code, exc.code, exc.message, exc.details, exc.headers)


async def service_error_handler(request: Request, exc: ServiceError):
    api_error = exc.to_api_error()
    return error_response(api_error.status_code, api_error.code, api_error.message, api_error.details)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = {}
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path"))
        details[field or "_general"] = err.get("msg", "Invalid value")
    return error_response(400, VALIDATION_ERROR, "Invalid input data", details)


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unexpected error in {request.method} {request.url.path}: {exc}")
    return error_response(500, SERVER_ERROR, "An unexpected error occurred")
