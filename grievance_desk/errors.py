# Error taxonomy and the app-wide exception translation layer

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Codes
# ---------------------------------------------------------------------------
FILE_TOO_LARGE = "FILE_TOO_LARGE"
TOO_MANY_FILES = "TOO_MANY_FILES"
INVALID_FILE_TYPE = "INVALID_FILE_TYPE"
NO_FILES = "NO_FILES"
NOT_AN_IMAGE = "NOT_AN_IMAGE"
INVALID_STATUS = "INVALID_STATUS"
VALIDATION_ERROR = "VALIDATION_ERROR"
GRIEVANCE_NOT_FOUND = "GRIEVANCE_NOT_FOUND"
FILE_NOT_FOUND = "FILE_NOT_FOUND"
FILE_NOT_ON_DISK = "FILE_NOT_ON_DISK"
ROUTE_NOT_FOUND = "ROUTE_NOT_FOUND"
NOT_FOUND = "NOT_FOUND"
INTERNAL_ERROR = "INTERNAL_ERROR"

_DEFAULT_CODES = {400: "BAD_REQUEST", 404: NOT_FOUND, 405: "METHOD_NOT_ALLOWED", 500: INTERNAL_ERROR}

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------
class ApiError(HTTPException):
    """HTTPException carrying a machine-readable ``code``."""

    def __init__(self, status_code: int, detail: str, code: str):
        super().__init__(status_code=status_code, detail=detail)
        self.code = code

class UploadError(ApiError):
    def __init__(self, detail: str, code: str):
        super().__init__(400, detail, code)

def grievance_not_found() -> ApiError:
    return ApiError(404, "Grievance not found", GRIEVANCE_NOT_FOUND)

def file_not_found() -> ApiError:
    return ApiError(404, "File not found", FILE_NOT_FOUND)

def internal_error(exc: Exception) -> ApiError:
    return ApiError(500, str(exc) or "Internal server error", INTERNAL_ERROR)

# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------
def error_body(message: str, code: str, details: Optional[list] = None) -> dict:
    body = {"error": message, "code": code}
    if details is not None:
        body["details"] = details
    return body

def translate_exception(exc: Exception) -> ApiError:
    """Map an arbitrary exception onto the API error taxonomy."""
    if isinstance(exc, ApiError):
        return exc
    message = str(exc)
    if "Invalid file type" in message:
        return UploadError(message, INVALID_FILE_TYPE)
    return internal_error(exc)

async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    code = getattr(exc, "code", None)
    message = exc.detail
    if code is None:
        if exc.status_code == 404 and exc.detail == "Not Found":
            message, code = "Route not found", ROUTE_NOT_FOUND
        else:
            code = _DEFAULT_CODES.get(exc.status_code, "HTTP_ERROR")
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, message)
    return JSONResponse(status_code=exc.status_code, content=error_body(message, code),
                        headers=getattr(exc, "headers", None))

async def _validation_exception_handler(request: Request, exc: RequestValidationError):
    details = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        msg = err.get("msg", "Invalid value").removeprefix("Value error, ")
        details.append(f"{loc}: {msg}" if loc else msg)
    return JSONResponse(status_code=400,
                        content=error_body("Validation failed", VALIDATION_ERROR, details))

async def _unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
    err = translate_exception(exc)
    return JSONResponse(status_code=err.status_code, content=error_body(err.detail, err.code))

def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
