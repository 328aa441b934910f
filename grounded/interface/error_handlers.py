"""Translate exceptions into the JSON error envelope.

Every failure leaves the API as::

    {"error": {"code": "...", "message": "...", "timestamp": "...", "path": "..."}}
"""

import logging
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from grounded.core.errors import AppError


logger = logging.getLogger(__name__)

_HTTP_STATUS_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    429: "RATE_LIMITED",
}


def error_response(request: Request, *, status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": code,
                "message": message,
                "timestamp": datetime.now(UTC).isoformat(),
                "path": request.url.path,
            }
        },
    )


async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "request_failed",
        extra={
            "code": exc.code,
            "error": exc.message,
            "path": request.url.path,
            "method": request.method,
            "status_code": exc.status_code,
        },
    )
    return error_response(request, status_code=exc.status_code, code=exc.code, message=exc.message)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'] if part != 'body')}: {error['msg']}" for error in exc.errors()
    )
    logger.warning("request_validation_failed", extra={"path": request.url.path, "error": details})
    return error_response(request, status_code=400, code="VALIDATION_ERROR", message=details or "Validation failed")


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404 and exc.detail == "Not Found":
        message = f"Route {request.method} {request.url.path} not found"
    else:
        message = str(exc.detail)
    code = _HTTP_STATUS_CODES.get(exc.status_code, "INTERNAL_SERVER_ERROR")
    return error_response(request, status_code=exc.status_code, code=code, message=message)


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "unhandled_error",
        extra={"path": request.url.path, "method": request.method, "error": str(exc)},
    )
    app_settings = getattr(request.app.state, "settings", None)
    if app_settings is not None and app_settings.is_production:
        message = "An unexpected error occurred"
    else:
        message = str(exc) or "An unexpected error occurred"
    return error_response(request, status_code=500, code="INTERNAL_SERVER_ERROR", message=message)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, handle_app_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(Exception, handle_unexpected_error)
