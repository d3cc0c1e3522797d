import logging
from collections import defaultdict
from typing import Dict, List

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.errors import AppError
from utils.responses import clear_refresh_cookie, error_json

logger = logging.getLogger(__name__)

_HTTP_STATUS_CODES = {
    400: "validation_failed",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    429: "rate_limited",
}


def validation_fields(exc: RequestValidationError) -> Dict[str, List[str]]:
    """Group pydantic error messages by the offending field name"""
    fields: Dict[str, List[str]] = defaultdict(list)
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(loc) or "body"
        fields[field].append(error.get("msg", "Invalid value"))
    return dict(fields)


def register_exception_handlers(app: FastAPI) -> None:
    """Single translation point from raised errors to error envelopes."""

    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(f"{exc.error_code} at {request.url.path}: {exc.message}")
        else:
            logger.info(f"{exc.error_code} at {request.url.path}: {exc.message}")
        response = error_json(exc.status_code, exc.error_code, exc.message, exc.fields)
        if exc.clear_refresh_cookie:
            clear_refresh_cookie(response)
        return response

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return error_json(400, "validation_failed", "Validation failed", validation_fields(exc))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        code = _HTTP_STATUS_CODES.get(exc.status_code, "internal_error" if exc.status_code >= 500 else "error")
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return error_json(exc.status_code, code, message)

    # Global exception handler to ensure 500s for unexpected errors
    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error at {request.url.path}: {exc}")
        return error_json(500, "internal_error", "Something went wrong")
