from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from platecost.apps.api.cors import allow_origin_headers
from platecost.core.errors import (
    ConfigurationError,
    GateError,
    ImportNotFoundError,
    SalesImportError,
    UpstreamError,
)
from platecost.core.messages import get_message


logger = logging.getLogger(__name__)

_DEFAULT_ERROR_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    401: "AUTH_MISSING",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    422: "BAD_REQUEST",
    429: "RATE_LIMITED",
    500: "INTERNAL_ERROR",
}


def _default_code(status_code: int) -> str:
    # Map status codes to fallback error codes when none are provided.
    return _DEFAULT_ERROR_CODES.get(status_code, "UNKNOWN_ERROR")


def error_response(
    status_code: int,
    code: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    # Every error body carries the user-facing message and a stable code.
    content: dict[str, Any] = {"error": message, "code": code}
    if extra:
        content.update(extra)
    return JSONResponse(content=content, status_code=status_code, headers=headers)


def _split_detail(detail: Any, status_code: int) -> tuple[str, str]:
    if isinstance(detail, dict):
        code = str(detail.get("code") or _default_code(status_code))
        message = str(detail.get("message") or "Request failed")
        return code, message
    if isinstance(detail, str):
        return _default_code(status_code), detail
    return _default_code(status_code), "Request failed"


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code, message = _split_detail(exc.detail, exc.status_code)
    return error_response(exc.status_code, code, message, headers=exc.headers)


async def starlette_http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    code, message = _split_detail(exc.detail, exc.status_code)
    return error_response(exc.status_code, code, message, headers=exc.headers)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    # Malformed request shapes are caller-actionable transport errors.
    return error_response(
        400,
        "BAD_REQUEST",
        "Invalid request",
        extra={"details": exc.errors()},
    )


async def gate_exception_handler(request: Request, exc: GateError) -> JSONResponse:
    return error_response(exc.status_code, exc.code, exc.message)


async def configuration_exception_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    # Detail goes to the log only; callers see a generic configuration failure.
    logger.error("configuration_missing path=%s detail=%s", request.url.path, exc)
    return error_response(500, "CONFIG_MISSING", get_message("config_missing"))


async def upstream_exception_handler(request: Request, exc: UpstreamError) -> JSONResponse:
    if exc.status_code == 429:
        return error_response(429, "UPSTREAM_RATE_LIMITED", get_message("upstream_rate_limited"))
    if exc.status_code == 402:
        return error_response(402, "UPSTREAM_PAYMENT_REQUIRED", get_message("upstream_payment_required"))
    return error_response(500, "UPSTREAM_ERROR", get_message("upstream_error"))


async def sales_import_exception_handler(request: Request, exc: SalesImportError) -> JSONResponse:
    return error_response(
        400,
        "IMPORT_INVALID",
        get_message("import_invalid"),
        extra={"errors": exc.errors},
    )


async def import_not_found_exception_handler(
    request: Request, exc: ImportNotFoundError
) -> JSONResponse:
    return error_response(404, "IMPORT_NOT_FOUND", get_message("import_not_found"))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Avoid leaking stack traces; this handler runs outside the CORS middleware.
    logger.exception("unhandled_error path=%s", request.url.path, exc_info=exc)
    return error_response(
        500,
        "INTERNAL_ERROR",
        get_message("internal_error"),
        headers=allow_origin_headers(),
    )
