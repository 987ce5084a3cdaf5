"""Обработчики исключений: единый JSON формат ошибок.

Формат
------
`{"errorCode", "message", "path", "status", "timestamp", "fieldErrors"?}`;
`fieldErrors` есть только у ошибок валидации.
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from payment_service.core.errors import ErrorCode, ServiceError
from payment_service.schemas.errors import ErrorResponse

_VALUE_ERROR_PREFIX = "Value error, "
_REQUEST_PARTS = ("body", "query", "path", "header")


def build_error_response(
    request: Request,
    code: ErrorCode,
    *,
    field_errors: dict[str, str] | None = None,
) -> JSONResponse:
    """Собрать JSON ответ об ошибке по коду."""

    body = ErrorResponse(
        error_code=code.value,
        message=code.message,
        path=request.url.path,
        status=code.http_status,
        timestamp=datetime.now(timezone.utc),
        field_errors=field_errors,
    )
    return JSONResponse(
        status_code=code.http_status,
        content=body.model_dump(mode="json", by_alias=True, exclude_none=True),
    )


def _field_name(loc: tuple) -> str:
    parts = list(loc)
    if parts and parts[0] in _REQUEST_PARTS:
        parts = parts[1:]
    return ".".join(str(part) for part in parts)


def _is_body_unreadable(errors: list[dict]) -> bool:
    for error in errors:
        if error.get("type") == "json_invalid":
            return True
        if tuple(error.get("loc", ())) == ("body",):
            return True
    return False


async def handle_service_error(request: Request, exc: ServiceError) -> JSONResponse:
    """Ошибки сервиса отдаются со своим кодом."""

    if exc.code.http_status >= 500:
        logger.error(
            "Service error [{code}]: {err}",
            code=exc.code.value,
            err=str(exc),
        )
    else:
        logger.info(
            "Request rejected [{code}]: {err}",
            code=exc.code.value,
            err=str(exc),
        )
    return build_error_response(request, exc.code, field_errors=exc.field_errors)


async def handle_validation_error(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Ошибки валидации тела запроса -> 400 с `fieldErrors`."""

    errors = list(exc.errors())
    if _is_body_unreadable(errors):
        logger.warning("Malformed or missing request body path={p}", p=request.url.path)
        return build_error_response(request, ErrorCode.REQUEST_BODY_MISSING)

    field_errors: dict[str, str] = {}
    for error in errors:
        name = _field_name(tuple(error.get("loc", ())))
        message = str(error.get("msg") or "Invalid value")
        if message.startswith(_VALUE_ERROR_PREFIX):
            message = message[len(_VALUE_ERROR_PREFIX):]
        field_errors.setdefault(name, message)

    logger.warning("Validation failed: {errors}", errors=field_errors)
    return build_error_response(
        request,
        ErrorCode.VALIDATION_ERROR,
        field_errors=field_errors,
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    """Всё остальное — 500 без подробностей наружу."""

    logger.opt(exception=exc).error("Unexpected system error: {err}", err=str(exc))
    return build_error_response(request, ErrorCode.INTERNAL_SERVER_ERROR)


def register_exception_handlers(app: FastAPI) -> None:
    """Подключить обработчики исключений к приложению."""

    app.add_exception_handler(ServiceError, handle_service_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
