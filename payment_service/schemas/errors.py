"""Единая схема ответа об ошибке."""

from __future__ import annotations

from datetime import datetime

from payment_service.schemas.base import CamelModel


class ErrorResponse(CamelModel):
    """Тело ответа об ошибке.

    Attributes
    ----------
    error_code : str
        Стабильный код (`ErrorCode`).
    message : str
        Сообщение для клиента.
    path : str
        Путь запроса.
    status : int
        HTTP статус.
    timestamp : datetime
        Время ошибки (UTC).
    field_errors : dict[str, str] | None
        Только для ошибок валидации: поле -> сообщение.
    """

    error_code: str
    message: str
    path: str
    status: int
    timestamp: datetime
    field_errors: dict[str, str] | None = None
