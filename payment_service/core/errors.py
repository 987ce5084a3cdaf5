"""Таксономия ошибок сервиса.

Два уровня
----------
- `ErrorKind` — закрытый набор видов отказа ядра доставки webhook'ов. По нему
  Sender решает, повторять ли попытку.
- `ErrorCode` — стабильные идентификаторы, которые видит клиент HTTP API
  (`errorCode` в JSON ответа об ошибке) вместе с сообщением и HTTP статусом.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Стабильный код ошибки для ответа API."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    REQUEST_BODY_MISSING = "REQUEST_BODY_MISSING"
    CARD_ENCRYPTION_ERROR = "CARD_ENCRYPTION_ERROR"

    WEBHOOK_ALREADY_EXISTS = "WEBHOOK_ALREADY_EXISTS"
    WEBHOOK_ACCESS_FAILED = "WEBHOOK_ACCESS_FAILED"
    WEBHOOK_CLIENT_ERROR = "WEBHOOK_CLIENT_ERROR"
    WEBHOOK_SENDING_FAILED = "WEBHOOK_SENDING_FAILED"
    WEBHOOK_PAYLOAD_SERIALIZATION_FAILED = "WEBHOOK_PAYLOAD_SERIALIZATION_FAILED"
    WEBHOOK_DELIVERY_FAILED = "WEBHOOK_DELIVERY_FAILED"

    DATABASE_ERROR = "DATABASE_ERROR"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"

    @property
    def message(self) -> str:
        """Человекочитаемое сообщение по умолчанию."""

        return _MESSAGES[self]

    @property
    def http_status(self) -> int:
        """HTTP статус, с которым код отдаётся клиенту."""

        return _HTTP_STATUSES.get(self, 500)


_MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.VALIDATION_ERROR: "Validation failed",
    ErrorCode.REQUEST_BODY_MISSING: "Request body is missing or malformed",
    ErrorCode.CARD_ENCRYPTION_ERROR: "The card encryption failed",
    ErrorCode.WEBHOOK_ALREADY_EXISTS: "Webhook with this url already exists",
    ErrorCode.WEBHOOK_ACCESS_FAILED: "Failed to access the webhook endpoint",
    ErrorCode.WEBHOOK_CLIENT_ERROR: "Webhook HTTP client error",
    ErrorCode.WEBHOOK_SENDING_FAILED: "Webhook endpoint returned a non-2xx response",
    ErrorCode.WEBHOOK_PAYLOAD_SERIALIZATION_FAILED: (
        "Failed to convert the payload to json"
    ),
    ErrorCode.WEBHOOK_DELIVERY_FAILED: "Failed to schedule webhook delivery",
    ErrorCode.DATABASE_ERROR: "A database error occurred",
    ErrorCode.INTERNAL_SERVER_ERROR: "An unexpected error occurred",
}

_HTTP_STATUSES: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.REQUEST_BODY_MISSING: 400,
    ErrorCode.CARD_ENCRYPTION_ERROR: 422,
    ErrorCode.WEBHOOK_ALREADY_EXISTS: 409,
}


class ErrorKind(str, Enum):
    """Вид отказа в ядре доставки.

    Notes
    -----
    4xx и 5xx ответы подписчика одинаково считаются `NON_2XX_RESPONSE` и
    повторяются.
    """

    TRANSPORT_UNREACHABLE = "TRANSPORT_UNREACHABLE"
    TRANSPORT_CLIENT_ERROR = "TRANSPORT_CLIENT_ERROR"
    NON_2XX_RESPONSE = "NON_2XX_RESPONSE"
    SERIALIZATION_FAILED = "SERIALIZATION_FAILED"
    DUPLICATE_SUBSCRIBER = "DUPLICATE_SUBSCRIBER"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"

    @property
    def retryable(self) -> bool:
        """Можно ли повторить попытку после такого отказа."""

        return self in _RETRYABLE

    @property
    def error_code(self) -> ErrorCode:
        """Код ошибки, под которым вид отказа виден снаружи."""

        return _KIND_CODES[self]


_RETRYABLE = frozenset(
    {
        ErrorKind.TRANSPORT_UNREACHABLE,
        ErrorKind.TRANSPORT_CLIENT_ERROR,
        ErrorKind.NON_2XX_RESPONSE,
    }
)

_KIND_CODES: dict[ErrorKind, ErrorCode] = {
    ErrorKind.TRANSPORT_UNREACHABLE: ErrorCode.WEBHOOK_ACCESS_FAILED,
    ErrorKind.TRANSPORT_CLIENT_ERROR: ErrorCode.WEBHOOK_CLIENT_ERROR,
    ErrorKind.NON_2XX_RESPONSE: ErrorCode.WEBHOOK_SENDING_FAILED,
    ErrorKind.SERIALIZATION_FAILED: ErrorCode.WEBHOOK_PAYLOAD_SERIALIZATION_FAILED,
    ErrorKind.DUPLICATE_SUBSCRIBER: ErrorCode.WEBHOOK_ALREADY_EXISTS,
    ErrorKind.STORE_UNAVAILABLE: ErrorCode.DATABASE_ERROR,
}


class ServiceError(Exception):
    """Базовая ошибка сервиса со стабильным кодом.

    Parameters
    ----------
    code : ErrorCode
        Код ошибки для ответа API.
    detail : str | None
        Подробности для логов. Клиенту отдаётся `code.message`.
    field_errors : dict[str, str] | None
        Ошибки валидации по полям.
    """

    def __init__(
        self,
        code: ErrorCode,
        detail: str | None = None,
        *,
        field_errors: dict[str, str] | None = None,
    ) -> None:
        super().__init__(detail or code.message)
        self.code = code
        self.detail = detail
        self.field_errors = field_errors


class WebhookError(ServiceError):
    """Ошибка подсистемы webhook'ов."""

    def __init__(
        self,
        code: ErrorCode,
        detail: str | None = None,
        *,
        kind: ErrorKind | None = None,
        field_errors: dict[str, str] | None = None,
    ) -> None:
        super().__init__(code, detail, field_errors=field_errors)
        self.kind = kind

    @classmethod
    def from_kind(cls, kind: ErrorKind, detail: str | None = None) -> WebhookError:
        """Создать ошибку по виду отказа."""

        return cls(kind.error_code, detail, kind=kind)


class DispatchQueueFull(WebhookError):
    """Очередь доставки переполнена, работа не принята."""

    def __init__(self, capacity: int) -> None:
        super().__init__(
            ErrorCode.WEBHOOK_DELIVERY_FAILED,
            f"delivery queue is full (capacity={capacity})",
        )
        self.capacity = capacity


class PaymentError(ServiceError):
    """Ошибка обработки платежа."""
