"""Схемы для webhook'ов (подписчики и события)."""

from __future__ import annotations

from datetime import datetime
from urllib.parse import urlsplit, urlunsplit

from pydantic import field_validator

from payment_service.schemas.base import CamelModel

MAX_URL_LENGTH = 255


def normalize_webhook_url(value: str) -> str:
    """Проверить и нормализовать URL подписчика.

    Правила
    -------
    - печатные символы без пробелов, не длиннее 255 символов;
    - абсолютный URL со схемой http/https и хостом;
    - схема и хост приводятся к нижнему регистру, userinfo и путь не трогаются.

    Raises
    ------
    ValueError
        Если URL не проходит проверку.
    """

    url = value.strip()
    if not url:
        raise ValueError("Webhook URL cannot be blank")
    if len(url) > MAX_URL_LENGTH:
        raise ValueError(f"Webhook URL must not exceed {MAX_URL_LENGTH} characters")
    if not url.isprintable() or any(ch.isspace() for ch in url):
        raise ValueError("Webhook URL must contain only printable characters")

    try:
        parts = urlsplit(url)
        _ = parts.port
    except ValueError as exc:
        raise ValueError("Webhook URL is malformed") from exc

    scheme = parts.scheme.lower()
    if scheme not in ("http", "https"):
        raise ValueError("Webhook URL must use http or https")
    if not parts.hostname:
        raise ValueError("Webhook URL must be absolute")

    # Регистр userinfo значим, к нижнему приводим только хост и порт.
    userinfo, at, hostport = parts.netloc.rpartition("@")
    netloc = f"{userinfo}{at}{hostport.lower()}"
    return urlunsplit((scheme, netloc, parts.path, parts.query, parts.fragment))


class WebhookCreate(CamelModel):
    """Запрос на регистрацию подписчика."""

    url: str

    @field_validator("url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        """Проверить форму URL."""

        return normalize_webhook_url(value)


class SubscriberOut(CamelModel):
    """Снимок подписчика (ответ API и элемент рассылки).

    Attributes
    ----------
    id : int
        Идентификатор.
    url : str
        URL подписчика.
    active : bool
        Активен ли подписчик.
    created_at : datetime
        Дата регистрации.
    """

    id: int
    url: str
    active: bool
    created_at: datetime


class DispatchEvent(CamelModel):
    """Событие об исходе платежа для рассылки подписчикам.

    Живёт только в памяти; в JSON уходит как
    `{"status", "transactionId", "errorMessage"?}`.
    """

    status: str
    transaction_id: str
    error_message: str | None = None

    def to_payload(self) -> dict:
        """Тело исходящего webhook'а."""

        return self.model_dump(by_alias=True, exclude_none=True)

