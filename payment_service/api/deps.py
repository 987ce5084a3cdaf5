"""Общие зависимости для роутов FastAPI."""

from __future__ import annotations

from fastapi import Request

from payment_service.core.crypto import CardEncryptor
from payment_service.runtime import WebhookRuntime


def get_webhooks(request: Request) -> WebhookRuntime:
    """Подсистема webhook'ов текущего приложения."""

    return request.app.state.webhooks


def get_card_encryptor(request: Request) -> CardEncryptor:
    """Шифратор номеров карт текущего приложения."""

    return request.app.state.card_encryptor
