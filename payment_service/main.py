"""Точка входа FastAPI приложения."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payment_service.api.errors import register_exception_handlers
from payment_service.api.router import api_router
from payment_service.core.config import get_settings
from payment_service.core.crypto import CardEncryptor
from payment_service.core.logging import setup_logging
from payment_service.core.migrations import run_migrations_once
from payment_service.db.session import get_session_factory
from payment_service.runtime import WebhookRuntime
from payment_service.services.transport import HttpTransport


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan приложения.

    При старте: миграции (если включены) и запуск пула доставки webhook'ов.
    При остановке: пул останавливается, незавершённые доставки остаются
    в PENDING.
    """

    await asyncio.to_thread(run_migrations_once)
    webhooks: WebhookRuntime = app.state.webhooks
    await webhooks.start()
    try:
        yield
    finally:
        await webhooks.stop()


def create_app(
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    transport: HttpTransport | None = None,
    cache: Redis | None = None,
) -> FastAPI:
    """Создать и сконфигурировать экземпляр FastAPI.

    Parameters
    ----------
    session_factory : async_sessionmaker[AsyncSession] | None
        Фабрика сессий для подсистемы webhook'ов; по умолчанию из настроек.
    transport : HttpTransport | None
        HTTP транспорт доставки; по умолчанию httpx клиент.
    cache : redis.asyncio.Redis | None
        Redis для кеша подписчиков.

    Returns
    -------
    fastapi.FastAPI
        Сконфигурированное приложение.
    """

    settings = get_settings()
    setup_logging(settings.log_level, service=settings.app_name)

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_methods_list,
        allow_headers=settings.cors_headers_list,
    )

    app.state.webhooks = WebhookRuntime.build(
        settings,
        session_factory or get_session_factory(),
        transport=transport,
        cache=cache,
    )
    app.state.card_encryptor = CardEncryptor(settings.encryption_key_bytes)

    app.include_router(api_router)
    register_exception_handlers(app)
    return app


app = create_app()


def main() -> None:
    """Запустить HTTP сервер."""

    settings = get_settings()
    uvicorn.run(
        "payment_service.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,
    )
