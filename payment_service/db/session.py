"""Сессия БД и зависимости для FastAPI (async).

Notes
-----
Все обращения к БД идут через SQLAlchemy AsyncSession: и обработчики HTTP, и
воркеры доставки живут в одном event loop, блокирующий драйвер остановил бы
их всех.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from functools import lru_cache

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from payment_service.core.config import get_settings


@lru_cache(maxsize=1)
def get_async_engine() -> AsyncEngine:
    """Создать и закэшировать SQLAlchemy AsyncEngine.

    Returns
    -------
    sqlalchemy.ext.asyncio.AsyncEngine
        Async engine для подключения к БД.
    """

    settings = get_settings()
    return create_async_engine(settings.sqlalchemy_async_url, pool_pre_ping=True)


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Собрать фабрику сессий с настройками проекта."""

    return async_sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


@lru_cache(maxsize=1)
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Фабрика сессий поверх общего engine."""

    return make_session_factory(get_async_engine())


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: открыть async сессию БД на запрос.

    Yields
    ------
    sqlalchemy.ext.asyncio.AsyncSession
        Async сессия БД.
    """

    async with get_session_factory()() as db:
        yield db
