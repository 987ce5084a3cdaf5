"""Redis клиент и JSON хелперы.

Важно
-----
Redis — *опциональная* зависимость: он только кеширует список активных
подписчиков. При ошибках Redis регистрация и рассылка не должны падать —
источником истины остаётся БД.
"""

from __future__ import annotations

import json

from redis.asyncio import ConnectionPool, Redis

from payment_service.core.config import get_settings

_client: Redis | None = None


def get_redis_client() -> Redis:
    """Получить singleton async Redis клиент (через pool).

    Returns
    -------
    redis.asyncio.Redis
        Клиент Redis.
    """

    global _client  # noqa: PLW0603
    if _client is not None:
        return _client

    settings = get_settings()
    pool = ConnectionPool(
        host=settings.redis_host,
        port=settings.redis_port,
        db=settings.redis_db,
        decode_responses=True,
        max_connections=20,
    )
    _client = Redis(connection_pool=pool)
    return _client


def dumps_json(value: object) -> str:
    """Сериализовать объект в компактную JSON строку.

    Raises
    ------
    TypeError
        Если объект содержит несериализуемые значения.
    ValueError
        Если в данных есть циклические ссылки или NaN.
    """

    return json.dumps(
        value,
        ensure_ascii=False,
        separators=(",", ":"),
        allow_nan=False,
    )


def loads_json(value: str) -> object:
    """Десериализовать JSON строку."""

    return json.loads(value)
