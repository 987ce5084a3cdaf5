"""Кеширование списка активных подписчиков в Redis (best-effort).

Правило
-------
Ошибки Redis никогда не должны ломать регистрацию или рассылку. Все операции
кеша выполняются best-effort: при исключениях возвращаем None/False и
логируем, а реестр идёт в БД.

Поколения
---------
Список лежит под ключом текущего поколения. Регистрация увеличивает счётчик
поколения (INCR), поэтому запоздалая запись списка, прочитанного до
регистрации, попадает под старый ключ, который больше никто не читает.
"""

from __future__ import annotations

from loguru import logger
from pydantic import TypeAdapter
from redis.asyncio import Redis

from payment_service.db.redis import dumps_json, loads_json
from payment_service.schemas.webhooks import SubscriberOut

ACTIVE_SUBSCRIBERS_KEY = "webhooks:subscribers:active"
SUBSCRIBERS_GENERATION_KEY = "webhooks:subscribers:generation"

_subscribers_adapter = TypeAdapter(list[SubscriberOut])


def active_subscribers_key(generation: int) -> str:
    """Ключ списка активных подписчиков для поколения `generation`."""

    return f"{ACTIVE_SUBSCRIBERS_KEY}:{generation}"


async def get_generation(client: Redis) -> int | None:
    """Текущее поколение кеша.

    Returns
    -------
    int | None
        Номер поколения (0, если счётчика ещё нет) или None при ошибке Redis.
    """

    try:
        value = await client.get(SUBSCRIBERS_GENERATION_KEY)
        return int(value) if value is not None else 0
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "Redis cache get failed for key={key}: {err}",
            key=SUBSCRIBERS_GENERATION_KEY,
            err=str(exc),
        )
        return None


async def get_cached_subscribers(
    client: Redis,
    generation: int,
) -> list[SubscriberOut] | None:
    """Получить список активных подписчиков из Redis.

    Returns
    -------
    list[SubscriberOut] | None
        Список из кеша или None (промах либо ошибка Redis).
    """

    key = active_subscribers_key(generation)
    try:
        value = await client.get(key)
        if value is None:
            return None
        return _subscribers_adapter.validate_python(loads_json(value))
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "Redis cache get failed for key={key}: {err}",
            key=key,
            err=str(exc),
        )
        return None


async def set_cached_subscribers(
    client: Redis,
    generation: int,
    subscribers: list[SubscriberOut],
    ttl_seconds: int,
) -> bool:
    """Сохранить список активных подписчиков поколения `generation` с TTL."""

    key = active_subscribers_key(generation)
    try:
        data = [item.model_dump(mode="json") for item in subscribers]
        await client.setex(key, ttl_seconds, dumps_json(data))
        return True
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "Redis cache set failed for key={key}: {err}",
            key=key,
            err=str(exc),
        )
        return False


async def invalidate_subscribers(client: Redis) -> bool:
    """Сбросить кеш после изменения набора подписчиков (новое поколение)."""

    try:
        await client.incr(SUBSCRIBERS_GENERATION_KEY)
        return True
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "Redis cache invalidate failed for key={key}: {err}",
            key=SUBSCRIBERS_GENERATION_KEY,
            err=str(exc),
        )
        return False
