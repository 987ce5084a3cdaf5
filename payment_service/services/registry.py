"""Реестр подписчиков webhook'ов."""

from __future__ import annotations

from datetime import datetime, timezone

from loguru import logger
from redis.asyncio import Redis
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payment_service.core.errors import ErrorCode, ErrorKind, WebhookError
from payment_service.models.subscriber import Subscriber
from payment_service.schemas.webhooks import SubscriberOut, normalize_webhook_url
from payment_service.services.subscriber_cache import (
    get_cached_subscribers,
    get_generation,
    invalidate_subscribers,
    set_cached_subscribers,
)


class SubscriberRegistry:
    """Регистрация и перечисление подписчиков.

    Уникальность активного URL держит частичный уникальный индекс
    `uq_subscribers_url_active`: из двух одновременных регистраций одного URL
    одна получит IntegrityError и превратится в `DUPLICATE_SUBSCRIBER`.

    Parameters
    ----------
    session_factory : async_sessionmaker[AsyncSession]
        Фабрика сессий БД.
    cache : redis.asyncio.Redis | None
        Redis для кеша активного списка; None — без кеша.
    cache_ttl_seconds : int
        TTL записи кеша.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        cache: Redis | None = None,
        cache_ttl_seconds: int = 60,
    ) -> None:
        self._session_factory = session_factory
        self._cache = cache
        self._cache_ttl_seconds = cache_ttl_seconds

    async def register(self, url: str) -> SubscriberOut:
        """Зарегистрировать активного подписчика.

        Parameters
        ----------
        url : str
            Абсолютный http/https URL.

        Returns
        -------
        SubscriberOut
            Созданный подписчик.

        Raises
        ------
        WebhookError
            `VALIDATION_ERROR` для неверного URL,
            `WEBHOOK_ALREADY_EXISTS` если активный подписчик с таким URL уже есть,
            `DATABASE_ERROR` если БД недоступна.
        """

        try:
            normalized = normalize_webhook_url(url)
        except ValueError as exc:
            raise WebhookError(
                ErrorCode.VALIDATION_ERROR,
                str(exc),
                field_errors={"url": str(exc)},
            ) from exc

        try:
            async with self._session_factory() as db:
                existing = await db.scalar(
                    select(Subscriber.id)
                    .where(Subscriber.url == normalized)
                    .where(Subscriber.active.is_(True)),
                )
                if existing is not None:
                    raise _duplicate(normalized)

                subscriber = Subscriber(
                    url=normalized,
                    active=True,
                    created_at=datetime.now(timezone.utc),
                )
                db.add(subscriber)
                try:
                    await db.commit()
                except IntegrityError as exc:
                    await db.rollback()
                    raise _duplicate(normalized) from exc
                result = SubscriberOut.model_validate(subscriber)
        except SQLAlchemyError as exc:
            logger.error(
                "Subscriber registration failed url={url}: {err}",
                url=normalized,
                err=str(exc),
            )
            raise WebhookError.from_kind(ErrorKind.STORE_UNAVAILABLE, str(exc)) from exc

        if self._cache is not None:
            await invalidate_subscribers(self._cache)
        logger.info(
            "Subscriber registered id={id} url={url}",
            id=result.id,
            url=result.url,
        )
        return result

    async def list_active(self) -> list[SubscriberOut]:
        """Вернуть активных подписчиков, упорядоченных по id.

        Raises
        ------
        WebhookError
            `DATABASE_ERROR`, если БД недоступна.
        """

        # Поколение читаем до запроса в БД: если между ними пройдёт
        # регистрация, наш список уйдёт под устаревший ключ.
        generation = None
        if self._cache is not None:
            generation = await get_generation(self._cache)
        if generation is not None:
            cached = await get_cached_subscribers(self._cache, generation)
            if cached is not None:
                return cached

        try:
            async with self._session_factory() as db:
                rows = await db.scalars(
                    select(Subscriber)
                    .where(Subscriber.active.is_(True))
                    .order_by(Subscriber.id.asc()),
                )
                subscribers = [SubscriberOut.model_validate(row) for row in rows]
        except SQLAlchemyError as exc:
            raise WebhookError.from_kind(ErrorKind.STORE_UNAVAILABLE, str(exc)) from exc

        if generation is not None:
            await set_cached_subscribers(
                self._cache,
                generation,
                subscribers,
                self._cache_ttl_seconds,
            )
        return subscribers


def _duplicate(url: str) -> WebhookError:
    logger.info("Duplicate subscriber registration url={url}", url=url)
    return WebhookError.from_kind(
        ErrorKind.DUPLICATE_SUBSCRIBER,
        f"active subscriber already exists for {url}",
    )
