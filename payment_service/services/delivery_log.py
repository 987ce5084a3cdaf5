"""Хранилище журнала доставки webhook'ов.

Правила
-------
- Это единственный код, который меняет строки `delivery_attempts`.
- Каждая операция — отдельная короткая транзакция над одной строкой.
- Переходы из PENDING делаются условным UPDATE (`WHERE status = 'PENDING'`),
  поэтому конкурирующие мутации одной записи сериализуются базой, а
  терминальная запись больше не меняется: такой вызов возвращает False.
- `response_body` обрезается до `RESPONSE_BODY_LIMIT` символов.
- Ошибки БД поднимаются как `WebhookError(STORE_UNAVAILABLE)`.
"""

from __future__ import annotations

from datetime import datetime, timezone

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payment_service.core.errors import ErrorKind, WebhookError
from payment_service.models.delivery_attempt import (
    DeliveryAttempt,
    DeliveryDirection,
    DeliveryStatus,
)

RESPONSE_BODY_LIMIT = 64 * 1024
INCOMING_RESPONSE_BODY = "Webhook received successfully"


def truncate_body(body: str | None, limit: int = RESPONSE_BODY_LIMIT) -> str | None:
    """Обрезать тело ответа до лимита хранения."""

    if body is None or len(body) <= limit:
        return body
    return body[:limit]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class DeliveryLogStore:
    """Журнал попыток доставки поверх async SQLAlchemy.

    Parameters
    ----------
    session_factory : async_sessionmaker[AsyncSession]
        Фабрика сессий; на каждую операцию открывается своя сессия.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_pending(
        self,
        subscriber_id: int,
        url: str,
        payload: str,
    ) -> int:
        """Создать запись OUTGOING в статусе PENDING.

        Returns
        -------
        int
            Идентификатор попытки.
        """

        attempt = DeliveryAttempt(
            subscriber_id=subscriber_id,
            direction=DeliveryDirection.OUTGOING.value,
            url=url,
            payload=payload,
            status=DeliveryStatus.PENDING.value,
            retry_count=0,
            sent_at=_now(),
        )
        return await self._insert(attempt)

    async def record_incoming(self, url: str, payload: str) -> int:
        """Записать принятый входящий webhook (RECEIVED, HTTP 200)."""

        attempt = DeliveryAttempt(
            subscriber_id=None,
            direction=DeliveryDirection.INCOMING.value,
            url=url,
            payload=payload,
            status=DeliveryStatus.RECEIVED.value,
            last_http_status=200,
            retry_count=0,
            response_body=INCOMING_RESPONSE_BODY,
            received_at=_now(),
        )
        attempt_id = await self._insert(attempt)
        logger.info(
            "Incoming webhook recorded id={id} url={url}",
            id=attempt_id,
            url=url,
        )
        return attempt_id

    async def mark_succeeded(
        self,
        attempt_id: int,
        http_status: int,
        response_body: str | None,
    ) -> bool:
        """Перевести попытку в SUCCEEDED.

        Returns
        -------
        bool
            False, если запись уже терминальная (или не найдена).
        """

        return await self._transition(
            attempt_id,
            status=DeliveryStatus.SUCCEEDED.value,
            last_http_status=http_status,
            response_body=truncate_body(response_body),
        )

    async def mark_failed(
        self,
        attempt_id: int,
        last_http_status: int | None,
        error_summary: str,
    ) -> bool:
        """Перевести попытку в FAILED, `retry_count` не меняется."""

        return await self._transition(
            attempt_id,
            status=DeliveryStatus.FAILED.value,
            last_http_status=last_http_status,
            response_body=truncate_body(error_summary),
        )

    async def increment_attempt(
        self,
        attempt_id: int,
        last_http_status: int | None,
        last_response_or_error: str | None,
    ) -> bool:
        """Учесть неуспешную нетерминальную попытку: `retry_count += 1`."""

        return await self._transition(
            attempt_id,
            retry_count=DeliveryAttempt.retry_count + 1,
            last_http_status=last_http_status,
            response_body=truncate_body(last_response_or_error),
        )

    async def get(self, attempt_id: int) -> DeliveryAttempt | None:
        """Прочитать запись журнала."""

        try:
            async with self._session_factory() as db:
                return await db.get(DeliveryAttempt, attempt_id)
        except SQLAlchemyError as exc:
            raise WebhookError.from_kind(ErrorKind.STORE_UNAVAILABLE, str(exc)) from exc

    async def _insert(self, attempt: DeliveryAttempt) -> int:
        try:
            async with self._session_factory() as db:
                db.add(attempt)
                await db.commit()
                return attempt.id
        except SQLAlchemyError as exc:
            logger.error("Delivery log insert failed: {err}", err=str(exc))
            raise WebhookError.from_kind(ErrorKind.STORE_UNAVAILABLE, str(exc)) from exc

    async def _transition(self, attempt_id: int, **values: object) -> bool:
        stmt = (
            update(DeliveryAttempt)
            .where(DeliveryAttempt.id == attempt_id)
            .where(DeliveryAttempt.status == DeliveryStatus.PENDING.value)
            .values(**values)
        )
        try:
            async with self._session_factory() as db:
                result = await db.execute(stmt)
                await db.commit()
                if result.rowcount == 1:
                    return True
                current = await db.scalar(
                    select(DeliveryAttempt.status)
                    .where(DeliveryAttempt.id == attempt_id),
                )
        except SQLAlchemyError as exc:
            logger.error(
                "Delivery log update failed id={id}: {err}",
                id=attempt_id,
                err=str(exc),
            )
            raise WebhookError.from_kind(ErrorKind.STORE_UNAVAILABLE, str(exc)) from exc

        logger.warning(
            "Delivery attempt id={id} not updated, current status={status}",
            id=attempt_id,
            status=current,
        )
        return False
