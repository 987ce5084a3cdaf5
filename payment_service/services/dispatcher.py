"""Рассылка события об исходе платежа всем активным подписчикам.

Поведение
---------
- Снимок активных подписчиков берётся один раз на событие.
- Событие сериализуется один раз; при ошибке сериализации не пишется ничего.
- На каждого подписчика: PENDING запись в журнале, затем работа в пул.
- Сбой по одному подписчику не мешает остальным.
- `trigger` не ждёт HTTP и никогда не бросает исключений производителю:
  любой сбой рассылки только логируется.
"""

from __future__ import annotations

from loguru import logger

from payment_service.core.errors import DispatchQueueFull, ErrorKind, WebhookError
from payment_service.db.redis import dumps_json
from payment_service.schemas.webhooks import DispatchEvent
from payment_service.services.delivery_log import DeliveryLogStore
from payment_service.services.registry import SubscriberRegistry
from payment_service.workers.delivery_pool import DeliveryJob, DeliveryPool


class Dispatcher:
    """Fan-out события по подписчикам через пул доставки."""

    def __init__(
        self,
        registry: SubscriberRegistry,
        store: DeliveryLogStore,
        pool: DeliveryPool,
    ) -> None:
        self._registry = registry
        self._store = store
        self._pool = pool

    async def trigger(self, event: DispatchEvent) -> None:
        """Разослать событие.

        Возвращает управление, как только PENDING записи созданы и работы
        поставлены в очередь.
        """

        try:
            await self.dispatch(event)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Webhook dispatch failed transaction_id={t}: {err}",
                t=event.transaction_id,
                err=str(exc),
            )

    async def dispatch(self, event: DispatchEvent) -> int:
        """Разослать событие и вернуть число поставленных в очередь доставок.

        Raises
        ------
        WebhookError
            `WEBHOOK_PAYLOAD_SERIALIZATION_FAILED`, если событие не
            сериализуется; `DATABASE_ERROR`, если недоступен реестр.
        """

        subscribers = await self._registry.list_active()
        if not subscribers:
            logger.debug(
                "No active subscribers for transaction_id={t}",
                t=event.transaction_id,
            )
            return 0

        try:
            payload = dumps_json(event.to_payload())
        except (TypeError, ValueError) as exc:
            raise WebhookError.from_kind(
                ErrorKind.SERIALIZATION_FAILED,
                str(exc),
            ) from exc

        queued = 0
        for subscriber in subscribers:
            try:
                attempt_id = await self._store.create_pending(
                    subscriber.id,
                    subscriber.url,
                    payload,
                )
            except WebhookError as exc:
                logger.warning(
                    "Failed to record delivery subscriber_id={sid}: {err}",
                    sid=subscriber.id,
                    err=str(exc),
                )
                continue

            try:
                self._pool.submit(DeliveryJob(subscriber, attempt_id, payload))
            except DispatchQueueFull as exc:
                logger.error(
                    "Delivery queue overflow attempt_id={id} "
                    "subscriber_id={sid}: {err}",
                    id=attempt_id,
                    sid=subscriber.id,
                    err=str(exc),
                )
                await self._fail_unqueued(attempt_id, exc)
                continue
            queued += 1

        logger.info(
            "Webhook dispatch transaction_id={t} subscribers={n} queued={q}",
            t=event.transaction_id,
            n=len(subscribers),
            q=queued,
        )
        return queued

    async def _fail_unqueued(self, attempt_id: int, exc: DispatchQueueFull) -> None:
        # Работа не принята пулом: закрываем запись, чтобы она не висела в PENDING.
        try:
            await self._store.mark_failed(attempt_id, None, f"{exc.code.value}: {exc}")
        except WebhookError as store_exc:
            logger.warning(
                "Failed to close unqueued attempt_id={id}: {err}",
                id=attempt_id,
                err=str(store_exc),
            )
