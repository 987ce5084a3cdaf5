"""Отправка одного webhook'а с ретраями.

Поведение
---------
- На каждую попытку: ровно один вызов транспорта и ровно одна запись в журнал
  (`increment_attempt`, `mark_succeeded` или `mark_failed`).
- 2xx -> SUCCEEDED. Повторяемый отказ -> пауза и новая попытка, пока не
  исчерпан `max_attempts`; затем FAILED с последней классификацией.
- Исключения наружу не выходят (неожиданный сбой закрывает попытку как
  FAILED с `TRANSPORT_CLIENT_ERROR`), кроме отмены (`DeliveryCancelled` /
  `asyncio.CancelledError`): тогда запись остаётся в PENDING.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from loguru import logger

from payment_service.core.config import Settings
from payment_service.core.errors import ErrorKind, WebhookError
from payment_service.schemas.webhooks import SubscriberOut
from payment_service.services.delivery_log import DeliveryLogStore
from payment_service.services.transport import (
    HttpTransport,
    TransportFailure,
    TransportResponse,
    TransportResult,
)
from payment_service.workers.delivery_pool import DeliveryCancelled

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Политика повторов.

    Attributes
    ----------
    max_attempts : int
        Всего попыток, включая первую.
    initial_backoff : float
        Пауза перед второй попыткой, секунды.
    multiplier : float
        Во сколько раз растёт пауза.
    jitter : float
        Доля случайного разброса паузы (0 — без разброса, максимум 0.1).
    per_attempt_timeout : float
        Таймаут одной попытки, секунды.
    """

    max_attempts: int = 3
    initial_backoff: float = 2.0
    multiplier: float = 2.0
    jitter: float = 0.0
    per_attempt_timeout: float = 10.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.initial_backoff < 0:
            raise ValueError("initial_backoff must be >= 0")
        if self.multiplier < 1.0:
            raise ValueError("multiplier must be >= 1.0")
        if not 0.0 <= self.jitter <= 0.1:
            raise ValueError("jitter must be within [0, 0.1]")
        if self.per_attempt_timeout <= 0:
            raise ValueError("per_attempt_timeout must be positive")

    @classmethod
    def from_settings(cls, settings: Settings) -> RetryPolicy:
        """Собрать политику из настроек `DISPATCH_*`."""

        return cls(
            max_attempts=settings.dispatch_max_attempts,
            initial_backoff=settings.dispatch_initial_backoff_seconds,
            multiplier=settings.dispatch_backoff_multiplier,
            jitter=settings.dispatch_backoff_jitter,
            per_attempt_timeout=settings.dispatch_per_attempt_timeout_seconds,
        )

    def backoff(self, completed_attempts: int) -> float:
        """Пауза после `completed_attempts` неудачных попыток.

        При настройках по умолчанию: 2s после первой, 4s после второй.
        """

        delay = self.initial_backoff * self.multiplier ** (completed_attempts - 1)
        if self.jitter:
            delay *= 1.0 + random.uniform(-self.jitter, self.jitter)
        return delay


def classify(result: TransportResult) -> ErrorKind | None:
    """Классифицировать результат транспорта.

    Returns
    -------
    ErrorKind | None
        None для 2xx, иначе вид отказа.
    """

    if isinstance(result, TransportFailure):
        return result.kind
    if 200 <= result.status_code <= 299:
        return None
    return ErrorKind.NON_2XX_RESPONSE


def summarize(kind: ErrorKind, result: TransportResult) -> str:
    """Сводка отказа для `response_body` журнала."""

    if isinstance(result, TransportResponse):
        return f"{kind.error_code.value}: HTTP {result.status_code}: {result.body}"
    return f"{kind.error_code.value}: {result.summary}"


class Sender:
    """Доставка webhook'а одному подписчику.

    Parameters
    ----------
    transport : HttpTransport
        HTTP транспорт.
    store : DeliveryLogStore
        Журнал доставки.
    policy : RetryPolicy
        Политика повторов.
    sleep : Callable[[float], Awaitable[None]]
        Пауза между попытками. Пул доставки передаёт прерываемую паузу.
    """

    def __init__(
        self,
        transport: HttpTransport,
        store: DeliveryLogStore,
        policy: RetryPolicy,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._store = store
        self._policy = policy
        self._sleep = sleep

    async def send(
        self,
        subscriber: SubscriberOut,
        attempt_id: int,
        payload: str,
    ) -> None:
        """Доставить `payload` подписчику, обновляя попытку `attempt_id`."""

        try:
            await self._run(subscriber, attempt_id, payload)
        except DeliveryCancelled:
            raise
        except WebhookError as exc:
            logger.error(
                "Webhook delivery aborted, journal unavailable "
                "attempt_id={id} subscriber_id={sid}: {err}",
                id=attempt_id,
                sid=subscriber.id,
                err=str(exc),
            )
        except Exception as exc:  # noqa: BLE001
            logger.opt(exception=exc).error(
                "Webhook delivery crashed attempt_id={id} subscriber_id={sid}",
                id=attempt_id,
                sid=subscriber.id,
            )
            await self._fail_unexpected(attempt_id, exc)

    async def _fail_unexpected(self, attempt_id: int, exc: Exception) -> None:
        kind = ErrorKind.TRANSPORT_CLIENT_ERROR
        summary = f"{kind.error_code.value}: {type(exc).__name__}: {exc}"
        try:
            await self._store.mark_failed(attempt_id, None, summary)
        except WebhookError as store_exc:
            logger.error(
                "Failed to close crashed delivery attempt_id={id}: {err}",
                id=attempt_id,
                err=str(store_exc),
            )

    async def _run(
        self,
        subscriber: SubscriberOut,
        attempt_id: int,
        payload: str,
    ) -> None:
        policy = self._policy
        attempt = 1
        while True:
            result = await self._transport.post(
                subscriber.url,
                payload,
                policy.per_attempt_timeout,
            )
            kind = classify(result)
            http_status = (
                result.status_code if isinstance(result, TransportResponse) else None
            )

            if kind is None:
                await self._store.mark_succeeded(attempt_id, http_status, result.body)
                logger.info(
                    "Webhook delivered attempt_id={id} subscriber_id={sid} "
                    "status={status} attempts={n}",
                    id=attempt_id,
                    sid=subscriber.id,
                    status=http_status,
                    n=attempt,
                )
                return

            summary = summarize(kind, result)
            if not kind.retryable or attempt >= policy.max_attempts:
                await self._store.mark_failed(attempt_id, http_status, summary)
                logger.warning(
                    "Webhook permanently failed attempt_id={id} subscriber_id={sid} "
                    "attempts={n} reason={reason}",
                    id=attempt_id,
                    sid=subscriber.id,
                    n=attempt,
                    reason=summary,
                )
                return

            await self._store.increment_attempt(attempt_id, http_status, summary)
            delay = policy.backoff(attempt)
            logger.info(
                "Webhook attempt {n}/{max} failed attempt_id={id} kind={kind}, "
                "retry in {delay:.2f}s",
                n=attempt,
                max=policy.max_attempts,
                id=attempt_id,
                kind=kind.value,
                delay=delay,
            )
            await self._sleep(delay)
            attempt += 1
