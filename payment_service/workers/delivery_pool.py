"""Ограниченный пул воркеров доставки webhook'ов.

Поведение
---------
- Очередь работ `(подписчик, attempt_id, payload)` ограничена
  `DISPATCH_QUEUE_MAX_SIZE`; переполнение не глотается, а поднимается как
  `DispatchQueueFull`.
- `DISPATCH_WORKER_POOL_SIZE` воркеров (asyncio задач) берут работу из очереди
  и прогоняют для неё Sender до терминального статуса.
- При остановке паузы между попытками прерываются сразу (запись остаётся в
  PENDING), а идущие HTTP вызовы дорабатывают до своего таймаута в пределах
  `DISPATCH_SHUTDOWN_GRACE_MS`.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from loguru import logger

from payment_service.core.errors import DispatchQueueFull
from payment_service.schemas.webhooks import SubscriberOut


class DeliveryCancelled(Exception):
    """Пауза между попытками прервана остановкой пула."""


@dataclass(frozen=True)
class DeliveryJob:
    """Единица работы для воркера."""

    subscriber: SubscriberOut
    attempt_id: int
    payload: str


DeliveryHandler = Callable[[SubscriberOut, int, str], Awaitable[None]]


class ShutdownSignal:
    """Сигнал остановки, который прерывает паузы между попытками."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def is_set(self) -> bool:
        return self._event.is_set()

    def set(self) -> None:
        self._event.set()

    async def sleep(self, seconds: float) -> None:
        """Поспать `seconds` или до сигнала остановки.

        Raises
        ------
        DeliveryCancelled
            Если сигнал пришёл раньше, чем истекла пауза.
        """

        if self._event.is_set():
            raise DeliveryCancelled("shutdown requested")
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise DeliveryCancelled("shutdown requested")


class DeliveryPool:
    """Пул воркеров над ограниченной очередью.

    Parameters
    ----------
    handler : Callable[[SubscriberOut, int, str], Awaitable[None]]
        Обработчик работы (обычно `Sender.send`).
    signal : ShutdownSignal
        Общий с Sender'ом сигнал остановки.
    size : int
        Число воркеров.
    max_queue : int
        Ёмкость очереди.
    shutdown_grace : float
        Сколько секунд ждать занятые воркеры при остановке.
    """

    def __init__(
        self,
        handler: DeliveryHandler,
        signal: ShutdownSignal,
        *,
        size: int = 16,
        max_queue: int = 1000,
        shutdown_grace: float = 11.0,
    ) -> None:
        if size < 1:
            raise ValueError("size must be >= 1")
        if max_queue < 1:
            raise ValueError("max_queue must be >= 1")
        self._handler = handler
        self._signal = signal
        self._size = size
        self._max_queue = max_queue
        self._shutdown_grace = shutdown_grace
        self._queue: asyncio.Queue[DeliveryJob] = asyncio.Queue(maxsize=max_queue)
        self._workers: list[asyncio.Task[None]] = []
        self._busy: set[asyncio.Task[None]] = set()

    @property
    def depth(self) -> int:
        """Сколько работ ждут свободного воркера."""

        return self._queue.qsize()

    @property
    def in_flight(self) -> int:
        """Сколько доставок выполняется прямо сейчас."""

        return len(self._busy)

    @property
    def running(self) -> bool:
        return bool(self._workers) and not self._signal.is_set

    async def start(self) -> None:
        """Запустить воркеры в текущем event loop."""

        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"webhook-worker-{index}")
            for index in range(self._size)
        ]
        logger.info(
            "Delivery pool started workers={n} queue={q}",
            n=self._size,
            q=self._max_queue,
        )

    def submit(self, job: DeliveryJob) -> None:
        """Поставить работу в очередь без ожидания.

        Raises
        ------
        DispatchQueueFull
            Если очередь заполнена или пул останавливается.
        """

        if self._signal.is_set:
            raise DispatchQueueFull(self._max_queue)
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull as exc:
            raise DispatchQueueFull(self._max_queue) from exc

    async def join(self) -> None:
        """Дождаться, пока все поставленные работы будут обработаны."""

        await self._queue.join()

    async def stop(self) -> None:
        """Остановить пул.

        Свободные воркеры отменяются сразу. Занятые получают сигнал (паузы
        прерываются) и `shutdown_grace` секунд на текущий HTTP вызов; после
        этого отменяются принудительно.
        """

        if not self._workers:
            return
        logger.info("Stopping delivery pool in_flight={n}", n=self.in_flight)
        self._signal.set()

        for task in self._workers:
            if task not in self._busy:
                task.cancel()

        busy = [task for task in self._workers if task in self._busy]
        if busy:
            _, pending = await asyncio.wait(busy, timeout=self._shutdown_grace)
            for task in pending:
                task.cancel()

        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        left = self._queue.qsize()
        if left:
            logger.warning(
                "Delivery pool stopped, {n} queued deliveries left PENDING",
                n=left,
            )
        else:
            logger.info("Delivery pool stopped")

    async def _worker(self, index: int) -> None:
        current = asyncio.current_task()
        while not self._signal.is_set:
            job = await self._queue.get()
            if current is not None:
                self._busy.add(current)
            try:
                await self._handler(job.subscriber, job.attempt_id, job.payload)
            except DeliveryCancelled:
                logger.info(
                    "Delivery interrupted by shutdown attempt_id={id}, left PENDING",
                    id=job.attempt_id,
                )
            except asyncio.CancelledError:
                logger.warning(
                    "Delivery cancelled attempt_id={id}, left PENDING",
                    id=job.attempt_id,
                )
                raise
            except Exception as exc:  # noqa: BLE001
                logger.opt(exception=exc).error(
                    "Delivery worker {i} failed attempt_id={id}: {err}",
                    i=index,
                    id=job.attempt_id,
                    err=str(exc),
                )
            finally:
                if current is not None:
                    self._busy.discard(current)
                self._queue.task_done()
        logger.debug("Delivery worker {i} exited", i=index)
