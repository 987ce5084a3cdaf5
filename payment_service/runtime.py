"""Корневой объект подсистемы webhook'ов.

Собирает реестр, журнал, транспорт, Sender, пул и Dispatcher в одном месте.
Создаётся в `create_app`, запускается и останавливается в lifespan и
доступен обработчикам как `app.state.webhooks`.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payment_service.core.config import Settings
from payment_service.db.redis import get_redis_client
from payment_service.services.delivery_log import DeliveryLogStore
from payment_service.services.dispatcher import Dispatcher
from payment_service.services.registry import SubscriberRegistry
from payment_service.services.sender import RetryPolicy, Sender
from payment_service.services.transport import HttpTransport
from payment_service.workers.delivery_pool import DeliveryPool, ShutdownSignal


@dataclass
class WebhookRuntime:
    """Подсистема доставки webhook'ов."""

    registry: SubscriberRegistry
    store: DeliveryLogStore
    transport: HttpTransport
    sender: Sender
    pool: DeliveryPool
    dispatcher: Dispatcher

    @classmethod
    def build(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        transport: HttpTransport | None = None,
        cache: Redis | None = None,
    ) -> WebhookRuntime:
        """Собрать подсистему по настройкам.

        Parameters
        ----------
        settings : Settings
            Настройки приложения.
        session_factory : async_sessionmaker[AsyncSession]
            Фабрика сессий БД.
        transport : HttpTransport | None
            Транспорт; по умолчанию httpx клиент с пулом под число воркеров.
        cache : redis.asyncio.Redis | None
            Redis для кеша подписчиков; по умолчанию берётся из настроек,
            если `SUBSCRIBER_CACHE_ENABLED=true`.
        """

        if cache is None and settings.subscriber_cache_enabled:
            cache = get_redis_client()
        if transport is None:
            transport = HttpTransport(
                max_connections=settings.dispatch_worker_pool_size,
            )

        registry = SubscriberRegistry(
            session_factory,
            cache=cache,
            cache_ttl_seconds=settings.subscriber_cache_ttl_seconds,
        )
        store = DeliveryLogStore(session_factory)
        signal = ShutdownSignal()
        sender = Sender(
            transport,
            store,
            RetryPolicy.from_settings(settings),
            sleep=signal.sleep,
        )
        pool = DeliveryPool(
            sender.send,
            signal,
            size=settings.dispatch_worker_pool_size,
            max_queue=settings.dispatch_queue_max_size,
            shutdown_grace=settings.dispatch_shutdown_grace_seconds,
        )
        dispatcher = Dispatcher(registry, store, pool)
        return cls(
            registry=registry,
            store=store,
            transport=transport,
            sender=sender,
            pool=pool,
            dispatcher=dispatcher,
        )

    async def start(self) -> None:
        await self.pool.start()

    async def stop(self) -> None:
        """Остановить пул и закрыть HTTP соединения."""

        try:
            await self.pool.stop()
        finally:
            await self.transport.aclose()
        logger.info("Webhook runtime stopped")
