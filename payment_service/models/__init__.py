"""ORM модели. Импорт пакета регистрирует все таблицы в `Base.metadata`."""

from payment_service.models.delivery_attempt import (
    DeliveryAttempt,
    DeliveryDirection,
    DeliveryStatus,
)
from payment_service.models.payment import Payment
from payment_service.models.subscriber import Subscriber

__all__ = [
    "DeliveryAttempt",
    "DeliveryDirection",
    "DeliveryStatus",
    "Payment",
    "Subscriber",
]
