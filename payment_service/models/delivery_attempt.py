"""Журнал попыток доставки webhook'ов.

Назначение
----------
Одна запись на пару (рассылка, подписчик). Запись создаётся в PENDING до
первой отправки и мутируется на каждой попытке, пока не станет терминальной
(SUCCEEDED или FAILED). Входящие webhook'и пишутся сюда же с
`direction=INCOMING` и статусом RECEIVED.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from payment_service.db.base import Base
from payment_service.models.subscriber import BigIntId


class DeliveryDirection(str, Enum):
    """Направление webhook'а."""

    OUTGOING = "OUTGOING"
    INCOMING = "INCOMING"


class DeliveryStatus(str, Enum):
    """Статус попытки доставки."""

    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    RECEIVED = "RECEIVED"

    @property
    def terminal(self) -> bool:
        """После этого статуса запись больше не меняется."""

        return self is not DeliveryStatus.PENDING


class DeliveryAttempt(Base):
    """Аудит-запись доставки одного события одному подписчику.

    Attributes
    ----------
    id : int
        Идентификатор записи.
    subscriber_id : int | None
        Подписчик (None для входящих).
    direction : str
        OUTGOING или INCOMING, не меняется.
    url : str
        Снимок URL на момент рассылки.
    payload : str
        JSON тело запроса, не меняется.
    status : str
        PENDING -> SUCCEEDED | FAILED; RECEIVED для входящих.
    last_http_status : int | None
        HTTP статус последней попытки (None при транспортной ошибке).
    retry_count : int
        Число завершённых попыток сверх первой.
    response_body : str | None
        Тело ответа или сводка ошибки (обрезается хранилищем).
    sent_at : datetime | None
        Время первой отправки (только OUTGOING).
    received_at : datetime | None
        Время приёма (только INCOMING).
    created_at : datetime
        Дата создания записи.
    """

    __tablename__ = "delivery_attempts"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    subscriber_id: Mapped[int | None] = mapped_column(
        ForeignKey("subscribers.id"),
        nullable=True,
        index=True,
    )
    direction: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    url: Mapped[str] = mapped_column(String(512), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        server_default=text("'PENDING'"),
        index=True,
    )
    last_http_status: Mapped[int | None] = mapped_column(Integer, nullable=True)
    retry_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        server_default=text("0"),
    )
    response_body: Mapped[str | None] = mapped_column(Text, nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    received_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
