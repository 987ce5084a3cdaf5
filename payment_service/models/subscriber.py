"""Модель подписчика webhook'ов."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from payment_service.db.base import Base

# BIGINT в Postgres; в SQLite автоинкремент работает только у INTEGER PRIMARY KEY.
BigIntId = BigInteger().with_variant(Integer, "sqlite")


class Subscriber(Base):
    """Зарегистрированный HTTP endpoint, получающий уведомления о платежах.

    Attributes
    ----------
    id : int
        Монотонный идентификатор.
    url : str
        Нормализованный абсолютный http/https URL (неизменяем).
    active : bool
        Получает ли подписчик уведомления.
    created_at : datetime
        Дата регистрации.
    """

    __tablename__ = "subscribers"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    url: Mapped[str] = mapped_column(String(255), nullable=False)
    active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("true"),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )

    __table_args__ = (
        # Не больше одного активного подписчика на URL.
        Index(
            "uq_subscribers_url_active",
            "url",
            unique=True,
            postgresql_where=text("active"),
            sqlite_where=text("active"),
        ),
    )
