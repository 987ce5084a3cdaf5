"""Модель платежа."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from payment_service.db.base import Base
from payment_service.models.subscriber import BigIntId


class Payment(Base):
    """Принятый платёж.

    Attributes
    ----------
    id : int
        Идентификатор (он же transactionId в уведомлениях).
    first_name, last_name, zip_code : str
        Данные плательщика.
    card_number : str
        base64 шифротекста номера карты (AES-GCM), открытый номер не хранится.
    iv : str
        base64 вектора инициализации.
    created_at : datetime
        Дата создания.
    """

    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)
    zip_code: Mapped[str] = mapped_column(String(20), nullable=False)
    card_number: Mapped[str] = mapped_column(Text, nullable=False)
    iv: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False,
    )
