"""Схемы для платежей."""

from __future__ import annotations

import re

from pydantic import Field, field_validator

from payment_service.schemas.base import CamelModel

_CARD_NUMBER_RE = re.compile(r"\d{13,19}")


def _not_blank(value: str, label: str) -> str:
    if not value.strip():
        raise ValueError(f"{label} cannot be blank")
    return value.strip()


class PaymentRequest(CamelModel):
    """Запрос на оплату картой.

    Attributes
    ----------
    first_name : str
        Имя (до 50 символов).
    last_name : str
        Фамилия (до 50 символов).
    zip_code : str
        Почтовый индекс (до 20 символов).
    card_number : str
        Номер карты, 13–19 цифр. В БД попадает только в зашифрованном виде.
    """

    first_name: str = Field(max_length=50)
    last_name: str = Field(max_length=50)
    zip_code: str = Field(max_length=20)
    card_number: str

    @field_validator("first_name")
    @classmethod
    def validate_first_name(cls, value: str) -> str:
        return _not_blank(value, "First name")

    @field_validator("last_name")
    @classmethod
    def validate_last_name(cls, value: str) -> str:
        return _not_blank(value, "Last name")

    @field_validator("zip_code")
    @classmethod
    def validate_zip_code(cls, value: str) -> str:
        return _not_blank(value, "ZIP code")

    @field_validator("card_number")
    @classmethod
    def validate_card_number(cls, value: str) -> str:
        """Проверить, что номер карты — от 13 до 19 цифр."""

        if not _CARD_NUMBER_RE.fullmatch(value):
            raise ValueError("Card number must be between 13 and 19 digits")
        return value


class PaymentResponse(CamelModel):
    """Ответ на платёж."""

    status: str
    transaction_id: str
    error_message: str | None = None
