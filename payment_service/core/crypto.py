"""Шифрование номеров карт (AES-GCM).

Формат хранения
---------------
Номер карты шифруется AES-GCM со случайным 96-битным IV на каждую карту.
В БД сохраняются base64(ciphertext+tag) и base64(iv) в отдельных колонках.
Ключ приходит из `ENCRYPTION_SECRET_KEY` (base64, 128/192/256 бит).
"""

from __future__ import annotations

import base64
import binascii
import os
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from loguru import logger

from payment_service.core.errors import ErrorCode, PaymentError

_IV_BYTES = 12


@dataclass(frozen=True)
class EncryptedCard:
    """Зашифрованный номер карты.

    Attributes
    ----------
    ciphertext : str
        base64 шифротекста вместе с тегом аутентификации.
    iv : str
        base64 вектора инициализации.
    """

    ciphertext: str
    iv: str


class CardEncryptor:
    """Шифратор номеров карт.

    Parameters
    ----------
    key : bytes
        Ключ AES длиной 16, 24 или 32 байта.
    """

    def __init__(self, key: bytes) -> None:
        if len(key) not in (16, 24, 32):
            raise ValueError("AES key must be 16, 24 or 32 bytes long")
        self._aead = AESGCM(key)
        logger.info("Card encryptor initialized key_bits={bits}", bits=len(key) * 8)

    def encrypt_card(self, card_number: str) -> EncryptedCard:
        """Зашифровать номер карты.

        Raises
        ------
        PaymentError
            `CARD_ENCRYPTION_ERROR`, если шифрование не удалось.
        """

        try:
            iv = os.urandom(_IV_BYTES)
            encrypted = self._aead.encrypt(iv, card_number.encode("utf-8"), None)
        except (TypeError, ValueError, OverflowError) as exc:
            logger.error("Failed to encrypt card number: {err}", err=str(exc))
            raise PaymentError(ErrorCode.CARD_ENCRYPTION_ERROR, str(exc)) from exc
        return EncryptedCard(
            ciphertext=base64.b64encode(encrypted).decode("ascii"),
            iv=base64.b64encode(iv).decode("ascii"),
        )

    def decrypt_card(self, ciphertext: str, iv: str) -> str:
        """Расшифровать номер карты.

        Raises
        ------
        PaymentError
            `CARD_ENCRYPTION_ERROR`, если данные повреждены или ключ не тот.
        """

        try:
            nonce = base64.b64decode(iv, validate=True)
            data = base64.b64decode(ciphertext, validate=True)
            plain = self._aead.decrypt(nonce, data, None)
        except (binascii.Error, InvalidTag, ValueError) as exc:
            raise PaymentError(
                ErrorCode.CARD_ENCRYPTION_ERROR,
                "decryption failed",
            ) from exc
        return plain.decode("utf-8")
