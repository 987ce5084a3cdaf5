"""Бизнес-логика платежей."""

from __future__ import annotations

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from payment_service.core.crypto import CardEncryptor
from payment_service.core.errors import ErrorCode, PaymentError
from payment_service.models.payment import Payment
from payment_service.schemas.payments import PaymentRequest, PaymentResponse
from payment_service.schemas.webhooks import DispatchEvent
from payment_service.services.dispatcher import Dispatcher

STATUS_SUCCESS = "SUCCESS"


def build_encrypted_payment(
    request: PaymentRequest,
    encryptor: CardEncryptor,
) -> Payment:
    """Собрать платёж с зашифрованным номером карты."""

    encrypted = encryptor.encrypt_card(request.card_number)
    return Payment(
        first_name=request.first_name,
        last_name=request.last_name,
        zip_code=request.zip_code,
        card_number=encrypted.ciphertext,
        iv=encrypted.iv,
    )


def authorize_with_gateway(payment: Payment) -> bool:  # noqa: ARG001
    """Авторизовать платёж у платёжного шлюза.

    Notes
    -----
    Интеграции со шлюзом нет, любой платёж считается одобренным.
    """

    return True


async def save_payment(db: AsyncSession, payment: Payment) -> Payment:
    """Сохранить платёж.

    Raises
    ------
    PaymentError
        `DATABASE_ERROR`, если запись не удалась.
    """

    try:
        db.add(payment)
        await db.commit()
        await db.refresh(payment)
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Database error during payment: {err}", err=str(exc))
        raise PaymentError(ErrorCode.DATABASE_ERROR, str(exc)) from exc
    return payment


async def process_payment(
    db: AsyncSession,
    request: PaymentRequest,
    *,
    encryptor: CardEncryptor,
    dispatcher: Dispatcher,
) -> PaymentResponse:
    """Провести платёж и разослать уведомление подписчикам.

    Parameters
    ----------
    db : sqlalchemy.ext.asyncio.AsyncSession
        Async сессия БД.
    request : PaymentRequest
        Данные платежа.
    encryptor : CardEncryptor
        Шифратор номеров карт.
    dispatcher : Dispatcher
        Рассылка webhook'ов.

    Returns
    -------
    PaymentResponse
        Статус и transactionId.

    Notes
    -----
    Рассылка webhook'ов никогда не роняет платёж: `Dispatcher.trigger` только
    логирует свои ошибки.
    """

    payment = build_encrypted_payment(request, encryptor)
    if not authorize_with_gateway(payment):
        raise PaymentError(ErrorCode.INTERNAL_SERVER_ERROR, "payment gateway declined")

    saved = await save_payment(db, payment)
    response = PaymentResponse(status=STATUS_SUCCESS, transaction_id=str(saved.id))
    logger.info("Payment processed transaction_id={t}", t=response.transaction_id)

    await dispatcher.trigger(
        DispatchEvent(
            status=response.status,
            transaction_id=response.transaction_id,
            error_message=response.error_message,
        ),
    )
    return response
