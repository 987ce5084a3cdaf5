"""Эндпоинты платежей."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from payment_service.api.deps import get_card_encryptor, get_webhooks
from payment_service.core.crypto import CardEncryptor
from payment_service.db.session import get_db
from payment_service.runtime import WebhookRuntime
from payment_service.schemas.payments import PaymentRequest, PaymentResponse
from payment_service.services.payments import process_payment

router = APIRouter(prefix="/v1/payments", tags=["payments"])


@router.post("", response_model=PaymentResponse, response_model_exclude_none=True)
async def create_payment(
    payload: PaymentRequest,
    db: AsyncSession = Depends(get_db),
    encryptor: CardEncryptor = Depends(get_card_encryptor),
    webhooks: WebhookRuntime = Depends(get_webhooks),
) -> PaymentResponse:
    """Провести платёж.

    Returns
    -------
    PaymentResponse
        `{"status": "SUCCESS", "transactionId": "..."}`.

    Raises
    ------
    PaymentError
        422 `CARD_ENCRYPTION_ERROR`, 500 `DATABASE_ERROR`.
    """

    return await process_payment(
        db,
        payload,
        encryptor=encryptor,
        dispatcher=webhooks.dispatcher,
    )
