"""Эндпоинты webhook'ов: регистрация подписчика и приём входящих."""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request, status
from loguru import logger

from payment_service.api.deps import get_webhooks
from payment_service.core.errors import ErrorCode, ServiceError, WebhookError
from payment_service.db.redis import dumps_json
from payment_service.runtime import WebhookRuntime
from payment_service.schemas.webhooks import SubscriberOut, WebhookCreate
from payment_service.services.delivery_log import DeliveryLogStore

router = APIRouter(prefix="/v1/webhooks", tags=["webhooks"])

RECEIVE_ACK = "Webhook sent successfully"


@router.post(
    "/register",
    response_model=SubscriberOut,
    status_code=status.HTTP_201_CREATED,
)
async def register_webhook(
    payload: WebhookCreate,
    webhooks: WebhookRuntime = Depends(get_webhooks),
) -> SubscriberOut:
    """Зарегистрировать подписчика.

    Parameters
    ----------
    payload : WebhookCreate
        URL подписчика.

    Returns
    -------
    SubscriberOut
        Созданный подписчик.

    Raises
    ------
    WebhookError
        409 `WEBHOOK_ALREADY_EXISTS`, если активный подписчик с таким URL
        уже есть; 500 `DATABASE_ERROR`, если БД недоступна.
    """

    return await webhooks.registry.register(payload.url)


async def record_incoming_webhook(
    store: DeliveryLogStore,
    url: str,
    payload: str,
) -> None:
    """Фоновая запись входящего webhook'а в журнал."""

    try:
        await store.record_incoming(url, payload)
    except WebhookError as exc:
        logger.error(
            "Failed to record incoming webhook url={url}: {err}",
            url=url,
            err=str(exc),
        )


@router.post("/receive")
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_signature: str | None = Header(default=None, alias="X-Signature"),
    webhooks: WebhookRuntime = Depends(get_webhooks),
) -> str:
    """Принять webhook и сразу ответить 200.

    Notes
    -----
    Запись в журнал выполняется после ответа. Заголовок `X-Signature`
    принимается, но не проверяется.
    """

    try:
        # NaN и Infinity json.loads пропускает, а журнал их не примет.
        payload = dumps_json(await request.json())
    except ValueError as exc:
        raise ServiceError(ErrorCode.REQUEST_BODY_MISSING, str(exc)) from exc

    logger.debug("Incoming webhook signature_present={s}", s=x_signature is not None)
    background_tasks.add_task(
        record_incoming_webhook,
        webhooks.store,
        str(request.url),
        payload,
    )
    return RECEIVE_ACK
