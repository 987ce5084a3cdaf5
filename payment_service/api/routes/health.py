"""Healthcheck эндпоинты."""

from fastapi import APIRouter, Depends

from payment_service.api.deps import get_webhooks
from payment_service.runtime import WebhookRuntime

router = APIRouter()


@router.get("/health")
def health(webhooks: WebhookRuntime = Depends(get_webhooks)) -> dict:
    """Вернуть статус приложения и глубину очереди доставки.

    Returns
    -------
    dict
        JSON со статусом.
    """

    return {"status": "ok", "deliveryQueueDepth": webhooks.pool.depth}
