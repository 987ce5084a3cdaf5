"""Сборка всех роутеров API."""

from fastapi import APIRouter

from payment_service.api.routes import health, payments, webhooks

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(webhooks.router)
api_router.include_router(payments.router)
