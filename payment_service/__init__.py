"""Платёжный сервис с доставкой webhook-уведомлений подписчикам."""

__version__ = "0.1.0"
