"""Конфигурация pytest."""

import os
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from payment_service.core import config as config_module  # noqa: E402

# В тестах не запускаем миграции на старте приложения (они требуют внешнего Postgres).
os.environ.setdefault("RUN_MIGRATIONS_ON_STARTUP", "false")
# base64 от 32 байт: AES-256.
os.environ.setdefault(
    "ENCRYPTION_SECRET_KEY",
    "MDEyMzQ1Njc4OWFiY2RlZjAxMjM0NTY3ODlhYmNkZWY=",
)
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///./payment-service-test.db")
os.environ.setdefault("SUBSCRIBER_CACHE_ENABLED", "false")
os.environ.setdefault("DISPATCH_INITIAL_BACKOFF_MS", "0")
os.environ.setdefault("DISPATCH_WORKER_POOL_SIZE", "4")
os.environ.setdefault("LOG_LEVEL", "WARNING")
config_module.get_settings.cache_clear()
