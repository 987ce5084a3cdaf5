"""Применение Alembic миграций при старте сервиса.

Важно
-----
Таблицы `subscribers` и `delivery_attempts` должны существовать до того, как
пул доставки начнёт писать журнал попыток. Поэтому при
`RUN_MIGRATIONS_ON_STARTUP=true` миграции гоняются в lifespan до запуска
воркеров. Для Postgres берётся advisory lock: при нескольких репликах схему
обновляет ровно один процесс, остальные ждут.
"""

from __future__ import annotations

import time
import zlib
from contextlib import contextmanager
from pathlib import Path

import psycopg2
from alembic import command
from alembic.config import Config
from loguru import logger

from payment_service.core.config import Settings, get_settings

PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _alembic_config(database_url: str) -> Config:
    cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    cfg.set_main_option("sqlalchemy.url", database_url)
    # Логирование настроено через loguru, fileConfig из alembic.ini не нужен.
    cfg.attributes["configure_logger"] = False
    return cfg


def _wait_for_postgres(settings: Settings) -> None:
    """Дождаться, пока Postgres начнёт принимать соединения."""

    tries = settings.migrations_wait_tries
    for attempt in range(1, tries + 1):
        try:
            psycopg2.connect(settings.sqlalchemy_url).close()
            return
        except psycopg2.OperationalError:
            logger.info(
                "Database not ready ({i}/{n}), retry in {s}s",
                i=attempt,
                n=tries,
                s=settings.migrations_wait_sleep_seconds,
            )
            time.sleep(settings.migrations_wait_sleep_seconds)

    raise RuntimeError("database is not reachable for migrations")


@contextmanager
def _advisory_lock(database_url: str, lock_key: int):
    """Держать `pg_advisory_lock` на время блока."""

    conn = psycopg2.connect(database_url)
    conn.autocommit = True
    try:
        with conn.cursor() as cur:
            cur.execute("SELECT pg_advisory_lock(%s)", (lock_key,))
        yield
    finally:
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT pg_advisory_unlock(%s)", (lock_key,))
        finally:
            conn.close()


def upgrade_to_head(database_url: str) -> None:
    """Применить все миграции к указанной БД."""

    command.upgrade(_alembic_config(database_url), "head")


def run_migrations_once() -> None:
    """Запустить миграции до head, если это включено в настройках."""

    settings = get_settings()
    if not settings.run_migrations_on_startup:
        logger.info("Migrations on startup disabled")
        return

    db_url = settings.sqlalchemy_url
    if not db_url.startswith("postgresql://"):
        logger.info("Running alembic upgrade head (non-postgres)")
        upgrade_to_head(db_url)
        return

    _wait_for_postgres(settings)
    lock_key = zlib.crc32(settings.app_name.encode("utf-8"))
    logger.info("Acquiring advisory lock key={k}", k=lock_key)
    with _advisory_lock(db_url, lock_key):
        logger.info("Running alembic upgrade head (postgres)")
        upgrade_to_head(db_url)
    logger.info("Migrations completed")
