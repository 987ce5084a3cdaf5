"""Конфигурация приложения.

Все настройки должны приходить из переменных окружения (опционально через `.env`).
Секреты (ключ шифрования карт, пароли БД) нельзя хранить в репозитории/коде —
используйте `.env` локально и секрет-менеджер в проде.
"""

from __future__ import annotations

import base64
import binascii
from functools import lru_cache

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_AES_KEY_SIZES = (16, 24, 32)


def _split_csv(value: str) -> list[str]:
    """Разбить строку CSV на список значений.

    Parameters
    ----------
    value : str
        CSV строка.

    Returns
    -------
    list[str]
        Список значений без пробелов.
    """

    if value.strip() == "*":
        return ["*"]
    return [part.strip() for part in value.split(",") if part.strip()]


class Settings(BaseSettings):
    """Настройки приложения из переменных окружения.

    Notes
    -----
    Параметры доставки webhook'ов (`dispatch.*`) задаются плоскими переменными
    `DISPATCH_*`, например `dispatch.maxAttempts` -> `DISPATCH_MAX_ATTEMPTS`.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = Field("payment-service")
    app_env: str = Field("local")
    log_level: str = Field("INFO")

    api_host: str = Field("0.0.0.0")
    api_port: int = Field(8080)

    run_migrations_on_startup: bool = Field(False)
    migrations_wait_tries: int = Field(60, ge=1)
    migrations_wait_sleep_seconds: float = Field(1.0, gt=0)

    cors_allow_origins: str = Field("*")
    cors_allow_methods: str = Field("*")
    cors_allow_headers: str = Field("*")
    cors_allow_credentials: bool = Field(False)

    # Card encryption
    encryption_secret_key: SecretStr = Field(...)

    # Webhook dispatch
    dispatch_max_attempts: int = Field(3, ge=1)
    dispatch_initial_backoff_ms: int = Field(2000, ge=0)
    dispatch_backoff_multiplier: float = Field(2.0, ge=1.0)
    dispatch_backoff_jitter: float = Field(0.0, ge=0.0, le=0.1)
    dispatch_per_attempt_timeout_ms: int = Field(10000, gt=0)
    dispatch_worker_pool_size: int = Field(16, ge=1)
    dispatch_queue_max_size: int = Field(1000, ge=1)
    dispatch_shutdown_grace_ms: int | None = Field(None, ge=0)

    # DB settings
    postgres_host: str = "db"
    postgres_port: int = Field(5432, ge=1, le=65535)
    postgres_db: str = "payments"
    postgres_user: str = "postgres"
    postgres_password: SecretStr | None = None

    # Redis settings
    redis_host: str = "redis"
    redis_port: int = Field(6379, ge=1, le=65535)
    redis_db: int = Field(0, ge=0)
    subscriber_cache_enabled: bool = Field(False)
    subscriber_cache_ttl_seconds: int = Field(60, ge=1)

    database_url: str | None = None
    database_async_url: str | None = None

    @field_validator("encryption_secret_key")
    @classmethod
    def _validate_encryption_key(cls, value: SecretStr) -> SecretStr:
        try:
            raw = base64.b64decode(value.get_secret_value(), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("ENCRYPTION_SECRET_KEY must be valid base64") from exc
        if len(raw) not in _AES_KEY_SIZES:
            raise ValueError("ENCRYPTION_SECRET_KEY must decode to 16, 24 or 32 bytes")
        return value

    @property
    def encryption_key_bytes(self) -> bytes:
        """Ключ AES в виде байтов."""

        return base64.b64decode(self.encryption_secret_key.get_secret_value())

    @property
    def postgres_dsn(self) -> str:
        """Build PostgreSQL DSN from component settings."""

        if self.postgres_password is None:
            raise ValueError(
                "POSTGRES_PASSWORD is required when DATABASE_URL is not set",
            )
        password = self.postgres_password.get_secret_value()
        return (
            f"postgresql://{self.postgres_user}:{password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def cors_origins_list(self) -> list[str]:
        """Список разрешённых origins для CORS."""

        return _split_csv(self.cors_allow_origins)

    @property
    def cors_methods_list(self) -> list[str]:
        """Список разрешённых методов для CORS."""

        return _split_csv(self.cors_allow_methods)

    @property
    def cors_headers_list(self) -> list[str]:
        """Список разрешённых заголовков для CORS."""

        return _split_csv(self.cors_allow_headers)

    @property
    def dispatch_per_attempt_timeout_seconds(self) -> float:
        """Таймаут одной попытки доставки в секундах."""

        return self.dispatch_per_attempt_timeout_ms / 1000.0

    @property
    def dispatch_initial_backoff_seconds(self) -> float:
        """Первая пауза между попытками в секундах."""

        return self.dispatch_initial_backoff_ms / 1000.0

    @property
    def dispatch_shutdown_grace_seconds(self) -> float:
        """Сколько ждать активные доставки при остановке.

        Notes
        -----
        По умолчанию — таймаут одной попытки плюс секунда, чтобы идущий POST
        успел завершиться по своему таймауту и записать результат.
        """

        if self.dispatch_shutdown_grace_ms is None:
            return self.dispatch_per_attempt_timeout_seconds + 1.0
        return self.dispatch_shutdown_grace_ms / 1000.0

    @property
    def sqlalchemy_url(self) -> str:
        """Вернуть sync URL подключения к БД для SQLAlchemy/Alembic.

        Priority
        --------
        1) `DATABASE_URL`, если задан.
        2) Иначе собирается DSN PostgreSQL из компонентных env-переменных.
        """

        return self.database_url or self.postgres_dsn

    @property
    def sqlalchemy_async_url(self) -> str:
        """Вернуть async URL подключения к БД для SQLAlchemy AsyncEngine.

        Priority
        --------
        1) `DATABASE_ASYNC_URL`, если задан.
        2) Иначе строится из `DATABASE_URL`/Postgres DSN:
           - `postgresql://...` -> `postgresql+asyncpg://...`
           - `sqlite+pysqlite://...` -> `sqlite+aiosqlite://...`
        """

        url = self.database_async_url or self.sqlalchemy_url
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)
        if url.startswith("sqlite+pysqlite://"):
            return url.replace("sqlite+pysqlite://", "sqlite+aiosqlite://", 1)
        if url.startswith("sqlite://"):
            return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Вернуть кэшированный экземпляр настроек.

    Returns
    -------
    Settings
        Настройки приложения.
    """

    return Settings()
