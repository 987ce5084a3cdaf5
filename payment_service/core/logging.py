"""Настройка логирования.

Единственный логгер сервиса — loguru. Записи stdlib logging (uvicorn,
SQLAlchemy, httpx, alembic) перехватываются и уходят туда же, каждая запись
помечена именем сервиса.
"""

import logging
import sys

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "{extra[service]} | <cyan>{name}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

# Логгеры uvicorn ставят свои обработчики; их отдаём в корневой.
_UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")
# Слишком шумные на уровне DEBUG.
_QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite")


class InterceptHandler(logging.Handler):
    """Перенаправить записи stdlib logging в loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Ищем кадр вызывающего кода за пределами модуля logging.
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level,
            record.getMessage(),
        )


def setup_logging(level: str, *, service: str = "payment-service") -> None:
    """Настроить loguru и перехват stdlib logging.

    Parameters
    ----------
    level : str
        Уровень логирования (например, `INFO`).
    service : str
        Имя сервиса в каждой записи.
    """

    logger.remove()
    logger.configure(extra={"service": service})
    logger.add(
        sys.stdout,
        level=level,
        format=LOG_FORMAT,
        enqueue=True,
        backtrace=False,
        diagnose=False,
    )

    logging.root.handlers = [InterceptHandler()]
    logging.root.setLevel(level)
    for name in _UVICORN_LOGGERS:
        stdlib_logger = logging.getLogger(name)
        stdlib_logger.handlers = []
        stdlib_logger.propagate = True
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.INFO, logging.root.level))
