"""Утилиты для тестов (TestClient + async SQLite, фейковый транспорт)."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import TypeVar

import httpx
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from payment_service import models  # noqa: F401  # ensure model import for metadata
from payment_service.core.errors import ErrorKind
from payment_service.db.base import Base
from payment_service.db.session import get_db, make_session_factory
from payment_service.main import create_app
from payment_service.models.delivery_attempt import DeliveryAttempt
from payment_service.services.transport import (
    HttpTransport,
    TransportFailure,
    TransportResponse,
    TransportResult,
)

T = TypeVar("T")


def make_session_factory_for(
    tmp_path: Path,
    *,
    create_schema: bool = True,
) -> async_sessionmaker[AsyncSession]:
    """Фабрика async сессий над временной SQLite БД.

    Parameters
    ----------
    tmp_path : pathlib.Path
        Временная директория pytest.
    create_schema : bool
        Создавать ли таблицы. Без таблиц любое обращение к БД падает,
        так удобно имитировать недоступное хранилище.

    Notes
    -----
    NullPool: соединения не переживают event loop, в котором открыты
    (тесты гоняют несколько `asyncio.run` подряд).
    """

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
    )
    if create_schema:

        async def _init_schema() -> None:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

        asyncio.run(_init_schema())
    return make_session_factory(engine)


def make_client(
    tmp_path: Path,
    *,
    transport: HttpTransport | None = None,
    create_schema: bool = True,
) -> tuple[TestClient, async_sessionmaker[AsyncSession]]:
    """Собрать TestClient с тестовой SQLite БД (async).

    Returns
    -------
    tuple[fastapi.testclient.TestClient, sqlalchemy.ext.asyncio.async_sessionmaker]
        (клиент приложения, фабрика async сессий).

    Notes
    -----
    Пул доставки стартует в lifespan, поэтому клиент нужно использовать
    как контекстный менеджер: `with client: ...`.
    """

    session_factory = make_session_factory_for(tmp_path, create_schema=create_schema)
    app = create_app(
        session_factory=session_factory,
        transport=transport or mock_http_transport({}),
    )

    async def override_get_db():  # noqa: ANN202
        async with session_factory() as db:
            yield db

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app), session_factory


def mock_http_transport(statuses: dict[str, int], default: int = 200) -> HttpTransport:
    """HttpTransport поверх `httpx.MockTransport`: статус ответа по URL."""

    def handler(request: httpx.Request) -> httpx.Response:
        status = statuses.get(str(request.url), default)
        return httpx.Response(status, text="ok" if status < 400 else "boom")

    return HttpTransport(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def unreachable(summary: str = "ConnectError: connection refused") -> TransportFailure:
    return TransportFailure(ErrorKind.TRANSPORT_UNREACHABLE, summary)


def response(status_code: int, body: str = "") -> TransportResponse:
    return TransportResponse(status_code=status_code, body=body)


class ScriptedTransport:
    """Транспорт, который отдаёт заранее заданные результаты.

    Результаты берутся по очереди; последний повторяется бесконечно.
    Если передан словарь, сценарий выбирается по URL.
    """

    def __init__(
        self,
        script: Iterable[TransportResult] | dict[str, Iterable[TransportResult]],
    ) -> None:
        if isinstance(script, dict):
            self._scripts = {url: list(items) for url, items in script.items()}
        else:
            self._scripts = {"*": list(script)}
        self.calls: list[tuple[str, str, float]] = []
        self.closed = False

    async def post(self, url: str, body: str, timeout: float) -> TransportResult:
        self.calls.append((url, body, timeout))
        items = self._scripts.get(url, self._scripts.get("*"))
        if not items:
            raise AssertionError(f"no scripted result for {url}")
        if len(items) > 1:
            return items.pop(0)
        return items[0]

    async def aclose(self) -> None:
        self.closed = True

    def calls_to(self, url: str) -> int:
        return sum(1 for call_url, _, _ in self.calls if call_url == url)


class RecordingSleep:
    """Подменяет паузу между попытками: запоминает, но не спит."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def fetch_attempts(
    session_factory: async_sessionmaker[AsyncSession],
) -> list[DeliveryAttempt]:
    """Прочитать весь журнал доставки, упорядоченный по id."""

    async def _fetch() -> list[DeliveryAttempt]:
        async with session_factory() as db:
            stmt = select(DeliveryAttempt).order_by(DeliveryAttempt.id)
            rows = await db.scalars(stmt)
            return list(rows)

    return asyncio.run(_fetch())


def wait_for(
    predicate: Callable[[], T],
    timeout: float = 5.0,
    interval: float = 0.02,
) -> T:
    """Ждать, пока `predicate()` не вернёт истинное значение."""

    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        result = predicate()
        if result:
            return result
        time.sleep(interval)
    raise AssertionError("condition was not met in time")


def terminal_attempts(
    session_factory: async_sessionmaker[AsyncSession],
    expected: int,
) -> list[DeliveryAttempt]:
    """Дождаться `expected` записей журнала в терминальном статусе."""

    def _ready() -> list[DeliveryAttempt] | None:
        rows = fetch_attempts(session_factory)
        done = [row for row in rows if row.status != "PENDING"]
        return rows if len(done) >= expected else None

    return wait_for(_ready)
