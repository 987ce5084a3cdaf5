"""HTTP транспорт для исходящих webhook'ов.

Контракт
--------
Один вызов `post` — ровно один POST с `Content-Type: application/json`:

- следуем не более чем за одним редиректом;
- общий дедлайн на connect+read равен таймауту попытки;
- ответ возвращается как есть, даже не-2xx (классификация — дело Sender'а);
- транспортные отказы не бросаются, а возвращаются как `TransportFailure`
  с видом `TRANSPORT_UNREACHABLE` или `TRANSPORT_CLIENT_ERROR`.

Один `httpx.AsyncClient` переиспользуется всеми воркерами, поэтому
keep-alive соединения к подписчикам общие.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import httpx

from payment_service.core.errors import ErrorKind

USER_AGENT = "payment-service-webhooks/1.0"

# Отказы, после которых до подписчика просто не достучались.
_UNREACHABLE_ERRORS = (httpx.ConnectError, httpx.TimeoutException)


@dataclass(frozen=True)
class TransportResponse:
    """Полученный HTTP ответ."""

    status_code: int
    body: str


@dataclass(frozen=True)
class TransportFailure:
    """Отказ на транспортном уровне (ответа нет)."""

    kind: ErrorKind
    summary: str


TransportResult = TransportResponse | TransportFailure


class HttpTransport:
    """POST JSON через общий пул соединений httpx.

    Parameters
    ----------
    client : httpx.AsyncClient | None
        Готовый клиент (например, с `httpx.MockTransport` в тестах).
        Если не передан, создаётся клиент с пулом на `max_connections`.
    max_connections : int
        Размер пула соединений, обычно равен размеру пула воркеров.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        max_connections: int = 16,
    ) -> None:
        if client is None:
            client = httpx.AsyncClient(
                follow_redirects=True,
                max_redirects=1,
                limits=httpx.Limits(
                    max_connections=max_connections,
                    max_keepalive_connections=max_connections,
                ),
            )
        else:
            client.follow_redirects = True
            client.max_redirects = 1
        self._client = client

    async def post(self, url: str, body: str, timeout: float) -> TransportResult:
        """Отправить JSON тело на `url`.

        Parameters
        ----------
        url : str
            Адрес подписчика.
        body : str
            Уже сериализованный JSON.
        timeout : float
            Таймаут попытки в секундах (на connect+read вместе).

        Returns
        -------
        TransportResponse | TransportFailure
            Ответ с любым статусом или классифицированный отказ.
        """

        try:
            response = await asyncio.wait_for(
                self._client.post(
                    url,
                    content=body.encode("utf-8"),
                    headers={
                        "Content-Type": "application/json",
                        "User-Agent": USER_AGENT,
                    },
                    timeout=httpx.Timeout(timeout),
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            return TransportFailure(
                ErrorKind.TRANSPORT_UNREACHABLE,
                f"request timed out after {timeout:g}s",
            )
        except _UNREACHABLE_ERRORS as exc:
            return TransportFailure(ErrorKind.TRANSPORT_UNREACHABLE, _describe(exc))
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            return TransportFailure(ErrorKind.TRANSPORT_CLIENT_ERROR, _describe(exc))

        return TransportResponse(status_code=response.status_code, body=response.text)

    async def aclose(self) -> None:
        """Закрыть пул соединений."""

        await self._client.aclose()


def _describe(exc: Exception) -> str:
    message = str(exc) or repr(exc)
    return f"{type(exc).__name__}: {message}"
