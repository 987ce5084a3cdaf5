"""Тесты HTTP транспорта (httpx.MockTransport)."""

from __future__ import annotations

import asyncio
import json

import httpx

from payment_service.core.errors import ErrorKind
from payment_service.services.transport import (
    HttpTransport,
    TransportFailure,
    TransportResponse,
)

URL = "http://subscriber.test/hook"
BODY = json.dumps({"status": "SUCCESS", "transactionId": "42"})


def _transport(handler) -> HttpTransport:  # noqa: ANN001
    return HttpTransport(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def _post(transport: HttpTransport, timeout: float = 1.0):  # noqa: ANN202
    async def _run():  # noqa: ANN202
        try:
            return await transport.post(URL, BODY, timeout)
        finally:
            await transport.aclose()

    return asyncio.run(_run())


def test_post_sends_json_body() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="accepted")

    result = _post(_transport(handler))

    assert result == TransportResponse(status_code=200, body="accepted")
    assert seen[0].method == "POST"
    assert seen[0].headers["content-type"] == "application/json"
    assert json.loads(seen[0].content) == {"status": "SUCCESS", "transactionId": "42"}


def test_non_2xx_is_returned_as_response() -> None:
    result = _post(_transport(lambda request: httpx.Response(500, text="down")))

    assert result == TransportResponse(status_code=500, body="down")


def test_connect_error_is_unreachable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    result = _post(_transport(handler))

    assert isinstance(result, TransportFailure)
    assert result.kind is ErrorKind.TRANSPORT_UNREACHABLE
    assert result.summary.startswith("ConnectError")


def test_read_timeout_is_unreachable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    result = _post(_transport(handler))

    assert isinstance(result, TransportFailure)
    assert result.kind is ErrorKind.TRANSPORT_UNREACHABLE


def test_overall_deadline_is_enforced() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(5)
        return httpx.Response(200)

    result = _post(_transport(handler), timeout=0.05)

    assert isinstance(result, TransportFailure)
    assert result.kind is ErrorKind.TRANSPORT_UNREACHABLE
    assert "timed out" in result.summary


def test_protocol_error_is_client_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.RemoteProtocolError("bad response", request=request)

    result = _post(_transport(handler))

    assert isinstance(result, TransportFailure)
    assert result.kind is ErrorKind.TRANSPORT_CLIENT_ERROR


def test_single_redirect_is_followed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/hook":
            return httpx.Response(307, headers={"Location": "/moved"})
        return httpx.Response(200, text=request.content.decode())

    result = _post(_transport(handler))

    assert result == TransportResponse(status_code=200, body=BODY)


def test_second_redirect_is_client_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/hook":
            return httpx.Response(307, headers={"Location": "/one"})
        if request.url.path == "/one":
            return httpx.Response(307, headers={"Location": "/two"})
        return httpx.Response(200)

    result = _post(_transport(handler))

    assert isinstance(result, TransportFailure)
    assert result.kind is ErrorKind.TRANSPORT_CLIENT_ERROR
    assert result.summary.startswith("TooManyRedirects")
