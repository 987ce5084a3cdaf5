"""Тесты HTTP API webhook'ов (регистрация, приём, формат ошибок)."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from payment_service.core.errors import ErrorKind, WebhookError
from tests.helpers import fetch_attempts, make_client, wait_for


def _assert_error_shape(body: dict, code: str, status: int, path: str) -> None:
    assert body["errorCode"] == code
    assert body["status"] == status
    assert body["path"] == path
    assert body["message"]
    assert body["timestamp"]


def test_health(tmp_path: Path) -> None:
    client, _ = make_client(tmp_path)

    with client:
        response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "deliveryQueueDepth": 0}


def test_register_webhook(tmp_path: Path) -> None:
    client, _ = make_client(tmp_path)

    with client:
        response = client.post(
            "/v1/webhooks/register",
            json={"url": "HTTP://Merchant.TEST/hooks"},
        )

    assert response.status_code == 201
    body = response.json()
    assert set(body) == {"id", "url", "active", "createdAt"}
    assert body["url"] == "http://merchant.test/hooks"
    assert body["active"] is True


def test_register_duplicate_returns_409(tmp_path: Path) -> None:
    client, _ = make_client(tmp_path)

    with client:
        first = client.post("/v1/webhooks/register", json={"url": "http://a.test/h"})
        second = client.post("/v1/webhooks/register", json={"url": "http://a.test/h"})

    assert first.status_code == 201
    assert second.status_code == 409
    body = second.json()
    _assert_error_shape(body, "WEBHOOK_ALREADY_EXISTS", 409, "/v1/webhooks/register")
    assert "fieldErrors" not in body


def test_register_invalid_url_returns_field_errors(tmp_path: Path) -> None:
    client, _ = make_client(tmp_path)

    with client:
        response = client.post("/v1/webhooks/register", json={"url": "ftp://a.test/h"})

    assert response.status_code == 400
    body = response.json()
    _assert_error_shape(body, "VALIDATION_ERROR", 400, "/v1/webhooks/register")
    assert body["fieldErrors"] == {"url": "Webhook URL must use http or https"}


def test_register_missing_field(tmp_path: Path) -> None:
    client, _ = make_client(tmp_path)

    with client:
        response = client.post("/v1/webhooks/register", json={})

    assert response.status_code == 400
    assert response.json()["errorCode"] == "VALIDATION_ERROR"
    assert "url" in response.json()["fieldErrors"]


@pytest.mark.parametrize("content", [b"", b"{not json"])
def test_register_missing_or_malformed_body(tmp_path: Path, content: bytes) -> None:
    client, _ = make_client(tmp_path)

    with client:
        response = client.post(
            "/v1/webhooks/register",
            content=content,
            headers={"Content-Type": "application/json"},
        )

    assert response.status_code == 400
    assert response.json()["errorCode"] == "REQUEST_BODY_MISSING"


def test_register_store_failure_returns_500(tmp_path: Path) -> None:
    client, _ = make_client(tmp_path, create_schema=False)

    with client:
        response = client.post("/v1/webhooks/register", json={"url": "http://a.test/h"})

    assert response.status_code == 500
    _assert_error_shape(
        response.json(),
        "DATABASE_ERROR",
        500,
        "/v1/webhooks/register",
    )


def test_unexpected_error_returns_500(tmp_path: Path) -> None:
    client, _ = make_client(tmp_path)
    app = client.app

    async def broken_register(url: str) -> None:
        raise RuntimeError("boom")

    app.state.webhooks.registry.register = broken_register

    with TestClient(app, raise_server_exceptions=False) as safe_client:
        response = safe_client.post(
            "/v1/webhooks/register",
            json={"url": "http://a.test/h"},
        )

    assert response.status_code == 500
    assert response.json()["errorCode"] == "INTERNAL_SERVER_ERROR"
    assert "boom" not in response.text


def test_receive_webhook_is_audited(tmp_path: Path) -> None:
    client, session_factory = make_client(tmp_path)

    with client:
        response = client.post(
            "/v1/webhooks/receive",
            json={"status": "SUCCESS", "transactionId": "42"},
            headers={"X-Signature": "sha256=whatever"},
        )
        rows = wait_for(lambda: fetch_attempts(session_factory))

    assert response.status_code == 200
    assert response.json() == "Webhook sent successfully"
    assert len(rows) == 1
    row = rows[0]
    assert row.direction == "INCOMING"
    assert row.status == "RECEIVED"
    assert row.last_http_status == 200
    assert row.url.endswith("/v1/webhooks/receive")
    assert json.loads(row.payload) == {"status": "SUCCESS", "transactionId": "42"}


@pytest.mark.parametrize(
    "content",
    [b"{broken", b'{"amount": NaN}', b"[Infinity]"],
)
def test_receive_webhook_rejects_malformed_json(
    tmp_path: Path,
    content: bytes,
) -> None:
    client, session_factory = make_client(tmp_path)

    with client:
        response = client.post(
            "/v1/webhooks/receive",
            content=content,
            headers={"Content-Type": "application/json"},
        )

    assert response.status_code == 400
    assert response.json()["errorCode"] == "REQUEST_BODY_MISSING"
    assert fetch_attempts(session_factory) == []


def test_receive_audit_failure_does_not_fail_response(tmp_path: Path) -> None:
    client, _ = make_client(tmp_path)
    calls: list[str] = []

    async def broken_record(url: str, payload: str) -> int:
        calls.append(payload)
        raise WebhookError.from_kind(ErrorKind.STORE_UNAVAILABLE, "db down")

    client.app.state.webhooks.store.record_incoming = broken_record

    with client:
        response = client.post("/v1/webhooks/receive", json={"any": "thing"})
        wait_for(lambda: calls)

    assert response.status_code == 200
    assert calls == ['{"any":"thing"}']
