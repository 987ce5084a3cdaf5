"""Тесты рассылки события по подписчикам."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from payment_service.core.errors import ErrorKind, WebhookError
from payment_service.schemas.webhooks import DispatchEvent
from payment_service.services import dispatcher as dispatcher_module
from payment_service.services.delivery_log import DeliveryLogStore
from payment_service.services.dispatcher import Dispatcher
from payment_service.services.registry import SubscriberRegistry
from payment_service.services.sender import RetryPolicy, Sender
from payment_service.workers.delivery_pool import DeliveryPool, ShutdownSignal
from tests.helpers import (
    RecordingSleep,
    ScriptedTransport,
    fetch_attempts,
    make_session_factory_for,
    response,
)

EVENT = DispatchEvent(status="SUCCESS", transaction_id="42")
PAYLOAD = '{"status":"SUCCESS","transactionId":"42"}'


def _build(  # noqa: ANN202
    tmp_path: Path,
    transport: ScriptedTransport,
    *,
    max_queue: int = 100,
):
    session_factory = make_session_factory_for(tmp_path)
    registry = SubscriberRegistry(session_factory)
    store = DeliveryLogStore(session_factory)
    sender = Sender(transport, store, RetryPolicy(), sleep=RecordingSleep())
    pool = DeliveryPool(sender.send, ShutdownSignal(), size=4, max_queue=max_queue)
    return session_factory, registry, Dispatcher(registry, store, pool), pool


def test_event_payload_shape() -> None:
    assert EVENT.to_payload() == {"status": "SUCCESS", "transactionId": "42"}
    failed = DispatchEvent(
        status="FAILED",
        transaction_id="7",
        error_message="declined",
    )
    assert failed.to_payload() == {
        "status": "FAILED",
        "transactionId": "7",
        "errorMessage": "declined",
    }


def test_no_subscribers_writes_nothing(tmp_path: Path) -> None:
    transport = ScriptedTransport([response(200)])
    session_factory, _, dispatcher, _ = _build(tmp_path, transport)

    queued = asyncio.run(dispatcher.dispatch(EVENT))

    assert queued == 0
    assert fetch_attempts(session_factory) == []
    assert transport.calls == []


def test_healthy_and_failing_subscribers(tmp_path: Path) -> None:
    transport = ScriptedTransport(
        {
            "http://good.test/hook": [response(200, "ok")],
            "http://bad.test/hook": [response(500, "boom")],
        },
    )
    session_factory, registry, dispatcher, pool = _build(tmp_path, transport)

    async def _run() -> int:
        await registry.register("http://good.test/hook")
        await registry.register("http://bad.test/hook")
        await pool.start()
        queued = await dispatcher.dispatch(EVENT)
        await pool.join()
        await pool.stop()
        return queued

    queued = asyncio.run(_run())
    rows = fetch_attempts(session_factory)

    assert queued == 2
    assert [(row.url, row.status, row.retry_count) for row in rows] == [
        ("http://good.test/hook", "SUCCEEDED", 0),
        ("http://bad.test/hook", "FAILED", 2),
    ]
    assert {row.payload for row in rows} == {PAYLOAD}
    assert transport.calls_to("http://good.test/hook") == 1
    assert transport.calls_to("http://bad.test/hook") == 3


def test_serialization_failure_writes_nothing(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    transport = ScriptedTransport([response(200)])
    session_factory, registry, dispatcher, _ = _build(tmp_path, transport)
    asyncio.run(registry.register("http://s.test/hook"))

    def broken_dumps(value: object) -> str:
        raise TypeError("Object of type bytes is not JSON serializable")

    monkeypatch.setattr(dispatcher_module, "dumps_json", broken_dumps)

    with pytest.raises(WebhookError) as exc_info:
        asyncio.run(dispatcher.dispatch(EVENT))
    asyncio.run(dispatcher.trigger(EVENT))

    assert exc_info.value.kind is ErrorKind.SERIALIZATION_FAILED
    assert fetch_attempts(session_factory) == []
    assert transport.calls == []


def test_queue_overflow_marks_attempt_failed(tmp_path: Path) -> None:
    transport = ScriptedTransport([response(200)])
    session_factory, registry, dispatcher, _ = _build(tmp_path, transport, max_queue=1)

    async def _run() -> int:
        await registry.register("http://a.test/hook")
        await registry.register("http://b.test/hook")
        # Пул не запущен: первая работа занимает очередь, вторая не влезает.
        return await dispatcher.dispatch(EVENT)

    queued = asyncio.run(_run())
    rows = fetch_attempts(session_factory)

    assert queued == 1
    assert [row.status for row in rows] == ["PENDING", "FAILED"]
    assert rows[1].last_http_status is None
    assert rows[1].response_body.startswith("WEBHOOK_DELIVERY_FAILED")


def test_registry_outage_never_reaches_producer(tmp_path: Path) -> None:
    session_factory = make_session_factory_for(tmp_path, create_schema=False)
    registry = SubscriberRegistry(session_factory)
    store = DeliveryLogStore(session_factory)
    transport = ScriptedTransport([response(200)])
    sender = Sender(transport, store, RetryPolicy())
    pool = DeliveryPool(sender.send, ShutdownSignal())
    dispatcher = Dispatcher(registry, store, pool)

    with pytest.raises(WebhookError) as exc_info:
        asyncio.run(dispatcher.dispatch(EVENT))
    asyncio.run(dispatcher.trigger(EVENT))

    assert exc_info.value.kind is ErrorKind.STORE_UNAVAILABLE
    assert transport.calls == []
