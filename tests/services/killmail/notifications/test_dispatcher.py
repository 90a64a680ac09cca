"""
Tests for the notification dispatcher.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

import pytest

from kill_notifier.services.killmail.models import (
    FAILURE_DELIVERY,
    FAILURE_FORMAT,
    ChannelKind,
    ChannelTarget,
    NotificationDocument,
    SendResult,
)
from kill_notifier.services.killmail.notifications import dispatcher as dispatcher_module
from kill_notifier.services.killmail.notifications.dispatcher import (
    ChannelHealth,
    DeliveryClient,
    Dispatcher,
)


def _target(channel_id: str, kind: ChannelKind = ChannelKind.DEFAULT) -> ChannelTarget:
    return ChannelTarget(channel_id=channel_id, kind=kind, reason="test")


@pytest.fixture
def document() -> NotificationDocument:
    return NotificationDocument(title="Ship destroyed in Jita", description="", color=0)


class SlowDelivery:
    def __init__(self) -> None:
        self.release = asyncio.Event()
        self.started = 0

    async def deliver(self, channel_id, document):
        self.started += 1
        await self.release.wait()
        return SendResult(success=True, status_code=200)


@pytest.mark.asyncio
class TestDispatcher:
    """Tests for Dispatcher."""

    async def test_dispatch_returns_before_delivery(self, document):
        client = SlowDelivery()
        dispatcher = Dispatcher(client)

        tasks = dispatcher.dispatch(document, [_target("1"), _target("2")], killmail_id=12345)

        assert len(tasks) == 2
        assert dispatcher.pending == 2
        assert not any(t.done() for t in tasks)

        client.release.set()
        outcomes = await asyncio.gather(*tasks)

        assert all(o.success for o in outcomes)
        assert dispatcher.pending == 0
        assert dispatcher.notified == 2

    async def test_outcomes_in_target_order(self, delivery, document):
        dispatcher = Dispatcher(delivery)

        tasks = dispatcher.dispatch(document, [_target("a"), _target("b")], killmail_id=1)
        outcomes = await asyncio.gather(*tasks)

        assert [o.channel_id for o in outcomes] == ["a", "b"]
        assert sorted(delivery.channel_ids) == ["a", "b"]

    async def test_failure_isolated_per_channel(self, make_delivery, document, caplog):
        delivery = make_delivery(failing={"bad"}, raising={"broken"})
        dispatcher = Dispatcher(delivery)

        with caplog.at_level(logging.ERROR):
            tasks = dispatcher.dispatch(
                document, [_target("bad"), _target("good"), _target("broken")], killmail_id=7
            )
            outcomes = await asyncio.gather(*tasks)

        assert [o.success for o in outcomes] == [False, True, False]
        assert outcomes[0].failure_reason == "Server error"
        assert "connection reset" in outcomes[2].failure_reason
        assert outcomes[0].failure_class == FAILURE_DELIVERY
        assert delivery.channel_ids == ["good"]
        assert dispatcher.health.delivered == 1
        assert dispatcher.health.failed == 2
        assert "Delivery of kill 7 to channel bad failed" in caplog.text

    async def test_timeout_recorded(self, document):
        client = SlowDelivery()
        dispatcher = Dispatcher(client, timeout=0.01)

        [outcome] = await asyncio.gather(*dispatcher.dispatch(document, [_target("1")], 1))

        assert outcome.success is False
        assert "Timed out" in outcome.failure_reason

    async def test_dispatch_many_per_target_documents(self, delivery, document):
        other = NotificationDocument(title="Character doc", description="", color=1)
        dispatcher = Dispatcher(delivery)

        tasks = dispatcher.dispatch_many(
            [(document, _target("sys", ChannelKind.SYSTEM)), (other, _target("chr", ChannelKind.CHARACTER))],
            killmail_id=1,
        )
        await asyncio.gather(*tasks)

        assert dict((c, d.title) for c, d in delivery.delivered) == {
            "sys": "Ship destroyed in Jita",
            "chr": "Character doc",
        }

    async def test_drain_waits_for_pending(self, delivery, document):
        dispatcher = Dispatcher(delivery)
        dispatcher.dispatch(document, [_target("1"), _target("2")], killmail_id=1)

        outcomes = await dispatcher.drain()

        assert len(outcomes) == 2
        assert await dispatcher.drain() == []

    async def test_record_format_error(self, delivery):
        dispatcher = Dispatcher(delivery)

        outcomes = dispatcher.record_format_error(1, [_target("1"), _target("2")], "no victim")

        assert all(o.failure_class == FAILURE_FORMAT for o in outcomes)
        assert delivery.delivered == []
        assert dispatcher.get_status()["health"]["failures_by_class"] == {FAILURE_FORMAT: 2}

    async def test_status(self, delivery, document):
        dispatcher = Dispatcher(delivery)
        await asyncio.gather(*dispatcher.dispatch(document, [_target("1")], 1))

        status = dispatcher.get_status()

        assert status["notified"] == 1
        assert status["pending"] == 0
        assert status["health"]["channels"]["1"]["delivered"] == 1

    async def test_fake_satisfies_protocol(self, delivery):
        assert isinstance(delivery, DeliveryClient)


def test_delivery_protocol_uses_transport_neutral_result():
    assert SendResult.__module__ == "kill_notifier.services.killmail.models"
    assert dispatcher_module.SendResult is SendResult


class TestChannelHealth:
    def test_fresh_channel_healthy(self):
        assert ChannelHealth().is_healthy is True
        assert ChannelHealth().success_rate == 1.0

    def test_repeated_failures_unhealthy(self):
        health = ChannelHealth(failed=3, consecutive_failures=3)
        health.last_failure = datetime.now(timezone.utc)

        assert health.is_healthy is False
