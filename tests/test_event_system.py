"""Tests for the event system."""

import pytest

from volumebot.events.event_system import EventSystem, TradeConfirmedEvent, TradeFailedEvent


class TestEventSystem:
    """Subscribe, publish and dispatch."""

    @pytest.mark.asyncio
    async def test_dispatches_to_subscribers(self):
        system = EventSystem()
        await system.start()
        received = []

        async def on_confirmed(event):
            received.append(event.data["signature"])

        await system.subscribe("trade_confirmed", on_confirmed)
        await system.publish(TradeConfirmedEvent("sig1", "wallet", "buy", "pump"))
        await system.publish(TradeFailedEvent("wallet", "sell", "boom"))
        await system.flush()
        await system.stop()

        assert received == ["sig1"]

    @pytest.mark.asyncio
    async def test_subscriber_error_does_not_block_others(self):
        system = EventSystem()
        await system.start()
        received = []

        async def broken(event):
            raise RuntimeError("subscriber crashed")

        async def healthy(event):
            received.append(event.event_type)

        await system.subscribe("trade_failed", broken)
        await system.subscribe("trade_failed", healthy)
        await system.publish(TradeFailedEvent("wallet", "buy", "boom", status="expired"))
        await system.publish(TradeFailedEvent("wallet", "sell", "boom"))
        await system.flush()
        await system.stop()

        assert received == ["trade_failed", "trade_failed"]

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        system = EventSystem()
        await system.start()
        received = []

        async def listener(event):
            received.append(event)

        await system.subscribe("trade_confirmed", listener)
        await system.unsubscribe("trade_confirmed", listener)
        await system.publish(TradeConfirmedEvent("sig1", "wallet", "buy", "pump"))
        await system.flush()
        await system.stop()

        assert received == []

    @pytest.mark.asyncio
    async def test_start_and_stop_are_idempotent(self):
        system = EventSystem()
        await system.start()
        await system.start()
        assert system.running

        await system.stop()
        await system.stop()
        assert not system.running

    def test_failed_event_payload(self):
        event = TradeFailedEvent("wallet", "sell", "expired after 151 blocks", signature="sig9", status="expired")
        assert event.event_type == "trade_failed"
        assert event.data["status"] == "expired"
        assert event.data["signature"] == "sig9"
