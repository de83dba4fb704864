"""Tests for the event bus."""

import sys
from decimal import Decimal

import pytest

sys.path.append("src")

from tradedesk.events import EventBus, OrderClosedEvent, OrderPlacedEvent


class TestEventBus:
    """Test publish/subscribe behaviour."""

    @pytest.mark.asyncio
    async def test_delivers_to_sync_and_async_handlers(self):
        bus = EventBus(name="test")
        seen = []

        async def async_handler(event):
            seen.append(("async", event.order_id))

        def sync_handler(event):
            seen.append(("sync", event.order_id))

        bus.subscribe(OrderPlacedEvent, async_handler)
        bus.subscribe(OrderPlacedEvent, sync_handler)

        result = await bus.publish(OrderPlacedEvent(order_id="o-1"))

        assert result["handlers_executed"] == 2
        assert result["failed_handlers"] == 0
        assert sorted(seen) == [("async", "o-1"), ("sync", "o-1")]

    @pytest.mark.asyncio
    async def test_handler_failure_is_contained(self):
        bus = EventBus(name="test")

        async def broken(event):
            raise RuntimeError("boom")

        bus.subscribe(OrderClosedEvent, broken)

        result = await bus.publish(OrderClosedEvent(order_id="o-1"))

        assert result["failed_handlers"] == 1
        assert bus.get_statistics()["errors_count"] == 1

    @pytest.mark.asyncio
    async def test_only_matching_type_is_delivered(self):
        bus = EventBus(name="test")
        seen = []
        bus.subscribe(OrderClosedEvent, seen.append)

        await bus.publish(OrderPlacedEvent(order_id="o-1"))

        assert seen == []
        assert bus.get_event_history()[-1]["event_type"] == "OrderPlacedEvent"

    def test_unsubscribe(self):
        bus = EventBus(name="test")
        handler = lambda event: None  # noqa: E731

        bus.subscribe(OrderPlacedEvent, handler)

        assert bus.unsubscribe(OrderPlacedEvent, handler) is True
        assert bus.unsubscribe(OrderPlacedEvent, handler) is False

    def test_event_to_dict_is_json_safe(self):
        event = OrderClosedEvent(
            order_id="o-1", realized_pnl=Decimal("25.00"), close_price=Decimal("25")
        )

        data = event.to_dict()

        assert data["event_type"] == "OrderClosedEvent"
        assert data["realized_pnl"] == "25.00"
        assert isinstance(data["timestamp"], str)
