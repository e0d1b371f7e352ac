"""Unit tests for the in-process EventBus."""

import asyncio

import pytest

from questline.core.event.bus import EventBus
from questline.core.event.types import ListenerPriority


@pytest.mark.unit
@pytest.mark.asyncio
class TestEventBus:
    async def test_exact_subscription_receives_payload(self):
        bus = EventBus()
        received = []

        async def on_completed(payload):
            received.append(payload)

        bus.subscribe("quest.completed", on_completed)
        await bus.publish("quest.completed", {"quest_id": "q1"})

        assert received == [{"quest_id": "q1"}]

    async def test_wildcard_subscription(self):
        bus = EventBus()
        names = []

        def on_quest_event(payload):
            names.append(payload["name"])

        bus.subscribe("quest.*", on_quest_event)
        await bus.publish("quest.generated", {"name": "generated"})
        await bus.publish("streak.updated", {"name": "streak"})

        assert names == ["generated"]

    async def test_failing_listener_is_isolated(self):
        bus = EventBus()
        received = []

        def broken(payload):
            raise RuntimeError("boom")

        def healthy(payload):
            received.append(payload)

        bus.subscribe("streak.updated", broken, priority=ListenerPriority.HIGH)
        bus.subscribe("streak.updated", healthy)

        await bus.publish("streak.updated", {"learner_id": "l1"})

        assert received == [{"learner_id": "l1"}]

    async def test_priority_order_for_sequential_listeners(self):
        bus = EventBus()
        order = []

        bus.subscribe("e", lambda p: order.append("high"), priority=ListenerPriority.HIGH)
        bus.subscribe("e", lambda p: order.append("critical"), priority=ListenerPriority.CRITICAL)

        await bus.publish("e", {})

        assert order == ["critical", "high"]

    async def test_low_priority_runs_in_background(self):
        bus = EventBus()
        received = []

        async def slow(payload):
            received.append(payload)

        bus.subscribe("e", slow, priority=ListenerPriority.LOW)
        await bus.publish("e", {"x": 1})
        await bus.drain()

        assert received == [{"x": 1}]

    async def test_once_listener_fires_once(self):
        bus = EventBus()
        calls = []

        bus.subscribe("e", lambda p: calls.append(p), once=True)
        await bus.publish("e", {})
        await bus.publish("e", {})

        assert len(calls) == 1

    async def test_hung_normal_listener_times_out(self):
        bus = EventBus(listener_timeout_seconds=0.05)
        received = []

        async def hangs(payload):
            await asyncio.sleep(30)

        async def records(payload):
            received.append(payload)

        bus.subscribe("quest.completed", hangs)
        bus.subscribe("quest.completed", records)

        results = await asyncio.wait_for(bus.publish("quest.completed", {"quest_id": "q1"}), 2)

        assert results == [None, None]
        assert received == [{"quest_id": "q1"}]


@pytest.mark.unit
class TestEventBusSubscriptions:
    def test_rejects_wrong_signature(self):
        bus = EventBus()

        with pytest.raises(ValueError):
            bus.subscribe("e", lambda a, b: None)

    def test_duplicate_identifier_prevented(self):
        bus = EventBus()

        bus.subscribe("e", lambda p: None, identifier="same")
        bus.subscribe("e", lambda p: None, identifier="same")

        assert bus.listener_count("e") == 1

    def test_unsubscribe(self):
        bus = EventBus()
        identifier = bus.subscribe("e", lambda p: None)

        assert bus.unsubscribe("e", identifier) is True
        assert bus.listener_count() == 0
