"""
Tests for the event bus.

These verify inline and background dispatch and that a failing
subscriber never reaches the publisher.
"""

import threading
import time

import pytest

from shared import events
from shared.event_bus import Event, EventBus
from shared.events import EventTypes


class TestEvent:
    """Tests for Event class."""

    def test_create_event(self):
        event = Event(event_type="TestEvent", source="test-service", payload={"key": "value"})

        assert event.event_type == "TestEvent"
        assert event.payload == {"key": "value"}
        assert event.event_id is not None
        assert event.timestamp.tzinfo is not None

    def test_event_ids_are_unique(self):
        event1 = Event(event_type="Test", source="test", payload={})
        event2 = Event(event_type="Test", source="test", payload={})

        assert event1.event_id != event2.event_id

    def test_factories_carry_family_scope(self):
        event = events.inventory_item_changed("fam-001", "item-001", "quantity_adjusted", "mem-001")

        assert event.event_type == EventTypes.INVENTORY_ITEM_CHANGED
        assert event.payload["family_id"] == "fam-001"
        assert event.payload["change"] == "quantity_adjusted"


class TestInlineDispatch:
    @pytest.fixture
    def bus(self):
        return EventBus(inline_background=True)

    def test_subscribe_and_publish(self, bus: EventBus):
        received = []
        bus.subscribe("TestEvent", received.append)

        bus.publish(Event(event_type="TestEvent", source="test", payload={"data": 123}))

        assert len(received) == 1
        assert received[0].payload["data"] == 123

    def test_handlers_run_in_registration_order(self, bus: EventBus):
        order = []
        bus.subscribe("TestEvent", lambda e: order.append("first"))
        bus.subscribe("TestEvent", lambda e: order.append("second"))

        bus.publish(Event(event_type="TestEvent", source="test", payload={}))

        assert order == ["first", "second"]

    def test_failing_handler_does_not_stop_others(self, bus: EventBus):
        received = []

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe("TestEvent", broken)
        bus.subscribe("TestEvent", received.append)

        bus.publish(Event(event_type="TestEvent", source="test", payload={}))

        assert len(received) == 1

    def test_background_handlers_run_after_inline_ones(self, bus: EventBus):
        order = []
        bus.subscribe("TestEvent", lambda e: order.append("background"), background=True)
        bus.subscribe("TestEvent", lambda e: order.append("inline"))

        called = bus.publish(Event(event_type="TestEvent", source="test", payload={}))

        assert called == 2
        assert order == ["inline", "background"]

    def test_unsubscribe(self, bus: EventBus):
        received = []
        bus.subscribe("TestEvent", received.append, background=True)

        assert bus.unsubscribe("TestEvent", received.append) is True
        bus.publish(Event(event_type="TestEvent", source="test", payload={}))

        assert received == []
        assert bus.get_subscriber_count("TestEvent") == 0

    def test_subscribe_all_sees_every_event(self, bus: EventBus):
        received = []
        bus.subscribe_all(received.append)

        bus.publish(Event(event_type="A", source="test", payload={}))
        bus.publish(Event(event_type="B", source="test", payload={}))

        assert [e.event_type for e in received] == ["A", "B"]

    def test_event_log(self, bus: EventBus):
        bus.publish(Event(event_type="A", source="test", payload={}))

        assert len(bus.get_event_log()) == 1
        bus.clear_event_log()
        assert bus.get_event_log() == []

    def test_event_log_keeps_only_recent_events(self):
        bus = EventBus(inline_background=True, event_log_size=3)

        for i in range(10):
            bus.publish(Event(event_type="A", source="test", payload={"n": i}))

        assert [e.payload["n"] for e in bus.get_event_log()] == [7, 8, 9]

    def test_event_log_can_be_disabled(self):
        bus = EventBus(inline_background=True, event_log_size=0)

        bus.publish(Event(event_type="A", source="test", payload={}))

        assert bus.get_event_log() == []


class TestBackgroundDispatch:
    def test_background_handler_runs_on_worker_thread(self):
        bus = EventBus(inline_background=False, max_workers=1)
        threads = []
        bus.subscribe("TestEvent", lambda e: threads.append(threading.current_thread().name), background=True)

        bus.publish(Event(event_type="TestEvent", source="test", payload={}))
        bus.wait_for_background(timeout=5)
        bus.shutdown()

        assert len(threads) == 1
        assert threads[0].startswith("event-bus")

    def test_finished_tasks_are_released(self):
        bus = EventBus(inline_background=False, max_workers=2)
        done = []
        bus.subscribe("TestEvent", done.append, background=True)

        for _ in range(200):
            bus.publish(Event(event_type="TestEvent", source="test", payload={}))

        deadline = time.monotonic() + 5
        while bus.pending_count() and time.monotonic() < deadline:
            time.sleep(0.01)
        remaining = bus.pending_count()
        bus.shutdown()

        assert remaining == 0
        assert len(done) == 200

    def test_wait_for_background_leaves_nothing_pending(self):
        bus = EventBus(inline_background=False, max_workers=1)
        bus.subscribe("TestEvent", lambda e: None, background=True)

        for _ in range(20):
            bus.publish(Event(event_type="TestEvent", source="test", payload={}))
        bus.wait_for_background(timeout=5)

        assert bus.pending_count() == 0
        bus.shutdown()

    def test_background_failure_is_contained(self):
        bus = EventBus(inline_background=False)

        def broken(event):
            raise RuntimeError("boom")

        bus.subscribe("TestEvent", broken, background=True)
        bus.publish(Event(event_type="TestEvent", source="test", payload={}))

        bus.wait_for_background(timeout=5)
        bus.shutdown()
