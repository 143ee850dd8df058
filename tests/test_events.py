"""Tests for the lifecycle EventBus."""

from policyjudge.events import EventBus, EventType, LifecycleEvent


class TestEventBus:
    def test_emit_delivers_payload(self):
        bus = EventBus()
        received = []
        bus.subscribe(received.append)

        event = bus.emit(EventType.CIRCUIT_OPEN, failure_count=5)

        assert received == [event]
        assert event.payload == {"failure_count": 5}
        assert event.to_dict()["type"] == "judge.circuit_open"

    def test_type_filter(self):
        bus = EventBus()
        received = []
        bus.subscribe(received.append, types={EventType.RULE_ADDED})

        bus.emit(EventType.RULE_DELETED, rule_id="a")
        bus.emit(EventType.RULE_ADDED, rule_id="b")

        assert [e.payload["rule_id"] for e in received] == ["b"]

    def test_unsubscribe(self):
        bus = EventBus()
        received = []
        unsubscribe = bus.subscribe(received.append)
        assert bus.subscriber_count == 1

        unsubscribe()
        bus.emit(EventType.CIRCUIT_RESET)

        assert received == []
        assert bus.subscriber_count == 0

    def test_failing_subscriber_does_not_stop_delivery(self):
        bus = EventBus()
        received = []

        def broken(event: LifecycleEvent) -> None:
            raise RuntimeError("boom")

        bus.subscribe(broken)
        bus.subscribe(received.append)
        bus.emit(EventType.EVALUATION_START)

        assert len(received) == 1

    def test_subscribe_during_emit_takes_effect_next_time(self):
        bus = EventBus()
        late = []

        def subscribe_late(event):
            bus.subscribe(late.append)

        bus.subscribe(subscribe_late)
        bus.emit(EventType.EVALUATION_START)
        assert late == []

        bus.emit(EventType.EVALUATION_COMPLETE)
        assert len(late) == 1
