"""Tests for the event bus."""

from __future__ import annotations

import gc

from redline.domain.events import AITurnStarted, DocumentChanged, EventBus, TrackedChangeAdded


class Recorder:
    def __init__(self) -> None:
        self.events: list[object] = []

    def on_event(self, event: object) -> None:
        self.events.append(event)


class TestEventBus:
    """Tests for EventBus subscribe/publish."""

    def test_publish_reaches_handlers_of_that_type_only(self) -> None:
        bus = EventBus()
        added: list[TrackedChangeAdded] = []
        started: list[AITurnStarted] = []
        bus.subscribe(TrackedChangeAdded, added.append)
        bus.subscribe(AITurnStarted, started.append)

        event = TrackedChangeAdded(change_id="c1", original="a", suggested="b", pending_count=1)
        bus.publish(event)

        assert added == [event]
        assert started == []

    def test_handlers_run_in_registration_order(self) -> None:
        bus = EventBus()
        order: list[str] = []
        bus.subscribe(DocumentChanged, lambda _event: order.append("first"))
        bus.subscribe(DocumentChanged, lambda _event: order.append("second"))

        bus.publish(DocumentChanged(version=2, label="insert"))

        assert order == ["first", "second"]

    def test_raising_handler_does_not_stop_others(self) -> None:
        bus = EventBus()
        received: list[DocumentChanged] = []

        def explode(_event: DocumentChanged) -> None:
            raise RuntimeError("boom")

        bus.subscribe(DocumentChanged, explode)
        bus.subscribe(DocumentChanged, received.append)

        bus.publish(DocumentChanged(version=2, label="insert"))

        assert len(received) == 1

    def test_unsubscribe(self) -> None:
        bus = EventBus()
        received: list[DocumentChanged] = []
        bus.subscribe(DocumentChanged, received.append)

        bus.unsubscribe(DocumentChanged, received.append)
        bus.unsubscribe(AITurnStarted, received.append)
        bus.publish(DocumentChanged(version=2, label="insert"))

        assert received == []
        assert bus.handler_count(DocumentChanged) == 0

    def test_bound_methods_are_held_weakly(self) -> None:
        bus = EventBus()
        recorder = Recorder()
        bus.subscribe(DocumentChanged, recorder.on_event)

        del recorder
        gc.collect()
        bus.publish(DocumentChanged(version=2, label="insert"))

        assert bus.handler_count(DocumentChanged) == 0

    def test_clear(self) -> None:
        bus = EventBus()
        bus.subscribe(DocumentChanged, print)
        bus.subscribe(AITurnStarted, print)

        assert bus.handler_count() == 2
        bus.clear()
        assert bus.handler_count() == 0
