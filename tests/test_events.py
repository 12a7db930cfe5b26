"""Unit tests for :mod:`deskpad.events`."""

from __future__ import annotations

import gc

from deskpad.events import (
    ActiveTabChanged,
    ErrorRaised,
    Event,
    EventBus,
    SessionSaveFailed,
    SettingsChanged,
    TabOpened,
)


class TestEventTypes:
    def test_events_compare_by_value(self) -> None:
        assert TabOpened(tab_id="t1", path="/a") == TabOpened(tab_id="t1", path="/a")
        assert ActiveTabChanged(tab_id=None) != ActiveTabChanged(tab_id="t1")

    def test_events_use_slots(self) -> None:
        event = ErrorRaised(message="Failed to open file: denied")
        assert hasattr(event, "__slots__")
        assert isinstance(event, Event)

    def test_defaults(self) -> None:
        assert TabOpened(tab_id="t1").path == ""


class TestSubscription:
    def test_subscribe_and_unsubscribe(self) -> None:
        bus: EventBus[Event] = EventBus()

        def handler(event: TabOpened) -> None:
            pass

        bus.subscribe(TabOpened, handler)
        bus.subscribe(TabOpened, handler)
        assert bus.handler_count(TabOpened) == 2

        bus.unsubscribe(TabOpened, handler)
        assert bus.handler_count(TabOpened) == 1

    def test_unsubscribe_unknown_handler_is_safe(self) -> None:
        bus: EventBus[Event] = EventBus()

        bus.unsubscribe(ErrorRaised, lambda e: None)
        bus.subscribe(ErrorRaised, lambda e: None)
        bus.unsubscribe(TabOpened, lambda e: None)  # type: ignore[arg-type]

        assert bus.handler_count() == 1

    def test_clear(self) -> None:
        bus: EventBus[Event] = EventBus()
        bus.subscribe(TabOpened, lambda e: None)
        bus.subscribe(ErrorRaised, lambda e: None)

        bus.clear()

        assert bus.handler_count() == 0


class TestPublish:
    def test_only_matching_handlers_run_in_order(self) -> None:
        bus: EventBus[Event] = EventBus()
        order: list[str] = []

        bus.subscribe(SessionSaveFailed, lambda e: order.append(f"first:{e.error}"))
        bus.subscribe(SessionSaveFailed, lambda e: order.append(f"second:{e.error}"))
        bus.subscribe(SettingsChanged, lambda e: order.append("settings"))

        bus.publish(SessionSaveFailed(session_id="s1", error="disk full"))

        assert order == ["first:disk full", "second:disk full"]

    def test_failing_handler_does_not_stop_others(self) -> None:
        bus: EventBus[Event] = EventBus()
        received: list[str] = []

        def broken(event: ErrorRaised) -> None:
            raise ValueError("boom")

        bus.subscribe(ErrorRaised, broken)
        bus.subscribe(ErrorRaised, lambda e: received.append(e.message))

        bus.publish(ErrorRaised(message="Failed to load file tree: gone"))

        assert received == ["Failed to load file tree: gone"]

    def test_publish_without_handlers_is_safe(self) -> None:
        EventBus().publish(ActiveTabChanged(tab_id=None))


class TestWeakReferences:
    def test_bound_method_dropped_after_owner_collected(self) -> None:
        bus: EventBus[Event] = EventBus()
        received: list[str | None] = []

        class TabStrip:
            def on_active(self, event: ActiveTabChanged) -> None:
                received.append(event.tab_id)

        strip = TabStrip()
        bus.subscribe(ActiveTabChanged, strip.on_active)
        bus.publish(ActiveTabChanged(tab_id="t1"))

        del strip
        gc.collect()
        bus.publish(ActiveTabChanged(tab_id="t2"))

        assert received == ["t1"]
        assert bus.handler_count(ActiveTabChanged) == 0

    def test_bound_method_can_be_unsubscribed(self) -> None:
        bus: EventBus[Event] = EventBus()

        class Banner:
            def show(self, event: ErrorRaised) -> None:
                pass

        banner = Banner()
        bus.subscribe(ErrorRaised, banner.show)
        bus.unsubscribe(ErrorRaised, banner.show)

        assert bus.handler_count(ErrorRaised) == 0
