from __future__ import annotations

from collections.abc import Generator

import pytest

from invoicing import events
from invoicing.context import reset_actor_id, reset_correlation_id, set_actor_id, set_correlation_id
from invoicing.core.events import InProcessEventBus, InternalEvent, event_bus


@pytest.fixture(autouse=True)
def clear_events() -> Generator[None, None, None]:
    events.published_events.clear()
    yield
    events.published_events.clear()


def test_bus_delivers_in_subscription_order() -> None:
    bus = InProcessEventBus()
    received: list[tuple[str, str]] = []

    def first(event: InternalEvent) -> None:
        received.append(("first", event.name))

    def second(event: InternalEvent) -> None:
        received.append(("second", event.name))

    bus.subscribe("invoice.approved", first)
    bus.subscribe("invoice.approved", second)
    bus.subscribe("invoice.approved", first)
    bus.publish("invoice.approved", {})
    bus.publish("invoice.rejected", {})

    assert received == [("first", "invoice.approved"), ("second", "invoice.approved")]

    bus.unsubscribe("invoice.approved", first)
    bus.publish("invoice.approved", {})
    assert received[-1] == ("second", "invoice.approved")


def test_publish_stamps_envelope_from_request_context() -> None:
    seen: list[InternalEvent] = []
    event_bus.subscribe("invoice.cancelled", seen.append)
    correlation_token = set_correlation_id("corr-9")
    actor_token = set_actor_id("clerk-9")
    try:
        events.publish({"event_type": "invoice.cancelled", "payload": {"invoice_id": "abc"}})
        events.publish({"event_type": "invoice.cancelled", "actor_id": "system", "payload": {}})
    finally:
        reset_actor_id(actor_token)
        reset_correlation_id(correlation_token)
        event_bus.unsubscribe("invoice.cancelled", seen.append)

    first, second = events.published_events
    assert first["correlation_id"] == "corr-9"
    assert first["actor_id"] == "clerk-9"
    assert first["event_id"] != second["event_id"]
    assert second["actor_id"] == "system"
    assert [event.payload for event in seen] == [first, second]


def test_published_events_buffer_keeps_only_the_most_recent() -> None:
    for index in range(events.PUBLISHED_EVENTS_LIMIT + 5):
        events.publish({"event_type": "", "payload": {"index": index}})

    assert len(events.published_events) == events.PUBLISHED_EVENTS_LIMIT
    assert events.published_events[0]["payload"]["index"] == 5
    assert events.published_events[-1]["payload"]["index"] == events.PUBLISHED_EVENTS_LIMIT + 4
