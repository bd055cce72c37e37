from __future__ import annotations

import logging

import pytest

from leadpool import events
from leadpool.context import correlation_scope
from leadpool.core.events import InProcessEventBus, InternalEvent


def test_exact_and_prefix_subscribers_both_receive_event() -> None:
    bus = InProcessEventBus()
    exact: list[InternalEvent] = []
    prefixed: list[InternalEvent] = []
    bus.subscribe("customer.assigned", exact.append)
    bus.subscribe_prefix("customer.", prefixed.append)

    delivered = bus.publish("customer.assigned", {"customer_id": "c-1"})
    bus.publish("system.started", {})

    assert delivered == 2
    assert [event.payload for event in exact] == [{"customer_id": "c-1"}]
    assert [event.name for event in prefixed] == ["customer.assigned"]


def test_failing_handler_is_logged_and_others_still_run(caplog: pytest.LogCaptureFixture) -> None:
    bus = InProcessEventBus()
    received: list[str] = []

    def broken(event: InternalEvent) -> None:
        raise RuntimeError("subscriber down")

    bus.subscribe("customer.progress_changed", broken)
    bus.subscribe("customer.progress_changed", lambda event: received.append(event.name))

    with caplog.at_level(logging.ERROR, logger="leadpool.events"):
        delivered = bus.publish("customer.progress_changed", {})

    assert delivered == 1
    assert received == ["customer.progress_changed"]
    failures = [record for record in caplog.records if record.getMessage() == "event.handler_failed"]
    assert len(failures) == 1
    assert failures[0].event_name == "customer.progress_changed"


def test_publish_fills_in_ambient_correlation_id() -> None:
    envelope = events.customer_event("customer.assigned", actor_user_id="u-1", customer_id="c-9", payload={})

    with correlation_scope("corr-event-1"):
        events.publish(envelope)

    assert events.published_events[-1]["correlation_id"] == "corr-event-1"
    assert events.published_events[-1]["payload"] == {"customer_id": "c-9"}
