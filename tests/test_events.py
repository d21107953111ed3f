"""Tests for the event bus."""

import pytest

from chainsight.events import (
    DatabaseTestRequested,
    Event,
    EventBus,
    PrivilegeEscalationSuggested,
)


@pytest.mark.asyncio
async def test_sync_and_async_handlers_both_receive():
    bus = EventBus()
    seen = []

    async def async_handler(event):
        seen.append(("async", event.target))

    bus.subscribe(PrivilegeEscalationSuggested, lambda e: seen.append(("sync", e.target)))
    bus.subscribe(PrivilegeEscalationSuggested, async_handler)

    await bus.publish(PrivilegeEscalationSuggested(target="10.0.0.5"))
    assert sorted(seen) == [("async", "10.0.0.5"), ("sync", "10.0.0.5")]


@pytest.mark.asyncio
async def test_failing_handler_is_isolated():
    bus = EventBus()
    seen = []

    def broken(event):
        raise RuntimeError("boom")

    bus.subscribe(DatabaseTestRequested, broken)
    bus.subscribe(DatabaseTestRequested, seen.append)

    await bus.publish(DatabaseTestRequested(target="db", port=5432))
    assert len(seen) == 1


@pytest.mark.asyncio
async def test_base_event_subscription_receives_everything():
    bus = EventBus()
    seen = []
    bus.subscribe(Event, seen.append)

    await bus.publish(DatabaseTestRequested(target="db", port=3306))
    await bus.publish(PrivilegeEscalationSuggested(target="h"))
    assert [type(e) for e in seen] == [DatabaseTestRequested, PrivilegeEscalationSuggested]


@pytest.mark.asyncio
async def test_unsubscribe_and_other_types_ignored():
    bus = EventBus()
    seen = []
    bus.subscribe(DatabaseTestRequested, seen.append)

    await bus.publish(PrivilegeEscalationSuggested(target="h"))
    assert seen == []

    bus.unsubscribe(DatabaseTestRequested, seen.append)
    await bus.publish(DatabaseTestRequested(target="db", port=3306))
    assert seen == []


@pytest.mark.asyncio
async def test_publish_without_subscribers():
    await EventBus().publish(PrivilegeEscalationSuggested(target="h"))
