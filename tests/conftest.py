"""Shared fixtures and fake lookup collaborators."""

from __future__ import annotations

import pytest

from chainsight.events import Event, EventBus
from chainsight.models import CVERecord, ExploitEntry
from chainsight.store import FindingStore


class FakeCveLookup:
    name = "fake"

    def __init__(self, records: dict[str, list[CVERecord]] | None = None, fail: bool = False):
        self.records = records or {}
        self.fail = fail
        self.calls: list[tuple[str, str]] = []

    async def lookup(self, service: str, version: str) -> list[CVERecord]:
        self.calls.append((service, version))
        if self.fail:
            raise RuntimeError("lookup service unavailable")
        return list(self.records.get(service, []))


class FakeExploitLookup:
    name = "fake"

    def __init__(self, exploits: dict[str, list[ExploitEntry]] | None = None, fail: bool = False):
        self.exploits = exploits or {}
        self.fail = fail
        self.calls: list[str] = []

    async def search_exploits(self, cve_id: str) -> list[ExploitEntry]:
        self.calls.append(cve_id)
        if self.fail:
            raise RuntimeError("exploit search unavailable")
        return list(self.exploits.get(cve_id, []))


def collect(bus: EventBus, event_type: type[Event] = Event) -> list:
    """Subscribe a recorder and return the list it appends to."""
    seen: list = []
    bus.subscribe(event_type, seen.append)
    return seen


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def store(bus: EventBus) -> FindingStore:
    return FindingStore(bus)
