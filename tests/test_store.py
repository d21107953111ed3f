"""Tests for the finding store."""

from datetime import UTC, datetime, timedelta

import pytest
from conftest import collect

from chainsight.events import FindingRecorded
from chainsight.models import Finding, FindingKind, ModuleType


def _service(target="10.0.0.5", port=80, **extra) -> Finding:
    payload = {"port": str(port), "service": "http"}
    payload.update(extra)
    return Finding.create(FindingKind.NETWORK_SERVICE, ModuleType.NETWORK_SCANNER, target, payload, 0.9)


@pytest.mark.asyncio
async def test_record_publishes_exactly_once(bus, store):
    events = collect(bus, FindingRecorded)
    f = _service()

    returned = await store.record(f)

    assert returned == f.id
    assert len(events) == 1
    assert events[0].finding is f
    assert store.get(f.id) is f


@pytest.mark.asyncio
async def test_duplicate_id_rejected(store):
    f = _service()
    await store.record(f)
    with pytest.raises(ValueError):
        await store.record(f)
    assert len(store) == 1


@pytest.mark.asyncio
async def test_target_created_and_updated(store):
    first = _service(port=80)
    await store.record(first)
    web = Finding.create(
        FindingKind.WEB_VULNERABILITY, ModuleType.WEB_TESTER, "10.0.0.5",
        {"url": "http://10.0.0.5/login", "severity": "critical"}, 0.8,
        timestamp=first.timestamp + timedelta(seconds=5),
    )
    await store.record(web)

    target = store.get_target("10.0.0.5")
    assert target is not None
    assert target.finding_ids == [first.id, web.id]
    assert target.discovered_by == [ModuleType.NETWORK_SCANNER, ModuleType.WEB_TESTER]
    assert target.last_seen == web.timestamp
    assert target.first_seen == first.timestamp
    # (0 for the unrated service + 4 for the critical) / 2
    assert target.risk_score == pytest.approx(2.0)


@pytest.mark.asyncio
async def test_risk_score_within_bounds(store):
    for _ in range(3):
        await store.record(Finding.create(
            FindingKind.WEB_VULNERABILITY, ModuleType.WEB_TESTER, "h",
            {"url": "http://h/", "severity": "critical"},
        ))
    assert 0.0 <= store.get_target("h").risk_score <= 4.0
    assert store.get_target("h").risk_score == 4.0


@pytest.mark.asyncio
async def test_name_from_hostname(store):
    await store.record(_service(hostname="office-printer"))
    assert store.get_target("10.0.0.5").name == "office-printer"


@pytest.mark.asyncio
async def test_query_filters(store):
    await store.record(_service(target="a", port=80))
    await store.record(_service(target="a", port=22))
    await store.record(_service(target="b", port=80))
    await store.record(Finding.create(
        FindingKind.BLUETOOTH_DEVICE, ModuleType.BLUETOOTH_SHELL, "a", {"device_id": "AA"},
    ))

    target_a = store.get_target("a")
    assert len(store.query(target_a.id)) == 3
    assert len(store.query(target_a.id, FindingKind.NETWORK_SERVICE)) == 2
    assert len(store.query(kind=FindingKind.NETWORK_SERVICE)) == 3
    assert store.query("missing-id") == []
    assert [f.port for f in store.findings_for("a", FindingKind.NETWORK_SERVICE)] == [80, 22]
    assert store.findings_for("nowhere") == []


def test_target_by_address_is_get_or_create(store):
    t1 = store.target_by_address("10.0.0.9")
    t2 = store.target_by_address("10.0.0.9")
    assert t1 is t2
    assert store.target_by_address("10.0.0.10") is not t1
    assert len(store.targets()) == 2


@pytest.mark.asyncio
async def test_timestamps_preserved(store):
    when = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
    f = Finding.create(
        FindingKind.NETWORK_SERVICE, ModuleType.NETWORK_SCANNER, "h", {"port": "80"}, timestamp=when,
    )
    await store.record(f)
    assert store.snapshot()[0].timestamp == when
