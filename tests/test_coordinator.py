"""Tests for trigger dispatch."""

import pytest
from conftest import collect

from chainsight.coordinator import ModuleCoordinator, build_web_url
from chainsight.events import (
    CoordinatedAttackSuggested,
    CredentialTestRequested,
    DiscoveryContext,
    Event,
    ExploitSuggested,
    WebTestRequested,
)
from chainsight.models import Credential, ModuleType


@pytest.mark.parametrize("port, url", [
    (80, "http://10.0.0.5"),
    (443, "https://10.0.0.5"),
    (8443, "https://10.0.0.5:8443"),
    (8080, "http://10.0.0.5:8080"),
    (3000, "http://10.0.0.5:3000"),
])
def test_build_web_url(port, url):
    assert build_web_url("10.0.0.5", port) == url


@pytest.mark.parametrize("port", [80, 443, 8080, 8443, 3000, 5000, 8000, 9000])
def test_https_iff_tls_port(port):
    url = build_web_url("example.test", port)
    assert url.startswith("https://") == (port in (443, 8443))


@pytest.mark.asyncio
async def test_trigger_web_testing_publishes_event(bus):
    coordinator = ModuleCoordinator(bus)
    events = collect(bus, WebTestRequested)

    await coordinator.trigger_web_testing(
        "http://10.0.0.5", DiscoveryContext.NETWORK_SCAN, target="10.0.0.5", port=80,
    )

    assert len(events) == 1
    assert events[0].url == "http://10.0.0.5"
    assert events[0].context is DiscoveryContext.NETWORK_SCAN
    assert coordinator.dispatched["WebTestRequested"] == 1


@pytest.mark.asyncio
async def test_every_trigger_counts(bus):
    coordinator = ModuleCoordinator(bus)
    events = collect(bus, Event)
    cred = Credential(username="u", password="p", service="SSH", source=ModuleType.CREDENTIAL_TESTER)

    await coordinator.trigger_credential_testing("h", 22, "SSH", [cred])
    await coordinator.trigger_database_testing("h", 5432)
    await coordinator.suggest_exploit("CVE-2021-41773", "h", 80, exploit_id="50383")
    await coordinator.suggest_coordinated_attack("h", "Phone")
    await coordinator.suggest_privilege_escalation("h")

    assert len(events) == 5
    assert sum(coordinator.dispatched.values()) == 5
    assert isinstance(events[0], CredentialTestRequested)
    assert events[0].credentials == [cred]
    assert isinstance(events[2], ExploitSuggested)
    assert events[2].exploit_id == "50383"
    assert isinstance(events[3], CoordinatedAttackSuggested)
