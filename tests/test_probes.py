"""Tests for credential probes and the credential-test adapter."""

import asyncio
import shutil

import httpx
import pytest

from chainsight.adapters.credentials import CredentialTestAdapter
from chainsight.events import CredentialTestRequested, EventBus
from chainsight.models import Credential, FindingKind, ModuleType
from chainsight.probes import PROBE_CLASSES, get_probe, list_available_probes
from chainsight.probes.base import CredentialProbe, ProbeOutcome
from chainsight.probes.databases import MongoDBProbe, MySQLProbe, PostgreSQLProbe
from chainsight.probes.ftp import FTPProbe
from chainsight.probes.ssh import SSHProbe
from chainsight.probes.web_admin import WebAdminProbe, looks_logged_in


class FakeProbe:
    name = "fake"
    service = "SSH"
    default_port = 22

    def __init__(self, result=True, delay=0.0, error=None):
        self.result = result
        self.delay = delay
        self.error = error
        self.calls = []

    @staticmethod
    def is_available() -> bool:
        return True

    async def probe(self, target, port, username, password):
        self.calls.append((target, port, username, password))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.result


class ReportRecorder:
    def __init__(self):
        self.calls = []

    async def __call__(self, kind, source, target, payload, confidence):
        self.calls.append((kind, source, target, payload, confidence))
        return "finding-id"


def _request(service="SSH", port=22, *creds):
    credentials = list(creds) or [
        Credential(username="root", password="toor", service=service, source=ModuleType.CREDENTIAL_TESTER),
    ]
    return CredentialTestRequested(target="10.0.0.5", port=port, service=service, credentials=credentials)


def test_registry():
    assert set(PROBE_CLASSES) == {"ssh", "ftp", "web admin", "mysql", "postgresql", "mongodb"}
    assert isinstance(get_probe("SSH"), SSHProbe)
    assert isinstance(get_probe("Web Admin"), WebAdminProbe)
    assert get_probe("telnet") is None


def test_available_probes_without_client_binaries(monkeypatch):
    monkeypatch.setattr(shutil, "which", lambda name: None)
    assert list_available_probes() == ["web admin"]


@pytest.mark.parametrize("cls", [SSHProbe, FTPProbe, MySQLProbe, PostgreSQLProbe, MongoDBProbe, WebAdminProbe])
def test_probes_satisfy_protocol(cls):
    assert isinstance(cls(), CredentialProbe)


def test_ssh_command_keeps_password_out_of_argv():
    cmd = SSHProbe()._build_cmd("10.0.0.5", 2222, "root")
    assert "ConnectTimeout=5" in cmd
    assert "root@10.0.0.5" in cmd
    assert "2222" in cmd
    assert "toor" not in cmd


def test_ftp_login_detection():
    assert FTPProbe._logged_in("220 ready\n331 Password required\n230 Login successful.\n")
    assert not FTPProbe._logged_in("220 ready\n530 Login incorrect.\n")


@pytest.mark.parametrize("status, body, expected", [
    (200, "<h1>Welcome to the Dashboard</h1><a>Logout</a>", True),
    (200, "<p>Invalid username or password</p>", False),
    (200, "Welcome! Login failed", False),
    (302, "dashboard", False),
    (200, "<form>login</form>", False),
])
def test_web_admin_indicators(status, body, expected):
    assert looks_logged_in(status, body) is expected


@pytest.mark.asyncio
async def test_web_admin_probe_success():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/login":
            return httpx.Response(200, text="Welcome back, admin. Dashboard")
        return httpx.Response(404, text="not found")

    probe = WebAdminProbe(transport=httpx.MockTransport(handler))
    assert await probe.probe("10.0.0.5", 8080, "admin", "admin") is True


@pytest.mark.asyncio
async def test_web_admin_probe_failure():
    probe = WebAdminProbe(transport=httpx.MockTransport(
        lambda r: httpx.Response(200, text="Incorrect password")
    ))
    assert await probe.probe("10.0.0.5", 80, "admin", "admin") is False


@pytest.mark.asyncio
async def test_adapter_reports_confirmed_login():
    report = ReportRecorder()
    probe = FakeProbe(result=True)
    adapter = CredentialTestAdapter(report, probes={"SSH": probe})

    results = await adapter.run(_request())

    assert [r.outcome for r in results] == [ProbeOutcome.SUCCESS]
    assert probe.calls == [("10.0.0.5", 22, "root", "toor")]
    kind, source, target, payload, confidence = report.calls[0]
    assert kind is FindingKind.CREDENTIAL_LEAK
    assert source is ModuleType.CREDENTIAL_TESTER
    assert target == "10.0.0.5"
    assert payload["username"] == "root"
    assert payload["port"] == "22"
    assert confidence == 0.9


@pytest.mark.asyncio
async def test_adapter_failed_login_records_nothing():
    report = ReportRecorder()
    adapter = CredentialTestAdapter(report, probes={"SSH": FakeProbe(result=False)})

    results = await adapter.run(_request())

    assert results[0].outcome is ProbeOutcome.FAILURE
    assert report.calls == []


@pytest.mark.asyncio
async def test_adapter_timeout_is_inconclusive():
    report = ReportRecorder()
    adapter = CredentialTestAdapter(report, timeout=0.01, probes={"SSH": FakeProbe(delay=5)})

    results = await adapter.run(_request())

    assert results[0].outcome is ProbeOutcome.INCONCLUSIVE
    assert report.calls == []


@pytest.mark.asyncio
async def test_adapter_missing_client_is_inconclusive():
    report = ReportRecorder()
    probe = FakeProbe(error=FileNotFoundError("sshpass"))
    adapter = CredentialTestAdapter(report, probes={"SSH": probe})

    results = await adapter.run(_request())

    assert results[0].outcome is ProbeOutcome.INCONCLUSIVE


@pytest.mark.asyncio
async def test_adapter_unknown_service():
    adapter = CredentialTestAdapter(ReportRecorder())
    assert await adapter.run(_request(service="Telnet", port=23)) == []


@pytest.mark.asyncio
async def test_adapter_consumes_bus_events():
    bus = EventBus()
    report = ReportRecorder()
    adapter = CredentialTestAdapter(report, probes={"ssh": FakeProbe(result=True)})
    adapter.attach(bus)

    await bus.publish(_request())
    await adapter.drain()

    assert not adapter.pending
    assert len(adapter.results) == 1
    assert len(report.calls) == 1


class FailsFirstProbe(FakeProbe):
    async def probe(self, target, port, username, password):
        self.calls.append((target, port, username, password))
        if len(self.calls) == 1:
            raise ValueError("unparseable client output")
        return self.result


def _creds(*users):
    return [
        Credential(username=u, password="pw", service="SSH", source=ModuleType.CREDENTIAL_TESTER)
        for u in users
    ]


@pytest.mark.asyncio
async def test_adapter_unexpected_error_does_not_abort_batch():
    bus = EventBus()
    report = ReportRecorder()
    probe = FailsFirstProbe(result=False)
    adapter = CredentialTestAdapter(report, probes={"ssh": probe})
    adapter.attach(bus)

    await bus.publish(_request("SSH", 22, *_creds("root", "admin", "pi")))
    await adapter.drain()

    assert len(probe.calls) == 3
    assert [r.outcome for r in adapter.results] == [
        ProbeOutcome.INCONCLUSIVE,
        ProbeOutcome.FAILURE,
        ProbeOutcome.FAILURE,
    ]
    assert report.calls == []
