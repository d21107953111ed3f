"""Composition root: wires the store, vault, correlators and coordinator
together and reacts to every recorded finding.

There is no module-level engine instance. Build one per session and pass
it to whatever needs it:

    engine = IntelligenceEngine(settings, cve_lookup=NvdCveLookup(), exploit_lookup=SearchSploitLookup())
    await engine.handle_network_discovery("10.0.0.5", scan_results)
    await engine.drain()
    report = engine.generate_report()
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Coroutine, Iterable
from typing import Any

import httpx
from pydantic import BaseModel, Field

from chainsight.analysis.correlator import IntelligenceCorrelator
from chainsight.analysis.planner import AttackChainPlanner, build_action_table
from chainsight.analysis.report import ReportGenerator
from chainsight.config import Settings
from chainsight.coordinator import ModuleCoordinator, build_web_url
from chainsight.events import CorrelationFound, DiscoveryContext, EventBus, FindingRecorded
from chainsight.intel.base import CveLookup, ExploitLookup, NullLookup
from chainsight.intel.cve import CVECorrelator
from chainsight.models import (
    AttackChain,
    BluetoothObservation,
    Credential,
    Finding,
    FindingKind,
    IngestBatch,
    ModuleType,
    PortScanResult,
    Severity,
    UnifiedReport,
    WebTestResult,
)
from chainsight.probes import PROBE_PORTS
from chainsight.store import FindingStore
from chainsight.vault import CredentialVault

logger = logging.getLogger(__name__)

DISCOVERY_CONFIDENCE = 0.9
WEB_FINDING_CONFIDENCE = 0.8
DEFAULT_CREDENTIAL_CONFIDENCE = 0.5
COMMON_WEB_CREDENTIALS = [
    ("admin", "admin"),
    ("admin", "password"),
    ("test", "test"),
    ("guest", "guest"),
]


class EngineStats(BaseModel):
    findings: int = 0
    targets: int = 0
    credentials: int = 0
    cve_correlations: int = 0
    opportunities: int = 0
    triggers: dict[str, int] = Field(default_factory=dict)


def url_host(value: str) -> str:
    """Host part of a URL; anything that is not a URL is returned unchanged."""
    if "://" not in value:
        return value
    try:
        return httpx.URL(value).host or value
    except httpx.InvalidURL:
        return value


class IntelligenceEngine:
    def __init__(
        self,
        settings: Settings | None = None,
        cve_lookup: CveLookup | None = None,
        exploit_lookup: ExploitLookup | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.bus = bus or EventBus()
        self.store = FindingStore(self.bus)
        self.vault = CredentialVault()
        self.coordinator = ModuleCoordinator(self.bus)
        self.cve = CVECorrelator(
            self.store,
            self.coordinator,
            self.bus,
            cve_lookup or NullLookup(),
            exploit_lookup or NullLookup(),
        )
        self.correlator = IntelligenceCorrelator(self.store, self.bus, self.settings.engine)
        self.planner = AttackChainPlanner(build_action_table(self.settings.planner.actions))
        self.reports = ReportGenerator(self.store, self.vault, self.planner, self.settings.engine)

        self._lock = threading.Lock()
        self._fired: set[tuple[Any, ...]] = set()
        self._tasks: set[asyncio.Task[Any]] = set()

        self.bus.subscribe(FindingRecorded, self._on_finding_recorded)
        self.bus.subscribe(CorrelationFound, self._on_correlation_found)

    # -- ingestion ---------------------------------------------------------

    async def report_finding(
        self,
        kind: FindingKind | str,
        source: ModuleType | str,
        target: str,
        payload: dict[str, Any] | None = None,
        confidence: float = 1.0,
    ) -> str:
        """Validate and record one adapter finding; returns its id.

        Raises InvalidFindingError before anything is recorded.
        """
        if kind == FindingKind.WEB_VULNERABILITY:
            target = url_host(target)
        finding = Finding.create(kind, source, target, payload, confidence)
        return await self.store.record(finding)

    async def add_credential(
        self,
        username: str,
        password: str,
        service: str,
        target: str,
        port: int | None = None,
        source: ModuleType = ModuleType.CREDENTIAL_TESTER,
        confidence: float = 1.0,
    ) -> str:
        payload = {"username": username, "password": password, "service": service}
        if port is not None:
            payload["port"] = str(port)
        return await self.report_finding(
            FindingKind.CREDENTIAL_LEAK, source, target, payload, confidence
        )

    async def handle_network_discovery(
        self, target: str, results: Iterable[PortScanResult]
    ) -> list[str]:
        ids = []
        for result in results:
            if not result.is_open:
                continue
            ids.append(await self.report_finding(
                FindingKind.NETWORK_SERVICE,
                ModuleType.NETWORK_SCANNER,
                target,
                {
                    "port": str(result.port),
                    "service": result.service or "unknown",
                    "banner": result.banner or "",
                    "version": result.version or "",
                },
                DISCOVERY_CONFIDENCE,
            ))
        return ids

    async def handle_bluetooth_discovery(self, devices: Iterable[BluetoothObservation]) -> list[str]:
        ids = []
        for device in devices:
            ids.append(await self.report_finding(
                FindingKind.BLUETOOTH_DEVICE,
                ModuleType.BLUETOOTH_SHELL,
                device.name or device.device_id,
                {
                    "device_id": device.device_id,
                    "name": device.name or "Unknown",
                    "state": device.state,
                },
                DISCOVERY_CONFIDENCE,
            ))
        return ids

    async def handle_web_testing_results(self, results: Iterable[WebTestResult]) -> list[str]:
        """Record web findings; hosts with findings also get the common
        default logins queued as low-confidence vault candidates."""
        ids = []
        for result in results:
            if result.vulnerability is None:
                continue
            host = url_host(result.url)
            payload = {
                "vulnerability_type": result.vulnerability,
                "url": result.url,
                "test_type": result.test_type,
            }
            if result.severity:
                payload["severity"] = result.severity
            ids.append(await self.report_finding(
                FindingKind.WEB_VULNERABILITY,
                ModuleType.WEB_TESTER,
                host,
                payload,
                WEB_FINDING_CONFIDENCE,
            ))
            if self._once("default_credentials", host):
                for username, password in COMMON_WEB_CREDENTIALS:
                    self.vault.add(Credential(
                        username=username,
                        password=password,
                        service="Web",
                        target=host,
                        source=ModuleType.WEB_TESTER,
                        confidence=DEFAULT_CREDENTIAL_CONFIDENCE,
                    ))
        return ids

    async def ingest(self, batch: IngestBatch) -> int:
        """Feed one batch of adapter output through the engine."""
        count = 0
        for report in batch.findings:
            await self.report_finding(
                report.kind, report.source, report.target, report.payload, report.confidence
            )
            count += 1
        for scan in batch.network_scans:
            count += len(await self.handle_network_discovery(scan.target, scan.results))
        count += len(await self.handle_bluetooth_discovery(batch.bluetooth_devices))
        count += len(await self.handle_web_testing_results(batch.web_results))
        return count

    # -- outputs -----------------------------------------------------------

    def plan_attack_chain(self, address: str) -> AttackChain:
        return self.planner.plan(address, self.store.findings_for(address))

    def generate_report(self) -> UnifiedReport:
        return self.reports.generate()

    def stats(self) -> EngineStats:
        return EngineStats(
            findings=len(self.store),
            targets=len(self.store.targets()),
            credentials=len(self.vault),
            cve_correlations=len(self.cve),
            opportunities=self.correlator.emitted_count,
            triggers=dict(self.coordinator.dispatched),
        )

    @property
    def pending(self) -> bool:
        return bool(self._tasks)

    async def drain(self) -> None:
        """Wait for background CVE correlation, including any it spawns."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # -- reactions ---------------------------------------------------------

    async def _on_finding_recorded(self, event: FindingRecorded) -> None:
        finding = event.finding
        logger.debug("Reacting to %s on %s", finding.kind.value, finding.target)

        if finding.kind is FindingKind.NETWORK_SERVICE:
            await self._react_to_service(finding)
        elif finding.kind is FindingKind.CREDENTIAL_LEAK:
            await self._react_to_credential(finding)
        elif finding.kind is FindingKind.WEB_VULNERABILITY:
            if finding.severity is Severity.CRITICAL and self._trigger_once("privesc", finding.target, None):
                await self.coordinator.suggest_privilege_escalation(finding.target)

        if finding.source is not ModuleType.INTELLIGENCE_ENGINE:
            await self.correlator.correlate()

    async def _react_to_service(self, finding: Finding) -> None:
        config = self.settings.engine
        details = finding.details
        target, port = finding.target, details.port

        if config.auto_trigger:
            if port in config.web_ports and self._trigger_once("web", target, port):
                await self.coordinator.trigger_web_testing(
                    build_web_url(target, port),
                    DiscoveryContext.NETWORK_SCAN,
                    target=target,
                    port=port,
                    service=details.service,
                )
            if port in config.ssh_ports and self._trigger_once("ssh", target, port):
                await self.coordinator.trigger_credential_testing(
                    target, port, "SSH", self.vault.credentials_for("SSH")
                )
            if port in config.database_ports and self._trigger_once("database", target, port):
                await self.coordinator.trigger_database_testing(target, port)

        if details.version and self._once("cve", target, port, details.service, details.version):
            self._spawn(self.cve.correlate(details.service, details.version, target, port))

    async def _react_to_credential(self, finding: Finding) -> None:
        details = finding.details
        credential = Credential(
            username=details.username,
            password=details.password,
            service=details.service,
            target=finding.target,
            port=details.port,
            source=finding.source,
            confidence=finding.confidence,
        )
        self.vault.add(credential)
        if not self.settings.engine.auto_trigger:
            return

        for target in self.store.targets():
            for service_finding in self.store.findings_for(target.address, FindingKind.NETWORK_SERVICE):
                port = service_finding.port
                service = self._testable_service(port)
                if service is None:
                    continue
                if target.address == finding.target and port == details.port:
                    continue
                if not self._once("reuse", target.address, port, details.username, details.password):
                    continue
                await self.coordinator.trigger_credential_testing(
                    target.address, port, service, [credential]
                )

    async def _on_correlation_found(self, event: CorrelationFound) -> None:
        finding = event.finding
        if finding.kind is not FindingKind.DEVICE_CORRELATION or not self.settings.engine.auto_trigger:
            return
        secondary = finding.details.device_id or finding.details.bluetooth_device
        if self._once("coordinated", finding.target, secondary):
            await self.coordinator.suggest_coordinated_attack(finding.target, secondary)

    # -- helpers -----------------------------------------------------------

    def _testable_service(self, port: int | None) -> str | None:
        if port is None:
            return None
        if port in PROBE_PORTS:
            return PROBE_PORTS[port]
        if port in self.settings.engine.web_ports:
            return "Web Admin"
        return None

    def _trigger_once(self, kind: str, target: str, port: int | None) -> bool:
        return self._once("trigger", kind, target, port)

    def _once(self, *key: Any) -> bool:
        with self._lock:
            if key in self._fired:
                return False
            self._fired.add(key)
            return True

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Background CVE correlation failed", exc_info=task.exception())
