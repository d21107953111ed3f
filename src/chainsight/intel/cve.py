"""Service/version to CVE correlation with exploit enrichment."""

from __future__ import annotations

import logging
import threading
from datetime import UTC, datetime

from chainsight.coordinator import ModuleCoordinator
from chainsight.events import CVECorrelationUpdated, EventBus
from chainsight.intel.base import CveLookup, ExploitLookup
from chainsight.models import (
    CVECorrelation,
    CVERecord,
    ExploitEntry,
    Finding,
    FindingKind,
    ModuleType,
    Severity,
)
from chainsight.store import FindingStore

logger = logging.getLogger(__name__)

# Checked in order, first match wins. Tomcat precedes Apache so that
# "Apache Tomcat" is not widened to the HTTP server.
SERVICE_ALIASES: list[tuple[str, list[str]]] = [
    ("tomcat", ["Apache Tomcat"]),
    ("apache", ["Apache HTTP Server", "httpd"]),
    ("nginx", ["nginx"]),
    ("openssh", ["OpenSSH", "SSH"]),
    ("mysql", ["MySQL"]),
    ("postgresql", ["PostgreSQL"]),
    ("iis", ["Microsoft IIS"]),
    ("wordpress", ["WordPress"]),
]

AUTO_EXPLOIT_SEVERITIES = frozenset({Severity.CRITICAL, Severity.HIGH})
VULNERABILITY_CONFIDENCE = 0.8
OPPORTUNITY_CONFIDENCE = 0.9


def expand_aliases(service: str) -> list[str]:
    """The service name followed by its known aliases, without repeats."""
    names = [service]
    lower = service.lower()
    for needle, aliases in SERVICE_ALIASES:
        if needle in lower:
            names.extend(aliases)
            break

    unique: list[str] = []
    seen: set[str] = set()
    for name in names:
        if name and name.lower() not in seen:
            seen.add(name.lower())
            unique.append(name)
    return unique


def should_auto_exploit(correlation: CVECorrelation) -> bool:
    has_serious_exploit = any(e.severity in AUTO_EXPLOIT_SEVERITIES for e in correlation.exploits)
    return (
        correlation.severity in AUTO_EXPLOIT_SEVERITIES
        and has_serious_exploit
        and correlation.exploit_available
    )


class CVECorrelator:
    """Maps discovered services to CVEs and keeps one correlation per
    (target, port, CVE).

    Lookups run without holding the correlation lock: inputs are captured,
    the lock is released for the I/O, then re-acquired for the upsert.
    """

    def __init__(
        self,
        store: FindingStore,
        coordinator: ModuleCoordinator,
        bus: EventBus,
        cve_lookup: CveLookup,
        exploit_lookup: ExploitLookup,
    ) -> None:
        self._store = store
        self._coordinator = coordinator
        self._bus = bus
        self._cve_lookup = cve_lookup
        self._exploit_lookup = exploit_lookup
        self._lock = threading.Lock()
        self._correlations: dict[tuple[str, int, str], CVECorrelation] = {}
        self._auto_exploited: set[tuple[str, int, str]] = set()

    async def correlate(
        self, service: str, version: str, target: str, port: int
    ) -> list[CVECorrelation]:
        records: dict[str, CVERecord] = {}
        for alias in expand_aliases(service):
            for record in await self._lookup_cves(alias, version):
                records.setdefault(record.cve_id, record)

        results: list[CVECorrelation] = []
        for record in records.values():
            exploits = await self._lookup_exploits(record.cve_id)
            correlation, created = self._upsert(record, exploits, service, version, target, port)
            results.append(correlation)
            await self._bus.publish(CVECorrelationUpdated(correlation=correlation))

            if created:
                await self._record_vulnerability(correlation)
            if should_auto_exploit(correlation):
                await self._trigger_auto_exploit(correlation)

        logger.info(
            "Correlated %s %s on %s:%d -> %d CVE(s)", service, version, target, port, len(results)
        )
        return results

    def correlations(self, target: str | None = None) -> list[CVECorrelation]:
        with self._lock:
            items = list(self._correlations.values())
        if target is not None:
            items = [c for c in items if c.target == target]
        return items

    def __len__(self) -> int:
        with self._lock:
            return len(self._correlations)

    async def _lookup_cves(self, alias: str, version: str) -> list[CVERecord]:
        try:
            return list(await self._cve_lookup.lookup(alias, version))
        except Exception as exc:
            logger.warning("CVE lookup for %r %r failed: %s", alias, version, exc)
            return []

    async def _lookup_exploits(self, cve_id: str) -> list[ExploitEntry]:
        try:
            return list(await self._exploit_lookup.search_exploits(cve_id))
        except Exception as exc:
            logger.warning("Exploit lookup for %s failed: %s", cve_id, exc)
            return []

    def _upsert(
        self,
        record: CVERecord,
        exploits: list[ExploitEntry],
        service: str,
        version: str,
        target: str,
        port: int,
    ) -> tuple[CVECorrelation, bool]:
        key = (target, port, record.cve_id)
        now = datetime.now(UTC)
        with self._lock:
            existing = self._correlations.get(key)
            if existing is not None:
                updated = existing.model_copy(update={
                    "exploits": list(exploits),
                    "severity": record.severity,
                    "description": record.description or existing.description,
                    "last_updated": now,
                })
                self._correlations[key] = updated
                return updated, False

            created = CVECorrelation(
                cve_id=record.cve_id,
                target=target,
                port=port,
                service=service,
                version=version,
                severity=record.severity,
                description=record.description,
                exploits=list(exploits),
                last_updated=now,
            )
            self._correlations[key] = created
            return created, True

    async def _record_vulnerability(self, correlation: CVECorrelation) -> None:
        finding = Finding.create(
            FindingKind.VULNERABILITY,
            ModuleType.CVE_DATABASE,
            correlation.target,
            {
                "cve_id": correlation.cve_id,
                "service": correlation.service,
                "version": correlation.version,
                "port": str(correlation.port),
                "severity": correlation.severity.value,
                "exploit_available": str(correlation.exploit_available).lower(),
            },
            confidence=VULNERABILITY_CONFIDENCE,
        )
        await self._store.record(finding)

    async def _trigger_auto_exploit(self, correlation: CVECorrelation) -> None:
        with self._lock:
            if correlation.key in self._auto_exploited:
                return
            self._auto_exploited.add(correlation.key)

        exploit = correlation.best_exploit()
        if exploit is None:
            return
        finding = Finding.create(
            FindingKind.ATTACK_OPPORTUNITY,
            ModuleType.INTELLIGENCE_ENGINE,
            correlation.target,
            {
                "pattern": "exploitable_cve",
                "description": (
                    f"{correlation.cve_id} ({correlation.severity.value}) on port "
                    f"{correlation.port} has a public {exploit.severity.value} exploit"
                ),
                "suggested_attack": f"Run exploit {exploit.exploit_id}: {exploit.title}",
                "cve_id": correlation.cve_id,
                "exploit_id": exploit.exploit_id,
            },
            confidence=OPPORTUNITY_CONFIDENCE,
        )
        await self._store.record(finding)
        await self._coordinator.suggest_exploit(
            correlation.cve_id,
            correlation.target,
            correlation.port,
            exploit_id=exploit.exploit_id,
            exploit_title=exploit.title,
        )
