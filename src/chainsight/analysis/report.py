"""Unified cross-module report generation."""

from __future__ import annotations

from collections.abc import Sequence

from chainsight.analysis.planner import AttackChainPlanner
from chainsight.analysis.scorer import (
    attack_surface,
    count_severity,
    module_risk,
    overall_risk,
    target_risk_score,
)
from chainsight.config import EngineConfig
from chainsight.models import (
    AttackChainAnalysis,
    Effort,
    ExecutiveSummary,
    Finding,
    FindingKind,
    Impact,
    ModuleType,
    Priority,
    Recommendation,
    RiskAssessment,
    Severity,
    Target,
    TechnicalFinding,
    UnifiedReport,
)
from chainsight.store import FindingStore
from chainsight.vault import CredentialVault

KEY_FINDING_CONFIDENCE = 0.7
KEY_FINDING_LIMIT = 5

REPORTED_MODULES = [
    ModuleType.NETWORK_SCANNER,
    ModuleType.WEB_TESTER,
    ModuleType.BLUETOOTH_SHELL,
    ModuleType.CVE_DATABASE,
    ModuleType.CREDENTIAL_TESTER,
]


class ReportGenerator:
    def __init__(
        self,
        store: FindingStore,
        vault: CredentialVault,
        planner: AttackChainPlanner,
        config: EngineConfig | None = None,
    ) -> None:
        self._store = store
        self._vault = vault
        self._planner = planner
        self._config = config or EngineConfig()

    def generate(self) -> UnifiedReport:
        findings = self._store.snapshot()
        targets = self._store.targets()
        credential_reuse = self._vault.detect_reuse()
        return UnifiedReport(
            executive_summary=self.executive_summary(findings, targets),
            technical_findings=self.technical_findings(findings),
            attack_chains=self.attack_chains(findings, targets),
            risk_assessment=self.risk_assessment(findings, credential_reuse),
            recommendations=self.recommendations(findings, credential_reuse),
        )

    def executive_summary(
        self, findings: Sequence[Finding], targets: Sequence[Target]
    ) -> ExecutiveSummary:
        counts = {sev: count_severity(findings, sev) for sev in Severity}
        key = sorted(
            (f for f in findings if f.confidence > KEY_FINDING_CONFIDENCE),
            key=lambda f: f.confidence,
            reverse=True,
        )[:KEY_FINDING_LIMIT]
        return ExecutiveSummary(
            overall_risk=overall_risk(findings),
            severity_counts=counts,
            critical_issues=counts[Severity.CRITICAL],
            high_risk_issues=counts[Severity.HIGH],
            tested_assets=len(targets),
            key_findings=[f"{f.kind.label} on {f.target}" for f in key],
        )

    def technical_findings(self, findings: Sequence[Finding]) -> list[TechnicalFinding]:
        grouped: dict[str, list[Finding]] = {}
        for f in findings:
            grouped.setdefault(f.target, []).append(f)
        return [
            TechnicalFinding(
                target=target,
                findings=items,
                risk_score=target_risk_score(items),
                attack_surface=attack_surface(items),
            )
            for target, items in grouped.items()
        ]

    def attack_chains(
        self, findings: Sequence[Finding], targets: Sequence[Target]
    ) -> list[AttackChainAnalysis]:
        return [
            AttackChainAnalysis.from_chain(self._planner.plan(t.address, findings))
            for t in targets
        ]

    def risk_assessment(self, findings: Sequence[Finding], credential_reuse: bool) -> RiskAssessment:
        factors: list[str] = []
        if credential_reuse:
            factors.append("Credential reuse across services")
        if self._has_unencrypted_services(findings):
            factors.append("Unencrypted services exposed")
        if any(f.kind is FindingKind.VULNERABILITY for f in findings):
            factors.append("Outdated software with known CVEs")
        return RiskAssessment(
            module_risks={m: module_risk(findings, m) for m in REPORTED_MODULES},
            overall_risk=overall_risk(findings),
            risk_factors=factors,
        )

    def recommendations(
        self, findings: Sequence[Finding], credential_reuse: bool
    ) -> list[Recommendation]:
        recs = [
            Recommendation(
                priority=Priority.CRITICAL,
                category=f.kind.value,
                description=f"Address critical {f.kind.label} on {f.target}",
                effort=Effort.MEDIUM,
                impact=Impact.HIGH,
            )
            for f in findings
            if f.severity is Severity.CRITICAL
        ]
        if credential_reuse:
            recs.append(Recommendation(
                priority=Priority.HIGH,
                category="authentication",
                description="Implement unique credentials across all services",
                effort=Effort.LOW,
                impact=Impact.HIGH,
            ))
        return sorted(recs, key=lambda r: r.priority.rank, reverse=True)

    def _has_unencrypted_services(self, findings: Sequence[Finding]) -> bool:
        ports = set(self._config.unencrypted_ports)
        return any(
            f.kind is FindingKind.NETWORK_SERVICE and f.port in ports for f in findings
        )
