"""Tests for risk scoring and the unified report."""

import pytest

from chainsight.analysis.planner import AttackChainPlanner
from chainsight.analysis.report import ReportGenerator
from chainsight.analysis.scorer import module_risk, overall_risk, target_risk_score
from chainsight.models import (
    Credential,
    Finding,
    FindingKind,
    ModuleType,
    Priority,
    RiskLevel,
    Severity,
)
from chainsight.vault import CredentialVault


def _web(severity: str, target="10.0.0.5", confidence=0.8) -> Finding:
    return Finding.create(
        FindingKind.WEB_VULNERABILITY, ModuleType.WEB_TESTER, target,
        {"url": f"http://{target}/", "severity": severity}, confidence,
    )


def _service(port: int, target="10.0.0.5") -> Finding:
    return Finding.create(
        FindingKind.NETWORK_SERVICE, ModuleType.NETWORK_SCANNER, target, {"port": str(port)}, 0.9,
    )


def _generator(store, vault=None):
    return ReportGenerator(store, vault or CredentialVault(), AttackChainPlanner())


def test_overall_risk_rules():
    assert overall_risk([_web("critical")]) is RiskLevel.CRITICAL
    assert overall_risk([_web("high")] * 3) is RiskLevel.HIGH
    assert overall_risk([_web("high")] * 2) is RiskLevel.MEDIUM
    assert overall_risk([_web("low")]) is RiskLevel.MEDIUM


def test_overall_risk_is_monotonic():
    # RiskLevel members are declared worst first
    order = list(RiskLevel)
    findings = [_web("high"), _web("high"), _web("medium")]
    before = order.index(overall_risk(findings))
    assert order.index(overall_risk(findings + [_web("critical")])) <= before
    assert order.index(overall_risk(findings + [_web("high")])) <= before


def test_module_risk():
    findings = [_web("critical"), _service(80)]
    assert module_risk(findings, ModuleType.WEB_TESTER) is RiskLevel.CRITICAL
    assert module_risk(findings, ModuleType.NETWORK_SCANNER) is RiskLevel.MEDIUM
    assert module_risk(findings, ModuleType.BLUETOOTH_SHELL) is RiskLevel.LOW


def test_target_risk_score():
    assert target_risk_score([]) == 0.0
    assert target_risk_score([_web("critical"), _web("low")]) == pytest.approx(2.5)
    assert target_risk_score([_service(80)]) == 0.0


@pytest.mark.asyncio
async def test_report_sections(store):
    for f in [_service(21), _service(22), _web("critical"), _web("high", target="10.0.0.6")]:
        await store.record(f)

    report = _generator(store).generate()

    summary = report.executive_summary
    assert summary.overall_risk is RiskLevel.CRITICAL
    assert summary.critical_issues == 1
    assert summary.high_risk_issues == 1
    assert summary.severity_counts[Severity.CRITICAL] == 1
    assert summary.tested_assets == 2
    assert [t.target for t in report.technical_findings] == ["10.0.0.5", "10.0.0.6"]
    assert report.technical_findings[0].attack_surface == 2
    assert len(report.attack_chains) == 2

    risk = report.risk_assessment
    assert risk.overall_risk is RiskLevel.CRITICAL
    assert risk.module_risks[ModuleType.WEB_TESTER] is RiskLevel.CRITICAL
    assert risk.module_risks[ModuleType.BLUETOOTH_SHELL] is RiskLevel.LOW
    assert "Unencrypted services exposed" in risk.risk_factors
    assert "Credential reuse across services" not in risk.risk_factors

    assert len(report.recommendations) == 1
    assert report.recommendations[0].priority is Priority.CRITICAL


@pytest.mark.asyncio
async def test_key_findings_limited_to_confident_top_five(store):
    for i in range(7):
        await store.record(_web("low", target=f"h{i}", confidence=0.75 + i * 0.03))
    await store.record(_web("low", target="unsure", confidence=0.7))

    key = _generator(store).generate().executive_summary.key_findings

    assert len(key) == 5
    assert key[0] == "Web Vulnerability on h6"
    assert all("unsure" not in line for line in key)


@pytest.mark.asyncio
async def test_credential_reuse_recommendation(store):
    vault = CredentialVault()
    for service in ("SSH", "FTP"):
        vault.add(Credential(
            username="admin", password="s3cret", service=service, source=ModuleType.CREDENTIAL_TESTER,
        ))
    await store.record(_web("critical"))

    report = _generator(store, vault).generate()

    assert "Credential reuse across services" in report.risk_assessment.risk_factors
    priorities = [r.priority for r in report.recommendations]
    assert priorities == [Priority.CRITICAL, Priority.HIGH]
    assert report.recommendations[1].category == "authentication"


@pytest.mark.asyncio
async def test_vulnerability_risk_factor(store):
    await store.record(Finding.create(
        FindingKind.VULNERABILITY, ModuleType.CVE_DATABASE, "10.0.0.5",
        {"cve_id": "CVE-2021-41773", "severity": "high", "port": "443"}, 0.8,
    ))
    factors = _generator(store).generate().risk_assessment.risk_factors
    assert factors == ["Outdated software with known CVEs"]


def test_empty_report(store):
    report = _generator(store).generate()
    assert report.technical_findings == []
    assert report.recommendations == []
    assert report.executive_summary.tested_assets == 0
