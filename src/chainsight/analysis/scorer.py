"""Risk scoring for findings and targets."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from chainsight.models import Finding, ModuleType, RiskLevel, Severity

MAX_TARGET_SCORE = 4.0


def target_risk_score(findings: Sequence[Finding]) -> float:
    """Mean severity weight over all of a target's findings, clamped to 0-4.

    Findings without a severity count towards the mean with weight zero.
    """
    if not findings:
        return 0.0
    total = sum(f.severity.weight for f in findings if f.severity is not None)
    return max(0.0, min(total / len(findings), MAX_TARGET_SCORE))


def attack_surface(findings: Iterable[Finding]) -> int:
    """Number of distinct finding kinds observed for a target."""
    return len({f.kind for f in findings})


def count_severity(findings: Iterable[Finding], severity: Severity) -> int:
    return sum(1 for f in findings if f.severity is severity)


def overall_risk(findings: Sequence[Finding]) -> RiskLevel:
    if count_severity(findings, Severity.CRITICAL) > 0:
        return RiskLevel.CRITICAL
    if count_severity(findings, Severity.HIGH) > 2:
        return RiskLevel.HIGH
    return RiskLevel.MEDIUM


def module_risk(findings: Sequence[Finding], module: ModuleType) -> RiskLevel:
    """Risk contributed by one source module.

    A module with nothing reported is LOW; any critical finding makes it
    CRITICAL; anything else is MEDIUM.
    """
    own = [f for f in findings if f.source is module]
    if not own:
        return RiskLevel.LOW
    if count_severity(own, Severity.CRITICAL) > 0:
        return RiskLevel.CRITICAL
    return RiskLevel.MEDIUM
