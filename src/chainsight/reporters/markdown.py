"""Markdown report generator."""

from __future__ import annotations

from chainsight.models import AttackChain, Severity, UnifiedReport


def render_markdown(report: UnifiedReport) -> str:
    """Render a unified report as Markdown."""
    lines: list[str] = []
    summary = report.executive_summary
    counts = summary.severity_counts

    lines.append("# Chainsight Intelligence Report")
    lines.append("")
    lines.append(f"- **Date**: {report.generated_at:%Y-%m-%d %H:%M UTC}")
    lines.append(f"- **Overall risk**: {summary.overall_risk.value.upper()}")
    lines.append(f"- **Tested assets**: {summary.tested_assets}")
    lines.append("")
    lines.append("## Summary")
    lines.append("")
    lines.append("| Critical | High | Medium | Low | Info |")
    lines.append("|----------|------|--------|-----|------|")
    lines.append(
        "| " + " | ".join(str(counts.get(sev, 0)) for sev in Severity) + " |"
    )
    lines.append("")

    if summary.key_findings:
        lines.append("### Key findings")
        lines.append("")
        lines.extend(f"- {line}" for line in summary.key_findings)
        lines.append("")

    if not report.technical_findings:
        lines.append("No findings.")
        return "\n".join(lines)

    lines.append("## Findings")
    lines.append("")
    for group in report.technical_findings:
        lines.append(
            f"### {group.target} (risk {group.risk_score:.1f}, surface {group.attack_surface})"
        )
        lines.append("")
        lines.append("| Severity | Kind | Source | Confidence | Data |")
        lines.append("|----------|------|--------|-----------:|------|")
        for f in group.findings:
            sev = f.severity.value.upper() if f.severity else "-"
            data = ", ".join(f"{k}={v}" for k, v in f.payload.items() if k != "password")
            lines.append(
                f"| {sev} | {f.kind.label} | {f.source.value} | {f.confidence:.1f} | {data[:80]} |"
            )
        lines.append("")

    risk = report.risk_assessment
    lines.append("## Risk Assessment")
    lines.append("")
    for module, level in risk.module_risks.items():
        lines.append(f"- {module.value}: **{level.value}**")
    if risk.risk_factors:
        lines.append("")
        lines.extend(f"- {factor}" for factor in risk.risk_factors)
    lines.append("")

    if report.attack_chains:
        lines.append("## Attack Chains")
        lines.append("")
        for chain in report.attack_chains:
            lines.append(
                f"- **{chain.target}**: {len(chain.phases)} phases, "
                f"~{chain.estimated_seconds / 60:.0f} min, "
                f"success {chain.success_probability:.2%}"
            )
        lines.append("")

    if report.recommendations:
        lines.append("## Recommendations")
        lines.append("")
        for rec in report.recommendations:
            lines.append(
                f"- **[{rec.priority.value.upper()}] {rec.category}**: {rec.description} "
                f"(effort {rec.effort.value}, impact {rec.impact.value})"
            )
        lines.append("")

    return "\n".join(lines)


def render_chain_markdown(chain: AttackChain) -> str:
    lines = [f"# Attack chain for {chain.target}", ""]
    for phase in chain.phases:
        lines.append(f"## {phase.type.value.replace('_', ' ').title()}")
        lines.append("")
        for action in phase.actions:
            lines.append(
                f"1. {action.describe()} "
                f"({action.estimated_seconds:.0f}s, {action.success_probability:.0%})"
            )
        lines.append("")
    lines.append(
        f"Estimated time ~{chain.estimated_seconds / 60:.0f} min, "
        f"success probability {chain.success_probability:.2%}."
    )
    return "\n".join(lines)
