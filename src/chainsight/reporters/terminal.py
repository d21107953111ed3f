"""Rich terminal reporter."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from chainsight.models import AttackChain, RiskLevel, Severity, UnifiedReport

SEVERITY_COLORS = {
    Severity.CRITICAL: "bold red",
    Severity.HIGH: "red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "cyan",
    Severity.INFO: "dim",
}

RISK_COLORS = {
    RiskLevel.CRITICAL: "bold red",
    RiskLevel.HIGH: "red",
    RiskLevel.MEDIUM: "yellow",
    RiskLevel.LOW: "green",
}


def render_terminal(report: UnifiedReport, console: Console) -> None:
    """Render a unified report to terminal using Rich."""
    console.print()

    summary = report.executive_summary
    counts = summary.severity_counts
    risk_color = RISK_COLORS[summary.overall_risk]
    summary_text = (
        f"[bold red]Critical: {counts.get(Severity.CRITICAL, 0)}[/]  "
        f"[red]High: {counts.get(Severity.HIGH, 0)}[/]  "
        f"[yellow]Medium: {counts.get(Severity.MEDIUM, 0)}[/]  "
        f"[cyan]Low: {counts.get(Severity.LOW, 0)}[/]  "
        f"[dim]Info: {counts.get(Severity.INFO, 0)}[/]  "
        f"| Assets: {summary.tested_assets}"
    )
    if summary.key_findings:
        summary_text += "\n\n" + "\n".join(f"- {escape(line)}" for line in summary.key_findings)
    console.print(Panel(
        summary_text,
        title=f"[bold]Overall risk: [{risk_color}]{summary.overall_risk.value.upper()}[/][/]",
        subtitle=f"{report.generated_at:%Y-%m-%d %H:%M UTC}",
    ))

    if not report.technical_findings:
        console.print("\n[green]No findings.[/green]")
        return

    table = Table(show_header=True, header_style="bold", expand=True)
    table.add_column("Target", ratio=2)
    table.add_column("Sev", width=8)
    table.add_column("Kind", width=20)
    table.add_column("Source", width=18)
    table.add_column("Detail", ratio=3)
    table.add_column("Conf", width=5, justify="right")

    for group in report.technical_findings:
        for f in group.findings:
            color = SEVERITY_COLORS.get(f.severity, "") if f.severity else ""
            sev = f"[{color}]{f.severity.value.upper()}[/]" if f.severity else "-"
            table.add_row(
                f"{escape(group.target)} ({group.risk_score:.1f})",
                sev,
                f.kind.label,
                f.source.value,
                escape(_detail(f.payload)[:80]),
                f"{f.confidence:.1f}",
            )
    console.print(table)

    risk = report.risk_assessment
    if risk.risk_factors:
        console.print(Panel(
            "\n".join(f"- {escape(factor)}" for factor in risk.risk_factors),
            title="[bold]Risk Factors[/]",
            border_style="red",
        ))

    if report.recommendations:
        rec_table = Table(title="Recommendations", show_header=True, header_style="bold", expand=True)
        rec_table.add_column("Priority", width=9)
        rec_table.add_column("Category", width=20)
        rec_table.add_column("Description", ratio=3)
        for rec in report.recommendations:
            rec_table.add_row(rec.priority.value.upper(), rec.category, escape(rec.description))
        console.print(rec_table)


def render_chain_terminal(chain: AttackChain, console: Console) -> None:
    """Render one attack chain, phase by phase."""
    table = Table(show_header=True, header_style="bold", expand=True)
    table.add_column("Phase", width=26)
    table.add_column("Action", ratio=3)
    table.add_column("Est.", width=8, justify="right")
    table.add_column("P(success)", width=10, justify="right")

    for phase in chain.phases:
        for action in phase.actions:
            table.add_row(
                phase.type.value,
                escape(action.describe()),
                f"{action.estimated_seconds:.0f}s",
                f"{action.success_probability:.0%}",
            )

    console.print(Panel(
        table,
        title=f"[bold]Attack chain for {escape(chain.target)}[/]",
        subtitle=(
            f"~{chain.estimated_seconds / 60:.0f} min | "
            f"success {chain.success_probability:.2%}"
        ),
    ))


def _detail(payload: dict[str, str]) -> str:
    for key in ("description", "vulnerability_type", "cve_id", "service", "name", "username"):
        if payload.get(key):
            value = payload[key]
            if key == "service" and payload.get("port"):
                value = f"{payload['port']}/{value} {payload.get('version', '')}".strip()
            return value
    return ", ".join(f"{k}={v}" for k, v in payload.items())
