"""CLI entry point using Typer."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from chainsight import __version__
from chainsight.config import Settings, load_config
from chainsight.engine import IntelligenceEngine
from chainsight.intel.base import CveLookup, ExploitLookup, NullLookup
from chainsight.models import IngestBatch, InvalidFindingError

app = typer.Typer(
    name="chainsight",
    help="Cross-module intelligence engine: correlate tool findings, plan attack chains, report.",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool) -> None:
    if value:
        console.print(f"chainsight {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", "-V", callback=version_callback, is_eager=True),
    ] = None,
) -> None:
    """chainsight: cross-module intelligence and correlation engine."""


def setup_logging(verbose: bool) -> None:
    logger = logging.getLogger("chainsight")
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        logger.addHandler(RichHandler(console=err_console, show_path=False, rich_tracebacks=True))


ConfigOption = Annotated[Path | None, typer.Option("--config", "-c", help="Config file path")]
FormatOption = Annotated[
    str, typer.Option("--format", "-f", help="Output format: terminal, markdown, json")
]
OutputOption = Annotated[str | None, typer.Option("--output", "-o", help="Output file path")]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")]


@app.command()
def ingest(
    file: Annotated[Path, typer.Argument(help="JSON file of adapter output")],
    format: FormatOption = "terminal",
    output: OutputOption = None,
    config: ConfigOption = None,
    no_lookup: Annotated[
        bool, typer.Option("--no-lookup", help="Skip NVD / Exploit-DB lookups")
    ] = False,
    probe: Annotated[
        bool, typer.Option("--probe", help="Run credential probes against live services")
    ] = False,
    verbose: VerboseOption = False,
) -> None:
    """Correlate adapter output and print the unified report."""
    setup_logging(verbose)
    cfg = load_config(config)
    if no_lookup:
        cfg.lookup.enabled = False

    batch = _load_batch(file)
    engine = asyncio.run(_run_ingest(batch, cfg, probe))
    report = engine.generate_report()

    if format == "json":
        from chainsight.reporters.json_report import render_json

        _emit(render_json(report), output)
    elif format == "markdown":
        from chainsight.reporters.markdown import render_markdown

        _emit(render_markdown(report), output)
    else:
        from chainsight.reporters.terminal import render_terminal

        render_terminal(report, console)

    stats = engine.stats()
    err_console.print(
        f"\n[dim]{stats.findings} finding(s) on {stats.targets} target(s), "
        f"{stats.cve_correlations} CVE correlation(s), {stats.opportunities} opportunity(ies), "
        f"{sum(stats.triggers.values())} trigger(s)[/dim]"
    )


@app.command()
def plan(
    file: Annotated[Path, typer.Argument(help="JSON file of adapter output")],
    target: Annotated[str, typer.Option("--target", "-t", help="Target address to plan for")],
    format: FormatOption = "terminal",
    output: OutputOption = None,
    config: ConfigOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Plan a phased attack chain for one target."""
    setup_logging(verbose)
    cfg = load_config(config)
    cfg.lookup.enabled = False

    batch = _load_batch(file)
    engine = asyncio.run(_run_ingest(batch, cfg, probe=False))
    chain = engine.plan_attack_chain(target)

    if format == "json":
        from chainsight.reporters.json_report import render_chain_json

        _emit(render_chain_json(chain), output)
    elif format == "markdown":
        from chainsight.reporters.markdown import render_chain_markdown

        _emit(render_chain_markdown(chain), output)
    else:
        from chainsight.reporters.terminal import render_chain_terminal

        render_chain_terminal(chain, console)


@app.command()
def status(config: ConfigOption = None) -> None:
    """Show lookup collaborators and credential probes."""
    from chainsight.intel.exploitdb import SearchSploitLookup
    from chainsight.probes import PROBE_CLASSES, list_available_probes

    cfg = load_config(config)
    console.print(f"[bold]chainsight[/bold] v{__version__}\n")

    table = Table(show_header=True, header_style="bold")
    table.add_column("Component")
    table.add_column("Kind")
    table.add_column("Available")

    def icon(ok: bool) -> str:
        return "[green]✓[/green]" if ok else "[dim]✗[/dim]"

    table.add_row("nvd", "cve lookup", icon(cfg.lookup.enabled))
    searchsploit = SearchSploitLookup(cfg.lookup.searchsploit_path)
    table.add_row("searchsploit", "exploit lookup", icon(cfg.lookup.enabled and searchsploit.is_available()))
    available = set(list_available_probes())
    for name in PROBE_CLASSES:
        table.add_row(name, "credential probe", icon(name in available))
    console.print(table)


@app.command(name="config")
def config_show(config: ConfigOption = None) -> None:
    """Show current configuration."""
    cfg = load_config(config)
    data = cfg.model_dump()
    if data["lookup"].get("nvd_api_key"):
        data["lookup"]["nvd_api_key"] = "***"
    console.print_json(json.dumps(data, default=str))


def _load_batch(file: Path) -> IngestBatch:
    try:
        raw = json.loads(file.read_text())
        if isinstance(raw, list):
            raw = {"findings": raw}
        return IngestBatch.model_validate(raw)
    except OSError as exc:
        err_console.print(f"[red]Cannot read {file}: {exc}[/red]")
        raise typer.Exit(1) from exc
    except (ValueError, ValidationError) as exc:
        err_console.print(f"[red]Invalid input in {file}: {exc}[/red]")
        raise typer.Exit(1) from exc


def _build_lookups(cfg: Settings) -> tuple[CveLookup, ExploitLookup]:
    if not cfg.lookup.enabled:
        return NullLookup(), NullLookup()

    from chainsight.intel.exploitdb import SearchSploitLookup
    from chainsight.intel.nvd import NvdCveLookup

    searchsploit = SearchSploitLookup(cfg.lookup.searchsploit_path, cfg.lookup.searchsploit_timeout)
    if not searchsploit.is_available():
        err_console.print("[yellow]searchsploit not found, exploit lookups disabled[/yellow]")
        exploit_lookup: ExploitLookup = NullLookup()
    else:
        exploit_lookup = searchsploit
    return NvdCveLookup(cfg.lookup.nvd_api_key, cfg.lookup.nvd_timeout), exploit_lookup


async def _run_ingest(batch: IngestBatch, cfg: Settings, probe: bool) -> IntelligenceEngine:
    cve_lookup, exploit_lookup = _build_lookups(cfg)
    engine = IntelligenceEngine(cfg, cve_lookup, exploit_lookup)

    adapter = None
    if probe:
        from chainsight.adapters.credentials import CredentialTestAdapter

        adapter = CredentialTestAdapter(engine.report_finding, timeout=cfg.probes.timeout)
        adapter.attach(engine.bus)

    try:
        count = await engine.ingest(batch)
    except InvalidFindingError as exc:
        err_console.print(f"[red]Rejected finding: {exc}[/red]")
        raise typer.Exit(1) from exc

    # Probes may confirm credentials, which spawn further correlation
    while True:
        await engine.drain()
        if adapter is not None:
            await adapter.drain()
        if not engine.pending and (adapter is None or not adapter.pending):
            break

    logging.getLogger(__name__).info("Ingested %d finding(s) from batch", count)
    return engine


def _emit(text: str, output: str | None) -> None:
    if output:
        Path(output).write_text(text)
        console.print(f"\n[green]Report saved to {output}[/green]")
    else:
        console.print(text, markup=False, highlight=False, soft_wrap=True)
