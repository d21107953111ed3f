"""Tests for report renderers."""

import io
import json

import pytest
import pytest_asyncio
from rich.console import Console

from chainsight.engine import IntelligenceEngine
from chainsight.models import PortScanResult, WebTestResult
from chainsight.reporters.json_report import render_chain_json, render_json
from chainsight.reporters.markdown import render_chain_markdown, render_markdown
from chainsight.reporters.terminal import render_chain_terminal, render_terminal


@pytest_asyncio.fixture
async def engine():
    engine = IntelligenceEngine()
    await engine.handle_network_discovery("10.0.0.5", [
        PortScanResult(port=22, service="OpenSSH"),
        PortScanResult(port=80, service="nginx"),
    ])
    await engine.handle_web_testing_results([
        WebTestResult(url="http://10.0.0.6/admin", vulnerability="[SQL] Injection", severity="critical"),
    ])
    await engine.drain()
    return engine


def _console() -> Console:
    return Console(file=io.StringIO(), width=160, record=True)


@pytest.mark.asyncio
async def test_render_markdown(engine):
    text = render_markdown(engine.generate_report())
    assert text.startswith("# Chainsight Intelligence Report")
    assert "### 10.0.0.5" in text
    assert "## Recommendations" in text
    assert "password=" not in text


@pytest.mark.asyncio
async def test_render_json(engine):
    data = json.loads(render_json(engine.generate_report()))
    assert data["executive_summary"]["overall_risk"] == "critical"
    scores = [t["risk_score"] for t in data["technical_findings"]]
    assert scores == sorted(scores, reverse=True)


@pytest.mark.asyncio
async def test_render_json_omits_passwords(engine):
    await engine.add_credential("admin", "hunter2", "SSH", "10.0.0.5", port=2222)
    await engine.drain()

    text = render_json(engine.generate_report())
    data = json.loads(text)
    leaks = [
        f for t in data["technical_findings"] for f in t["findings"] if f["kind"] == "credential_leak"
    ]

    assert "hunter2" not in text
    assert leaks
    assert leaks[0]["payload"]["username"] == "admin"
    assert "password" not in leaks[0]["payload"]
    assert "password" not in leaks[0]["details"]


@pytest.mark.asyncio
async def test_render_terminal(engine):
    console = _console()
    render_terminal(engine.generate_report(), console)
    output = console.export_text()
    assert "Overall risk" in output
    assert "10.0.0.5" in output


def test_render_terminal_empty():
    console = _console()
    render_terminal(IntelligenceEngine().generate_report(), console)
    assert "No findings." in console.export_text()


@pytest.mark.asyncio
async def test_chain_renderers(engine):
    chain = engine.plan_attack_chain("10.0.0.5")

    data = json.loads(render_chain_json(chain))
    assert [p["type"] for p in data["phases"]] == [
        "reconnaissance", "vulnerability_assessment", "exploitation", "post_exploitation",
    ]
    assert data["success_probability"] == pytest.approx(chain.success_probability)

    assert "# Attack chain for 10.0.0.5" in render_chain_markdown(chain)

    console = _console()
    render_chain_terminal(chain, console)
    assert "network scan" in console.export_text()
