"""JSON report exporter."""

from __future__ import annotations

import json
from typing import Any

from chainsight.models import AttackChain, UnifiedReport

REDACTED_KEYS = frozenset({"password"})


def render_json(report: UnifiedReport) -> str:
    """Render a unified report as JSON string. Secrets are left out."""
    data = report.model_dump(mode="json")
    # Highest-risk targets first
    data["technical_findings"] = sorted(
        data["technical_findings"], key=lambda t: t["risk_score"], reverse=True
    )
    for target in data["technical_findings"]:
        for finding in target["findings"]:
            _redact(finding.get("payload"))
            _redact(finding.get("details"))
    return json.dumps(data, indent=2, ensure_ascii=False)


def render_chain_json(chain: AttackChain) -> str:
    data = chain.model_dump(mode="json")
    data["estimated_seconds"] = chain.estimated_seconds
    data["success_probability"] = chain.success_probability
    return json.dumps(data, indent=2, ensure_ascii=False)


def _redact(values: dict[str, Any] | None) -> None:
    if not values:
        return
    for key in REDACTED_KEYS & values.keys():
        del values[key]
