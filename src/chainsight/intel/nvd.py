"""NIST NVD CVE API 2.0 keyword-search client."""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from chainsight.models import CVERecord, Severity

NVD_API = "https://services.nvd.nist.gov/rest/json/cves/2.0"
RESULTS_PER_PAGE = 50

logger = logging.getLogger(__name__)


def severity_from_score(score: float) -> Severity:
    """Map a CVSS base score to a severity band."""
    if score >= 9.0:
        return Severity.CRITICAL
    if score >= 7.0:
        return Severity.HIGH
    if score >= 4.0:
        return Severity.MEDIUM
    if score > 0.0:
        return Severity.LOW
    return Severity.INFO


class NvdCveLookup:
    name = "nvd"

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key or os.environ.get("NVD_API_KEY") or None
        self._timeout = timeout
        self._transport = transport

    async def lookup(self, service: str, version: str) -> list[CVERecord]:
        keyword = f"{service} {version}".strip()
        if not keyword:
            return []

        headers = {"apiKey": self._api_key} if self._api_key else {}
        params = {"keywordSearch": keyword, "resultsPerPage": str(RESULTS_PER_PAGE)}
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport, max_redirects=3
            ) as client:
                resp = await client.get(NVD_API, params=params, headers=headers)
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("NVD lookup failed for %r: %s", keyword, exc)
            return []

        return parse_nvd_response(data)


def parse_nvd_response(data: dict[str, Any]) -> list[CVERecord]:
    records: list[CVERecord] = []
    for item in data.get("vulnerabilities", []):
        cve = item.get("cve") or {}
        cve_id = cve.get("id")
        if not cve_id:
            continue
        score = _base_score(cve.get("metrics") or {})
        records.append(CVERecord(
            cve_id=cve_id,
            description=_english_description(cve.get("descriptions") or [])[:500],
            severity=severity_from_score(score),
            base_score=score,
        ))
    return records


def _base_score(metrics: dict[str, Any]) -> float:
    # Prefer the newest CVSS version present
    for key in ("cvssMetricV40", "cvssMetricV31", "cvssMetricV30", "cvssMetricV2"):
        entries = metrics.get(key) or []
        if entries:
            try:
                return float(entries[0]["cvssData"]["baseScore"])
            except (KeyError, TypeError, ValueError):
                continue
    return 0.0


def _english_description(descriptions: list[dict[str, Any]]) -> str:
    for d in descriptions:
        if d.get("lang") == "en":
            return d.get("value", "")
    return descriptions[0].get("value", "") if descriptions else ""
