"""Exploit-DB lookup through the SearchSploit CLI."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import shutil

from chainsight.models import ExploitEntry, Severity

logger = logging.getLogger(__name__)


def exploit_severity(title: str) -> Severity:
    """Estimate how dangerous an exploit is from its title."""
    lower = title.lower()
    if "remote" in lower and "code" in lower:
        return Severity.CRITICAL
    if "privilege" in lower or "escalation" in lower:
        return Severity.HIGH
    if "denial" in lower or re.search(r"\bdos\b", lower):
        return Severity.MEDIUM
    return Severity.LOW


class SearchSploitLookup:
    name = "searchsploit"

    def __init__(self, binary: str = "searchsploit", timeout: float = 30.0) -> None:
        self._binary = binary
        self._timeout = timeout

    def is_available(self) -> bool:
        return shutil.which(self._binary) is not None

    async def search_exploits(self, cve_id: str) -> list[ExploitEntry]:
        if not self.is_available():
            logger.debug("searchsploit not found, skipping %s", cve_id)
            return []

        # Exploit-DB indexes CVEs both as CVE-YYYY-NNNN and YYYY-NNNN
        full = cve_id.upper()
        queries = [full]
        short = full.removeprefix("CVE-")
        if short != full:
            queries.append(short)

        seen: set[str] = set()
        results: list[ExploitEntry] = []
        for query in queries:
            for entry in await self._search(query):
                if entry.exploit_id not in seen:
                    seen.add(entry.exploit_id)
                    results.append(entry)
        return results

    async def _search(self, query: str) -> list[ExploitEntry]:
        try:
            proc = await asyncio.create_subprocess_exec(
                self._binary, "--json", "--exclude", "dos", query,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            logger.warning("searchsploit could not start: %s", exc)
            return []

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning("searchsploit timed out for %r", query)
            return []

        if proc.returncode != 0:
            return []
        return parse_searchsploit(stdout.decode(errors="replace"))


def parse_searchsploit(raw: str) -> list[ExploitEntry]:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return []
    if not isinstance(data, dict):
        return []

    entries: list[ExploitEntry] = []
    for section in ("RESULTS_EXPLOIT", "RESULTS_SHELLCODE"):
        for item in data.get(section) or []:
            edb_id = item.get("EDB-ID") or item.get("EDB_ID")
            title = item.get("Title", "")
            if not edb_id:
                continue
            entries.append(ExploitEntry(
                exploit_id=str(edb_id),
                title=title,
                severity=exploit_severity(title),
                path=item.get("Path", ""),
                platform=item.get("Platform", ""),
            ))
    return entries
