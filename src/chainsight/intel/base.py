"""Lookup collaborator protocols."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from chainsight.models import CVERecord, ExploitEntry


@runtime_checkable
class CveLookup(Protocol):
    name: str

    async def lookup(self, service: str, version: str) -> list[CVERecord]:
        """Return CVEs affecting ``service`` at ``version``."""
        ...


@runtime_checkable
class ExploitLookup(Protocol):
    name: str

    async def search_exploits(self, cve_id: str) -> list[ExploitEntry]:
        """Return public exploits for ``cve_id``."""
        ...


class NullLookup:
    """Offline collaborator that never finds anything."""

    name = "none"

    async def lookup(self, service: str, version: str) -> list[CVERecord]:
        return []

    async def search_exploits(self, cve_id: str) -> list[ExploitEntry]:
        return []
