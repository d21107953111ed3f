"""In-memory finding store and target registry."""

from __future__ import annotations

import logging
import threading
from datetime import datetime

from chainsight.analysis.scorer import target_risk_score
from chainsight.events import EventBus, FindingRecorded
from chainsight.models import Finding, FindingKind, Target

logger = logging.getLogger(__name__)


class FindingStore:
    """Append-only record of findings, keyed by target address.

    Mutations are serialised behind a lock that is never held across an
    ``await``. Once a finding is committed a :class:`FindingRecorded` event
    is published, exactly once, so reactions live in subscribers rather than
    in the store itself.
    """

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus
        self._lock = threading.Lock()
        self._findings: dict[str, Finding] = {}
        self._targets: dict[str, Target] = {}
        self._targets_by_id: dict[str, Target] = {}

    async def record(self, finding: Finding) -> str:
        with self._lock:
            if finding.id in self._findings:
                raise ValueError(f"finding {finding.id} already recorded")
            target = self._get_or_create(finding.target, finding.timestamp)
            self._findings[finding.id] = finding
            target.finding_ids.append(finding.id)
            if finding.source not in target.discovered_by:
                target.discovered_by.append(finding.source)
            if finding.timestamp > target.last_seen:
                target.last_seen = finding.timestamp
            if target.name == target.address:
                target.name = _display_name(finding) or target.name
            target._risk_score = target_risk_score(
                [self._findings[fid] for fid in target.finding_ids]
            )

        logger.debug(
            "Recorded %s from %s on %s", finding.kind.value, finding.source.value, finding.target
        )
        await self._bus.publish(FindingRecorded(finding=finding))
        return finding.id

    def query(self, target_id: str | None = None, kind: FindingKind | None = None) -> list[Finding]:
        """Findings matching the filters, in insertion order."""
        with self._lock:
            if target_id is not None:
                target = self._targets_by_id.get(target_id)
                if target is None:
                    return []
                candidates = [self._findings[fid] for fid in target.finding_ids]
            else:
                candidates = list(self._findings.values())
        if kind is not None:
            candidates = [f for f in candidates if f.kind is kind]
        return candidates

    def findings_for(self, address: str, kind: FindingKind | None = None) -> list[Finding]:
        target = self.get_target(address)
        if target is None:
            return []
        return self.query(target.id, kind)

    def get(self, finding_id: str) -> Finding | None:
        with self._lock:
            return self._findings.get(finding_id)

    def target_by_address(self, address: str) -> Target:
        """Get-or-create the target for an exact (case-sensitive) address."""
        with self._lock:
            return self._get_or_create(address)

    def get_target(self, address: str) -> Target | None:
        with self._lock:
            return self._targets.get(address)

    def targets(self) -> list[Target]:
        with self._lock:
            return list(self._targets.values())

    def snapshot(self) -> list[Finding]:
        with self._lock:
            return list(self._findings.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._findings)

    def _get_or_create(self, address: str, seen: datetime | None = None) -> Target:
        target = self._targets.get(address)
        if target is None:
            target = Target(name=address, address=address)
            if seen is not None:
                target.first_seen = seen
                target.last_seen = seen
            self._targets[address] = target
            self._targets_by_id[target.id] = target
            logger.debug("New target %s", address)
        return target


def _display_name(finding: Finding) -> str | None:
    if finding.kind is FindingKind.NETWORK_SERVICE:
        return finding.details.hostname
    if finding.kind is FindingKind.BLUETOOTH_DEVICE:
        name = finding.details.name
        return name if name and name != "Unknown" else None
    return None
