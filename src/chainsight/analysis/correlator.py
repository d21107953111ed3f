"""Cross-finding pattern matching that derives attack opportunities.

A pattern is a plain function over an immutable :class:`Snapshot` that
returns zero or more :class:`PatternMatch` objects. Patterns never touch
the store; :class:`IntelligenceCorrelator` records whatever they match and
announces it with a :class:`CorrelationFound` event. New patterns only need
to be appended to ``DEFAULT_PATTERNS``.
"""

from __future__ import annotations

import ipaddress
import logging
import threading
from collections.abc import Callable, Sequence

from pydantic import BaseModel, ConfigDict, Field

from chainsight.config import EngineConfig
from chainsight.events import CorrelationFound, EventBus
from chainsight.models import Finding, FindingKind, ModuleType
from chainsight.store import FindingStore

logger = logging.getLogger(__name__)

DISCOVERY_MODULES = frozenset({
    ModuleType.NETWORK_SCANNER,
    ModuleType.WEB_TESTER,
    ModuleType.BLUETOOTH_SHELL,
})
MIN_NAME_LENGTH = 3
SUBNET_CLUSTER_SIZE = 3


class Snapshot(BaseModel):
    """Findings grouped by target address, in insertion order."""

    model_config = ConfigDict(frozen=True)

    by_target: dict[str, list[Finding]] = Field(default_factory=dict)
    names: dict[str, str] = Field(default_factory=dict)
    config: EngineConfig = Field(default_factory=EngineConfig)

    @classmethod
    def build(
        cls,
        findings: Sequence[Finding],
        names: dict[str, str] | None = None,
        config: EngineConfig | None = None,
    ) -> Snapshot:
        grouped: dict[str, list[Finding]] = {}
        for f in findings:
            if f.source is ModuleType.INTELLIGENCE_ENGINE:
                continue
            grouped.setdefault(f.target, []).append(f)
        return cls(by_target=grouped, names=names or {}, config=config or EngineConfig())

    def services(self, target: str) -> list[Finding]:
        return [f for f in self.by_target.get(target, []) if f.kind is FindingKind.NETWORK_SERVICE]

    def name_of(self, target: str) -> str:
        return self.names.get(target, target)


class PatternMatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    pattern: str
    target: str
    kind: FindingKind = FindingKind.ATTACK_OPPORTUNITY
    confidence: float = Field(ge=0.0, le=1.0)
    payload: dict[str, str]
    related_target: str | None = None

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.target, self.pattern, self.related_target or "")


Pattern = Callable[[Snapshot], list[PatternMatch]]


def web_ssh_combination(snapshot: Snapshot) -> list[PatternMatch]:
    matches = []
    for target in snapshot.by_target:
        ports = {f.port for f in snapshot.services(target)}
        if 80 in ports and 22 in ports:
            matches.append(PatternMatch(
                pattern="web_ssh_combination",
                target=target,
                confidence=0.8,
                payload={
                    "pattern": "web_ssh_combination",
                    "description": "Web service + SSH enables web shell upload attacks",
                    "suggested_attack": (
                        "Upload web shell via web vulnerability, then SSH for persistence"
                    ),
                },
            ))
    return matches


def excessive_open_ports(snapshot: Snapshot) -> list[PatternMatch]:
    threshold = snapshot.config.excessive_port_threshold
    matches = []
    for target in snapshot.by_target:
        ports = {f.port for f in snapshot.services(target)}
        if len(ports) > threshold:
            matches.append(PatternMatch(
                pattern="excessive_open_ports",
                target=target,
                confidence=0.7,
                payload={
                    "pattern": "excessive_open_ports",
                    "description": (
                        f"{len(ports)} open ports suggest internal network exposure"
                    ),
                    "suggested_attack": "Use as pivot point for lateral movement",
                    "open_ports": str(len(ports)),
                },
            ))
    return matches


def bluetooth_name_match(snapshot: Snapshot) -> list[PatternMatch]:
    devices = [
        f for findings in snapshot.by_target.values() for f in findings
        if f.kind is FindingKind.BLUETOOTH_DEVICE
    ]
    matches = []
    for device in devices:
        device_name = device.details.name.lower()
        if len(device_name) < MIN_NAME_LENGTH or device_name == "unknown":
            continue
        for target in snapshot.by_target:
            if target == device.target or not snapshot.services(target):
                continue
            host_name = snapshot.name_of(target).lower()
            if len(host_name) < MIN_NAME_LENGTH:
                continue
            if host_name in device_name or device_name in host_name:
                matches.append(PatternMatch(
                    pattern="bluetooth_name_match",
                    target=target,
                    kind=FindingKind.DEVICE_CORRELATION,
                    confidence=0.7,
                    related_target=device.target,
                    payload={
                        "pattern": "bluetooth_name_match",
                        "network_target": snapshot.name_of(target),
                        "bluetooth_device": device.details.name,
                        "device_id": device.details.device_id,
                        "correlation_confidence": "0.7",
                    },
                ))
    return matches


def temporal_cross_module(snapshot: Snapshot) -> list[PatternMatch]:
    window = snapshot.config.temporal_window_seconds
    matches = []
    for target, findings in snapshot.by_target.items():
        observed = sorted(
            (f for f in findings if f.source in DISCOVERY_MODULES),
            key=lambda f: f.timestamp,
        )
        modules: set[ModuleType] = set()
        for i, first in enumerate(observed):
            for later in observed[i + 1:]:
                if (later.timestamp - first.timestamp).total_seconds() > window:
                    break
                if later.source is not first.source:
                    modules.update((first.source, later.source))
        if len(modules) >= 2:
            names = ", ".join(sorted(m.value for m in modules))
            matches.append(PatternMatch(
                pattern="temporal_cross_module",
                target=target,
                confidence=0.6,
                payload={
                    "pattern": "temporal_cross_module",
                    "description": f"Target surfaced in {names} within {window:.0f}s",
                    "suggested_attack": "Combine attack vectors exposed by each module",
                },
            ))
    return matches


def subnet_cluster(snapshot: Snapshot) -> list[PatternMatch]:
    subnets: dict[str, list[str]] = {}
    for target in snapshot.by_target:
        if not snapshot.services(target):
            continue
        try:
            address = ipaddress.ip_address(target)
        except ValueError:
            continue
        if address.version != 4:
            continue
        network = ipaddress.ip_network(f"{address}/24", strict=False)
        subnets.setdefault(str(network), []).append(target)

    matches = []
    for network, members in subnets.items():
        if len(members) < SUBNET_CLUSTER_SIZE:
            continue
        for target in members:
            matches.append(PatternMatch(
                pattern="subnet_cluster",
                target=target,
                confidence=0.5,
                related_target=network,
                payload={
                    "pattern": "subnet_cluster",
                    "description": f"{len(members)} exposed hosts share {network}",
                    "suggested_attack": "Pivot between neighbouring hosts on the subnet",
                    "related_target": network,
                },
            ))
    return matches


DEFAULT_PATTERNS: list[Pattern] = [
    web_ssh_combination,
    excessive_open_ports,
    bluetooth_name_match,
    temporal_cross_module,
    subnet_cluster,
]


class IntelligenceCorrelator:
    """Runs every pattern over the store and records new opportunities.

    With ``deduplicate_opportunities`` on, each (target, pattern, related
    target) is emitted once for the life of the correlator, so re-running
    over a growing finding set is idempotent.
    """

    def __init__(
        self,
        store: FindingStore,
        bus: EventBus,
        config: EngineConfig | None = None,
        patterns: list[Pattern] | None = None,
    ) -> None:
        self._store = store
        self._bus = bus
        self._config = config or EngineConfig()
        self._patterns = list(patterns) if patterns is not None else list(DEFAULT_PATTERNS)
        self._lock = threading.Lock()
        self._emitted: set[tuple[str, str, str]] = set()
        self.emitted_count = 0

    def detect(self, findings: Sequence[Finding]) -> list[PatternMatch]:
        """Side-effect-free evaluation of every pattern."""
        names = {t.address: t.name for t in self._store.targets()}
        snapshot = Snapshot.build(findings, names=names, config=self._config)
        matches: list[PatternMatch] = []
        for pattern in self._patterns:
            matches.extend(pattern(snapshot))
        return matches

    async def correlate(self, findings: Sequence[Finding] | None = None) -> list[Finding]:
        if findings is None:
            findings = self._store.snapshot()

        emitted: list[Finding] = []
        for match in self.detect(findings):
            if self._config.deduplicate_opportunities and not self._claim(match.key):
                continue
            finding = Finding.create(
                match.kind,
                ModuleType.INTELLIGENCE_ENGINE,
                match.target,
                match.payload,
                confidence=match.confidence,
            )
            await self._store.record(finding)
            await self._bus.publish(CorrelationFound(finding=finding))
            logger.info("Pattern %s matched on %s", match.pattern, match.target)
            emitted.append(finding)
            self.emitted_count += 1
        return emitted

    def _claim(self, key: tuple[str, str, str]) -> bool:
        with self._lock:
            if key in self._emitted:
                return False
            self._emitted.add(key)
            return True
