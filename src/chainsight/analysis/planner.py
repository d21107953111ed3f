"""Attack chain planning from a target's accumulated findings."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence

from chainsight.config import ActionEstimate
from chainsight.models import (
    Action,
    ActionKind,
    AttackChain,
    AttackPhase,
    Finding,
    FindingKind,
    PhaseType,
)

logger = logging.getLogger(__name__)

# Static point estimates, not measurements.
DEFAULT_ACTION_TABLE: dict[ActionKind, ActionEstimate] = {
    ActionKind.NETWORK_SCAN: ActionEstimate(seconds=300, probability=0.95),
    ActionKind.BLUETOOTH_DISCOVERY: ActionEstimate(seconds=60, probability=0.95),
    ActionKind.WEB_SERVICE_ENUMERATION: ActionEstimate(seconds=120, probability=0.95),
    ActionKind.CVE_CORRELATION: ActionEstimate(seconds=30, probability=0.95),
    ActionKind.WEB_VULNERABILITY_SCANNING: ActionEstimate(seconds=600, probability=0.85),
    ActionKind.BLUETOOTH_VULNERABILITY_TESTING: ActionEstimate(seconds=300, probability=0.85),
    ActionKind.NETWORK_EXPLOIT: ActionEstimate(seconds=180, probability=0.60),
    ActionKind.WEB_EXPLOIT: ActionEstimate(seconds=120, probability=0.60),
    ActionKind.BLUETOOTH_EXPLOIT: ActionEstimate(seconds=240, probability=0.60),
    ActionKind.PRIVILEGE_ESCALATION: ActionEstimate(seconds=300, probability=0.40),
    ActionKind.LATERAL_MOVEMENT: ActionEstimate(seconds=600, probability=0.40),
    ActionKind.DATA_EXFILTRATION: ActionEstimate(seconds=120, probability=0.70),
    ActionKind.PERSISTENT_ACCESS: ActionEstimate(seconds=180, probability=0.70),
}

RECONNAISSANCE = [
    (ActionKind.NETWORK_SCAN, {"ports": "1-65535"}),
    (ActionKind.BLUETOOTH_DISCOVERY, {}),
    (ActionKind.WEB_SERVICE_ENUMERATION, {}),
]
VULNERABILITY_ASSESSMENT = [
    (ActionKind.CVE_CORRELATION, {}),
    (ActionKind.WEB_VULNERABILITY_SCANNING, {}),
    (ActionKind.BLUETOOTH_VULNERABILITY_TESTING, {}),
]
POST_EXPLOITATION = [
    (ActionKind.PRIVILEGE_ESCALATION, {}),
    (ActionKind.LATERAL_MOVEMENT, {}),
    (ActionKind.DATA_EXFILTRATION, {}),
    (ActionKind.PERSISTENT_ACCESS, {}),
]


def build_action_table(
    overrides: Mapping[str, ActionEstimate] | None = None,
) -> dict[ActionKind, ActionEstimate]:
    """Default estimates with per-kind overrides from configuration applied."""
    table = dict(DEFAULT_ACTION_TABLE)
    for name, estimate in (overrides or {}).items():
        try:
            table[ActionKind(name)] = estimate
        except ValueError:
            logger.warning("Ignoring estimate for unknown action kind %r", name)
    return table


class AttackChainPlanner:
    def __init__(self, table: Mapping[ActionKind, ActionEstimate] | None = None) -> None:
        self._table = dict(table) if table is not None else dict(DEFAULT_ACTION_TABLE)

    def action(self, kind: ActionKind, **parameters: str) -> Action:
        estimate = self._table[kind]
        return Action(
            kind=kind,
            parameters=parameters,
            estimated_seconds=estimate.seconds,
            success_probability=estimate.probability,
        )

    def plan(self, target: str, findings: Sequence[Finding]) -> AttackChain:
        """Four fixed-order phases; exploitation is derived from ``findings``."""
        return AttackChain(
            target=target,
            phases=[
                self._phase(PhaseType.RECONNAISSANCE, RECONNAISSANCE),
                self._phase(PhaseType.VULNERABILITY_ASSESSMENT, VULNERABILITY_ASSESSMENT),
                AttackPhase(
                    type=PhaseType.EXPLOITATION,
                    actions=self._exploitation(f for f in findings if f.target == target),
                ),
                self._phase(PhaseType.POST_EXPLOITATION, POST_EXPLOITATION),
            ],
        )

    def _phase(self, phase: PhaseType, steps: list[tuple[ActionKind, dict[str, str]]]) -> AttackPhase:
        return AttackPhase(type=phase, actions=[self.action(kind, **params) for kind, params in steps])

    def _exploitation(self, findings: Iterable[Finding]) -> list[Action]:
        actions: list[Action] = []
        for finding in findings:
            details = finding.details
            if finding.kind is FindingKind.NETWORK_SERVICE:
                actions.append(self.action(
                    ActionKind.NETWORK_EXPLOIT, port=str(details.port), service=details.service,
                ))
            elif finding.kind is FindingKind.WEB_VULNERABILITY:
                actions.append(self.action(ActionKind.WEB_EXPLOIT, url=details.url))
            elif finding.kind is FindingKind.BLUETOOTH_DEVICE:
                actions.append(self.action(ActionKind.BLUETOOTH_EXPLOIT, device_id=details.device_id))
        return actions
