"""Unified data models for findings, targets, credentials and derived artifacts."""

from __future__ import annotations

import math
import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError, field_validator


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _new_id() -> str:
    return uuid.uuid4().hex


class InvalidFindingError(ValueError):
    """Raised when a reported finding is missing data its kind requires."""


class Severity(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"

    @property
    def weight(self) -> float:
        return {
            Severity.CRITICAL: 4.0,
            Severity.HIGH: 3.0,
            Severity.MEDIUM: 2.0,
            Severity.LOW: 1.0,
            Severity.INFO: 0.0,
        }[self]

    @classmethod
    def parse(cls, value: str | None) -> Severity | None:
        """Case-insensitive lookup; unknown or empty values map to None."""
        if not value:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class FindingKind(StrEnum):
    NETWORK_SERVICE = "network_service"
    WEB_VULNERABILITY = "web_vulnerability"
    BLUETOOTH_DEVICE = "bluetooth_device"
    VULNERABILITY = "vulnerability"
    DEVICE_CORRELATION = "device_correlation"
    ATTACK_OPPORTUNITY = "attack_opportunity"
    CREDENTIAL_LEAK = "credential_leak"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").title()


class ModuleType(StrEnum):
    NETWORK_SCANNER = "network_scanner"
    WEB_TESTER = "web_tester"
    BLUETOOTH_SHELL = "bluetooth_shell"
    CVE_DATABASE = "cve_database"
    ATTACK_EXECUTOR = "attack_executor"
    CREDENTIAL_TESTER = "credential_tester"
    INTELLIGENCE_ENGINE = "intelligence_engine"


class RiskLevel(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# ---------------------------------------------------------------------------
# Typed finding details, decoded once from the adapter's string payload
# ---------------------------------------------------------------------------


class _Details(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    severity: Severity | None = None

    @field_validator("severity", mode="before")
    @classmethod
    def _normalise_severity(cls, value: Any) -> Severity | None:
        if value is None or isinstance(value, Severity):
            return value
        return Severity.parse(str(value))


class NetworkServiceDetails(_Details):
    port: int = Field(ge=1, le=65535)
    service: str = "unknown"
    version: str | None = None
    banner: str = ""
    hostname: str | None = None

    @field_validator("version", "hostname", mode="before")
    @classmethod
    def _blank_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class WebVulnerabilityDetails(_Details):
    url: str
    vulnerability_type: str = ""
    test_type: str = ""


class BluetoothDeviceDetails(_Details):
    device_id: str
    name: str = "Unknown"
    state: str = ""


class VulnerabilityDetails(_Details):
    cve_id: str
    service: str = ""
    version: str = ""
    port: int | None = Field(default=None, ge=1, le=65535)
    exploit_available: bool = False


class DeviceCorrelationDetails(_Details):
    network_target: str
    bluetooth_device: str
    device_id: str | None = None
    correlation_confidence: float | None = None


class AttackOpportunityDetails(_Details):
    pattern: str
    description: str = ""
    suggested_attack: str = ""
    related_target: str | None = None
    cve_id: str | None = None
    exploit_id: str | None = None


class CredentialLeakDetails(_Details):
    username: str
    password: str
    service: str
    port: int | None = Field(default=None, ge=1, le=65535)


FindingDetails = (
    NetworkServiceDetails
    | WebVulnerabilityDetails
    | BluetoothDeviceDetails
    | VulnerabilityDetails
    | DeviceCorrelationDetails
    | AttackOpportunityDetails
    | CredentialLeakDetails
)

DETAILS_BY_KIND: dict[FindingKind, type[_Details]] = {
    FindingKind.NETWORK_SERVICE: NetworkServiceDetails,
    FindingKind.WEB_VULNERABILITY: WebVulnerabilityDetails,
    FindingKind.BLUETOOTH_DEVICE: BluetoothDeviceDetails,
    FindingKind.VULNERABILITY: VulnerabilityDetails,
    FindingKind.DEVICE_CORRELATION: DeviceCorrelationDetails,
    FindingKind.ATTACK_OPPORTUNITY: AttackOpportunityDetails,
    FindingKind.CREDENTIAL_LEAK: CredentialLeakDetails,
}


def decode_details(kind: FindingKind, payload: dict[str, str]) -> FindingDetails:
    """Validate a raw adapter payload against the schema for its kind."""
    schema = DETAILS_BY_KIND[kind]
    try:
        return schema.model_validate(payload)  # type: ignore[return-value]
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'payload'}: {err['msg']}"
            for err in exc.errors()
        )
        raise InvalidFindingError(f"invalid {kind.value} payload: {problems}") from exc


class Finding(BaseModel):
    """An atomic, immutable observation about one target."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    kind: FindingKind
    source: ModuleType
    target: str = Field(description="Network address of the owning target")
    payload: dict[str, str] = Field(default_factory=dict)
    details: FindingDetails
    timestamp: datetime = Field(default_factory=_utcnow)
    confidence: float = Field(ge=0.0, le=1.0)

    @classmethod
    def create(
        cls,
        kind: FindingKind | str,
        source: ModuleType | str,
        target: str,
        payload: dict[str, str] | None = None,
        confidence: float = 1.0,
        timestamp: datetime | None = None,
    ) -> Finding:
        """Build a finding from an adapter report, rejecting malformed input."""
        try:
            kind = FindingKind(kind)
            source = ModuleType(source)
        except ValueError as exc:
            raise InvalidFindingError(str(exc)) from exc
        if not target:
            raise InvalidFindingError("finding has no target")
        if not isinstance(confidence, (int, float)) or math.isnan(confidence):
            raise InvalidFindingError(f"confidence must be a number, got {confidence!r}")
        if not 0.0 <= confidence <= 1.0:
            raise InvalidFindingError(f"confidence {confidence} outside [0, 1]")

        # JSON nulls mean "absent", never the string "None"
        raw = {str(k): str(v) for k, v in (payload or {}).items() if v is not None}
        details = decode_details(kind, raw)
        return cls(
            kind=kind,
            source=source,
            target=target,
            payload=raw,
            details=details,
            confidence=float(confidence),
            timestamp=timestamp or _utcnow(),
        )

    @property
    def severity(self) -> Severity | None:
        return self.details.severity

    @property
    def port(self) -> int | None:
        return getattr(self.details, "port", None)


class Target(BaseModel):
    """Unified identity for one network address under test."""

    id: str = Field(default_factory=_new_id)
    name: str
    address: str
    discovered_by: list[ModuleType] = Field(default_factory=list)
    first_seen: datetime = Field(default_factory=_utcnow)
    last_seen: datetime = Field(default_factory=_utcnow)
    finding_ids: list[str] = Field(default_factory=list)

    _risk_score: float = PrivateAttr(default=0.0)

    @property
    def risk_score(self) -> float:
        """Derived from the target's findings; maintained by the finding store."""
        return self._risk_score


class Credential(BaseModel):
    """A discovered username/password pair and the service it applies to."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    username: str
    password: str
    service: str
    target: str | None = None
    port: int | None = None
    source: ModuleType
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    timestamp: datetime = Field(default_factory=_utcnow)

    @property
    def pair(self) -> tuple[str, str]:
        return (self.username, self.password)


# ---------------------------------------------------------------------------
# CVE / exploit intelligence
# ---------------------------------------------------------------------------


class CVERecord(BaseModel):
    """A CVE returned by the lookup collaborator."""

    cve_id: str
    description: str = ""
    severity: Severity = Severity.INFO
    base_score: float = Field(default=0.0, ge=0.0, le=10.0)


class ExploitEntry(BaseModel):
    """A public exploit located for a CVE."""

    exploit_id: str
    title: str
    severity: Severity = Severity.LOW
    path: str = ""
    platform: str = ""


class CVECorrelation(BaseModel):
    """A CVE bound to a specific service on a specific target port."""

    cve_id: str
    target: str
    port: int
    service: str
    version: str
    severity: Severity
    description: str = ""
    exploits: list[ExploitEntry] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=_utcnow)

    @property
    def key(self) -> tuple[str, int, str]:
        return (self.target, self.port, self.cve_id)

    @property
    def exploit_available(self) -> bool:
        return bool(self.exploits)

    @property
    def exploit_count(self) -> int:
        return len(self.exploits)

    def best_exploit(self) -> ExploitEntry | None:
        """Highest-severity exploit; the first one found wins ties."""
        best: ExploitEntry | None = None
        for exploit in self.exploits:
            if best is None or exploit.severity.weight > best.severity.weight:
                best = exploit
        return best


# ---------------------------------------------------------------------------
# Attack chains
# ---------------------------------------------------------------------------


class PhaseType(StrEnum):
    RECONNAISSANCE = "reconnaissance"
    VULNERABILITY_ASSESSMENT = "vulnerability_assessment"
    EXPLOITATION = "exploitation"
    POST_EXPLOITATION = "post_exploitation"


class ActionKind(StrEnum):
    NETWORK_SCAN = "network_scan"
    BLUETOOTH_DISCOVERY = "bluetooth_discovery"
    WEB_SERVICE_ENUMERATION = "web_service_enumeration"
    CVE_CORRELATION = "cve_correlation"
    WEB_VULNERABILITY_SCANNING = "web_vulnerability_scanning"
    BLUETOOTH_VULNERABILITY_TESTING = "bluetooth_vulnerability_testing"
    NETWORK_EXPLOIT = "network_exploit"
    WEB_EXPLOIT = "web_exploit"
    BLUETOOTH_EXPLOIT = "bluetooth_exploit"
    PRIVILEGE_ESCALATION = "privilege_escalation"
    LATERAL_MOVEMENT = "lateral_movement"
    DATA_EXFILTRATION = "data_exfiltration"
    PERSISTENT_ACCESS = "persistent_access"


class Action(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: ActionKind
    parameters: dict[str, str] = Field(default_factory=dict)
    estimated_seconds: float = Field(ge=0.0)
    success_probability: float = Field(gt=0.0, le=1.0)

    def describe(self) -> str:
        label = self.kind.value.replace("_", " ")
        if not self.parameters:
            return label
        params = ", ".join(f"{k}={v}" for k, v in self.parameters.items())
        return f"{label} ({params})"


class AttackPhase(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: PhaseType
    actions: list[Action] = Field(default_factory=list)

    @property
    def estimated_seconds(self) -> float:
        return sum(a.estimated_seconds for a in self.actions)

    @property
    def success_probability(self) -> float:
        return math.prod(a.success_probability for a in self.actions)


class AttackChain(BaseModel):
    """Ordered, phased plan for one target.

    The success probability multiplies every action's probability, which
    treats all actions as independent. It is a heuristic, not a model.
    """

    target: str
    phases: list[AttackPhase] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=_utcnow)

    @property
    def actions(self) -> list[Action]:
        return [a for phase in self.phases for a in phase.actions]

    @property
    def estimated_seconds(self) -> float:
        return sum(p.estimated_seconds for p in self.phases)

    @property
    def success_probability(self) -> float:
        return math.prod(p.success_probability for p in self.phases)


# ---------------------------------------------------------------------------
# Unified report
# ---------------------------------------------------------------------------


class Priority(StrEnum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {Priority.CRITICAL: 4, Priority.HIGH: 3, Priority.MEDIUM: 2, Priority.LOW: 1}[self]


class Effort(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Impact(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ExecutiveSummary(BaseModel):
    overall_risk: RiskLevel = RiskLevel.LOW
    severity_counts: dict[Severity, int] = Field(default_factory=dict)
    critical_issues: int = 0
    high_risk_issues: int = 0
    tested_assets: int = 0
    key_findings: list[str] = Field(default_factory=list)


class TechnicalFinding(BaseModel):
    target: str
    findings: list[Finding] = Field(default_factory=list)
    risk_score: float = Field(default=0.0, ge=0.0, le=4.0)
    attack_surface: int = 0


class AttackChainAnalysis(BaseModel):
    target: str
    phases: list[AttackPhase] = Field(default_factory=list)
    estimated_seconds: float = 0.0
    success_probability: float = 1.0

    @classmethod
    def from_chain(cls, chain: AttackChain) -> AttackChainAnalysis:
        return cls(
            target=chain.target,
            phases=chain.phases,
            estimated_seconds=chain.estimated_seconds,
            success_probability=chain.success_probability,
        )


class RiskAssessment(BaseModel):
    module_risks: dict[ModuleType, RiskLevel] = Field(default_factory=dict)
    overall_risk: RiskLevel = RiskLevel.LOW
    risk_factors: list[str] = Field(default_factory=list)


class Recommendation(BaseModel):
    priority: Priority
    category: str
    description: str
    effort: Effort = Effort.MEDIUM
    impact: Impact = Impact.HIGH


class UnifiedReport(BaseModel):
    """Complete cross-module report built from one finding-store snapshot."""

    generated_at: datetime = Field(default_factory=_utcnow)
    executive_summary: ExecutiveSummary = Field(default_factory=ExecutiveSummary)
    technical_findings: list[TechnicalFinding] = Field(default_factory=list)
    attack_chains: list[AttackChainAnalysis] = Field(default_factory=list)
    risk_assessment: RiskAssessment = Field(default_factory=RiskAssessment)
    recommendations: list[Recommendation] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Adapter reports accepted by the engine's ingestion helpers
# ---------------------------------------------------------------------------


class PortScanResult(BaseModel):
    port: int = Field(ge=1, le=65535)
    is_open: bool = True
    service: str | None = None
    banner: str | None = None
    version: str | None = None


class NetworkScan(BaseModel):
    target: str
    results: list[PortScanResult] = Field(default_factory=list)


class BluetoothObservation(BaseModel):
    device_id: str
    name: str | None = None
    state: str = "unknown"


class WebTestResult(BaseModel):
    url: str
    test_type: str = ""
    vulnerability: str | None = Field(default=None, description="Title; None when the test found nothing")
    severity: str | None = None


class FindingReport(BaseModel):
    """A raw finding as an external tool module reports it."""

    kind: FindingKind
    source: ModuleType
    target: str
    payload: dict[str, Any] = Field(default_factory=dict)
    confidence: float = 1.0


class IngestBatch(BaseModel):
    """One JSON document of adapter output, as read by ``chainsight ingest``."""

    findings: list[FindingReport] = Field(default_factory=list)
    network_scans: list[NetworkScan] = Field(default_factory=list)
    bluetooth_devices: list[BluetoothObservation] = Field(default_factory=list)
    web_results: list[WebTestResult] = Field(default_factory=list)
