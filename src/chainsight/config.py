"""TOML configuration loader."""

from __future__ import annotations

import tomllib
from pathlib import Path

from pydantic import BaseModel, Field

DEFAULT_CONFIG_PATHS = [
    Path("chainsight.toml"),
    Path.home() / ".config" / "chainsight" / "config.toml",
    Path("/etc/chainsight/config.toml"),
]


class EngineConfig(BaseModel):
    """Reaction rules applied to recorded findings."""

    auto_trigger: bool = Field(default=True, description="Dispatch follow-on tool triggers")
    web_ports: list[int] = Field(default_factory=lambda: [80, 443, 8080, 8443, 3000, 5000, 8000, 9000])
    ssh_ports: list[int] = Field(default_factory=lambda: [22])
    database_ports: list[int] = Field(default_factory=lambda: [3306, 5432, 1433, 1521])
    unencrypted_ports: list[int] = Field(default_factory=lambda: [21, 23, 80, 110])
    excessive_port_threshold: int = Field(default=10, ge=0)
    temporal_window_seconds: float = Field(default=300.0, gt=0)
    deduplicate_opportunities: bool = Field(
        default=True,
        description="Emit each (target, pattern) opportunity once per engine",
    )


class LookupConfig(BaseModel):
    """External CVE and exploit lookup collaborators."""

    enabled: bool = True
    nvd_api_key: str | None = Field(default=None, description="Falls back to NVD_API_KEY")
    nvd_timeout: float = Field(default=30.0, gt=0)
    searchsploit_path: str = "searchsploit"
    searchsploit_timeout: float = Field(default=30.0, gt=0)


class ProbeConfig(BaseModel):
    timeout: float = Field(default=10.0, gt=0, description="Seconds per credential probe")


class ActionEstimate(BaseModel):
    seconds: float = Field(ge=0)
    probability: float = Field(gt=0.0, le=1.0)


class PlannerConfig(BaseModel):
    actions: dict[str, ActionEstimate] = Field(
        default_factory=dict,
        description="Per action-kind overrides of the default estimate table",
    )


class Settings(BaseModel):
    """Complete chainsight configuration."""

    engine: EngineConfig = Field(default_factory=EngineConfig)
    lookup: LookupConfig = Field(default_factory=LookupConfig)
    probes: ProbeConfig = Field(default_factory=ProbeConfig)
    planner: PlannerConfig = Field(default_factory=PlannerConfig)


def load_config(config_path: Path | None = None) -> Settings:
    """Load config from TOML file, falling back to defaults."""
    if config_path and config_path.exists():
        return _parse_toml(config_path)

    for path in DEFAULT_CONFIG_PATHS:
        if path.exists():
            return _parse_toml(path)

    return Settings()


def _parse_toml(path: Path) -> Settings:
    data = tomllib.loads(path.read_text())
    return Settings.model_validate(data)
