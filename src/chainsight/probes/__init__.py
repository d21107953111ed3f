"""Credential probe registry, keyed by service name."""

from __future__ import annotations

from typing import TYPE_CHECKING

from chainsight.probes.databases import MongoDBProbe, MySQLProbe, PostgreSQLProbe
from chainsight.probes.ftp import FTPProbe
from chainsight.probes.ssh import SSHProbe
from chainsight.probes.web_admin import WebAdminProbe

if TYPE_CHECKING:
    from chainsight.probes.base import CredentialProbe

PROBE_CLASSES: dict[str, type] = {
    "ssh": SSHProbe,
    "ftp": FTPProbe,
    "web admin": WebAdminProbe,
    "mysql": MySQLProbe,
    "postgresql": PostgreSQLProbe,
    "mongodb": MongoDBProbe,
}

# Ports whose services the credential probes know how to test
PROBE_PORTS: dict[int, str] = {
    21: "FTP",
    22: "SSH",
    3306: "MySQL",
    5432: "PostgreSQL",
    27017: "MongoDB",
}


def list_available_probes() -> list[str]:
    return [name for name, cls in PROBE_CLASSES.items() if cls.is_available()]


def get_probe(service: str) -> CredentialProbe | None:
    cls = PROBE_CLASSES.get(service.lower())
    return cls() if cls is not None else None
