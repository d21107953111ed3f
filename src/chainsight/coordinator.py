"""Dispatch of follow-on actions to the other tool modules."""

from __future__ import annotations

import logging
from collections import Counter

from chainsight.events import (
    CoordinatedAttackSuggested,
    CredentialTestRequested,
    DatabaseTestRequested,
    DiscoveryContext,
    Event,
    EventBus,
    ExploitSuggested,
    PrivilegeEscalationSuggested,
    WebTestRequested,
)
from chainsight.models import Credential

logger = logging.getLogger(__name__)

HTTPS_PORTS = frozenset({443, 8443})
DEFAULT_PORTS = {"http": 80, "https": 443}


def build_web_url(target: str, port: int) -> str:
    """http(s) URL for a web service, omitting the scheme's default port."""
    scheme = "https" if port in HTTPS_PORTS else "http"
    suffix = "" if port == DEFAULT_PORTS[scheme] else f":{port}"
    return f"{scheme}://{target}{suffix}"


class ModuleCoordinator:
    """Turns decisions into typed trigger events.

    Every method publishes one event and returns; there is no waiting on the
    receiving module's result and no retry.
    """

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus
        self.dispatched: Counter[str] = Counter()

    async def trigger_web_testing(
        self,
        url: str,
        context: DiscoveryContext,
        *,
        target: str | None = None,
        port: int | None = None,
        service: str | None = None,
    ) -> None:
        await self._dispatch(WebTestRequested(
            url=url, context=context, target=target, port=port, service=service,
        ))
        logger.info("Triggered web testing for %s", url)

    async def trigger_credential_testing(
        self, target: str, port: int, service: str, credentials: list[Credential]
    ) -> None:
        await self._dispatch(CredentialTestRequested(
            target=target, port=port, service=service, credentials=credentials,
        ))
        logger.info(
            "Triggered %s credential testing on %s:%d with %d candidate(s)",
            service, target, port, len(credentials),
        )

    async def trigger_database_testing(self, target: str, port: int) -> None:
        await self._dispatch(DatabaseTestRequested(target=target, port=port))
        logger.info("Triggered database testing on %s:%d", target, port)

    async def suggest_exploit(
        self,
        cve_id: str,
        target: str,
        port: int,
        exploit_id: str | None = None,
        exploit_title: str | None = None,
    ) -> None:
        await self._dispatch(ExploitSuggested(
            cve_id=cve_id, target=target, port=port,
            exploit_id=exploit_id, exploit_title=exploit_title,
        ))
        logger.info(
            "Suggested exploitation of %s on %s:%d (exploit %s)",
            cve_id, target, port, exploit_id or "unspecified",
        )

    async def suggest_coordinated_attack(self, primary_target: str, secondary_target: str) -> None:
        await self._dispatch(CoordinatedAttackSuggested(
            primary_target=primary_target, secondary_target=secondary_target,
        ))
        logger.info("Suggested coordinated attack on %s with %s", primary_target, secondary_target)

    async def suggest_privilege_escalation(self, target: str) -> None:
        await self._dispatch(PrivilegeEscalationSuggested(target=target))
        logger.info("Suggested privilege escalation on %s", target)

    async def _dispatch(self, event: Event) -> None:
        self.dispatched[type(event).__name__] += 1
        await self._bus.publish(event)
