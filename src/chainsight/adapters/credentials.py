"""Credential-test adapter: consumes credential-test triggers and runs probes."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping

from pydantic import BaseModel

from chainsight.events import CredentialTestRequested, EventBus
from chainsight.models import Credential, FindingKind, ModuleType
from chainsight.probes import get_probe
from chainsight.probes.base import CredentialProbe, ProbeOutcome

logger = logging.getLogger(__name__)

ReportFn = Callable[..., Awaitable[str]]

CONFIRMED_CONFIDENCE = 0.9
WEB_ADMIN_CONFIDENCE = 0.6


class ProbeResult(BaseModel):
    credential_id: str
    username: str
    service: str
    target: str
    port: int
    outcome: ProbeOutcome
    elapsed: float = 0.0


class CredentialTestAdapter:
    """Runs one probe per candidate credential with a hard timeout.

    A confirmed login is reported back as a credential-leak finding through
    ``report`` (normally ``IntelligenceEngine.report_finding``). Timeouts and
    missing client binaries are inconclusive and record nothing.
    """

    def __init__(
        self,
        report: ReportFn,
        timeout: float = 10.0,
        probes: Mapping[str, CredentialProbe] | None = None,
    ) -> None:
        self._report = report
        self._timeout = timeout
        self._probes = {k.lower(): v for k, v in (probes or {}).items()}
        self._tasks: set[asyncio.Task[list[ProbeResult]]] = set()
        self.results: list[ProbeResult] = []

    def attach(self, bus: EventBus) -> None:
        bus.subscribe(CredentialTestRequested, self.handle)

    def handle(self, event: CredentialTestRequested) -> None:
        """Bus handler; the probes run in the background."""
        task = asyncio.get_running_loop().create_task(self.run(event))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    @property
    def pending(self) -> bool:
        return bool(self._tasks)

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def run(self, event: CredentialTestRequested) -> list[ProbeResult]:
        probe = self._probe_for(event.service)
        if probe is None:
            logger.warning("No credential probe for service %r", event.service)
            return []

        results: list[ProbeResult] = []
        for credential in event.credentials:
            result = await self.test(probe, event.target, event.port, credential)
            results.append(result)
            if result.outcome is ProbeOutcome.SUCCESS:
                await self._report_success(event, credential)
        self.results.extend(results)
        return results

    async def test(
        self, probe: CredentialProbe, target: str, port: int, credential: Credential
    ) -> ProbeResult:
        started = time.monotonic()
        try:
            ok = await asyncio.wait_for(
                probe.probe(target, port, credential.username, credential.password),
                timeout=self._timeout,
            )
            outcome = ProbeOutcome.SUCCESS if ok else ProbeOutcome.FAILURE
        except TimeoutError:
            logger.warning(
                "%s probe on %s:%d timed out after %.1fs", probe.service, target, port, self._timeout
            )
            outcome = ProbeOutcome.INCONCLUSIVE
        except OSError as exc:
            logger.warning("%s probe on %s:%d failed: %s", probe.service, target, port, exc)
            outcome = ProbeOutcome.INCONCLUSIVE
        except Exception as exc:
            logger.warning("%s probe on %s:%d raised %r", probe.service, target, port, exc)
            outcome = ProbeOutcome.INCONCLUSIVE

        logger.debug("%s login %s@%s:%d -> %s", probe.service, credential.username, target, port, outcome)
        return ProbeResult(
            credential_id=credential.id,
            username=credential.username,
            service=probe.service,
            target=target,
            port=port,
            outcome=outcome,
            elapsed=time.monotonic() - started,
        )

    def _task_done(self, task: asyncio.Task[list[ProbeResult]]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Credential test task failed", exc_info=task.exception())

    def _probe_for(self, service: str) -> CredentialProbe | None:
        return self._probes.get(service.lower()) or get_probe(service)

    async def _report_success(self, event: CredentialTestRequested, credential: Credential) -> None:
        confidence = WEB_ADMIN_CONFIDENCE if event.service.lower() == "web admin" else CONFIRMED_CONFIDENCE
        await self._report(
            FindingKind.CREDENTIAL_LEAK,
            ModuleType.CREDENTIAL_TESTER,
            event.target,
            {
                "username": credential.username,
                "password": credential.password,
                "service": event.service,
                "port": str(event.port),
                "severity": "high",
            },
            confidence,
        )
        logger.info("Confirmed %s credentials for %s on %s:%d",
                    event.service, credential.username, event.target, event.port)
