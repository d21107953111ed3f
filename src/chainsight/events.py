"""Typed events and the asynchronous event bus that carries them.

Every trigger the engine issues, and every finding it records, is published
as one of the event models below. Subscribers register for an event class;
registering for :class:`Event` receives everything. Handlers may be plain
functions or coroutines, and a failing handler never affects the publisher
or the other handlers.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from chainsight.models import CVECorrelation, Credential, Finding

logger = logging.getLogger(__name__)


class DiscoveryContext(StrEnum):
    NETWORK_SCAN = "network_scan"
    MANUAL_INPUT = "manual_input"
    CORRELATED_FINDING = "correlated_finding"


class Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class FindingRecorded(Event):
    finding: Finding


class WebTestRequested(Event):
    url: str
    context: DiscoveryContext
    target: str | None = None
    port: int | None = None
    service: str | None = None


class CredentialTestRequested(Event):
    target: str
    port: int
    service: str
    credentials: list[Credential] = Field(default_factory=list)


class DatabaseTestRequested(Event):
    target: str
    port: int


class ExploitSuggested(Event):
    cve_id: str
    target: str
    port: int
    exploit_id: str | None = None
    exploit_title: str | None = None


class CoordinatedAttackSuggested(Event):
    primary_target: str
    secondary_target: str


class PrivilegeEscalationSuggested(Event):
    target: str


class CorrelationFound(Event):
    finding: Finding


class CVECorrelationUpdated(Event):
    correlation: CVECorrelation


E = TypeVar("E", bound=Event)
Handler = Callable[[Any], Awaitable[None] | None]


class EventBus:
    """In-process publish/subscribe keyed by event class."""

    def __init__(self) -> None:
        self._subscribers: dict[type[Event], list[Handler]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler) -> None:
        self._subscribers[event_type].append(handler)
        logger.debug(
            "Subscribed %s to %s",
            getattr(handler, "__qualname__", repr(handler)),
            event_type.__name__,
        )

    def unsubscribe(self, event_type: type[E], handler: Handler) -> None:
        handlers = self._subscribers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def handlers_for(self, event: Event) -> list[Handler]:
        handlers: list[Handler] = []
        for cls in type(event).__mro__:
            if isinstance(cls, type) and issubclass(cls, Event):
                handlers.extend(self._subscribers.get(cls, []))
        return handlers

    async def publish(self, event: Event) -> None:
        """Deliver ``event`` to every matching handler concurrently."""
        handlers = self.handlers_for(event)
        if handlers:
            await asyncio.gather(*(self._invoke(h, event) for h in handlers))

    async def _invoke(self, handler: Handler, event: Event) -> None:
        try:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(
                "Event handler %s failed on %s",
                getattr(handler, "__qualname__", repr(handler)),
                type(event).__name__,
            )
