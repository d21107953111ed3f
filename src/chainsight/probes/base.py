"""Credential probe protocol and subprocess helper."""

from __future__ import annotations

import asyncio
import os
from enum import StrEnum
from typing import Protocol, runtime_checkable


class ProbeOutcome(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"
    INCONCLUSIVE = "inconclusive"


@runtime_checkable
class CredentialProbe(Protocol):
    name: str
    service: str
    default_port: int

    @staticmethod
    def is_available() -> bool:
        """Check if the client binary/prerequisites exist."""
        ...

    async def probe(self, target: str, port: int, username: str, password: str) -> bool:
        """Attempt a login; True only when the service accepted it."""
        ...


async def run_command(
    *args: str,
    env: dict[str, str] | None = None,
    stdin: str | None = None,
) -> tuple[int, str]:
    """Run a client binary and return (returncode, combined output).

    Cancellation (e.g. from ``asyncio.wait_for``) kills the child process.
    """
    proc = await asyncio.create_subprocess_exec(
        *args,
        stdin=asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
        env={**os.environ, **env} if env else None,
    )
    try:
        stdout, _ = await proc.communicate(stdin.encode() if stdin is not None else None)
    except asyncio.CancelledError:
        proc.kill()
        await proc.wait()
        raise
    return proc.returncode or 0, stdout.decode(errors="replace")
