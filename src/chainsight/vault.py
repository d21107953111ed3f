"""In-memory credential vault shared across modules."""

from __future__ import annotations

import threading

from chainsight.models import Credential


class CredentialVault:
    """Holds every credential discovered during a session.

    Duplicates are kept on purpose: the same username/password pair showing
    up for several services is the credential-reuse signal.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._credentials: list[Credential] = []

    def add(self, credential: Credential) -> None:
        with self._lock:
            self._credentials.append(credential)

    def credentials_for(self, service: str) -> list[Credential]:
        wanted = service.lower()
        with self._lock:
            return [c for c in self._credentials if c.service.lower() == wanted]

    def detect_reuse(self) -> bool:
        """True when at least one (username, password) pair appears twice."""
        with self._lock:
            pairs = {c.pair for c in self._credentials}
            return len(pairs) < len(self._credentials)

    def all(self) -> list[Credential]:
        with self._lock:
            return list(self._credentials)

    def __len__(self) -> int:
        with self._lock:
            return len(self._credentials)
