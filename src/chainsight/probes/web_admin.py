"""Web admin panel login probe over HTTP form posts."""

from __future__ import annotations

import logging

import httpx

from chainsight.coordinator import build_web_url

ADMIN_PATHS = ["/admin", "/login", "/wp-admin", "/administrator", "/panel"]
SUCCESS_INDICATORS = ["dashboard", "welcome", "logout", "admin panel"]
FAILURE_INDICATORS = ["invalid", "incorrect", "failed", "error"]

logger = logging.getLogger(__name__)


def looks_logged_in(status_code: int, body: str) -> bool:
    lower = body.lower()
    has_success = any(word in lower for word in SUCCESS_INDICATORS)
    has_failure = any(word in lower for word in FAILURE_INDICATORS)
    return status_code == 200 and has_success and not has_failure


class WebAdminProbe:
    name = "web_admin"
    service = "Web Admin"
    default_port = 80

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport

    @staticmethod
    def is_available() -> bool:
        return True

    async def probe(self, target: str, port: int, username: str, password: str) -> bool:
        base = build_web_url(target, port)
        form = {"username": username, "password": password}
        async with httpx.AsyncClient(
            timeout=10.0, transport=self._transport, verify=False, follow_redirects=True
        ) as client:
            for path in ADMIN_PATHS:
                try:
                    resp = await client.post(base + path, data=form)
                except httpx.HTTPError as exc:
                    logger.debug("Admin probe %s%s failed: %s", base, path, exc)
                    continue
                if looks_logged_in(resp.status_code, resp.text):
                    return True
        return False
