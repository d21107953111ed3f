"""SSH login probe via sshpass."""

from __future__ import annotations

import shutil

from chainsight.probes.base import run_command


class SSHProbe:
    name = "ssh"
    service = "SSH"
    default_port = 22

    @staticmethod
    def is_available() -> bool:
        return shutil.which("sshpass") is not None and shutil.which("ssh") is not None

    async def probe(self, target: str, port: int, username: str, password: str) -> bool:
        code, _ = await run_command(*self._build_cmd(target, port, username), env={"SSHPASS": password})
        return code == 0

    def _build_cmd(self, target: str, port: int, username: str) -> list[str]:
        return [
            "sshpass", "-e",
            "ssh",
            "-o", "ConnectTimeout=5",
            "-o", "StrictHostKeyChecking=no",
            "-o", "BatchMode=no",
            "-p", str(port),
            f"{username}@{target}",
            "exit",
        ]
