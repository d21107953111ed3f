"""FTP login probe using the classic ftp client."""

from __future__ import annotations

import re
import shutil

from chainsight.probes.base import run_command

LOGIN_OK = re.compile(r"^230[ -]", re.MULTILINE)


class FTPProbe:
    name = "ftp"
    service = "FTP"
    default_port = 21

    @staticmethod
    def is_available() -> bool:
        return shutil.which("ftp") is not None

    async def probe(self, target: str, port: int, username: str, password: str) -> bool:
        script = f"user {username} {password}\nls\nquit\n"
        code, output = await run_command("ftp", "-inv", target, str(port), stdin=script)
        return code == 0 and self._logged_in(output)

    @staticmethod
    def _logged_in(output: str) -> bool:
        return LOGIN_OK.search(output) is not None
