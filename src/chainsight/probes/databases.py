"""Database login probes (MySQL, PostgreSQL, MongoDB)."""

from __future__ import annotations

import shutil

from chainsight.probes.base import run_command


class MySQLProbe:
    name = "mysql"
    service = "MySQL"
    default_port = 3306

    @staticmethod
    def is_available() -> bool:
        return shutil.which("mysql") is not None

    async def probe(self, target: str, port: int, username: str, password: str) -> bool:
        code, _ = await run_command(
            "mysql", "-h", target, "-P", str(port), "-u", username,
            "--connect-timeout=5", "-e", "SELECT 1;",
            env={"MYSQL_PWD": password},
        )
        return code == 0


class PostgreSQLProbe:
    name = "postgresql"
    service = "PostgreSQL"
    default_port = 5432

    @staticmethod
    def is_available() -> bool:
        return shutil.which("psql") is not None

    async def probe(self, target: str, port: int, username: str, password: str) -> bool:
        code, _ = await run_command(
            "psql", "-w", "-h", target, "-p", str(port), "-U", username,
            "-c", "SELECT 1;", "postgres",
            env={"PGPASSWORD": password, "PGCONNECT_TIMEOUT": "5"},
        )
        return code == 0


class MongoDBProbe:
    name = "mongodb"
    service = "MongoDB"
    default_port = 27017

    @staticmethod
    def _client() -> str | None:
        return shutil.which("mongosh") or shutil.which("mongo")

    @classmethod
    def is_available(cls) -> bool:
        return cls._client() is not None

    async def probe(self, target: str, port: int, username: str, password: str) -> bool:
        client = self._client()
        if client is None:
            raise FileNotFoundError("mongosh")
        code, _ = await run_command(
            client, "--quiet",
            "--host", f"{target}:{port}",
            "--username", username,
            "--password", password,
            "--eval", "db.runCommand({ping: 1})",
        )
        return code == 0
