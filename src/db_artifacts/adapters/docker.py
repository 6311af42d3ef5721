"""Docker-backed collaborators for reading a mariabackup directory.

All mariabackup, mysqld and cleanup work runs inside containers started
from one MariaDB image, so the host only needs the ``docker`` CLI.

Usage:
    engine = DockerBackupEngine("mariadb:10.5")
    runtime = DockerServiceRuntime("mariadb:10.5", "mariadb_restore")
    eraser = DockerDirectoryEraser("mariadb:10.5")

    async with ephemeral_service(config, engine, runtime, eraser) as handle:
        client = ContainerSqlClient(runtime.name, handle.root_password.get_secret_value())
        rows = await client.query("SHOW DATABASES")
"""

import re
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from db_artifacts.adapters.base import (
    CommandResult,
    SqlClientError,
    quote_literal,
)
from db_artifacts.adapters.process import child_env, feed_command, run_command

DOCKER = "docker"

# Bind parameter syntax shared with SQLAlchemy's text(): ``:name``
_BIND_PARAM = re.compile(r"(?<![:\w\\]):(\w+)(?!:)")

_BATCH_ESCAPES = {"n": "\n", "t": "\t", "0": "\0", "\\": "\\"}


def _mount(host_path: Path, container_path: str) -> list[str]:
    return ["-v", f"{host_path.resolve()}:{container_path}"]


class DockerBackupEngine:
    """Runs ``mariabackup --prepare`` and ``--copy-back`` in throwaway containers."""

    def __init__(self, image: str) -> None:
        self.image = image

    async def prepare(self, backup_dir: Path) -> CommandResult:
        return await run_command(
            [
                DOCKER, "run", "--rm",
                *_mount(backup_dir, "/backup"),
                self.image,
                "mariabackup", "--prepare", "--target-dir=/backup",
            ]
        )

    async def copy_back(self, backup_dir: Path, data_dir: Path) -> CommandResult:
        # copy-back runs as root; mysqld needs to own the files
        script = (
            "mariabackup --copy-back --target-dir=/backup --datadir=/restored_data"
            " && chown -R mysql:mysql /restored_data"
        )
        return await run_command(
            [
                DOCKER, "run", "--rm",
                *_mount(backup_dir, "/backup"),
                *_mount(data_dir, "/restored_data"),
                self.image,
                "bash", "-c", script,
            ]
        )


class DockerServiceRuntime:
    """A detached MariaDB container serving a restored data directory."""

    def __init__(self, image: str, name: str) -> None:
        self.image = image
        self.name = name

    async def start(self, data_dir: Path, root_password: str) -> CommandResult:
        # ``-e VAR`` without a value copies VAR from the docker CLI's environment
        return await run_command(
            [
                DOCKER, "run", "-d",
                "--name", self.name,
                "-e", "MYSQL_ROOT_PASSWORD",
                *_mount(data_dir, "/var/lib/mysql"),
                self.image,
            ],
            env=child_env({"MYSQL_ROOT_PASSWORD": root_password}),
        )

    async def ping(self, root_password: str) -> bool:
        result = await run_command(
            [
                DOCKER, "exec", "-e", "MYSQL_PWD", self.name,
                "mysqladmin", "ping", "-u", "root", "--silent",
            ],
            env=child_env({"MYSQL_PWD": root_password}),
        )
        return result.ok

    async def stop(self) -> CommandResult:
        stopped = await run_command([DOCKER, "stop", self.name])
        if not stopped.ok:
            return stopped
        return await run_command([DOCKER, "rm", self.name])


class DockerDirectoryEraser:
    """Deletes a directory's contents from inside a container.

    Restored data files belong to the container's ``mysql`` user, so the
    host user usually cannot remove them itself.
    """

    def __init__(self, image: str) -> None:
        self.image = image

    async def erase_directory(self, path: Path) -> CommandResult:
        return await run_command(
            [
                DOCKER, "run", "--rm",
                *_mount(path, "/data"),
                self.image,
                "find", "/data", "-mindepth", "1", "-delete",
            ]
        )


# ============================================================================
# SQL client over ``docker exec``
# ============================================================================


def render_params(sql: str, params: dict[str, Any] | None) -> str:
    """Inline ``:name`` parameters as SQL literals.

    Example:
        >>> render_params("SELECT :a, :b", {"a": 1, "b": "shop"})
        "SELECT 1, 'shop'"
    """
    if not params:
        return sql

    def _replace(match: re.Match) -> str:
        name = match.group(1)
        if name not in params:
            raise SqlClientError(f"Missing value for parameter :{name}")
        return quote_literal(params[name])

    return _BIND_PARAM.sub(_replace, sql)


def _unescape_batch_field(field: str) -> str | None:
    """Undo ``mysql --batch`` escaping for one column value."""
    if field == "NULL":
        return None
    if "\\" not in field:
        return field
    out: list[str] = []
    i = 0
    while i < len(field):
        ch = field[i]
        if ch == "\\" and i + 1 < len(field):
            out.append(_BATCH_ESCAPES.get(field[i + 1], field[i + 1]))
            i += 2
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def parse_batch_output(stdout: str) -> list[tuple]:
    """Parse ``mysql -BN`` output into rows of column values."""
    rows: list[tuple] = []
    for line in stdout.splitlines():
        if not line:
            continue
        rows.append(tuple(_unescape_batch_field(f) for f in line.split("\t")))
    return rows


class ContainerSqlClient:
    """``SqlClient`` running mysql/mysqldump inside the service container.

    The ephemeral service publishes no port, so every call goes through
    ``docker exec``.  Values come back as strings (``None`` for NULL).
    """

    def __init__(self, container: str, root_password: str, user: str = "root") -> None:
        self.container = container
        self.user = user
        self._env = child_env({"MYSQL_PWD": root_password})

    def _exec(self, program: str, *args: str, interactive: bool = False) -> list[str]:
        argv = [DOCKER, "exec"]
        if interactive:
            argv.append("-i")
        argv += ["-e", "MYSQL_PWD", self.container, program, "-u", self.user, *args]
        return argv

    async def query(
        self,
        sql: str,
        params: dict[str, Any] | None = None,
        *,
        database: str | None = None,
    ) -> list[tuple]:
        statement = render_params(sql, params)
        args = ["-BN", "-e", statement]
        if database is not None:
            args.insert(1, database)
        result = await run_command(self._exec("mysql", *args), env=self._env)
        if not result.ok:
            raise SqlClientError(result.stderr_excerpt())
        return parse_batch_output(result.stdout)

    async def execute(self, database: str, chunks: Iterable[bytes]) -> CommandResult:
        return await feed_command(
            self._exec("mysql", database, interactive=True), chunks, env=self._env
        )

    async def dump(
        self, database: str, options: list[str], output_path: Path
    ) -> CommandResult:
        return await run_command(
            self._exec("mysqldump", *options, database),
            env=self._env,
            stdout_path=output_path,
        )

    async def close(self) -> None:
        """Nothing to release; each call is its own process."""
