"""Collaborator protocol definitions.

The pipelines never talk to docker, mariabackup or a MySQL server
directly.  They depend on the Protocols below, which the concrete adapters
in ``db_artifacts.adapters.docker`` and ``db_artifacts.adapters.mysql``
implement (and which tests replace with ``AsyncMock`` fakes).

Usage:
    from db_artifacts.adapters.base import SqlClient

    async def count_tables(client: SqlClient, database: str) -> int:
        rows = await client.query(
            "SELECT COUNT(*) FROM information_schema.TABLES "
            "WHERE TABLE_SCHEMA = :db",
            {"db": database},
        )
        return int(rows[0][0])
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

# Lines of stderr kept when a command fails.
STDERR_EXCERPT_LINES = 20


@dataclass(frozen=True)
class CommandResult:
    """Structured outcome of an external command.

    Example:
        result = await client.execute("shop", chunks)
        if not result.ok:
            log.error("exit %s: %s", result.returncode, result.stderr_excerpt())
    """

    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def stderr_excerpt(self, max_lines: int = STDERR_EXCERPT_LINES) -> str:
        """Last ``max_lines`` non-blank stderr lines, or the exit code."""
        lines = [line for line in self.stderr.splitlines() if line.strip()]
        if not lines:
            return f"exit code {self.returncode}"
        return "\n".join(lines[-max_lines:])


class SqlClientError(Exception):
    """Raised when a SQL client cannot run a query."""

    pass


# ============================================================================
# SQL quoting
# ============================================================================


def quote_identifier(name: str) -> str:
    """Quote a schema object name with backticks.

    Example:
        >>> quote_identifier("order`s")
        '`order``s`'
    """
    return "`" + name.replace("`", "``") + "`"


def quote_literal(value: Any) -> str:
    """Render a value as a SQL literal for clients without bind parameters."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        return str(value)
    escaped = str(value).replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


# ============================================================================
# Protocols
# ============================================================================


class SqlClient(Protocol):
    """Interface to a running MySQL/MariaDB server.

    ``query`` raises ``SqlClientError`` on failure.  ``execute`` and ``dump``
    report failure through their ``CommandResult`` instead, because a failed
    stage is an expected, recordable outcome.
    """

    async def query(
        self,
        sql: str,
        params: dict[str, Any] | None = None,
        *,
        database: str | None = None,
    ) -> list[tuple]:
        """Run a statement and return its rows (empty for non-row statements).

        Args:
            sql: Statement text.  Named parameters use ``:name`` syntax.
            params: Optional values for the named parameters.
            database: Default database for the statement's session.
                ``SHOW CREATE VIEW`` only drops the schema qualifier from
                same-database references when this matches the view.
        """
        ...

    async def execute(self, database: str, chunks: Iterable[bytes]) -> CommandResult:
        """Stream SQL statements into ``database`` through one client session."""
        ...

    async def dump(
        self, database: str, options: list[str], output_path: Path
    ) -> CommandResult:
        """Run mysqldump for ``database`` with ``options``, writing to ``output_path``."""
        ...

    async def close(self) -> None:
        ...


class BackupEngine(Protocol):
    """Two-phase physical recovery of a mariabackup directory."""

    async def prepare(self, backup_dir: Path) -> CommandResult:
        """Apply the redo log so the backup is consistent."""
        ...

    async def copy_back(self, backup_dir: Path, data_dir: Path) -> CommandResult:
        """Copy the prepared backup into an empty data directory."""
        ...


class ServiceRuntime(Protocol):
    """Lifecycle of the throwaway database server reading restored data."""

    name: str

    async def start(self, data_dir: Path, root_password: str) -> CommandResult:
        ...

    async def ping(self, root_password: str) -> bool:
        ...

    async def stop(self) -> CommandResult:
        """Stop and remove the server process."""
        ...


class DirectoryEraser(Protocol):
    """Removes directory contents owned by another OS user."""

    async def erase_directory(self, path: Path) -> CommandResult:
        ...


class ProgressRelay(Protocol):
    """Wraps a byte stream and reports throughput while it is consumed."""

    def track(
        self, chunks: Iterable[bytes], total: int, description: str
    ) -> Iterator[bytes]:
        ...
