"""Async MySQL/MariaDB client for a network-reachable server.

Queries go through SQLAlchemy's async engine with the ``aiomysql`` driver.
Statement streams and dumps go through the ``mysql`` and ``mysqldump``
command-line clients, which handle ``DELIMITER`` blocks and arbitrarily
large scripts that a driver connection cannot.

Usage:
    from db_artifacts.adapters.mysql import MySQLClient

    client = MySQLClient(host="db.example.com", port=3306, user="admin",
                         password="secret")
    rows = await client.query("SELECT 1")
    result = await client.execute("shop", [b"CREATE TABLE t (id INT);"])
    await client.close()
"""

from collections.abc import Iterable
from pathlib import Path
from typing import Any

from sqlalchemy import URL, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from db_artifacts.adapters.base import CommandResult, SqlClientError, quote_identifier
from db_artifacts.adapters.process import child_env, feed_command, run_command

DEFAULT_MAX_ALLOWED_PACKET = "512M"


def create_async_engine_pooled(database_url: URL, **kwargs: Any) -> AsyncEngine:
    """Create an async SQLAlchemy engine for short administrative queries.

    Default pool settings:

    - ``pool_size=1``: The pipelines issue one query at a time.
    - ``max_overflow=0``: Never open a second connection.
    - ``pool_pre_ping=True``: Imports run for hours between queries, so
      validate connections before checkout.
    - ``pool_recycle=300``: Recycle connections every 5 minutes.

    Args:
        database_url: ``mysql+aiomysql`` URL.
        **kwargs: Additional keyword arguments forwarded to
            ``create_async_engine``.
    """
    defaults: dict[str, Any] = {
        "pool_size": 1,
        "max_overflow": 0,
        "pool_pre_ping": True,
        "pool_recycle": 300,
        "connect_args": {"connect_timeout": 10},
        "echo": False,
    }
    merged = {**defaults, **kwargs}
    return create_async_engine(database_url, **merged)


class MySQLClient:
    """``SqlClient`` for a MySQL/MariaDB server reachable over TCP.

    Args:
        host: Server host name.
        port: Server port.
        user: Account name.
        password: Account password.  Passed to child processes through
            ``MYSQL_PWD``, never on the command line.
        max_allowed_packet: Client-side packet limit for statement streams.
        **engine_kwargs: Forwarded to ``create_async_engine_pooled``.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 3306,
        user: str = "root",
        password: str = "",
        max_allowed_packet: str = DEFAULT_MAX_ALLOWED_PACKET,
        **engine_kwargs: Any,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.max_allowed_packet = max_allowed_packet
        self._env = child_env({"MYSQL_PWD": password})

        url = URL.create(
            "mysql+aiomysql",
            username=user,
            password=password,
            host=host,
            port=port,
        )
        self._engine: AsyncEngine = create_async_engine_pooled(url, **engine_kwargs)

    def _connection_args(self) -> list[str]:
        return ["-h", self.host, "-P", str(self.port), "-u", self.user]

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    # ------------------------------------------------------------------
    # SqlClient methods
    # ------------------------------------------------------------------

    async def query(
        self,
        sql: str,
        params: dict[str, Any] | None = None,
        *,
        database: str | None = None,
    ) -> list[tuple]:
        """Run one statement in its own transaction and return its rows.

        Without ``params`` the statement carries no bind parameters, so any
        ``:word`` in it (a database name, say) is escaped and sent verbatim.
        """
        statement = text(sql) if params else text(sql.replace(":", r"\:"))
        try:
            async with self._engine.begin() as conn:
                if database is not None:
                    use = f"USE {quote_identifier(database)}".replace(":", r"\:")
                    await conn.execute(text(use))
                result = await conn.execute(statement, params or {})
                if not result.returns_rows:
                    return []
                return [tuple(row) for row in result.fetchall()]
        except SQLAlchemyError as e:
            raise SqlClientError(str(e)) from e

    async def execute(self, database: str, chunks: Iterable[bytes]) -> CommandResult:
        argv = [
            "mysql",
            *self._connection_args(),
            f"--max-allowed-packet={self.max_allowed_packet}",
            database,
        ]
        return await feed_command(argv, chunks, env=self._env)

    async def dump(
        self, database: str, options: list[str], output_path: Path
    ) -> CommandResult:
        argv = ["mysqldump", *self._connection_args(), *options, database]
        return await run_command(argv, env=self._env, stdout_path=output_path)

    async def close(self) -> None:
        """Dispose the engine and its pooled connection."""
        await self._engine.dispose()
