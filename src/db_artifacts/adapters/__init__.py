"""Collaborator adapters package.

Provides the Protocols the pipelines depend on plus concrete
implementations: docker-backed backup engine, service runtime and
directory eraser; SQL clients for the ephemeral container and for any
network-reachable server; and a rich progress relay.

Usage:
    from db_artifacts.adapters import SqlClient, MySQLClient, ContainerSqlClient
"""

from db_artifacts.adapters.base import (
    BackupEngine,
    CommandResult,
    DirectoryEraser,
    ProgressRelay,
    ServiceRuntime,
    SqlClient,
    SqlClientError,
    quote_identifier,
    quote_literal,
)
from db_artifacts.adapters.docker import (
    ContainerSqlClient,
    DockerBackupEngine,
    DockerDirectoryEraser,
    DockerServiceRuntime,
)
from db_artifacts.adapters.mysql import MySQLClient
from db_artifacts.adapters.progress import RichProgressRelay, detect_progress_relay

__all__ = [
    "BackupEngine",
    "CommandResult",
    "DirectoryEraser",
    "ProgressRelay",
    "ServiceRuntime",
    "SqlClient",
    "SqlClientError",
    "quote_identifier",
    "quote_literal",
    "ContainerSqlClient",
    "DockerBackupEngine",
    "DockerDirectoryEraser",
    "DockerServiceRuntime",
    "MySQLClient",
    "RichProgressRelay",
    "detect_progress_relay",
]
