"""db-artifacts: MariaDB physical backups to staged SQL artifacts, and back.

Restores a mariabackup directory into a throwaway server, dumps every
database into dependency-ordered stage files (schema, data, views,
routines, triggers, events, grants, full), and applies those files to any
MySQL/MariaDB server with size-adaptive tuning and per-stage outcomes.

Usage:
    from db_artifacts import export_database, import_artifact_set
    from db_artifacts import Stage, ArtifactSet, ImportLedger, ImportOutcome
    from db_artifacts import MySQLClient, ContainerSqlClient, ephemeral_service
"""

__version__ = "0.1.0"

# Artifacts
from db_artifacts.artifacts.models import (
    ArtifactFile,
    ArtifactSet,
    DatabaseSelection,
    ImportLedger,
    ImportOutcome,
    Stage,
    StageResult,
    VerificationSnapshot,
    scan_artifact_set,
)
from db_artifacts.artifacts.formatting import format_elapsed, format_size

# Adapters
from db_artifacts.adapters.base import CommandResult, SqlClient, SqlClientError
from db_artifacts.adapters.docker import ContainerSqlClient
from db_artifacts.adapters.mysql import MySQLClient

# Config
from db_artifacts.config.loader import load_tool_defaults
from db_artifacts.config.models import ExportConfig, ImportConfig, ServiceConfig, TargetConfig

# Service
from db_artifacts.service.bootstrap import (
    BootstrapError,
    ServiceNotReadyError,
    ephemeral_service,
)

# Export / import
from db_artifacts.export.discovery import NoDatabasesFound, resolve_databases
from db_artifacts.export.pipeline import ExportError, export_database, run_export
from db_artifacts.importer.pipeline import import_artifact_set, run_import

# Reporting
from db_artifacts.reporting import ExportSummary

__all__ = [
    # Artifacts
    "ArtifactFile",
    "ArtifactSet",
    "DatabaseSelection",
    "ImportLedger",
    "ImportOutcome",
    "Stage",
    "StageResult",
    "VerificationSnapshot",
    "scan_artifact_set",
    "format_elapsed",
    "format_size",
    # Adapters
    "CommandResult",
    "SqlClient",
    "SqlClientError",
    "ContainerSqlClient",
    "MySQLClient",
    # Config
    "load_tool_defaults",
    "ExportConfig",
    "ImportConfig",
    "ServiceConfig",
    "TargetConfig",
    # Service
    "BootstrapError",
    "ServiceNotReadyError",
    "ephemeral_service",
    # Export / import
    "NoDatabasesFound",
    "resolve_databases",
    "ExportError",
    "export_database",
    "run_export",
    "import_artifact_set",
    "run_import",
    # Reporting
    "ExportSummary",
]
