"""Database discovery and per-stage SQL export.

Usage:
    from db_artifacts.export import resolve_databases, export_database, run_export
"""

from db_artifacts.export.discovery import (
    NoDatabasesFound,
    list_user_databases,
    resolve_databases,
)
from db_artifacts.export.pipeline import (
    DUMP_OPTIONS,
    ExportError,
    export_database,
    export_databases,
    run_export,
)

__all__ = [
    "NoDatabasesFound",
    "list_user_databases",
    "resolve_databases",
    "DUMP_OPTIONS",
    "ExportError",
    "export_database",
    "export_databases",
    "run_export",
]
