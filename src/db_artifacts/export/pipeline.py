"""Export one or more databases into per-stage SQL files.

Each database gets its own directory with one file per ``Stage``.  Stages
are extracted independently: a failing stage is recorded on the returned
``ArtifactSet`` and the remaining stages still run.

Usage:
    from db_artifacts.export.pipeline import export_database, run_export

    artifact_set = await export_database(client, "shop", Path("output"))
    artifact_set.get(Stage.SCHEMA).path   # output/shop/schema.sql

    summary = await run_export(config, client)
"""

import logging
from pathlib import Path

from db_artifacts.adapters.base import (
    SqlClient,
    SqlClientError,
    quote_identifier,
    quote_literal,
)
from db_artifacts.artifacts.formatting import format_size
from db_artifacts.artifacts.models import ArtifactFile, ArtifactSet, Stage
from db_artifacts.config.models import ExportConfig
from db_artifacts.export.discovery import list_user_databases, resolve_databases
from db_artifacts.reporting import ExportSummary

logger = logging.getLogger(__name__)

_SUPPRESS_OBJECTS = ["--skip-triggers", "--skip-routines", "--skip-events"]
_NO_TABLES = ["--no-data", "--no-create-info", "--no-create-db"]

# mysqldump options per stage.  Object-only stages use --compact so a
# database without such objects yields an empty file instead of a header.
DUMP_OPTIONS: dict[Stage, list[str]] = {
    Stage.SCHEMA: ["--single-transaction", "--no-data", *_SUPPRESS_OBJECTS],
    Stage.DATA: [
        "--single-transaction", "--no-create-info", "--no-create-db",
        *_SUPPRESS_OBJECTS,
    ],
    Stage.TRIGGERS: [
        "--single-transaction", "--compact", *_NO_TABLES,
        "--triggers", "--skip-routines", "--skip-events",
    ],
    Stage.ROUTINES: [
        "--single-transaction", "--compact", *_NO_TABLES,
        "--skip-triggers", "--routines", "--skip-events",
    ],
    Stage.EVENTS: [
        "--single-transaction", "--compact", *_NO_TABLES,
        "--skip-triggers", "--skip-routines", "--events",
    ],
    Stage.FULL: ["--single-transaction", "--routines", "--triggers", "--events"],
}


class ExportError(Exception):
    """Raised when a database cannot be exported at all.

    Attributes:
        database: The database that failed.
        cause: Human-readable reason.
        available: Databases the server does have, for diagnostics.
    """

    def __init__(self, database: str, cause: str, available: list[str] | None = None):
        self.database = database
        self.cause = cause
        self.available = available or []
        super().__init__(f"{database}: {cause}")


# ============================================================================
# Stage writers
# ============================================================================


async def _write_views(client: SqlClient, database: str, path: Path) -> None:
    """Rebuild every view definition, each guarded by DROP VIEW IF EXISTS.

    Definitions are read with ``database`` as the session default, so
    references inside it come back unqualified and the file applies to
    whichever database the importing client selects.  A view that
    disappears between listing and reading is skipped.
    """
    rows = await client.query(
        "SELECT TABLE_NAME FROM information_schema.VIEWS "
        "WHERE TABLE_SCHEMA = :db ORDER BY TABLE_NAME",
        {"db": database},
    )
    if not rows:
        path.write_text(f"-- No views found for database: {database}\n", encoding="utf-8")
        return

    lines = [f"-- Views for database: {database}", ""]
    for (view,) in rows:
        definition = await client.query(
            f"SHOW CREATE VIEW {quote_identifier(view)}", database=database
        )
        if not definition:
            logger.warning("  View %s.%s vanished before its definition was read", database, view)
            continue
        name, create_statement = definition[0][0], definition[0][1]
        lines.append(f"DROP VIEW IF EXISTS {quote_identifier(name)};")
        lines.append(f"{create_statement};")
        lines.append("")
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


async def _write_grants(client: SqlClient, database: str, path: Path) -> None:
    """Collect grant statements relevant to ``database``.

    Lines are kept when they mention the database name or grant ALL
    PRIVILEGES (case-insensitive substring match).  This over-matches
    databases whose names contain one another.
    """
    lines = [f"-- Grants for database: {database}"]
    try:
        accounts = await client.query(
            "SELECT DISTINCT User, Host FROM mysql.db "
            "WHERE Db = :db OR Db = '%' ORDER BY User, Host",
            {"db": database},
        )
    except SqlClientError as e:
        logger.warning("  Could not list accounts with grants on %s: %s", database, e)
        accounts = []

    if not accounts:
        lines.append("-- No specific grants found")

    needle = database.lower()
    for user, host in accounts:
        account = f"{quote_literal(user)}@{quote_literal(host)}"
        try:
            grants = await client.query(f"SHOW GRANTS FOR {account}")
        except SqlClientError as e:
            logger.warning("  Could not read grants for %s: %s", account, e)
            continue
        for (grant,) in grants:
            lowered = grant.lower()
            if needle in lowered or "all privileges" in lowered:
                lines.append(f"{grant};")
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


async def _export_stage(
    client: SqlClient, database: str, stage: Stage, path: Path
) -> str | None:
    """Write one stage file. Returns an error message, or None on success."""
    try:
        if stage is Stage.VIEWS:
            await _write_views(client, database, path)
        elif stage is Stage.GRANTS:
            await _write_grants(client, database, path)
        else:
            result = await client.dump(database, DUMP_OPTIONS[stage], path)
            if not result.ok:
                return result.stderr_excerpt()
    except (SqlClientError, OSError) as e:
        return str(e)
    return None


# ============================================================================
# Public API
# ============================================================================


async def export_database(
    client: SqlClient,
    database: str,
    output_dir: Path,
    include_full: bool = True,
) -> ArtifactSet:
    """Export ``database`` to ``output_dir/<database>/<stage>.sql``.

    Existing stage files are replaced.  A failed or skipped stage leaves
    no file behind, so an earlier run's output is never reported as this
    run's.

    Args:
        client: SQL client connected to the source server.
        database: Database to export.
        output_dir: Parent directory for per-database directories.
        include_full: Also write ``full.sql``, a single combined dump.

    Returns:
        ArtifactSet listing the written files; failed stages are in
        ``stage_errors``.

    Raises:
        ExportError: If the database does not exist on the server.
    """
    logger.info("Dumping database: %s", database)

    exists = await client.query(
        "SELECT SCHEMA_NAME FROM information_schema.SCHEMATA WHERE SCHEMA_NAME = :db",
        {"db": database},
    )
    if not exists:
        available = await list_user_databases(client)
        logger.error("  Database '%s' does not exist!", database)
        logger.error("  Available databases:")
        for name in available:
            logger.error("    - %s", name)
        raise ExportError(database, "database does not exist", available)

    db_dir = Path(output_dir) / database
    db_dir.mkdir(parents=True, exist_ok=True)
    artifact_set = ArtifactSet(database=database, directory=db_dir)

    for stage in Stage:
        path = db_dir / stage.filename
        path.unlink(missing_ok=True)
        if stage is Stage.FULL and not include_full:
            logger.info("  -> skipping full combined dump")
            continue
        logger.info("  -> %s...", stage.value)
        error = await _export_stage(client, database, stage, path)
        if error is not None:
            logger.warning("  %s failed: %s", stage.filename, error)
            artifact_set.stage_errors[stage] = error
            path.unlink(missing_ok=True)
        elif path.is_file():
            artifact_set.add(ArtifactFile.from_path(stage, path))

    logger.info("  Files for %s:", database)
    for artifact in artifact_set.files:
        logger.info("    %s: %s", artifact.path.name, format_size(artifact.size_bytes))
    return artifact_set


async def export_databases(
    client: SqlClient,
    databases: list[str],
    output_dir: Path,
    include_full: bool = True,
) -> ExportSummary:
    """Export each database in turn, collecting successes and failures."""
    summary = ExportSummary(
        output_dir=Path(output_dir), include_full=include_full, databases=list(databases)
    )
    for database in databases:
        database = database.strip()
        try:
            artifact_set = await export_database(client, database, output_dir, include_full)
        except ExportError as e:
            logger.warning("Failed to dump '%s'", database)
            summary.record_failure(database, e.cause)
            continue
        except (SqlClientError, OSError) as e:
            logger.warning("Failed to dump '%s': %s", database, e)
            summary.record_failure(database, str(e))
            continue
        summary.record_success(artifact_set)
    return summary


async def run_export(config: ExportConfig, client: SqlClient) -> ExportSummary:
    """Resolve the configured selection and export every database in it.

    Raises:
        NoDatabasesFound: If the selection resolves to nothing.
    """
    if config.selection.is_all:
        logger.info("No databases specified. Discovering all user databases...")
    databases = await resolve_databases(client, config.selection)
    logger.info("Databases: %s", ", ".join(databases))
    return await export_databases(client, databases, config.output_dir, config.include_full)
