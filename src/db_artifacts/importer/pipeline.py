"""Apply an exported artifact directory to a target database.

Stages are applied strictly in ``Stage.import_order()``: schema, data,
views, routines, triggers, events, grants.  Each stage ends up in the
ledger as succeeded, failed, skipped (absent) or skipped (empty).  After a
failure the ``should_continue`` callback decides whether the remaining
stages run.

Large files (over ``OPTIMIZE_THRESHOLD_BYTES``) are streamed with checks,
autocommit and binary logging disabled, and with either a live progress
bar (when a relay is available) or a periodic status log line.

Usage:
    from db_artifacts.importer.pipeline import import_artifact_set, always_continue

    ledger = await import_artifact_set(
        client, "shop_copy", Path("output/shop"),
        should_continue=always_continue,
    )
    ledger.counts()
"""

import asyncio
import logging
import time
from collections.abc import Callable, Iterator
from pathlib import Path

from db_artifacts.adapters.base import (
    CommandResult,
    ProgressRelay,
    SqlClient,
    SqlClientError,
    quote_identifier,
)
from db_artifacts.artifacts.formatting import format_elapsed, format_size
from db_artifacts.artifacts.models import (
    OPTIMIZE_THRESHOLD_BYTES,
    STATUS_INTERVAL_SECONDS,
    ArtifactFile,
    ImportLedger,
    ImportOutcome,
    Stage,
    StageResult,
    VerificationSnapshot,
    scan_artifact_set,
)
from db_artifacts.config.models import ImportConfig

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024

OPTIMIZED_PREAMBLE = (
    b"SET FOREIGN_KEY_CHECKS=0;\n"
    b"SET UNIQUE_CHECKS=0;\n"
    b"SET AUTOCOMMIT=0;\n"
    b"SET sql_log_bin=0;\n"
)
OPTIMIZED_POSTAMBLE = (
    b"\nCOMMIT;\n"
    b"SET FOREIGN_KEY_CHECKS=1;\n"
    b"SET UNIQUE_CHECKS=1;\n"
)

# Decides whether to keep going after ``stage`` failed with ``result``.
ContinueDecision = Callable[[Stage, CommandResult], bool]


def always_continue(stage: Stage, result: CommandResult) -> bool:
    return True


def always_halt(stage: Stage, result: CommandResult) -> bool:
    return False


# ============================================================================
# Statement streams
# ============================================================================


def read_chunks(path: Path, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Yield a file's bytes unmodified, ``chunk_size`` at a time."""
    with open(path, "rb") as f:
        while chunk := f.read(chunk_size):
            yield chunk


def optimized_statement_stream(
    path: Path, chunk_size: int = CHUNK_SIZE
) -> Iterator[bytes]:
    """The file's content bracketed by the bulk-load preamble and postamble."""
    yield OPTIMIZED_PREAMBLE
    yield from read_chunks(path, chunk_size)
    yield OPTIMIZED_POSTAMBLE


def optimized_stream_size(artifact: ArtifactFile) -> int:
    return len(OPTIMIZED_PREAMBLE) + artifact.size_bytes + len(OPTIMIZED_POSTAMBLE)


# ============================================================================
# Status ticker
# ============================================================================


class StatusTicker:
    """Background task logging elapsed time while a long stage runs.

    Holds nothing but a monotonic start time.  ``stop()`` signals the task
    and waits for it, so no line is logged after the stage's outcome.

    Example:
        async with StatusTicker("data.sql", interval=30):
            result = await client.execute(database, chunks)
    """

    def __init__(self, label: str, interval: float = STATUS_INTERVAL_SECONDS) -> None:
        self.label = label
        self.interval = interval
        self._stopping = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._started = 0.0
        self.ticks = 0

    def start(self) -> None:
        self._started = time.monotonic()
        self._stopping.clear()
        self._task = asyncio.create_task(self._run(), name=f"status:{self.label}")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping.set()
        try:
            await self._task
        except Exception as e:
            # Status output never decides a stage's outcome
            logger.debug("Status ticker for %s ended with %r", self.label, e)
        self._task = None

    async def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                self.ticks += 1
                elapsed = format_elapsed(time.monotonic() - self._started)
                logger.info("  Still importing %s... (elapsed: %s)", self.label, elapsed)

    async def __aenter__(self) -> "StatusTicker":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()


# ============================================================================
# Import
# ============================================================================


async def check_connection(client: SqlClient) -> None:
    """Fail fast if the target server cannot be reached.

    Raises:
        SqlClientError: If ``SELECT 1`` fails.
    """
    await client.query("SELECT 1")


async def _apply_artifact(
    client: SqlClient,
    database: str,
    artifact: ArtifactFile,
    relay: ProgressRelay | None,
    status_interval: float,
) -> CommandResult:
    """Stream one stage file into the target, choosing the strategy by size."""
    if artifact.size_bytes <= OPTIMIZE_THRESHOLD_BYTES:
        return await client.execute(database, read_chunks(artifact.path))

    logger.info("  Large file detected. Using optimized import...")
    chunks = optimized_statement_stream(artifact.path)
    if relay is not None:
        tracked = relay.track(chunks, optimized_stream_size(artifact), artifact.path.name)
        return await client.execute(database, tracked)

    async with StatusTicker(artifact.path.name, status_interval):
        return await client.execute(database, chunks)


async def verify_import(client: SqlClient, database: str) -> VerificationSnapshot:
    """Read base-table and approximate row counts. Unknown on failure."""
    try:
        rows = await client.query(
            "SELECT COUNT(*), SUM(TABLE_ROWS) FROM information_schema.TABLES "
            "WHERE TABLE_SCHEMA = :db AND TABLE_TYPE = 'BASE TABLE'",
            {"db": database},
        )
    except SqlClientError as e:
        logger.warning("Verification query failed: %s", e)
        return VerificationSnapshot()

    if not rows:
        return VerificationSnapshot()
    table_count, row_count = rows[0][0], rows[0][1]
    return VerificationSnapshot(
        table_count=int(table_count) if table_count is not None else None,
        row_count=int(row_count) if row_count is not None else 0,
    )


async def import_artifact_set(
    client: SqlClient,
    database: str,
    directory: Path,
    *,
    should_continue: ContinueDecision = always_continue,
    relay: ProgressRelay | None = None,
    status_interval: float = STATUS_INTERVAL_SECONDS,
) -> ImportLedger:
    """Apply the stage files in ``directory`` to ``database``.

    Creates the database if it does not exist.  Stage files at or below the
    empty threshold are skipped without invoking the client.

    Args:
        client: SQL client connected to the target server.
        database: Target database name (need not match the exported one).
        directory: Directory holding ``<stage>.sql`` files.
        should_continue: Called after a failed stage; ``False`` halts the
            run and leaves later stages unrecorded.
        relay: Optional progress relay for optimized imports.  Without
            one, a ``StatusTicker`` logs progress instead.
        status_interval: Seconds between ticker lines.

    Returns:
        ImportLedger with one result per processed stage, in stage order,
        plus totals and a verification snapshot.

    Raises:
        SqlClientError: If the target database cannot be created.
    """
    artifact_set = scan_artifact_set(directory, database)

    logger.info("Creating database '%s' if not exists...", database)
    await client.query(f"CREATE DATABASE IF NOT EXISTS {quote_identifier(database)}")

    ledger = ImportLedger(
        database=database,
        source_dir=Path(directory),
        total_bytes=artifact_set.total_bytes,
    )
    overall_start = time.monotonic()

    for stage in Stage.import_order():
        artifact = artifact_set.get(stage)
        if artifact is None:
            logger.info("Skipping %s (not found)", stage.filename)
            ledger.record(StageResult(stage=stage, outcome=ImportOutcome.SKIPPED_ABSENT))
            continue

        size = format_size(artifact.size_bytes)
        if artifact.is_empty:
            logger.info("Skipping %s (empty - %s)", stage.filename, size)
            ledger.record(
                StageResult(
                    stage=stage,
                    outcome=ImportOutcome.SKIPPED_EMPTY,
                    size_bytes=artifact.size_bytes,
                )
            )
            continue

        logger.info("Importing %s (%s)...", stage.filename, size)
        started = time.monotonic()
        result = await _apply_artifact(client, database, artifact, relay, status_interval)
        elapsed = time.monotonic() - started

        if result.ok:
            logger.info("  Done. (%s)", format_elapsed(elapsed))
            ledger.record(
                StageResult(
                    stage=stage,
                    outcome=ImportOutcome.SUCCEEDED,
                    size_bytes=artifact.size_bytes,
                    elapsed_seconds=elapsed,
                )
            )
            continue

        error = result.stderr_excerpt()
        logger.error("Failed to import %s: %s", stage.filename, error)
        ledger.record(
            StageResult(
                stage=stage,
                outcome=ImportOutcome.FAILED,
                size_bytes=artifact.size_bytes,
                elapsed_seconds=elapsed,
                error=error,
            )
        )
        if not should_continue(stage, result):
            logger.warning("Aborting import.")
            ledger.halted = True
            break

    ledger.elapsed_seconds = time.monotonic() - overall_start
    ledger.verification = await verify_import(client, database)
    return ledger


async def run_import(
    config: ImportConfig,
    client: SqlClient,
    *,
    should_continue: ContinueDecision = always_continue,
    relay: ProgressRelay | None = None,
) -> ImportLedger:
    """Import ``config.source_dir`` into ``config.database``.

    Raises:
        FileNotFoundError: If the source directory does not exist.
        SqlClientError: If the target database cannot be created.
    """
    if not config.source_dir.is_dir():
        raise FileNotFoundError(f"SQL directory '{config.source_dir}' does not exist.")
    return await import_artifact_set(
        client,
        config.database,
        config.source_dir,
        should_continue=should_continue,
        relay=relay,
        status_interval=config.status_interval,
    )
