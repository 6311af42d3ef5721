"""Tests for the ordered, size-adaptive import pipeline."""

import asyncio
import logging
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from db_artifacts.adapters.base import CommandResult, SqlClientError
from db_artifacts.artifacts.formatting import MIB
from db_artifacts.artifacts.models import (
    EMPTY_THRESHOLD_BYTES,
    OPTIMIZE_THRESHOLD_BYTES,
    ImportOutcome,
    Stage,
)
from db_artifacts.config.models import ImportConfig
from db_artifacts.importer.pipeline import (
    OPTIMIZED_POSTAMBLE,
    OPTIMIZED_PREAMBLE,
    StatusTicker,
    always_continue,
    always_halt,
    check_connection,
    import_artifact_set,
    optimized_statement_stream,
    read_chunks,
    run_import,
    verify_import,
)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _write_stage(directory: Path, stage: Stage, size: int = 1000) -> Path:
    """Write a stage file whose first line names the stage."""
    header = f"-- {stage.value}\n".encode()
    path = directory / stage.filename
    path.write_bytes(header + b"x" * max(0, size - len(header)))
    return path


def _make_client(failing=(), verification=((1, 5),)) -> AsyncMock:
    """AsyncMock SqlClient recording every streamed payload.

    Args:
        failing: Stage values whose execute call fails.
        verification: Rows returned by the verification query.
    """
    client = AsyncMock()
    client.payloads = []

    async def _query(sql, params=None):
        if sql.startswith("CREATE DATABASE") or sql == "SELECT 1":
            return []
        if "information_schema.TABLES" in sql:
            return list(verification)
        raise AssertionError(f"unexpected query: {sql}")

    async def _execute(database, chunks):
        payload = b"".join(chunks)
        client.payloads.append(payload)
        for stage in failing:
            if f"-- {stage}\n".encode() in payload[:200]:
                return CommandResult(1, stderr=f"ERROR 1064 (42000) at line 1 in {stage}")
        return CommandResult(0)

    client.query = AsyncMock(side_effect=_query)
    client.execute = AsyncMock(side_effect=_execute)
    client.close = AsyncMock()
    return client


def _stage_of(payload: bytes) -> str:
    body = payload[len(OPTIMIZED_PREAMBLE):] if payload.startswith(OPTIMIZED_PREAMBLE) else payload
    return body.split(b"\n", 1)[0].decode().removeprefix("-- ")


# ------------------------------------------------------------------
# Statement streams
# ------------------------------------------------------------------


class TestStatementStreams:
    """Plain and optimized streams carry the file unmodified."""

    def test_read_chunks(self, tmp_path):
        path = tmp_path / "data.sql"
        path.write_bytes(b"0123456789")
        assert list(read_chunks(path, chunk_size=4)) == [b"0123", b"4567", b"89"]

    def test_optimized_bracket(self, tmp_path):
        path = tmp_path / "data.sql"
        path.write_bytes(b"INSERT INTO t VALUES (1);\n")
        stream = b"".join(optimized_statement_stream(path))
        assert stream == OPTIMIZED_PREAMBLE + b"INSERT INTO t VALUES (1);\n" + OPTIMIZED_POSTAMBLE

    def test_preamble_statements(self):
        assert OPTIMIZED_PREAMBLE.decode().splitlines() == [
            "SET FOREIGN_KEY_CHECKS=0;",
            "SET UNIQUE_CHECKS=0;",
            "SET AUTOCOMMIT=0;",
            "SET sql_log_bin=0;",
        ]

    def test_postamble_statements(self):
        assert OPTIMIZED_POSTAMBLE.decode().strip().splitlines() == [
            "COMMIT;",
            "SET FOREIGN_KEY_CHECKS=1;",
            "SET UNIQUE_CHECKS=1;",
        ]


# ------------------------------------------------------------------
# import_artifact_set
# ------------------------------------------------------------------


class TestImportArtifactSet:
    """Ordering, screening and failure handling."""

    async def test_creates_database_first(self, tmp_path):
        client = _make_client()
        await import_artifact_set(client, "shop_copy", tmp_path)
        assert client.query.await_args_list[0].args[0] == "CREATE DATABASE IF NOT EXISTS `shop_copy`"

    async def test_canonical_order_regardless_of_listing(self, tmp_path):
        for stage in reversed(Stage.import_order()):
            _write_stage(tmp_path, stage)
        _write_stage(tmp_path, Stage.FULL)
        client = _make_client()

        ledger = await import_artifact_set(client, "shop_copy", tmp_path)

        assert [_stage_of(p) for p in client.payloads] == [s.value for s in Stage.import_order()]
        assert [r.stage for r in ledger.results] == Stage.import_order()
        assert ledger.counts()[ImportOutcome.SUCCEEDED] == 7

    async def test_full_is_never_imported(self, tmp_path):
        _write_stage(tmp_path, Stage.FULL)
        client = _make_client()
        ledger = await import_artifact_set(client, "shop_copy", tmp_path)
        client.execute.assert_not_awaited()
        assert ledger.outcome_of(Stage.FULL) is None

    async def test_absent_stages_recorded(self, tmp_path):
        _write_stage(tmp_path, Stage.SCHEMA)
        client = _make_client()
        ledger = await import_artifact_set(client, "shop_copy", tmp_path)
        assert ledger.outcome_of(Stage.SCHEMA) is ImportOutcome.SUCCEEDED
        assert ledger.stages_with(ImportOutcome.SKIPPED_ABSENT) == Stage.import_order()[1:]

    @pytest.mark.parametrize("size", [0, 50, EMPTY_THRESHOLD_BYTES])
    async def test_empty_files_never_reach_client(self, tmp_path, size):
        (tmp_path / "views.sql").write_bytes(b"-" * size)
        client = _make_client()

        ledger = await import_artifact_set(client, "shop_copy", tmp_path)

        assert ledger.outcome_of(Stage.VIEWS) is ImportOutcome.SKIPPED_EMPTY
        client.execute.assert_not_awaited()

    async def test_just_over_threshold_is_imported(self, tmp_path):
        _write_stage(tmp_path, Stage.VIEWS, size=EMPTY_THRESHOLD_BYTES + 1)
        client = _make_client()
        ledger = await import_artifact_set(client, "shop_copy", tmp_path)
        assert ledger.outcome_of(Stage.VIEWS) is ImportOutcome.SUCCEEDED

    async def test_failure_continues_by_default(self, tmp_path):
        for stage in (Stage.SCHEMA, Stage.DATA, Stage.VIEWS):
            _write_stage(tmp_path, stage)
        client = _make_client(failing=("data",))

        ledger = await import_artifact_set(client, "shop_copy", tmp_path)

        assert ledger.outcome_of(Stage.DATA) is ImportOutcome.FAILED
        assert ledger.outcome_of(Stage.VIEWS) is ImportOutcome.SUCCEEDED
        assert "ERROR 1064" in ledger.results[1].error
        assert not ledger.halted

    async def test_halt_leaves_later_stages_unrecorded(self, tmp_path):
        for stage in (Stage.SCHEMA, Stage.DATA, Stage.VIEWS):
            _write_stage(tmp_path, stage)
        client = _make_client(failing=("data",))

        ledger = await import_artifact_set(client, "shop_copy", tmp_path, should_continue=always_halt)

        assert ledger.halted
        assert [r.stage for r in ledger.results] == [Stage.SCHEMA, Stage.DATA]
        assert client.execute.await_count == 2

    async def test_decision_receives_stage_and_result(self, tmp_path):
        _write_stage(tmp_path, Stage.SCHEMA)
        client = _make_client(failing=("schema",))
        seen = []

        def _decide(stage, result):
            seen.append((stage, result.returncode))
            return True

        await import_artifact_set(client, "shop_copy", tmp_path, should_continue=_decide)
        assert seen == [(Stage.SCHEMA, 1)]

    async def test_totals(self, tmp_path):
        _write_stage(tmp_path, Stage.SCHEMA, size=1000)
        _write_stage(tmp_path, Stage.DATA, size=3000)
        _write_stage(tmp_path, Stage.FULL, size=9000)
        client = _make_client()

        ledger = await import_artifact_set(client, "shop_copy", tmp_path)

        assert ledger.total_bytes == 4000
        assert ledger.elapsed_seconds >= 0
        assert ledger.verification.table_count == 1
        assert ledger.verification.row_count == 5

    async def test_create_database_failure_is_fatal(self, tmp_path):
        client = _make_client()
        client.query.side_effect = SqlClientError("Access denied")
        with pytest.raises(SqlClientError):
            await import_artifact_set(client, "shop_copy", tmp_path)


class TestOptimizedImport:
    """Large files get the bulk-load bracket."""

    async def test_fifty_megabyte_data_file(self, tmp_path):
        content = b"-- data\n" + b"INSERT INTO `t` VALUES (1,'abcdefgh');\n" * (50 * MIB // 38)
        (tmp_path / "data.sql").write_bytes(content)
        assert len(content) > OPTIMIZE_THRESHOLD_BYTES
        client = _make_client()

        ledger = await import_artifact_set(client, "shop_copy", tmp_path, status_interval=3600)

        assert ledger.outcome_of(Stage.DATA) is ImportOutcome.SUCCEEDED
        (payload,) = client.payloads
        assert payload.startswith(
            b"SET FOREIGN_KEY_CHECKS=0;\nSET UNIQUE_CHECKS=0;\n"
            b"SET AUTOCOMMIT=0;\nSET sql_log_bin=0;\n"
        )
        assert payload.endswith(b"COMMIT;\nSET FOREIGN_KEY_CHECKS=1;\nSET UNIQUE_CHECKS=1;\n")
        assert payload[len(OPTIMIZED_PREAMBLE):-len(OPTIMIZED_POSTAMBLE)] == content

    async def test_at_threshold_uses_plain_stream(self, tmp_path):
        _write_stage(tmp_path, Stage.DATA, size=OPTIMIZE_THRESHOLD_BYTES)
        client = _make_client()
        await import_artifact_set(client, "shop_copy", tmp_path)
        assert not client.payloads[0].startswith(OPTIMIZED_PREAMBLE)

    async def test_relay_wraps_stream(self, tmp_path):
        _write_stage(tmp_path, Stage.DATA, size=OPTIMIZE_THRESHOLD_BYTES + 1)
        client = _make_client()
        tracked = []

        class _Relay:
            def track(self, chunks, total, description):
                tracked.append((total, description))
                yield from chunks

        await import_artifact_set(client, "shop_copy", tmp_path, relay=_Relay())

        expected_total = len(OPTIMIZED_PREAMBLE) + OPTIMIZE_THRESHOLD_BYTES + 1 + len(OPTIMIZED_POSTAMBLE)
        assert tracked == [(expected_total, "data.sql")]
        assert len(client.payloads[0]) == expected_total

    async def test_ticker_logs_while_slow_stage_runs(self, tmp_path, caplog):
        _write_stage(tmp_path, Stage.DATA, size=OPTIMIZE_THRESHOLD_BYTES + 1)
        client = _make_client()
        inner = client.execute.side_effect

        async def _slow_execute(database, chunks):
            await asyncio.sleep(0.2)
            return await inner(database, chunks)

        client.execute.side_effect = _slow_execute

        with caplog.at_level(logging.INFO, logger="db_artifacts.importer.pipeline"):
            await import_artifact_set(client, "shop_copy", tmp_path, status_interval=0.05)

        assert any("Still importing data.sql" in m for m in caplog.messages)


# ------------------------------------------------------------------
# StatusTicker
# ------------------------------------------------------------------


class TestStatusTicker:
    """Explicit start / stop signalling."""

    async def test_ticks_until_stopped(self):
        ticker = StatusTicker("data.sql", interval=0.01)
        ticker.start()
        await asyncio.sleep(0.06)
        await ticker.stop()
        ticks = ticker.ticks
        assert ticks >= 1

        await asyncio.sleep(0.03)
        assert ticker.ticks == ticks

    async def test_stop_before_first_tick(self):
        async with StatusTicker("data.sql", interval=60) as ticker:
            pass
        assert ticker.ticks == 0

    async def test_stop_without_start(self):
        await StatusTicker("data.sql").stop()


# ------------------------------------------------------------------
# Connection check, verification, run_import
# ------------------------------------------------------------------


class TestConnectionAndVerification:
    """Best-effort verification; fatal connection errors."""

    async def test_check_connection(self):
        client = _make_client()
        await check_connection(client)
        client.query.assert_awaited_once_with("SELECT 1")

    async def test_check_connection_failure(self):
        client = AsyncMock()
        client.query.side_effect = SqlClientError("Can't connect")
        with pytest.raises(SqlClientError):
            await check_connection(client)

    async def test_verify_counts_base_tables(self):
        client = _make_client(verification=(("3", "1200"),))
        snapshot = await verify_import(client, "shop_copy")
        assert (snapshot.table_count, snapshot.row_count) == (3, 1200)
        sql, params = client.query.await_args.args
        assert "BASE TABLE" in sql
        assert params == {"db": "shop_copy"}

    async def test_verify_empty_database(self):
        client = _make_client(verification=((0, None),))
        snapshot = await verify_import(client, "shop_copy")
        assert (snapshot.table_count, snapshot.row_count) == (0, 0)

    async def test_verify_failure_is_unknown(self):
        client = AsyncMock()
        client.query.side_effect = SqlClientError("gone away")
        snapshot = await verify_import(client, "shop_copy")
        assert not snapshot.available
        assert snapshot.row_count is None


class TestRunImport:
    """Configured entry point."""

    async def test_missing_directory(self, tmp_path):
        config = ImportConfig(database="shop_copy", source_dir=tmp_path / "missing")
        with pytest.raises(FileNotFoundError):
            await run_import(config, _make_client())

    async def test_runs_configured_import(self, tmp_path):
        _write_stage(tmp_path, Stage.SCHEMA)
        config = ImportConfig(database="shop_copy", source_dir=tmp_path)
        client = _make_client()

        ledger = await run_import(config, client, should_continue=always_continue)

        assert ledger.database == "shop_copy"
        assert ledger.source_dir == tmp_path
        assert client.execute.await_args.args[0] == "shop_copy"
