"""Tests for the db-artifacts command line."""

import inspect
from contextlib import asynccontextmanager
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from db_artifacts import cli
from db_artifacts.adapters.base import CommandResult, SqlClientError
from db_artifacts.artifacts.models import Stage
from db_artifacts.export.discovery import NoDatabasesFound
from db_artifacts.importer.pipeline import always_continue, always_halt
from db_artifacts.reporting import ExportSummary
from db_artifacts.service.bootstrap import ServiceNotReadyError


def _parse(*argv: str):
    return cli.build_parser().parse_args(list(argv))


def _fake_service(error: Exception | None = None):
    @asynccontextmanager
    async def _service(config, engine, runtime, eraser):
        if error is not None:
            raise error
        yield SimpleNamespace(service_id=runtime.name)

    return _service


# ------------------------------------------------------------------
# Parser
# ------------------------------------------------------------------


class TestParser:
    """Arguments and defaults."""

    def test_prog(self):
        assert cli.build_parser().prog == "db-artifacts"

    def test_command_required(self):
        with pytest.raises(SystemExit):
            _parse()

    def test_export_defaults(self):
        args = _parse("export")
        assert args.func is cli.cmd_export
        assert args.databases is None
        assert args.password is None
        assert not args.skip_full

    def test_export_flags(self):
        args = _parse("export", "-d", "shop,crm", "-s", "-p", "pw", "-i", "mariadb:10.11",
                      "-b", "/srv/backup", "-o", "/srv/out")
        assert args.databases == "shop,crm"
        assert args.skip_full
        assert args.password == "pw"
        assert args.image == "mariadb:10.11"
        assert args.backup_dir == "/srv/backup"
        assert args.output_dir == "/srv/out"

    def test_bare_password_flag_prompts(self):
        args = _parse("export", "-p")
        assert args.password is cli.PROMPT_FOR_PASSWORD

    def test_import_positionals(self):
        args = _parse("import", "shop_copy", "./output/shop", "db", "3307", "admin")
        assert args.func is cli.cmd_import
        assert (args.database, args.sql_dir) == ("shop_copy", "./output/shop")
        assert (args.host, args.port, args.user) == ("db", 3307, "admin")
        assert args.on_error == "prompt"

    def test_import_requires_database_and_dir(self):
        with pytest.raises(SystemExit):
            _parse("import", "shop_copy")

    def test_on_error_choices(self):
        assert _parse("import", "a", "b", "--on-error", "halt").on_error == "halt"
        with pytest.raises(SystemExit):
            _parse("import", "a", "b", "--on-error", "retry")

    def test_global_options(self):
        args = _parse("--verbose", "--config", "x.toml", "export")
        assert args.verbose
        assert args.config == "x.toml"


class TestAsyncWrapping:
    """Sync wrappers delegate to coroutines via asyncio.run()."""

    def test_wrappers_are_sync(self):
        assert not inspect.iscoroutinefunction(cli.cmd_export)
        assert not inspect.iscoroutinefunction(cli.cmd_import)

    def test_implementations_are_async(self):
        assert inspect.iscoroutinefunction(cli._async_export)
        assert inspect.iscoroutinefunction(cli._async_import)

    def test_cmd_export_calls_asyncio_run(self):
        source = inspect.getsource(cli.cmd_export)
        assert "asyncio.run(" in source


# ------------------------------------------------------------------
# Continue-on-error policies
# ------------------------------------------------------------------


class TestContinuePolicies:
    """--on-error values map to decisions."""

    def test_mapping(self):
        assert cli._ON_ERROR["continue"] is always_continue
        assert cli._ON_ERROR["halt"] is always_halt
        assert cli._ON_ERROR["prompt"] is cli.prompt_continue

    @pytest.mark.parametrize(
        "answer, expected",
        [("y", True), ("", True), ("yes", True), ("n", False), ("No", False), (" no ", False)],
    )
    def test_prompt_answers(self, answer, expected):
        with patch.object(cli.Prompt, "ask", return_value=answer):
            assert cli.prompt_continue(Stage.DATA, CommandResult(1)) is expected


# ------------------------------------------------------------------
# export
# ------------------------------------------------------------------


class TestExportCommand:
    """Exit codes and wiring for export."""

    async def test_success(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        summary = ExportSummary(output_dir=tmp_path / "out", databases=["shop"])
        run = AsyncMock(return_value=summary)
        with patch.object(cli, "ephemeral_service", _fake_service()), \
                patch.object(cli, "run_export", run):
            code = await cli._async_export(
                _parse("export", "-d", "shop", "-s", "-b", str(tmp_path), "-o", str(tmp_path / "out"))
            )

        assert code == 0
        config, client = run.await_args.args
        assert config.selection.names == ["shop"]
        assert not config.include_full
        assert config.output_dir == tmp_path / "out"
        assert client.container == "mariadb_restore"

    async def test_bootstrap_failure_is_fatal(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        error = ServiceNotReadyError("Service did not become ready after 30 probes.")
        with patch.object(cli, "ephemeral_service", _fake_service(error)):
            assert await cli._async_export(_parse("export", "-b", str(tmp_path))) == 1

    async def test_no_databases_is_fatal(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        run = AsyncMock(side_effect=NoDatabasesFound("No databases found to export."))
        with patch.object(cli, "ephemeral_service", _fake_service()), \
                patch.object(cli, "run_export", run):
            assert await cli._async_export(_parse("export", "-b", str(tmp_path))) == 1

    async def test_discovery_query_failure_is_fatal(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        run = AsyncMock(side_effect=SqlClientError("ERROR 2013: Lost connection"))
        with patch.object(cli, "ephemeral_service", _fake_service()), \
                patch.object(cli, "run_export", run):
            assert await cli._async_export(_parse("export", "-b", str(tmp_path))) == 1

    async def test_empty_prompted_password(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        service = MagicMock()
        with patch.object(cli.Prompt, "ask", return_value=""), \
                patch.object(cli, "ephemeral_service", service):
            assert await cli._async_export(_parse("export", "-p")) == 1
        service.assert_not_called()

    async def test_missing_config_file(self, tmp_path):
        args = _parse("--config", str(tmp_path / "missing.toml"), "export")
        assert await cli._async_export(args) == 1


# ------------------------------------------------------------------
# import
# ------------------------------------------------------------------


def _import_client(connect_error: Exception | None = None) -> AsyncMock:
    client = AsyncMock()

    async def _query(sql, params=None):
        if sql == "SELECT 1" and connect_error is not None:
            raise connect_error
        if "information_schema.TABLES" in sql:
            return [(1, 3)]
        return []

    client.query = AsyncMock(side_effect=_query)
    client.execute = AsyncMock(return_value=CommandResult(0))
    client.close = AsyncMock()
    return client


class TestImportCommand:
    """Exit codes and wiring for import."""

    async def test_missing_directory(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        factory = MagicMock()
        with patch.object(cli, "MySQLClient", factory):
            code = await cli._async_import(_parse("import", "shop_copy", str(tmp_path / "nope")))
        assert code == 1
        factory.assert_not_called()

    async def test_connection_failure(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        client = _import_client(connect_error=SqlClientError("Can't connect"))
        with patch.object(cli, "MySQLClient", MagicMock(return_value=client)), \
                patch.object(cli.Prompt, "ask", return_value="pw"):
            code = await cli._async_import(_parse("import", "shop_copy", str(tmp_path)))
        assert code == 1
        client.close.assert_awaited_once()
        client.execute.assert_not_awaited()

    async def test_success_with_stage_failure(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        src = tmp_path / "shop"
        src.mkdir()
        (src / "schema.sql").write_text("CREATE TABLE t (id INT);\n" * 20)
        client = _import_client()
        client.execute.return_value = CommandResult(1, stderr="ERROR 1050: Table exists")
        factory = MagicMock(return_value=client)

        with patch.object(cli, "MySQLClient", factory), \
                patch.object(cli.Prompt, "ask", return_value="pw"):
            code = await cli._async_import(
                _parse("import", "shop_copy", str(src), "db", "3307", "admin", "--on-error", "continue")
            )

        assert code == 0
        kwargs = factory.call_args.kwargs
        assert (kwargs["host"], kwargs["port"], kwargs["user"]) == ("db", 3307, "admin")
        assert kwargs["password"] == "pw"
        client.close.assert_awaited_once()

    async def test_create_database_failure(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        client = _import_client()

        async def _query(sql, params=None):
            if sql.startswith("CREATE DATABASE"):
                raise SqlClientError("Access denied")
            return []

        client.query.side_effect = _query
        with patch.object(cli, "MySQLClient", MagicMock(return_value=client)), \
                patch.object(cli.Prompt, "ask", return_value="pw"):
            code = await cli._async_import(_parse("import", "shop_copy", str(tmp_path)))
        assert code == 1
        client.close.assert_awaited_once()


# ------------------------------------------------------------------
# main
# ------------------------------------------------------------------


class TestMain:
    """Dispatch and interrupt handling."""

    def test_dispatches(self, monkeypatch):
        monkeypatch.setattr(cli, "configure_logging", lambda verbose=False: None)
        monkeypatch.setattr(cli, "cmd_export", lambda args: 0)
        assert cli.main(["export"]) == 0

    def test_interrupt_exits_130(self, monkeypatch):
        monkeypatch.setattr(cli, "configure_logging", lambda verbose=False: None)

        def _interrupted(args):
            raise KeyboardInterrupt

        monkeypatch.setattr(cli, "cmd_import", _interrupted)
        assert cli.main(["import", "shop_copy", "out/shop"]) == 130
