"""End-to-end CLI coverage for the commands exposed by ``dbman``.

The tests run the real Click commands against YAML files in a temporary home
and project directory. Backend adapters are swapped for the in-memory fakes
from :mod:`tests.support`, so no database server is needed and every
statement the CLI issues can be inspected.
"""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from types import SimpleNamespace

import lib_cli_exit_tools
import pytest
from click.testing import CliRunner

from dbman import cli
from dbman.application.ports import SqlResult
from dbman.domain.connection import Kind
from dbman.domain.errors import BackendConnectionError, CapabilityMismatchError, UnknownConnectionError
from tests.support import FakeDocumentAdapter, FakeSqlAdapter, read_config, write_config


@pytest.fixture()
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> SimpleNamespace:
    """Isolated home and project directories with a clean ``DBMAN_*`` environment."""

    home = tmp_path / "home"
    project = tmp_path / "project"
    home.mkdir()
    project.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(project)
    for key in [key for key in os.environ if key.startswith("DBMAN_")]:
        monkeypatch.delenv(key)
    return SimpleNamespace(home=home, project=project, user_file=home / ".dbman.yaml")


@pytest.fixture()
def adapters(monkeypatch: pytest.MonkeyPatch) -> SimpleNamespace:
    """Replace the adapter factory used by the CLI with recording fakes."""

    state = SimpleNamespace(created=[], results=[])

    def fake_make_adapter(definition, *, connect_timeout=None):
        if definition.kind is Kind.MONGO:
            adapter = FakeDocumentAdapter(definition)
        else:
            adapter = FakeSqlAdapter(definition, results=state.results)
        state.created.append(adapter)
        return adapter

    monkeypatch.setattr(cli, "make_adapter", fake_make_adapter)
    return state


def _runner() -> CliRunner:
    return CliRunner()


def _seed(workspace: SimpleNamespace) -> None:
    write_config(
        workspace.user_file,
        {
            "prod": {"type": "mysql", "host": "db.internal", "user": "root", "password": "pw", "database": "shop"},
            "events": {"type": "mongo", "uri": "mongodb://localhost:27017", "dbName": "events"},
        },
    )


def test_cli_list_json_includes_default_and_hides_passwords(workspace) -> None:
    _seed(workspace)
    result = _runner().invoke(cli.cli, ["list", "--json"])
    assert result.exit_code == 0, result.output
    rows = json.loads(result.stdout)
    assert [row["name"] for row in rows] == ["default", "prod", "events"]
    prod = rows[1]
    assert prod["type"] == "mysql" and prod["host"] == "db.internal" and prod["source"] == "user"
    assert all("password" not in row for row in rows)


def test_cli_list_user_entries_override_project_entries(workspace) -> None:
    _seed(workspace)
    write_config(workspace.project / ".dbman.yaml", {"prod": {"type": "postgres", "host": "project-db"}})
    result = _runner().invoke(cli.cli, ["list", "--json"])
    assert result.exit_code == 0, result.output
    prod = next(row for row in json.loads(result.stdout) if row["name"] == "prod")
    assert prod["type"] == "mysql"
    assert prod["source"] == "user"


def test_cli_query_prints_rows(workspace, adapters) -> None:
    _seed(workspace)
    adapters.results.append(SqlResult(rows=[{"id": 1, "name": "Alice"}], rowcount=1))
    result = _runner().invoke(cli.cli, ["query", "-d", "prod", "-q", "SELECT * FROM users WHERE id = $1", "-p", "1"])
    assert result.exit_code == 0, result.output
    assert "Alice" in result.output
    adapter = adapters.created[-1]
    assert adapter.statements == [("SELECT * FROM users WHERE id = $1", ["1"])]
    assert adapter.events == ["connect", "close"]


def test_cli_query_json_and_rowcount(workspace, adapters) -> None:
    _seed(workspace)
    adapters.results.append(SqlResult(rows=[{"id": 1}], rowcount=1))
    rows = _runner().invoke(cli.cli, ["query", "-d", "prod", "-q", "SELECT id FROM users", "--json"])
    assert json.loads(rows.stdout) == [{"id": 1}]

    adapters.results[:] = [SqlResult(rowcount=3)]
    changed = _runner().invoke(cli.cli, ["query", "-d", "prod", "-q", "DELETE FROM users"])
    assert changed.exit_code == 0
    assert "3 row(s) affected" in changed.output


def test_cli_insert_binds_values_as_parameters(workspace, adapters) -> None:
    _seed(workspace)
    result = _runner().invoke(cli.cli, ["insert", "users", "-d", "prod", "-v", "name=O'Brien", "-v", "age=30"])
    assert result.exit_code == 0, result.output
    assert 'Row inserted into "users"' in result.output
    statement, params = adapters.created[-1].statements[-1]
    assert statement == 'INSERT INTO "users" ("name", "age") VALUES ($1, $2)'
    assert params == ["O'Brien", "30"]


def test_cli_insert_keeps_leading_zeros_in_values(workspace, adapters) -> None:
    _seed(workspace)
    result = _runner().invoke(cli.cli, ["insert", "people", "-d", "prod", "-v", "zip=02134", "-v", "phone=5551234"])
    assert result.exit_code == 0, result.output
    assert adapters.created[-1].statements[-1][1] == ["02134", "5551234"]


def test_cli_update_and_delete_row_report_counts(workspace, adapters) -> None:
    _seed(workspace)
    adapters.results.append(SqlResult(rowcount=2))
    updated = _runner().invoke(cli.cli, ["update", "users", "-d", "prod", "-s", "age=31", "-w", "name = 'Alice'"])
    assert updated.exit_code == 0, updated.output
    assert '2 row(s) updated in "users"' in updated.output
    assert adapters.created[-1].statements[-1] == ('UPDATE "users" SET "age" = $1 WHERE name = \'Alice\'', ["31"])

    adapters.results[:] = [SqlResult(rowcount=5)]
    deleted = _runner().invoke(cli.cli, ["delete-row", "users", "-d", "prod"])
    assert '5 row(s) deleted from "users"' in deleted.output
    assert adapters.created[-1].statements[-1] == ('DELETE FROM "users"', [])


def test_cli_create_table_and_tables(workspace, adapters) -> None:
    _seed(workspace)
    created = _runner().invoke(cli.cli, ["create-table", "users", "-d", "prod", "-c", "id:serial", "-c", "name:text"])
    assert created.exit_code == 0, created.output
    assert adapters.created[-1].statements[-1] == ('CREATE TABLE "users" ("id" SERIAL, "name" TEXT)', [])

    listed = _runner().invoke(cli.cli, ["tables", "-d", "prod"])
    assert listed.output.split() == ["orders", "users"]


def test_cli_create_table_requires_columns(workspace, adapters) -> None:
    _seed(workspace)
    result = _runner().invoke(cli.cli, ["create-table", "users", "-d", "prod"])
    assert result.exit_code != 0
    assert adapters.created == []


def test_cli_sql_command_on_mongo_fails_before_connecting(workspace, adapters) -> None:
    _seed(workspace)
    result = _runner().invoke(cli.cli, ["query", "-d", "events", "-q", "SELECT 1"])
    assert result.exit_code != 0
    assert isinstance(result.exception, CapabilityMismatchError)
    assert all(adapter.events == [] for adapter in adapters.created)


def test_cli_unknown_connection_lists_available_names(workspace, adapters) -> None:
    _seed(workspace)
    result = _runner().invoke(cli.cli, ["tables", "-d", "staging"])
    assert result.exit_code != 0
    assert isinstance(result.exception, UnknownConnectionError)
    assert "default, events, prod" in str(result.exception)
    assert adapters.created == []


def test_cli_prompts_for_missing_credentials(workspace, adapters) -> None:
    write_config(workspace.user_file, {"bare": {"type": "postgres", "host": "db"}})
    result = _runner().invoke(cli.cli, ["tables", "-d", "bare"], input="alice\nsecret\napp\n")
    assert result.exit_code == 0, result.output
    definition = adapters.created[-1].definition
    assert (definition.user, definition.password, definition.database) == ("alice", "secret", "app")
    assert "secret" not in result.output


def test_cli_mongo_commands(workspace, adapters) -> None:
    _seed(workspace)
    inserted = _runner().invoke(cli.cli, ["mongo-insert", "users", "name=Alice", "age=30", "-d", "events"])
    assert inserted.exit_code == 0, inserted.output
    assert 'Document 1 inserted into "users"' in inserted.output
    assert adapters.created[-1].calls == [("insert_one", ("users", {"name": "Alice", "age": 30}))]

    found = _runner().invoke(
        cli.cli, ["mongo-find", "users", "-d", "events", "-w", '{"age": 30}', "--limit", "2", "--json"]
    )
    assert found.exit_code == 0, found.output
    assert json.loads(found.stdout) == []
    assert adapters.created[-1].calls == [("find", ("users", {"age": 30}, None, 2))]

    updated = _runner().invoke(cli.cli, ["mongo-update", "users", "-d", "events", "-s", "age=31"])
    assert '0 document(s) updated in "users"' in updated.output

    dropped = _runner().invoke(cli.cli, ["mongo-drop-collection", "users", "-d", "events"])
    assert 'Collection "users" dropped' in dropped.output


def test_cli_mongo_find_rejects_invalid_filter(workspace, adapters) -> None:
    _seed(workspace)
    result = _runner().invoke(cli.cli, ["mongo-find", "users", "-d", "events", "-w", "[1, 2]"])
    assert result.exit_code != 0
    assert "expected a JSON object" in result.output
    assert adapters.created == []


def test_cli_config_saves_without_verification(workspace) -> None:
    result = _runner().invoke(
        cli.cli,
        ["config", "--no-verify"],
        input="dev\nmysql\ndb.internal\n3306\nroot\nsecret\nshop\n",
    )
    assert result.exit_code == 0, result.output
    assert f'Connection "dev" saved to {workspace.user_file}.' in result.output
    assert read_config(workspace.user_file)["connections"]["dev"] == {
        "type": "mysql",
        "host": "db.internal",
        "port": 3306,
        "user": "root",
        "password": "secret",
        "database": "shop",
    }


def test_cli_config_does_not_save_when_verification_fails(workspace, monkeypatch: pytest.MonkeyPatch) -> None:
    async def refuse(definition, timeout=None):
        raise BackendConnectionError("postgres", definition.target, "Connection refused")

    monkeypatch.setattr(cli, "ensure_database_exists", refuse)
    result = _runner().invoke(cli.cli, ["config"], input="dev\npostgres\nlocalhost\n5432\npostgres\npw\napp\n")
    assert result.exit_code != 0
    assert isinstance(result.exception, BackendConnectionError)
    assert not workspace.user_file.exists()


def test_cli_config_verifies_then_saves(workspace, monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[str] = []

    async def ensure(definition, timeout=None):
        calls.append("ensure")
        return True

    async def verify(definition, timeout=None):
        calls.append("verify")

    monkeypatch.setattr(cli, "ensure_database_exists", ensure)
    monkeypatch.setattr(cli, "verify_connection", verify)
    result = _runner().invoke(cli.cli, ["config"], input="docs\nmongo\n\nevents\n")
    assert result.exit_code == 0, result.output
    assert calls == ["ensure", "verify"]
    assert read_config(workspace.user_file)["connections"]["docs"] == {
        "type": "mongo",
        "uri": "mongodb://localhost:27017",
        "dbName": "events",
    }


def test_cli_config_honours_override_path(workspace, monkeypatch: pytest.MonkeyPatch) -> None:
    override = workspace.home / "custom" / "connections.yaml"
    monkeypatch.setenv("DBMAN_CONFIG", str(override))
    result = _runner().invoke(cli.cli, ["config", "--no-verify"], input="docs\nmongo\n\nevents\n")
    assert result.exit_code == 0, result.output
    assert "docs" in read_config(override)["connections"]
    assert not workspace.user_file.exists()


def test_cli_delete_removes_connection(workspace) -> None:
    _seed(workspace)
    result = _runner().invoke(cli.cli, ["delete", "prod"])
    assert result.exit_code == 0, result.output
    assert f'Connection "prod" deleted from {workspace.user_file}' in result.output
    assert list(read_config(workspace.user_file)["connections"]) == ["events"]


def test_cli_delete_unknown_connection_fails(workspace) -> None:
    _seed(workspace)
    result = _runner().invoke(cli.cli, ["delete", "ghost"])
    assert result.exit_code != 0
    assert isinstance(result.exception, UnknownConnectionError)


def test_cli_test_command_reports_success(workspace, monkeypatch: pytest.MonkeyPatch) -> None:
    _seed(workspace)
    verified: list[str] = []

    async def verify(definition, timeout=None):
        verified.append(definition.name)

    monkeypatch.setattr(cli, "verify_connection", verify)
    result = _runner().invoke(cli.cli, ["test", "-d", "prod"])
    assert result.exit_code == 0, result.output
    assert "prod (mysql) OK" in result.output
    assert verified == ["prod"]


def test_cli_doctor_reports_reachability_and_hints(workspace, monkeypatch: pytest.MonkeyPatch) -> None:
    write_config(workspace.user_file, {"prod": {"type": "mysql", "host": "db.internal"}})

    class Writer:
        def close(self) -> None:
            pass

        async def wait_closed(self) -> None:
            pass

    async def open_connection(host, port):
        if host == "db.internal":
            raise ConnectionRefusedError("Connection refused")
        return object(), Writer()

    monkeypatch.setattr(asyncio, "open_connection", open_connection)
    result = _runner().invoke(cli.cli, ["doctor"])
    assert result.exit_code == 0, result.output
    assert 'OK    "default" (postgres) is running at localhost:5432' in result.output
    assert 'FAIL  "prod" (mysql) cannot be reached at db.internal:3306: Connection refused' in result.output


def test_cli_info_reports_metadata_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    def missing(_name: str):
        raise cli.metadata.PackageNotFoundError

    monkeypatch.setattr(cli.metadata, "metadata", missing)
    result = _runner().invoke(cli.cli, ["info"])
    assert result.exit_code == 0
    assert "metadata unavailable" in result.output


def test_cli_main_restores_traceback_flag(workspace) -> None:
    previous_traceback = getattr(lib_cli_exit_tools.config, "traceback", False)
    exit_code = cli.main(["--traceback", "list", "--json"], restore_traceback=True)
    assert exit_code == 0
    assert getattr(lib_cli_exit_tools.config, "traceback", False) == previous_traceback


def test_cli_main_returns_failure_code_for_library_errors(workspace) -> None:
    assert cli.main(["delete", "ghost"]) != 0


def test_parse_pairs_rejects_missing_separator() -> None:
    with pytest.raises(cli.click.BadParameter):
        cli.parse_pairs(["name"], param_hint="--set")
