"""Library-level workflows: load, look up, persist, and diagnose connections.

These tests go through :mod:`dbman.core` and :mod:`dbman.diagnostics` with
real files and a captured environment; only the network is faked.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from dbman import core, diagnostics
from dbman.adapters.backends.mysql import MySQLAdapter
from dbman.adapters.path_resolvers.default import DefaultSourceLocator
from dbman.application.ports import SqlResult
from dbman.domain.connection import Kind, MongoConnection, MySQLConnection, PostgresConnection
from dbman.domain.errors import BackendConnectionError, InvalidFormat, LoadError, UnknownConnectionError
from dbman.domain.registry import Registry
from tests.support import FakeSqlAdapter, RecordingPrompter, read_config, write_config


def _locator(tmp_path: Path, env: dict[str, str] | None = None) -> DefaultSourceLocator:
    return DefaultSourceLocator(cwd=tmp_path / "project", home=tmp_path / "home", env=env or {})


def _load(tmp_path: Path, environ: dict[str, str] | None = None) -> Registry:
    (tmp_path / "project").mkdir(exist_ok=True)
    return core.load_registry(
        locator=_locator(tmp_path, environ),
        environ=environ or {},
        start_dir=str(tmp_path / "project"),
    )


def test_user_level_connection_becomes_a_mysql_adapter_without_io(tmp_path: Path) -> None:
    write_config(tmp_path / "home" / ".dbman.yaml", {"prod": {"type": "mysql", "host": "db.internal"}})
    definition = core.get_connection("prod", registry=_load(tmp_path))
    adapter = core.make_adapter(definition)
    assert isinstance(adapter, MySQLAdapter)
    assert adapter.identify_kind() is Kind.MYSQL
    assert definition.target == "db.internal:3306"
    assert not adapter.connected


def test_default_is_synthesised_from_environment(tmp_path: Path) -> None:
    registry = _load(tmp_path, {"DBMAN_DEFAULT_TYPE": "mysql", "DBMAN_DEFAULT_HOST": "mysql.local"})
    default = registry["default"]
    assert isinstance(default, MySQLConnection)
    assert (default.host, default.port) == ("mysql.local", 3306)
    assert registry.origin("default")["layer"] == "env"


def test_placeholders_use_dotenv_values_under_the_shell(tmp_path: Path) -> None:
    project = tmp_path / "project"
    write_config(
        project / ".dbman.yaml",
        {"prod": {"type": "postgres", "host": "${PROD_HOST}", "user": "${PROD_USER}", "password": "${PROD_PW}"}},
    )
    (project / ".env").write_text("PROD_HOST=dotenv-host\nPROD_USER=admin\n", encoding="utf-8")
    prod = _load(tmp_path, {"PROD_HOST": "shell-host"})["prod"]
    assert isinstance(prod, PostgresConnection)
    assert (prod.host, prod.user, prod.password) == ("shell-host", "admin", "")


def test_unparseable_file_aborts_the_load(tmp_path: Path) -> None:
    path = tmp_path / "home" / ".dbman.yaml"
    path.parent.mkdir(parents=True)
    path.write_text("connections: {prod: [\n", encoding="utf-8")
    with pytest.raises(LoadError, match="user file"):
        _load(tmp_path)


def test_undecodable_dotenv_is_reported_as_invalid_format(tmp_path: Path) -> None:
    project = tmp_path / "project"
    project.mkdir()
    (project / ".env").write_bytes(b"\xff\xfe=1\n")
    with pytest.raises(InvalidFormat, match="not valid UTF-8"):
        _load(tmp_path)


def test_bad_entries_are_dropped_individually(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    write_config(
        tmp_path / "home" / ".dbman.yaml",
        {"cache": {"type": "redis"}, "broken": {"type": "mysql", "port": "abc"}, "docs": {"type": 2, "dbName": "d"}},
    )
    with caplog.at_level("WARNING", logger="dbman"):
        registry = _load(tmp_path)
    assert list(registry) == ["default", "docs"]
    assert isinstance(registry["docs"], MongoConnection)
    assert [record.getMessage() for record in caplog.records].count("connection_dropped") == 2


def test_get_connection_prompts_only_for_missing_credentials(tmp_path: Path) -> None:
    write_config(tmp_path / "home" / ".dbman.yaml", {"prod": {"type": "postgres", "host": "db", "user": "alice"}})
    prompter = RecordingPrompter({"Password for prod": "s3cret", "Database name for prod": "app"})
    prod = core.get_connection("prod", registry=_load(tmp_path), prompter=prompter)
    assert (prod.user, prod.password, prod.database) == ("alice", "s3cret", "app")
    assert prompter.asked == [("Password for prod", True), ("Database name for prod", False)]


def test_unknown_connection_is_not_prompted(tmp_path: Path) -> None:
    prompter = RecordingPrompter()
    with pytest.raises(UnknownConnectionError):
        core.get_connection("ghost", registry=_load(tmp_path), prompter=prompter)
    assert prompter.asked == []


def test_save_then_delete_round_trip_through_user_file(tmp_path: Path) -> None:
    locator = _locator(tmp_path)
    write_config(tmp_path / "home" / ".dbman.yaml", {"keep": {"type": "mysql"}}, settings={"theme": "dark"})
    path = core.save_connection(MongoConnection(name="docs", uri="mongodb://m:27017", db_name="d"), locator=locator)
    assert path == str(tmp_path / "home" / ".dbman.yaml")
    document = read_config(Path(path))
    assert list(document["connections"]) == ["keep", "docs"]
    assert document["settings"] == {"theme": "dark"}

    assert core.delete_connection("docs", locator=locator) == [path]
    assert list(read_config(Path(path))["connections"]) == ["keep"]
    with pytest.raises(UnknownConnectionError) as excinfo:
        core.delete_connection("docs", locator=locator)
    assert excinfo.value.available == ("keep",)


def test_delete_removes_name_from_project_and_user_files(tmp_path: Path) -> None:
    project_file = write_config(tmp_path / "project" / ".dbman.yaml", {"dev": {"type": "postgres"}})
    user_file = write_config(tmp_path / "home" / ".dbman.yaml", {"dev": {"type": "mysql"}, "other": {"type": 0}})
    removed = core.delete_connection("dev", locator=_locator(tmp_path))
    assert removed == [str(project_file), str(user_file)]
    assert read_config(project_file)["connections"] == {}
    assert list(read_config(user_file)["connections"]) == ["other"]


def test_save_honours_config_override(tmp_path: Path) -> None:
    override = tmp_path / "elsewhere" / "conns.yaml"
    locator = _locator(tmp_path, {"DBMAN_CONFIG": str(override)})
    core.save_connection(PostgresConnection(name="pg", host="h", port=5432), locator=locator)
    assert read_config(override)["connections"]["pg"]["host"] == "h"
    assert not (tmp_path / "home" / ".dbman.yaml").exists()


def test_session_closes_adapter_when_the_body_fails() -> None:
    adapter = FakeSqlAdapter()

    async def scenario() -> None:
        async with core.session(adapter):
            raise ValueError("boom")

    with pytest.raises(ValueError):
        asyncio.run(scenario())
    assert adapter.events == ["connect", "close"]


def test_session_closes_adapter_when_connect_fails() -> None:
    adapter = FakeSqlAdapter(fail_connect=BackendConnectionError("postgres", "h:5432", "refused"))

    async def scenario() -> None:
        async with core.session(adapter):
            pass

    with pytest.raises(BackendConnectionError):
        asyncio.run(scenario())
    assert adapter.events == ["connect", "close"]


# ---------------------------------------------------------------------------
# diagnostics
# ---------------------------------------------------------------------------


class _Writer:
    def __init__(self) -> None:
        self.closed = False

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        pass


def test_probe_reports_unreachable_server_with_hint(monkeypatch: pytest.MonkeyPatch) -> None:
    async def refuse(host, port):
        raise ConnectionRefusedError("Connection refused")

    monkeypatch.setattr(asyncio, "open_connection", refuse)
    definition = MySQLConnection(name="prod", host="db.internal", port=3306)
    result = asyncio.run(diagnostics.probe(definition, platform="darwin"))
    assert not result.reachable
    assert result.error == "Connection refused"
    assert result.hint == "brew install mysql && brew services start mysql"


def test_run_doctor_probes_every_entry_in_order(monkeypatch: pytest.MonkeyPatch) -> None:
    contacted: list[tuple[str, int]] = []
    writer = _Writer()

    async def accept(host, port):
        contacted.append((host, port))
        return object(), writer

    monkeypatch.setattr(asyncio, "open_connection", accept)
    registry = Registry(
        {
            "default": PostgresConnection(name="default", host="", port=5432),
            "prod": MySQLConnection(name="prod", host="db", port=3307),
        },
        {},
    )
    results = asyncio.run(diagnostics.run_doctor(registry, platform="linux"))
    assert [result.reachable for result in results] == [True, True]
    assert contacted == [("localhost", 5432), ("db", 3307)]
    assert writer.closed
    assert all(result.hint == "" for result in results)


def test_install_hint_falls_back_for_unknown_platforms() -> None:
    assert diagnostics.install_hint(Kind.POSTGRES, "win32").startswith("Download")
    assert diagnostics.install_hint(Kind.MYSQL, "aix") == "Installation guide not available for this platform."


def test_ensure_database_exists_creates_missing_postgres_database(monkeypatch: pytest.MonkeyPatch) -> None:
    adapters: list[FakeSqlAdapter] = []

    def fake_make_adapter(definition, *, connect_timeout=None):
        adapter = FakeSqlAdapter(definition, results=[SqlResult(rows=[], rowcount=0)])
        adapters.append(adapter)
        return adapter

    monkeypatch.setattr(diagnostics, "make_adapter", fake_make_adapter)
    created = asyncio.run(diagnostics.ensure_database_exists(PostgresConnection(name="pg", database="shop")))
    assert created
    adapter = adapters[0]
    assert adapter.definition.database == "postgres"
    assert adapter.statements == [
        ("SELECT 1 FROM pg_database WHERE datname = $1", ["shop"]),
        ('CREATE DATABASE "shop"', []),
    ]
    assert adapter.events == ["connect", "close"]


def test_ensure_database_exists_skips_existing_and_document_databases(monkeypatch: pytest.MonkeyPatch) -> None:
    adapters: list[FakeSqlAdapter] = []

    def fake_make_adapter(definition, *, connect_timeout=None):
        adapter = FakeSqlAdapter(definition, results=[SqlResult(rows=[{"?column?": 1}], rowcount=1)])
        adapters.append(adapter)
        return adapter

    monkeypatch.setattr(diagnostics, "make_adapter", fake_make_adapter)
    assert not asyncio.run(diagnostics.ensure_database_exists(PostgresConnection(name="pg", database="shop")))
    assert len(adapters[0].statements) == 1
    assert not asyncio.run(diagnostics.ensure_database_exists(MongoConnection(name="m", uri="u", db_name="d")))
    assert len(adapters) == 1


def test_verify_connection_propagates_backend_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    failure = BackendConnectionError("mysql", "db:3306", "Access denied")
    adapter = FakeSqlAdapter(fail_connect=failure)
    monkeypatch.setattr(diagnostics, "make_adapter", lambda definition, *, connect_timeout=None: adapter)
    with pytest.raises(BackendConnectionError, match="Access denied"):
        asyncio.run(diagnostics.verify_connection(MySQLConnection(name="prod", host="db", port=3306)))
    assert adapter.events == ["connect", "close"]
