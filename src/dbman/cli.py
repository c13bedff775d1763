"""CLI adapter for ``dbman`` built on ``rich_click`` and ``lib_cli_exit_tools``.

Purpose
-------
Expose connection management and basic data operations for every configured
backend behind one command line, so operators never need each database's
native client.

Contents
--------
* :data:`CLICK_CONTEXT_SETTINGS` – shared Click settings ensuring ``-h`` works.
* :func:`cli` – root command wiring traceback handling, logging, and the
  per-invocation trace id.
* Connection management: ``info``, ``list``, ``config``, ``delete``, ``test``,
  ``doctor``.
* SQL commands: ``query``, ``tables``, ``create-db``, ``drop-db``,
  ``create-table``, ``drop-table``, ``select``, ``insert``, ``update``,
  ``delete-row``.
* Document commands: ``mongo-list-collections``, ``mongo-insert``,
  ``mongo-find``, ``mongo-update``, ``mongo-delete``,
  ``mongo-drop-collection``.
* :func:`main` – entry point used by ``console_scripts`` registration.

System Role
-----------
The CLI lives in the outermost layer. It calls the composition root
(:mod:`dbman.core`) and the diagnostics helpers, checks the adapter's
capability before prompting or connecting, and leaves exit codes to
``lib_cli_exit_tools``. Every backend operation runs inside one
``asyncio.run`` call wrapped in :func:`dbman.core.session`.
"""

from __future__ import annotations

import asyncio
import json
import math
import sys
import uuid
from importlib import metadata
from typing import Any, Awaitable, Callable, Final, Mapping, Optional, Sequence, TypeVar

import lib_cli_exit_tools
import rich_click as click
from rich.console import Console
from rich.table import Table

from .adapters.backends.factory import make_adapter
from .adapters.env.default import capture_environment
from .adapters.path_resolvers.default import DefaultSourceLocator
from .adapters.prompt.click_prompter import ClickPrompter
from .application.capabilities import require_document, require_sql
from .application.normalize import build_definition
from .application.ports import BackendAdapter, SqlCapable
from .application.resolve import prompt_for_missing_credentials
from .core import delete_connection, get_connection, load_registry, save_connection, session
from .diagnostics import ensure_database_exists, run_doctor, verify_connection
from .domain.connection import DEFAULT_CONNECTION, DEFAULT_PORTS, Kind
from .observability import bind_trace_id, configure_logging

CLICK_CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}
_TRACEBACK_SUMMARY_LIMIT: Final[int] = 500
_TRACEBACK_VERBOSE_LIMIT: Final[int] = 10_000

LOG_LEVEL_CHOICES: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

#: Suggested answers for ``dbman config``.
_CONFIG_DEFAULTS: Final[dict[Kind, dict[str, str]]] = {
    Kind.POSTGRES: {"host": "localhost", "user": "postgres", "database": "appdb"},
    Kind.MYSQL: {"host": "localhost", "user": "root", "database": "appdb"},
    Kind.MONGO: {"uri": "mongodb://localhost:27017", "dbName": "test"},
}

T = TypeVar("T")
C = TypeVar("C")


def _resolve_version() -> str:
    """Return the installed package version, ``"0.0.0"`` for source checkouts."""

    try:
        return metadata.version("dbman")
    except metadata.PackageNotFoundError:
        return "0.0.0"


def db_option(function: Callable[..., Any]) -> Callable[..., Any]:
    """Attach the shared ``-d/--db`` connection selector."""

    return click.option(
        "-d",
        "--db",
        "db",
        default=DEFAULT_CONNECTION,
        show_default=True,
        help="Connection name",
    )(function)


def json_option(function: Callable[..., Any]) -> Callable[..., Any]:
    """Attach the shared ``--json`` output switch."""

    return click.option("--json", "as_json", is_flag=True, default=False, help="Print JSON instead of a table")(
        function
    )


@click.group(
    help="Manage connections to PostgreSQL, MySQL and MongoDB from one CLI",
    context_settings=CLICK_CONTEXT_SETTINGS,
    invoke_without_command=False,
)
@click.version_option(
    version=_resolve_version(),
    prog_name="dbman",
    message="dbman version %(version)s",
)
@click.option(
    "--traceback/--no-traceback",
    is_flag=True,
    default=False,
    help="Show full Python traceback on errors",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVEL_CHOICES, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Minimum level of diagnostics printed to stderr",
)
@click.pass_context
def cli(ctx: click.Context, traceback: bool, log_level: str) -> None:
    """Root command configuring tracebacks and logging for all subcommands.

    Side Effects
        Mutates ``lib_cli_exit_tools.config.traceback`` and
        ``lib_cli_exit_tools.config.traceback_force_color``, installs the Rich
        log handler, and binds a fresh trace id.
    """

    ctx.ensure_object(dict)
    ctx.obj["traceback"] = traceback
    lib_cli_exit_tools.config.traceback = traceback
    lib_cli_exit_tools.config.traceback_force_color = traceback
    configure_logging(log_level)
    bind_trace_id(uuid.uuid4().hex)


@cli.command("info", context_settings=CLICK_CONTEXT_SETTINGS)
def cli_info() -> None:
    """Print basic distribution metadata so users can confirm installation."""

    try:
        meta = metadata.metadata("dbman")
    except metadata.PackageNotFoundError:
        click.echo("dbman (metadata unavailable)")
        return
    click.echo(f"Info for {meta.get('Name', 'dbman')}:")
    click.echo(f"  Version         : {meta.get('Version', _resolve_version())}")
    click.echo(f"  Requires-Python : {meta.get('Requires-Python', '>=3.10')}")
    summary = meta.get("Summary")
    if summary:
        click.echo(f"  Summary         : {summary}")
    for entry in meta.get_all("Project-URL") or []:
        click.echo(f"  {entry}")


@cli.command("list", context_settings=CLICK_CONTEXT_SETTINGS)
@json_option
def cli_list(as_json: bool) -> None:
    """List every configured connection (passwords are never shown)."""

    _emit_rows(load_registry().summaries(), as_json=as_json)


@cli.command("config", context_settings=CLICK_CONTEXT_SETTINGS)
@click.option(
    "--verify/--no-verify",
    default=True,
    show_default=True,
    help="Create the database if needed and connect before saving",
)
def cli_config(verify: bool) -> None:
    """Add or update a connection in the user-level file.

    With ``--verify`` (the default) the connection is saved only after the
    database exists and a session could be opened.
    """

    name = click.prompt("Connection name").strip()
    if not name:
        raise click.BadParameter("connection names must not be empty", param_hint="name")
    kind = Kind(click.prompt("DB type", type=click.Choice([kind.value for kind in Kind]), default=Kind.POSTGRES.value))
    suggested = _CONFIG_DEFAULTS[kind]
    if kind is Kind.MONGO:
        fields: dict[str, Any] = {
            "uri": click.prompt("Mongo URI", default=suggested["uri"]),
            "dbName": click.prompt("Database name", default=suggested["dbName"]),
        }
    else:
        fields = {
            "host": click.prompt("Host", default=suggested["host"]),
            "port": click.prompt("Port", type=click.IntRange(1, 65535), default=DEFAULT_PORTS[kind]),
            "user": click.prompt("User", default=suggested["user"]),
            "password": click.prompt("Password", hide_input=True, default="", show_default=False),
            "database": click.prompt("Database name", default=suggested["database"]),
        }
    definition = build_definition(name, fields, kind=kind)

    if verify:
        click.echo("Testing connection...")
        asyncio.run(_create_and_verify(definition))
    path = save_connection(definition, locator=_locator())
    click.echo(f'Connection "{name}" saved to {path}.')


async def _create_and_verify(definition: Any) -> None:
    await ensure_database_exists(definition)
    await verify_connection(definition)


@cli.command("delete", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("name")
def cli_delete(name: str) -> None:
    """Remove connection NAME from every config file that defines it."""

    for path in delete_connection(name, locator=_locator()):
        click.echo(f'Connection "{name}" deleted from {path}')


@cli.command("test", context_settings=CLICK_CONTEXT_SETTINGS)
@db_option
def cli_test(db: str) -> None:
    """Open and close a session for a connection."""

    definition = get_connection(db, registry=load_registry(), prompter=ClickPrompter())
    asyncio.run(verify_connection(definition))
    click.echo(f"{definition.name} ({definition.kind}) OK")


@cli.command("doctor", context_settings=CLICK_CONTEXT_SETTINGS)
def cli_doctor() -> None:
    """Check that every configured server answers and suggest how to install missing ones."""

    for result in asyncio.run(run_doctor(load_registry())):
        if result.reachable:
            click.echo(f'OK    "{result.name}" ({result.kind}) is running at {result.target}')
            continue
        click.echo(f'FAIL  "{result.name}" ({result.kind}) cannot be reached at {result.target}: {result.error}')
        click.echo(f"      {result.hint}")


# ---------------------------------------------------------------------------
# SQL commands
# ---------------------------------------------------------------------------


@cli.command("query", context_settings=CLICK_CONTEXT_SETTINGS)
@click.option("-q", "--query", "statement", required=True, help="SQL to execute")
@click.option("-p", "--param", "params", multiple=True, help="Positional parameter (repeatable)")
@db_option
@json_option
def cli_query(statement: str, params: Sequence[str], db: str, as_json: bool) -> None:
    """Run one SQL statement; row-returning statements print their rows."""

    values = list(params)
    result = _run(db, require_sql, lambda sql: sql.execute(statement, values))
    if result.returns_rows:
        _emit_rows(result.rows or [], as_json=as_json)
    else:
        click.echo(f"{result.rowcount} row(s) affected")


@cli.command("tables", context_settings=CLICK_CONTEXT_SETTINGS)
@db_option
def cli_tables(db: str) -> None:
    """List the tables of a relational connection."""

    for table in _run(db, require_sql, lambda sql: sql.list_tables()):
        click.echo(table)


@cli.command("create-db", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("dbname")
@db_option
def cli_create_db(dbname: str, db: str) -> None:
    """Create database DBNAME on the server behind a relational connection."""

    _run(db, require_sql, lambda sql: sql.execute(f"CREATE DATABASE {sql.quote_identifier(dbname)}"))
    click.echo(f'Database "{dbname}" created.')


@cli.command("drop-db", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("dbname")
@db_option
def cli_drop_db(dbname: str, db: str) -> None:
    """Drop database DBNAME."""

    _run(db, require_sql, lambda sql: sql.execute(f"DROP DATABASE {sql.quote_identifier(dbname)}"))
    click.echo(f'Database "{dbname}" dropped.')


@cli.command("create-table", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("table")
@click.option("-c", "--column", "columns", multiple=True, help="Column as name:type, e.g. age:int (repeatable)")
@db_option
def cli_create_table(table: str, columns: Sequence[str], db: str) -> None:
    """Create TABLE with the given columns."""

    specs = _parse_columns(columns)

    def create(sql: SqlCapable) -> Awaitable[Any]:
        body = ", ".join(f"{sql.quote_identifier(name)} {kind}" for name, kind in specs)
        return sql.execute(f"CREATE TABLE {sql.quote_identifier(table)} ({body})")

    _run(db, require_sql, create)
    click.echo(f'Table "{table}" created.')


@cli.command("drop-table", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("table")
@db_option
def cli_drop_table(table: str, db: str) -> None:
    """Drop TABLE."""

    _run(db, require_sql, lambda sql: sql.execute(f"DROP TABLE {sql.quote_identifier(table)}"))
    click.echo(f'Table "{table}" dropped.')


@cli.command("select", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("table")
@click.option("-w", "--where", "where", default=None, help="WHERE clause, e.g. \"age > 30\"")
@db_option
@json_option
def cli_select(table: str, where: Optional[str], db: str, as_json: bool) -> None:
    """Print the rows of TABLE, optionally filtered by a WHERE clause."""

    result = _run(
        db,
        require_sql,
        lambda sql: sql.execute(f"SELECT * FROM {sql.quote_identifier(table)}{_where_clause(where)}"),
    )
    _emit_rows(result.rows or [], as_json=as_json)


@cli.command("insert", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("table")
@click.option("-v", "--value", "values", multiple=True, help="Column=value pair (repeatable)")
@db_option
def cli_insert(table: str, values: Sequence[str], db: str) -> None:
    """Insert one row into TABLE; values are bound as parameters."""

    row = parse_pairs(values, param_hint="--value", coerce=False)
    if not row:
        raise click.BadParameter("at least one column=value pair is required", param_hint="--value")

    def insert(sql: SqlCapable) -> Awaitable[Any]:
        columns = ", ".join(sql.quote_identifier(column) for column in row)
        markers = ", ".join(sql.placeholder(position) for position in range(1, len(row) + 1))
        statement = f"INSERT INTO {sql.quote_identifier(table)} ({columns}) VALUES ({markers})"
        return sql.execute(statement, list(row.values()))

    _run(db, require_sql, insert)
    click.echo(f'Row inserted into "{table}"')


@cli.command("update", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("table")
@click.option("-s", "--set", "assignments", multiple=True, help="Column=value pair (repeatable)")
@click.option("-w", "--where", "where", default=None, help="WHERE clause")
@db_option
def cli_update(table: str, assignments: Sequence[str], where: Optional[str], db: str) -> None:
    """Update rows of TABLE; values are bound as parameters."""

    patch = parse_pairs(assignments, param_hint="--set", coerce=False)
    if not patch:
        raise click.BadParameter("at least one column=value pair is required", param_hint="--set")

    def update(sql: SqlCapable) -> Awaitable[Any]:
        sets = ", ".join(
            f"{sql.quote_identifier(column)} = {sql.placeholder(position)}"
            for position, column in enumerate(patch, start=1)
        )
        statement = f"UPDATE {sql.quote_identifier(table)} SET {sets}{_where_clause(where)}"
        return sql.execute(statement, list(patch.values()))

    result = _run(db, require_sql, update)
    click.echo(f'{result.rowcount} row(s) updated in "{table}"')


@cli.command("delete-row", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("table")
@click.option("-w", "--where", "where", default=None, help="WHERE clause")
@db_option
def cli_delete_row(table: str, where: Optional[str], db: str) -> None:
    """Delete rows of TABLE (all rows when no WHERE clause is given)."""

    result = _run(
        db,
        require_sql,
        lambda sql: sql.execute(f"DELETE FROM {sql.quote_identifier(table)}{_where_clause(where)}"),
    )
    click.echo(f'{result.rowcount} row(s) deleted from "{table}"')


# ---------------------------------------------------------------------------
# Document commands
# ---------------------------------------------------------------------------


@cli.command("mongo-list-collections", context_settings=CLICK_CONTEXT_SETTINGS)
@db_option
def cli_mongo_list_collections(db: str) -> None:
    """List the collections of a MongoDB connection."""

    for collection in _run(db, require_document, lambda docs: docs.list_collections()):
        click.echo(collection)


@cli.command("mongo-insert", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("collection")
@click.argument("pairs", nargs=-1)
@db_option
def cli_mongo_insert(collection: str, pairs: Sequence[str], db: str) -> None:
    """Insert a document built from key=value PAIRS (numbers stay numbers)."""

    document = parse_pairs(pairs, param_hint="PAIRS")
    inserted_id = _run(db, require_document, lambda docs: docs.insert_one(collection, document))
    click.echo(f'Document {inserted_id} inserted into "{collection}"')


@cli.command("mongo-find", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("collection")
@click.option("-w", "--where", "where", default=None, help="Filter as a JSON object")
@click.option("--project", "projection", default=None, help="Projection as a JSON object")
@click.option("--limit", type=click.IntRange(min=1), default=None, help="Maximum number of documents")
@db_option
@json_option
def cli_mongo_find(
    collection: str,
    where: Optional[str],
    projection: Optional[str],
    limit: Optional[int],
    db: str,
    as_json: bool,
) -> None:
    """Print the documents of COLLECTION that match a filter."""

    query = _json_object(where, param_hint="--where")
    fields = _json_object(projection, param_hint="--project") or None
    documents = _run(db, require_document, lambda docs: docs.find(collection, query, fields, limit))
    _emit_rows(documents, as_json=as_json)


@cli.command("mongo-update", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("collection")
@click.option("-s", "--set", "assignments", multiple=True, help="key=value pair (repeatable)")
@click.option("-w", "--where", "where", default=None, help="Filter as a JSON object")
@db_option
def cli_mongo_update(collection: str, assignments: Sequence[str], where: Optional[str], db: str) -> None:
    """Set fields on every document of COLLECTION that matches a filter."""

    patch = parse_pairs(assignments, param_hint="--set")
    if not patch:
        raise click.BadParameter("at least one key=value pair is required", param_hint="--set")
    query = _json_object(where, param_hint="--where")
    modified = _run(db, require_document, lambda docs: docs.update_many(collection, query, patch))
    click.echo(f'{modified} document(s) updated in "{collection}"')


@cli.command("mongo-delete", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("collection")
@click.option("-w", "--where", "where", default=None, help="Filter as a JSON object")
@db_option
def cli_mongo_delete(collection: str, where: Optional[str], db: str) -> None:
    """Delete every document of COLLECTION that matches a filter."""

    query = _json_object(where, param_hint="--where")
    deleted = _run(db, require_document, lambda docs: docs.delete_many(collection, query))
    click.echo(f'{deleted} document(s) deleted from "{collection}"')


@cli.command("mongo-drop-collection", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("collection")
@db_option
def cli_mongo_drop_collection(collection: str, db: str) -> None:
    """Drop COLLECTION."""

    _run(db, require_document, lambda docs: docs.drop_collection(collection))
    click.echo(f'Collection "{collection}" dropped')


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(name: str, capability: Callable[[BackendAdapter], C], operation: Callable[[C], Awaitable[T]]) -> T:
    """Run *operation* against connection *name* inside one session.

    The capability is checked on an unconnected adapter first, so a mismatch
    fails before any prompt or network I/O.
    """

    definition = get_connection(name, registry=load_registry())
    capability(make_adapter(definition))
    adapter = make_adapter(prompt_for_missing_credentials(definition, ClickPrompter()))
    handle = capability(adapter)

    async def runner() -> T:
        async with session(adapter):
            return await operation(handle)

    return asyncio.run(runner())


def _locator() -> DefaultSourceLocator:
    return DefaultSourceLocator(env=capture_environment())


def parse_pairs(pairs: Sequence[str], *, param_hint: str, coerce: bool = True) -> dict[str, Any]:
    """Return ``key=value`` *pairs* as a mapping.

    With *coerce*, numeric values become numbers. SQL commands pass
    ``coerce=False`` and leave casting to the server.

    Examples
    --------
    >>> parse_pairs(["name=Alice", "age=30", "score=9.5", "note=a=b"], param_hint="--set")
    {'name': 'Alice', 'age': 30, 'score': 9.5, 'note': 'a=b'}
    >>> parse_pairs(["zip=02134"], param_hint="--value", coerce=False)
    {'zip': '02134'}
    """

    parsed: dict[str, Any] = {}
    for pair in pairs:
        key, separator, raw = pair.partition("=")
        if not separator or not key:
            raise click.BadParameter(f"expected key=value, got {pair!r}", param_hint=param_hint)
        parsed[key] = _coerce_scalar(raw) if coerce else raw
    return parsed


def _coerce_scalar(raw: str) -> Any:
    """Return *raw* as ``int``/``float`` when it reads as a finite number.

    Examples
    --------
    >>> _coerce_scalar("30"), _coerce_scalar("-2.5"), _coerce_scalar("nan"), _coerce_scalar("")
    (30, -2.5, 'nan', '')
    """

    text = raw.strip()
    if not text:
        return raw
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return raw
    return number if math.isfinite(number) else raw


def _parse_columns(columns: Sequence[str]) -> list[tuple[str, str]]:
    """Split ``name:type`` column specs; types are upper-cased.

    Examples
    --------
    >>> _parse_columns(["id:serial primary key", "name:text"])
    [('id', 'SERIAL PRIMARY KEY'), ('name', 'TEXT')]
    """

    if not columns:
        raise click.BadParameter("at least one name:type column is required", param_hint="--column")
    specs = []
    for column in columns:
        name, separator, kind = column.partition(":")
        if not separator or not name.strip() or not kind.strip():
            raise click.BadParameter(f"expected name:type, got {column!r}", param_hint="--column")
        specs.append((name.strip(), kind.strip().upper()))
    return specs


def _where_clause(where: Optional[str]) -> str:
    return f" WHERE {where}" if where and where.strip() else ""


def _json_object(value: Optional[str], *, param_hint: str) -> dict[str, Any]:
    if not value:
        return {}
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"invalid JSON: {exc.msg}", param_hint=param_hint) from exc
    if not isinstance(parsed, dict):
        raise click.BadParameter("expected a JSON object", param_hint=param_hint)
    return parsed


def _emit_rows(rows: Sequence[Mapping[str, Any]], *, as_json: bool) -> None:
    """Print *rows* as JSON or as a Rich table with the union of their columns."""

    if as_json:
        click.echo(json.dumps(list(rows), indent=2, default=str))
        return
    if not rows:
        click.echo("(no rows)")
        return
    columns = list(dict.fromkeys(column for row in rows for column in row))
    table = Table(show_edge=False)
    for column in columns:
        table.add_column(str(column))
    for row in rows:
        table.add_row(*("" if row.get(column) is None else str(row.get(column)) for column in columns))
    Console().print(table)


def main(argv: Optional[Sequence[str]] = None, *, restore_traceback: bool = True) -> int:
    """Execute the CLI with shared exit handling and return the exit code."""

    previous_traceback = getattr(lib_cli_exit_tools.config, "traceback", False)
    previous_force_color = getattr(lib_cli_exit_tools.config, "traceback_force_color", False)
    try:
        try:
            return lib_cli_exit_tools.run_cli(
                cli,
                argv=list(argv) if argv is not None else None,
                prog_name="dbman",
            )
        except BaseException as exc:  # noqa: BLE001 - funnel through shared printers
            lib_cli_exit_tools.print_exception_message(
                trace_back=lib_cli_exit_tools.config.traceback,
                length_limit=(
                    _TRACEBACK_VERBOSE_LIMIT if lib_cli_exit_tools.config.traceback else _TRACEBACK_SUMMARY_LIMIT
                ),
            )
            return lib_cli_exit_tools.get_system_exit_code(exc)
    finally:
        if restore_traceback:
            lib_cli_exit_tools.config.traceback = previous_traceback
            lib_cli_exit_tools.config.traceback_force_color = previous_force_color


if __name__ == "__main__":  # pragma: no cover - exercised via console entry point
    raise SystemExit(main(sys.argv[1:]))
