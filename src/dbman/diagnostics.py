"""Reachability checks and database bootstrapping.

Purpose
-------
Back the ``doctor``, ``test`` and ``config`` commands: probe whether servers
answer at all, verify that a definition can open a session, and create the
target database before a new connection is saved.

Contents
--------
* :class:`ProbeResult` – outcome of one reachability probe.
* :func:`probe` / :func:`run_doctor` – fast reachability checks.
* :func:`install_hint` – platform-specific installation advice.
* :func:`verify_connection` – connect and close through the regular adapter.
* :func:`ensure_database_exists` – create the configured database if needed.
"""

from __future__ import annotations

import asyncio
import contextlib
import sys
from dataclasses import dataclass, replace

from .adapters.backends.factory import make_adapter
from .application.capabilities import require_sql
from .core import session
from .domain.connection import ConnectionDefinition, Kind, MongoConnection, PostgresConnection
from .domain.errors import BackendConnectionError
from .domain.registry import Registry
from .observability import log_debug, log_info, log_warning

PROBE_TIMEOUT = 1.0

_INSTALL_HINTS: dict[Kind, dict[str, str]] = {
    Kind.POSTGRES: {
        "darwin": "brew install postgresql && brew services start postgresql",
        "linux": "sudo apt update && sudo apt install postgresql && sudo systemctl start postgresql",
        "win32": "Download https://www.postgresql.org/download/windows/ or run `choco install postgresql`",
    },
    Kind.MYSQL: {
        "darwin": "brew install mysql && brew services start mysql",
        "linux": "sudo apt update && sudo apt install mysql-server && sudo systemctl start mysql",
        "win32": "Download https://dev.mysql.com/downloads/installer/ or run `choco install mysql`",
    },
    Kind.MONGO: {
        "darwin": (
            "brew tap mongodb/brew && brew install mongodb-community"
            " && brew services start mongodb/brew/mongodb-community"
        ),
        "linux": "sudo apt install -y mongodb && sudo systemctl start mongodb",
        "win32": "Download https://www.mongodb.com/try/download/community or run `choco install mongodb`",
    },
}
_NO_HINT = "Installation guide not available for this platform."


@dataclass(frozen=True)
class ProbeResult:
    """Reachability of one registry entry.

    ``hint`` is only filled in for unreachable servers.
    """

    name: str
    kind: Kind
    target: str
    reachable: bool
    error: str = ""
    hint: str = ""


def install_hint(kind: Kind, platform: str | None = None) -> str:
    """Return the installation advice for *kind* on *platform* (``sys.platform`` style).

    Examples
    --------
    >>> install_hint(Kind.MYSQL, "darwin")
    'brew install mysql && brew services start mysql'
    >>> install_hint(Kind.POSTGRES, "linux2").startswith("sudo apt update")
    True
    >>> install_hint(Kind.MONGO, "sunos5")
    'Installation guide not available for this platform.'
    """

    platform = platform or sys.platform
    for prefix, hint in _INSTALL_HINTS[kind].items():
        if platform.startswith(prefix):
            return hint
    return _NO_HINT


async def probe(
    definition: ConnectionDefinition,
    timeout: float = PROBE_TIMEOUT,
    *,
    platform: str | None = None,
) -> ProbeResult:
    """Check whether the server behind *definition* answers within *timeout* seconds.

    Relational servers get a plain TCP connect to ``host:port``, so missing
    credentials do not matter. MongoDB gets a full adapter session with a
    server-selection timeout. Failures never raise; they are reported in the
    result.
    """

    error = ""
    if isinstance(definition, MongoConnection):
        try:
            async with session(make_adapter(definition, connect_timeout=timeout)):
                pass
        except BackendConnectionError as exc:
            error = exc.message
    else:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(definition.host or "localhost", definition.port), timeout
            )
        except (OSError, asyncio.TimeoutError) as exc:
            error = str(exc) or type(exc).__name__
        else:
            writer.close()
            with contextlib.suppress(OSError):
                await writer.wait_closed()

    reachable = not error
    log_debug("probe_finished", layer=definition.kind.value, path=None, name=definition.name, reachable=reachable)
    return ProbeResult(
        name=definition.name,
        kind=definition.kind,
        target=definition.target,
        reachable=reachable,
        error=error,
        hint="" if reachable else install_hint(definition.kind, platform),
    )


async def run_doctor(
    registry: Registry,
    *,
    timeout: float = PROBE_TIMEOUT,
    platform: str | None = None,
) -> list[ProbeResult]:
    """Probe every registry entry, in registry order."""

    results = [await probe(definition, timeout, platform=platform) for definition in registry.values()]
    unreachable = [result.name for result in results if not result.reachable]
    if unreachable:
        log_warning("doctor_unreachable", layer="doctor", path=None, names=unreachable)
    return results


async def verify_connection(definition: ConnectionDefinition, timeout: float | None = None) -> None:
    """Open and close a session for *definition*.

    Raises
    ------
    BackendConnectionError
        When the backend is unreachable or rejects the credentials.
    """

    async with session(make_adapter(definition, connect_timeout=timeout)):
        log_info("connection_verified", layer=definition.kind.value, path=None, name=definition.name)


async def ensure_database_exists(definition: ConnectionDefinition, timeout: float | None = None) -> bool:
    """Create the database named by *definition* when it does not exist yet.

    PostgreSQL is checked through the ``postgres`` maintenance database;
    MySQL relies on ``CREATE DATABASE IF NOT EXISTS``; MongoDB creates
    databases on first write, so nothing happens there.

    Returns
    -------
    bool
        ``True`` when a database was created.
    """

    if isinstance(definition, MongoConnection) or not definition.database:
        return False

    if isinstance(definition, PostgresConnection):
        maintenance = replace(definition, database="postgres")
        async with session(make_adapter(maintenance, connect_timeout=timeout)) as adapter:
            sql = require_sql(adapter)
            found = await sql.execute(
                f"SELECT 1 FROM pg_database WHERE datname = {sql.placeholder(1)}", (definition.database,)
            )
            if found.rows:
                return False
            await sql.execute(f"CREATE DATABASE {sql.quote_identifier(definition.database)}")
    else:
        server = replace(definition, database="")
        async with session(make_adapter(server, connect_timeout=timeout)) as adapter:
            sql = require_sql(adapter)
            result = await sql.execute(f"CREATE DATABASE IF NOT EXISTS {sql.quote_identifier(definition.database)}")
            if not result.rowcount:
                return False
    log_info("database_created", layer=definition.kind.value, path=None, name=definition.name)
    return True
