"""PostgreSQL adapter backed by an ``asyncpg`` pool."""

from __future__ import annotations

import asyncio
import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Sequence

import asyncpg

from ...application.ports import SqlResult
from ...domain.connection import Kind, PostgresConnection
from .base import BaseAdapter

_LIST_TABLES = """
    SELECT table_name
    FROM information_schema.tables
    WHERE table_schema = 'public' AND table_type = 'BASE TABLE'
    ORDER BY table_name
"""

_TRUE = frozenset({"t", "true", "y", "yes", "on", "1"})
_FALSE = frozenset({"f", "false", "n", "no", "off", "0"})


class PostgresAdapter(BaseAdapter[PostgresConnection]):
    """SQL-capable adapter for PostgreSQL.

    Statements use ``$1``-style placeholders. Row-returning statements yield
    their rows; everything else yields the row count parsed from the command
    status (``INSERT 0 3`` → 3).
    """

    kind = Kind.POSTGRES

    async def execute(self, statement: str, params: Sequence[Any] = ()) -> SqlResult:
        pool = self._require_handle()
        async with pool.acquire() as connection:
            prepared = await connection.prepare(statement)
            records = await prepared.fetch(*_bind_text(prepared.get_parameters(), params))
            status = prepared.get_statusmsg() or ""
            if prepared.get_attributes():
                rows = [dict(record) for record in records]
                return SqlResult(rows=rows, rowcount=len(rows), status=status)
        return SqlResult(rowcount=_rowcount(status), status=status)

    async def list_tables(self) -> list[str]:
        pool = self._require_handle()
        records = await pool.fetch(_LIST_TABLES)
        return [record["table_name"] for record in records]

    def placeholder(self, position: int) -> str:
        return f"${position}"

    def quote_identifier(self, name: str) -> str:
        """Quote each dotted part of *name* (``public.users`` → ``"public"."users"``)."""

        return ".".join('"' + part.replace('"', '""') + '"' for part in name.split("."))

    async def _open(self) -> Any:
        definition = self.definition
        options: dict[str, Any] = {
            "host": definition.host or None,
            "port": definition.port,
            "user": definition.user or None,
            "password": definition.password or None,
            "database": definition.database or None,
            "ssl": "require" if definition.tls else None,
            "min_size": 1,
            "max_size": 4,
        }
        if self.connect_timeout is not None:
            options["timeout"] = self.connect_timeout
        return await asyncpg.create_pool(**options)

    async def _ping(self) -> None:
        await self._handle.fetchval("SELECT 1")

    async def _release(self, handle: Any) -> None:
        await handle.close()

    def _driver_errors(self) -> tuple[type[BaseException], ...]:
        return (OSError, asyncio.TimeoutError, asyncpg.PostgresError, asyncpg.InterfaceError)


def _rowcount(status: str) -> int:
    """Return the trailing row count of a PostgreSQL command status.

    Examples
    --------
    >>> _rowcount("INSERT 0 3"), _rowcount("UPDATE 2"), _rowcount("CREATE TABLE")
    (3, 2, 0)
    """

    tail = status.rsplit(" ", 1)[-1]
    return int(tail) if tail.isdigit() else 0


def _parse_bool(text: str) -> bool:
    lowered = text.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(text)


_TEXT_CASTS: dict[str, Callable[[str], Any]] = {
    "int2": int,
    "int4": int,
    "int8": int,
    "oid": int,
    "float4": float,
    "float8": float,
    "numeric": Decimal,
    "bool": _parse_bool,
    "date": datetime.date.fromisoformat,
    "time": datetime.time.fromisoformat,
    "timestamp": datetime.datetime.fromisoformat,
    "timestamptz": datetime.datetime.fromisoformat,
}


def _bind_text(parameter_types: Sequence[Any], params: Sequence[Any]) -> list[Any]:
    """Convert text *params* to the Python values asyncpg expects for each parameter type.

    asyncpg binds in binary and rejects a ``str`` for a numeric column, so
    command-line text is cast here the way the server would cast a literal.
    Values that do not parse are passed through for asyncpg to reject.

    Examples
    --------
    >>> from types import SimpleNamespace as T
    >>> _bind_text([T(name="int4"), T(name="text"), T(name="bool")], ["30", "02134", "yes"])
    [30, '02134', True]
    >>> _bind_text([T(name="int4")], ["thirty"])
    ['thirty']
    """

    bound: list[Any] = []
    for position, value in enumerate(params):
        cast = None
        if isinstance(value, str) and position < len(parameter_types):
            cast = _TEXT_CASTS.get(parameter_types[position].name)
        if cast is None:
            bound.append(value)
            continue
        try:
            bound.append(cast(value.strip()))
        except (ValueError, InvalidOperation):
            bound.append(value)
    return bound
