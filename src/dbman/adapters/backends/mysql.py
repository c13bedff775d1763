"""MySQL adapter backed by an ``aiomysql`` pool."""

from __future__ import annotations

import asyncio
import ssl
from typing import Any, Sequence

import aiomysql
import pymysql

from ...application.ports import SqlResult
from ...domain.connection import Kind, MySQLConnection
from .base import BaseAdapter


class MySQLAdapter(BaseAdapter[MySQLConnection]):
    """SQL-capable adapter for MySQL and MariaDB.

    The pool runs in autocommit mode so DDL and DML take effect immediately.
    Statements use ``%s`` placeholders.
    """

    kind = Kind.MYSQL

    async def execute(self, statement: str, params: Sequence[Any] = ()) -> SqlResult:
        pool = self._require_handle()
        async with pool.acquire() as connection:
            async with connection.cursor(aiomysql.DictCursor) as cursor:
                # No arguments means no %-formatting, so literal % signs survive.
                await cursor.execute(statement, tuple(params) if params else None)
                if cursor.description:
                    rows = [dict(row) for row in await cursor.fetchall()]
                    return SqlResult(rows=rows, rowcount=len(rows))
                return SqlResult(rowcount=max(cursor.rowcount, 0))

    async def list_tables(self) -> list[str]:
        result = await self.execute("SHOW TABLES")
        return sorted(str(next(iter(row.values()))) for row in result.rows or [] if row)

    def placeholder(self, position: int) -> str:
        return "%s"

    def quote_identifier(self, name: str) -> str:
        return ".".join("`" + part.replace("`", "``") + "`" for part in name.split("."))

    async def _open(self) -> Any:
        definition = self.definition
        options: dict[str, Any] = {
            "host": definition.host or "localhost",
            "port": definition.port,
            "user": definition.user or None,
            "password": definition.password,
            "db": definition.database or None,
            "autocommit": True,
            "minsize": 1,
            "maxsize": 4,
        }
        if definition.tls:
            options["ssl"] = _unverified_context()
        if self.connect_timeout is not None:
            options["connect_timeout"] = self.connect_timeout
        return await aiomysql.create_pool(**options)

    async def _ping(self) -> None:
        async with self._handle.acquire() as connection:
            async with connection.cursor() as cursor:
                await cursor.execute("SELECT 1")

    async def _release(self, handle: Any) -> None:
        handle.close()
        await handle.wait_closed()

    def _driver_errors(self) -> tuple[type[BaseException], ...]:
        return (OSError, asyncio.TimeoutError, pymysql.err.MySQLError)


def _unverified_context() -> ssl.SSLContext:
    """Encrypt the connection without verifying the server certificate."""

    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context
