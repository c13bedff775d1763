"""Adapter factory: one normalised definition in, one unconnected adapter out."""

from __future__ import annotations

from ...application.ports import BackendAdapter
from ...domain.connection import ConnectionDefinition, MongoConnection, MySQLConnection, PostgresConnection
from .mongo import MongoAdapter
from .mysql import MySQLAdapter
from .postgres import PostgresAdapter

#: Adapter class per definition variant; covers every :class:`Kind`.
ADAPTER_TYPES: dict[type, type] = {
    PostgresConnection: PostgresAdapter,
    MySQLConnection: MySQLAdapter,
    MongoConnection: MongoAdapter,
}


def make_adapter(definition: ConnectionDefinition, *, connect_timeout: float | None = None) -> BackendAdapter:
    """Return the adapter for *definition* without performing any I/O.

    Examples
    --------
    >>> from dbman.domain.connection import MySQLConnection
    >>> adapter = make_adapter(MySQLConnection(name="prod", host="db.internal", port=3306))
    >>> adapter.identify_kind().value, adapter.connected
    ('mysql', False)
    """

    adapter_type = ADAPTER_TYPES[type(definition)]
    return adapter_type(definition, connect_timeout=connect_timeout)
