"""Public package surface for ``dbman``.

Exporting the composition-root helpers here lets both ``import dbman`` and
``python -m dbman`` flows reach the same registry, adapter, and persistence
functions the CLI uses.
"""

from __future__ import annotations

from .adapters.backends.factory import make_adapter
from .application.capabilities import as_document, as_sql, require_document, require_sql
from .application.ports import BackendAdapter, DocumentCapable, SqlCapable, SqlResult
from .core import delete_connection, get_connection, load_registry, save_connection, session
from .domain.connection import (
    DEFAULT_CONNECTION,
    ConnectionDefinition,
    Kind,
    MongoConnection,
    MySQLConnection,
    PostgresConnection,
)
from .domain.errors import (
    BackendConnectionError,
    CapabilityMismatchError,
    DbmanError,
    LoadError,
    MalformedConnectionError,
    UnknownConnectionError,
    UnsupportedKindError,
)
from .domain.registry import Registry

__all__ = [
    "DEFAULT_CONNECTION",
    "BackendAdapter",
    "BackendConnectionError",
    "CapabilityMismatchError",
    "ConnectionDefinition",
    "DbmanError",
    "DocumentCapable",
    "Kind",
    "LoadError",
    "MalformedConnectionError",
    "MongoConnection",
    "MySQLConnection",
    "PostgresConnection",
    "Registry",
    "SqlCapable",
    "SqlResult",
    "UnknownConnectionError",
    "UnsupportedKindError",
    "as_document",
    "as_sql",
    "delete_connection",
    "get_connection",
    "load_registry",
    "make_adapter",
    "require_document",
    "require_sql",
    "save_connection",
    "session",
]
