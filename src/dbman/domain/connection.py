"""Connection definitions: the discriminated model behind the registry.

Purpose
-------
Describe every supported backend as its own immutable value type so dispatch
points (the adapter factory, capability checks, the CLI listing) branch on a
closed set instead of probing loose dictionaries.

Contents
--------
* :class:`Kind` – closed enumeration of backend kinds.
* :class:`PostgresConnection`, :class:`MySQLConnection`,
  :class:`MongoConnection` – frozen dataclasses, one per kind.
* :data:`ConnectionDefinition` – union of the three variants.
* :data:`DEFAULT_CONNECTION` / :data:`DEFAULT_PORTS` – well-known constants.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Union

DEFAULT_CONNECTION = "default"


class Kind(str, Enum):
    """Backend kinds understood by ``dbman``.

    Values double as the ``type`` tag written to configuration files.

    Examples
    --------
    >>> Kind("mysql") is Kind.MYSQL
    True
    >>> Kind.MONGO.is_relational
    False
    """

    POSTGRES = "postgres"
    MYSQL = "mysql"
    MONGO = "mongo"

    @property
    def is_relational(self) -> bool:
        return self is not Kind.MONGO

    def __str__(self) -> str:
        return self.value


#: Legacy numeric ``type`` codes accepted for older configuration files.
LEGACY_KIND_CODES: dict[int, Kind] = {0: Kind.POSTGRES, 1: Kind.MYSQL, 2: Kind.MONGO}

DEFAULT_PORTS: dict[Kind, int] = {Kind.POSTGRES: 5432, Kind.MYSQL: 3306}


@dataclass(frozen=True)
class _RelationalConnection:
    """Fields shared by the SQL backends."""

    name: str
    host: str = ""
    port: int = 0
    user: str = ""
    password: str = field(default="", repr=False)
    database: str = ""
    tls: bool = False

    kind: ClassVar[Kind]

    @property
    def target(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def missing_credentials(self) -> tuple[str, ...]:
        """Names of the credential fields that are still empty."""

        return tuple(name for name in ("user", "password", "database") if not getattr(self, name))

    def to_document(self) -> dict[str, Any]:
        """Return the field bag written to configuration files."""

        document: dict[str, Any] = {
            "type": self.kind.value,
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "password": self.password,
            "database": self.database,
        }
        if self.tls:
            document["tls"] = True
        return document

    def summary(self) -> dict[str, Any]:
        """Return a password-free view suitable for listings."""

        return {
            "name": self.name,
            "type": self.kind.value,
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "database": self.database,
        }


@dataclass(frozen=True)
class PostgresConnection(_RelationalConnection):
    """A PostgreSQL server reached by host and credentials."""

    kind: ClassVar[Kind] = Kind.POSTGRES


@dataclass(frozen=True)
class MySQLConnection(_RelationalConnection):
    """A MySQL (or MariaDB) server reached by host and credentials."""

    kind: ClassVar[Kind] = Kind.MYSQL


@dataclass(frozen=True)
class MongoConnection:
    """A MongoDB deployment reached through a connection URI.

    Examples
    --------
    >>> MongoConnection(name="events", uri="mongodb://localhost:27017", db_name="events").to_document()
    {'type': 'mongo', 'uri': 'mongodb://localhost:27017', 'dbName': 'events'}
    """

    name: str
    uri: str = ""
    db_name: str = ""

    kind: ClassVar[Kind] = Kind.MONGO

    @property
    def target(self) -> str:
        return f"database {self.db_name}"

    @property
    def missing_credentials(self) -> tuple[str, ...]:
        return ()

    def to_document(self) -> dict[str, Any]:
        return {"type": self.kind.value, "uri": self.uri, "dbName": self.db_name}

    def summary(self) -> dict[str, Any]:
        # URIs may embed credentials, so listings only show the database.
        return {"name": self.name, "type": self.kind.value, "database": self.db_name}


ConnectionDefinition = Union[PostgresConnection, MySQLConnection, MongoConnection]

#: Variant type per kind; every :class:`Kind` member must appear here.
DEFINITION_TYPES: dict[Kind, type] = {
    Kind.POSTGRES: PostgresConnection,
    Kind.MYSQL: MySQLConnection,
    Kind.MONGO: MongoConnection,
}


__all__ = [
    "ConnectionDefinition",
    "DEFAULT_CONNECTION",
    "DEFAULT_PORTS",
    "DEFINITION_TYPES",
    "Kind",
    "LEGACY_KIND_CODES",
    "MongoConnection",
    "MySQLConnection",
    "PostgresConnection",
]
