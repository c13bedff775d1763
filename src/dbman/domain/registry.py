"""Immutable connection registry value object.

Purpose
-------
Carry the normalised connections (and where each came from) through the
system. The module belongs to the domain layer and performs no I/O.

Contents
--------
* :class:`SourceInfo` – provenance of one registry entry.
* :class:`Registry` – read-only ``Mapping`` from connection name to
  :data:`~dbman.domain.connection.ConnectionDefinition`.

System Role
-----------
:func:`dbman.core.load_registry` returns a :class:`Registry`. The CLI looks
connections up through :meth:`Registry.require` so a missing name always
surfaces as :class:`~dbman.domain.errors.UnknownConnectionError`.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterator, TypedDict

from .connection import ConnectionDefinition
from .errors import UnknownConnectionError


class SourceInfo(TypedDict):
    """Describe the origin of a registry entry.

    Attributes
    ----------
    layer:
        Logical layer name (``"project"``, ``"user"``, or ``"env"`` for the
        synthesised default).
    path:
        Configuration file that supplied the entry, ``None`` for
        environment-derived values.
    """

    layer: str
    path: str | None


@dataclass(frozen=True, slots=True)
class Registry(Mapping[str, ConnectionDefinition]):
    """Read-only mapping of connection names to definitions.

    Why
    ----
    The registry is read once per invocation and must not change afterwards;
    wrapping the entries in ``MappingProxyType`` makes accidental mutation
    impossible.

    Examples
    --------
    >>> from dbman.domain.connection import MongoConnection
    >>> events = MongoConnection(name="events", uri="mongodb://localhost", db_name="events")
    >>> registry = Registry({"events": events}, {"events": {"layer": "user", "path": "/home/demo/.dbman.yaml"}})
    >>> registry["events"].db_name
    'events'
    >>> registry.origin("events")["layer"]
    'user'
    >>> registry.require("missing")
    Traceback (most recent call last):
    ...
    dbman.domain.errors.UnknownConnectionError: Unknown connection "missing". Available: events. Use "dbman list" to inspect connections.
    """

    _entries: Mapping[str, ConnectionDefinition]
    _meta: Mapping[str, SourceInfo]

    def __post_init__(self) -> None:
        object.__setattr__(self, "_entries", MappingProxyType(dict(self._entries)))
        object.__setattr__(self, "_meta", MappingProxyType(dict(self._meta)))

    def __getitem__(self, name: str) -> ConnectionDefinition:
        return self._entries[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def require(self, name: str) -> ConnectionDefinition:
        """Return the definition called *name* or raise ``UnknownConnectionError``.

        Why
        ----
        Commands that target a single connection need an error that tells the
        operator which names exist instead of a bare ``KeyError``.
        """

        try:
            return self._entries[name]
        except KeyError:
            raise UnknownConnectionError(name, sorted(self._entries)) from None

    def origin(self, name: str) -> SourceInfo | None:
        """Return provenance for *name* or ``None`` when the entry is unknown."""

        return self._meta.get(name)

    def summaries(self) -> list[dict[str, Any]]:
        """Return password-free rows (with their source layer) for listings."""

        rows = []
        for name, definition in self._entries.items():
            row = definition.summary()
            origin = self._meta.get(name)
            row["source"] = origin["layer"] if origin else None
            rows.append(row)
        return rows
