"""Application-layer ports describing adapter responsibilities.

Purpose
-------
Define the structural contracts adapters must satisfy so the composition root
and the CLI can orchestrate behaviour without depending on concrete
implementations.

Contents
--------
* :class:`SourceLocator` – yields candidate files per configuration layer.
* :class:`FileLoader` – parses and rewrites structured documents.
* :class:`CredentialPrompter` – asks the operator for a missing value.
* :class:`BackendAdapter` – lifecycle shared by every backend.
* :class:`SqlCapable` – SQL text execution capability (relational backends).
* :class:`DocumentCapable` – structured document capability (MongoDB).
* :class:`SqlResult` – outcome of :meth:`SqlCapable.execute`.

System Role
-----------
The capability protocols are disjoint. Callers obtain them only
through :mod:`dbman.application.capabilities`, which checks the adapter before
any I/O happens.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Protocol, Sequence, runtime_checkable

from ..domain.connection import Kind


class SourceLocator(Protocol):
    """Discover connection files for each logical layer."""

    def layers(self) -> Iterable[tuple[str, Iterable[str]]]:
        """Yield ``(layer, paths)`` pairs ordered from lowest to highest precedence."""

    def user_target(self) -> str:
        """Return the user-level file that receives saved connections."""


class FileLoader(Protocol):
    """Parse a structured configuration file into a mapping and write it back."""

    def load(self, path: str) -> Mapping[str, object]:
        """Read *path* and return a mapping or raise ``InvalidFormat``/``NotFound``."""

    def dump(self, path: str, data: Mapping[str, object]) -> None:
        """Replace *path* with *data*."""


class CredentialPrompter(Protocol):
    """Ask the operator for a single value; blocks until input arrives."""

    def ask(self, label: str, *, secret: bool = False, default: str | None = None) -> str:
        """Return the operator's answer for *label* (hidden when *secret*)."""


@dataclass(frozen=True)
class SqlResult:
    """Rows for row-returning statements, otherwise the affected row count.

    Examples
    --------
    >>> SqlResult(rows=[{"id": 1}], rowcount=1).returns_rows
    True
    >>> SqlResult(rowcount=3).returns_rows
    False
    """

    rows: list[dict[str, Any]] | None = None
    rowcount: int = 0
    status: str = field(default="", compare=False)

    @property
    def returns_rows(self) -> bool:
        return self.rows is not None


@runtime_checkable
class BackendAdapter(Protocol):
    """Lifecycle every backend adapter implements.

    ``connect`` raises :class:`~dbman.domain.errors.BackendConnectionError`;
    ``close`` never raises and may be called any number of times.
    """

    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    def identify_kind(self) -> Kind: ...


@runtime_checkable
class SqlCapable(Protocol):
    """SQL execution capability offered by relational adapters."""

    async def execute(self, statement: str, params: Sequence[Any] = ()) -> SqlResult: ...

    async def list_tables(self) -> list[str]: ...

    def placeholder(self, position: int) -> str: ...

    def quote_identifier(self, name: str) -> str: ...


@runtime_checkable
class DocumentCapable(Protocol):
    """Structured document capability offered by document-store adapters."""

    async def insert_one(self, collection: str, document: Mapping[str, Any]) -> Any: ...

    async def find(
        self,
        collection: str,
        filter: Mapping[str, Any] | None = None,
        projection: Mapping[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]: ...

    async def update_many(self, collection: str, filter: Mapping[str, Any], patch: Mapping[str, Any]) -> int: ...

    async def delete_many(self, collection: str, filter: Mapping[str, Any]) -> int: ...

    async def drop_collection(self, collection: str) -> None: ...

    async def list_collections(self) -> list[str]: ...
