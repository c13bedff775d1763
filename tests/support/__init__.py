"""Shared test doubles for the ``dbman`` suite.

The fakes stand in for drivers and adapters so no test needs a running
database. They record what they were asked to do so assertions can check the
exact statements, documents, and lifecycle calls.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Sequence

import yaml

from dbman.application.ports import SqlResult
from dbman.domain.connection import Kind


def write_config(path: Path, connections: Mapping[str, object] | None, **extra: object) -> Path:
    """Write a YAML connection file holding *connections* (plus top-level *extra*)."""

    document: dict[str, object] = dict(extra)
    if connections is not None:
        document["connections"] = dict(connections)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(document, sort_keys=False), encoding="utf-8")
    return path


def read_config(path: Path) -> dict[str, Any]:
    return yaml.safe_load(path.read_text(encoding="utf-8")) or {}


@dataclass
class RecordingPrompter:
    """Answer prompts from a mapping keyed by label; remember every question."""

    answers: Mapping[str, str] = field(default_factory=dict)
    asked: list[tuple[str, bool]] = field(default_factory=list)

    def ask(self, label: str, *, secret: bool = False, default: str | None = None) -> str:
        self.asked.append((label, secret))
        return self.answers.get(label, default or "")


class _FakeLifecycle:
    kind: Kind

    def __init__(self, definition: Any = None, *, fail_connect: Exception | None = None) -> None:
        self.definition = definition
        self.fail_connect = fail_connect
        self.events: list[str] = []

    async def connect(self) -> None:
        self.events.append("connect")
        if self.fail_connect is not None:
            raise self.fail_connect

    async def close(self) -> None:
        self.events.append("close")

    def identify_kind(self) -> Kind:
        return self.kind


class FakeSqlAdapter(_FakeLifecycle):
    """SQL-capable adapter returning queued results (``$n`` placeholders)."""

    kind = Kind.POSTGRES

    def __init__(self, definition: Any = None, *, results: Sequence[SqlResult] = (), **kwargs: Any) -> None:
        super().__init__(definition, **kwargs)
        self.results = list(results)
        self.statements: list[tuple[str, list[Any]]] = []
        self.tables = ["orders", "users"]

    async def execute(self, statement: str, params: Sequence[Any] = ()) -> SqlResult:
        self.statements.append((statement, list(params)))
        return self.results.pop(0) if self.results else SqlResult(rowcount=1)

    async def list_tables(self) -> list[str]:
        return list(self.tables)

    def placeholder(self, position: int) -> str:
        return f"${position}"

    def quote_identifier(self, name: str) -> str:
        return f'"{name}"'


class FakeDocumentAdapter(_FakeLifecycle):
    """Document-capable adapter backed by in-memory lists."""

    kind = Kind.MONGO

    def __init__(self, definition: Any = None, **kwargs: Any) -> None:
        super().__init__(definition, **kwargs)
        self.collections: dict[str, list[dict[str, Any]]] = {}
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    async def insert_one(self, collection: str, document: Mapping[str, Any]) -> Any:
        self.calls.append(("insert_one", (collection, dict(document))))
        self.collections.setdefault(collection, []).append(dict(document))
        return len(self.collections[collection])

    async def find(
        self,
        collection: str,
        filter: Mapping[str, Any] | None = None,
        projection: Mapping[str, Any] | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        self.calls.append(("find", (collection, filter, projection, limit)))
        matches = [doc for doc in self.collections.get(collection, []) if _matches(doc, filter or {})]
        return matches[:limit] if limit else matches

    async def update_many(self, collection: str, filter: Mapping[str, Any], patch: Mapping[str, Any]) -> int:
        self.calls.append(("update_many", (collection, dict(filter), dict(patch))))
        matches = [doc for doc in self.collections.get(collection, []) if _matches(doc, filter)]
        for doc in matches:
            doc.update(patch)
        return len(matches)

    async def delete_many(self, collection: str, filter: Mapping[str, Any]) -> int:
        self.calls.append(("delete_many", (collection, dict(filter))))
        kept = [doc for doc in self.collections.get(collection, []) if not _matches(doc, filter)]
        deleted = len(self.collections.get(collection, [])) - len(kept)
        self.collections[collection] = kept
        return deleted

    async def drop_collection(self, collection: str) -> None:
        self.calls.append(("drop_collection", (collection,)))
        self.collections.pop(collection, None)

    async def list_collections(self) -> list[str]:
        return sorted(self.collections)


def _matches(document: Mapping[str, Any], filter: Mapping[str, Any]) -> bool:
    return all(document.get(key) == value for key, value in filter.items())
