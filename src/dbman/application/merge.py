"""Application-layer merge policy for connection sources.

Purpose
-------
Combine the ``connections`` mappings of every source into one raw registry
while tracking which layer supplied each entry. Free of I/O so it can be
exercised directly in tests.

Precedence
----------
Sources are merged in the order given (``project`` then ``user``); a later
source replaces an earlier connection of the same name wholesale. The
``default`` connection is the one exception: it is merged field by field so a
partial override keeps the fields defined earlier.

Contents
    - ``merge_sources``: public entry point driven by a simple loop.
    - ``_merge_default`` / ``_merge_mapping``: field-level merge for
      ``default``.
"""

from __future__ import annotations

from collections.abc import Mapping
from copy import deepcopy
from typing import Iterable

from ..domain.connection import DEFAULT_CONNECTION
from ..domain.registry import SourceInfo


def merge_sources(
    sources: Iterable[tuple[str, Mapping[str, object], str | None]],
) -> tuple[dict[str, object], dict[str, SourceInfo]]:
    """Merge connection *sources* honouring precedence and provenance.

    Parameters
    ----------
    sources:
        Iterable of ``(layer_name, connections, source_path)`` tuples ordered
        from lowest to highest precedence.

    Returns
    -------
    tuple[dict[str, object], dict[str, SourceInfo]]
        ``(merged_connections, provenance)``; provenance names the last
        source that contributed to each connection.

    Examples
    --------
    >>> merged, meta = merge_sources([
    ...     ("project", {"a": {"type": "postgres", "host": "one"}, "default": {"host": "h", "port": 1}}, "p.yaml"),
    ...     ("user", {"a": {"type": "mysql"}, "default": {"user": "u"}}, "u.yaml"),
    ... ])
    >>> merged["a"]
    {'type': 'mysql'}
    >>> merged["default"]
    {'host': 'h', 'port': 1, 'user': 'u'}
    >>> meta["a"]["layer"]
    'user'
    """

    merged: dict[str, object] = {}
    meta: dict[str, SourceInfo] = {}

    for layer, connections, path in sources:
        for name, fields in connections.items():
            name = str(name)
            if name == DEFAULT_CONNECTION:
                merged[name] = _merge_default(merged.get(name), fields)
            else:
                merged[name] = deepcopy(fields)
            meta[name] = SourceInfo(layer=layer, path=path)
    return merged, meta


def _merge_default(existing: object, incoming: object) -> object:
    """Merge an incoming ``default`` field bag into the accumulated one."""

    if not isinstance(incoming, Mapping) or not isinstance(existing, Mapping):
        return deepcopy(incoming)
    container = dict(existing)
    _merge_mapping(container, incoming)
    return container


def _merge_mapping(target: dict[str, object], incoming: Mapping[str, object]) -> None:
    """Recursively merge ``incoming`` into ``target``; scalars from ``incoming`` win."""

    for key, value in incoming.items():
        current = target.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            branch = dict(current)
            _merge_mapping(branch, value)
            target[key] = branch
        else:
            target[key] = deepcopy(value)
