"""Composition root for ``dbman``.

Purpose
-------
Provide the entry points that orchestrate source discovery, file loading,
environment capture, placeholder resolution, normalisation, and persistence.
Outer layers (the CLI, library consumers) call these functions and never wire
adapters themselves.

Contents
--------
* :func:`read_sources` – load the ``connections`` mapping of every source file.
* :func:`load_registry` – high-level API returning an immutable
  :class:`~dbman.domain.registry.Registry`.
* :func:`get_connection` – look up one definition, optionally completing its
  credentials through a prompter.
* :func:`session` – connect/close scope around a backend adapter.
* :func:`save_connection` / :func:`delete_connection` – persistence helpers.

System Role
-----------
This module connects adapters (filesystem, dotenv, environment, drivers) with
the application policies while emitting structured observability signals. It
is the canonical location for adjusting the source order.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Mapping

from .adapters.backends.factory import make_adapter
from .adapters.env.default import DefaultEnvLoader, capture_environment
from .adapters.path_resolvers.default import DefaultSourceLocator
from .adapters.persistence.registry_file import RegistryFile
from .application.merge import merge_sources
from .application.normalize import normalize
from .application.ports import BackendAdapter, CredentialPrompter, SourceLocator
from .application.resolve import prompt_for_missing_credentials, resolve
from .domain.connection import DEFAULT_CONNECTION, ConnectionDefinition
from .domain.errors import LoadError, UnknownConnectionError
from .domain.registry import Registry
from .observability import log_debug, log_info, make_event


def read_sources(locator: SourceLocator) -> list[tuple[str, Mapping[str, object], str | None]]:
    """Return ``(layer, connections, path)`` for every source that defines connections.

    Why
    ----
    Keep file-loading concerns in one place so error handling is identical
    for every layer.

    What
    ----
    Visits the locator's layers in order and reads each file's top-level
    ``connections`` mapping. Missing files and files without connections
    contribute nothing.

    Raises
    ------
    LoadError
        When a present file is not valid YAML/JSON, is not a mapping, or
        carries a ``connections`` value that is not a mapping.

    Examples
    --------
    >>> from tempfile import TemporaryDirectory
    >>> tmp = TemporaryDirectory()
    >>> root = Path(tmp.name)
    >>> _ = (root / ".dbman.yaml").write_text("connections:\\n  dev: {type: mysql}\\n", encoding="utf-8")
    >>> locator = DefaultSourceLocator(cwd=root, home=root / "nowhere", env={})
    >>> [(layer, dict(connections)) for layer, connections, _ in read_sources(locator)]
    [('project', {'dev': {'type': 'mysql'}})]
    >>> tmp.cleanup()
    """

    collected: list[tuple[str, Mapping[str, object], str | None]] = []
    for layer, paths in locator.layers():
        for path in paths:
            connections = RegistryFile(path, layer=layer).connections()
            if connections:
                log_debug("layer_loaded", **make_event(layer, path, {"connections": len(connections)}))
                collected.append((layer, connections, path))
    return collected


def load_registry(
    *,
    locator: SourceLocator | None = None,
    environ: Mapping[str, str] | None = None,
    start_dir: str | None = None,
) -> Registry:
    """Return the immutable registry of all configured connections.

    Parameters
    ----------
    locator:
        Source locator; defaults to :class:`DefaultSourceLocator` rooted at
        *start_dir* and reading ``DBMAN_CONFIG`` from the captured environment.
    environ:
        Process environment to use instead of :data:`os.environ`. Values from
        a ``.env`` file are layered underneath it either way.
    start_dir:
        Project directory; also where the upward ``.env`` search starts.

    Raises
    ------
    LoadError
        When any present source cannot be read. No backend is contacted.
    """

    snapshot = capture_environment(environ=environ, start_dir=start_dir)
    if locator is None:
        locator = DefaultSourceLocator(cwd=Path(start_dir) if start_dir else None, env=snapshot)
    merged, provenance = merge_sources(read_sources(locator))
    resolved = resolve(merged, snapshot)
    registry = normalize(resolved, provenance, env_defaults=DefaultEnvLoader(environ=snapshot).load())
    log_info("registry_loaded", layer="final", path=None, connections=len(registry))
    return registry


def get_connection(
    name: str = DEFAULT_CONNECTION,
    *,
    registry: Registry | None = None,
    prompter: CredentialPrompter | None = None,
) -> ConnectionDefinition:
    """Return the definition called *name*, completed through *prompter* when given.

    Raises
    ------
    UnknownConnectionError
        When *name* is not in the registry. Nothing is prompted in that case.
    """

    definition = (registry if registry is not None else load_registry()).require(name)
    if prompter is not None:
        definition = prompt_for_missing_credentials(definition, prompter)
    return definition


@asynccontextmanager
async def session(adapter: BackendAdapter) -> AsyncIterator[BackendAdapter]:
    """Connect *adapter*, yield it, and close it on every exit path.

    ``close`` also runs when ``connect`` itself fails, which the adapters
    accept as a no-op.
    """

    try:
        await adapter.connect()
        yield adapter
    finally:
        await adapter.close()


def save_connection(definition: ConnectionDefinition, *, locator: SourceLocator | None = None) -> str:
    """Write *definition* into the user-level file and return that file's path.

    The document is rewritten atomically; every other entry is preserved.
    """

    locator = locator or DefaultSourceLocator()
    target = RegistryFile(locator.user_target(), layer="user")
    target.save(definition.name, definition.to_document())
    return target.path


def delete_connection(name: str, *, locator: SourceLocator | None = None) -> list[str]:
    """Remove *name* from every source file that defines it and return those paths.

    Raises
    ------
    UnknownConnectionError
        When no project or user file defines *name*.
    """

    locator = locator or DefaultSourceLocator()
    removed: list[str] = []
    known: set[str] = set()
    for layer, paths in locator.layers():
        for path in paths:
            source = RegistryFile(path, layer=layer)
            known.update(source.connections())
            if source.remove(name):
                removed.append(path)
    if not removed:
        raise UnknownConnectionError(name, sorted(known))
    return removed


__all__ = [
    "LoadError",
    "UnknownConnectionError",
    "read_sources",
    "load_registry",
    "get_connection",
    "make_adapter",
    "session",
    "save_connection",
    "delete_connection",
]
