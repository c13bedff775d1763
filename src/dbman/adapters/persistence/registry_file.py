"""Read-modify-write access to one connection file.

Purpose
-------
Own the on-disk document shape (a top-level ``connections`` mapping) so the
composition root can read sources and persist changes without knowing about
suffixes or atomic replacement.

Contents
--------
* :class:`RegistryFile` – wrapper around a single ``.dbman`` file.

System Role
-----------
Used by :func:`dbman.core.read_sources` for reading and by
:func:`dbman.core.save_connection` / :func:`dbman.core.delete_connection` for
writing. Entries other than the one being changed, and top-level keys other
than ``connections``, are written back exactly as they were read, including
unresolved ``${...}`` placeholders.
"""

from __future__ import annotations

from collections.abc import Mapping

from ...domain.errors import InvalidFormat, LoadError, NotFound
from ...observability import log_debug, log_info
from ..file_loaders.structured import BaseFileLoader, YAMLFileLoader, loader_for

_CONNECTIONS_KEY = "connections"


class RegistryFile:
    """One connection file in a given layer.

    Files with an unrecognised suffix (possible through ``DBMAN_CONFIG``) are
    treated as YAML.

    Examples
    --------
    >>> from tempfile import TemporaryDirectory
    >>> from pathlib import Path
    >>> tmp = TemporaryDirectory()
    >>> target = RegistryFile(str(Path(tmp.name) / ".dbman.yaml"))
    >>> target.connections()
    {}
    >>> target.save("dev", {"type": "mysql", "host": "db"})
    >>> target.connections()
    {'dev': {'type': 'mysql', 'host': 'db'}}
    >>> target.remove("dev"), target.remove("dev")
    (True, False)
    >>> tmp.cleanup()
    """

    def __init__(self, path: str, *, layer: str = "user") -> None:
        self.path = path
        self.layer = layer
        self.loader: BaseFileLoader = loader_for(path) or YAMLFileLoader()

    def read(self) -> dict[str, object]:
        """Return the whole document, ``{}`` when the file does not exist.

        Raises
        ------
        LoadError
            When the file exists but is not a valid YAML/JSON mapping.
        """

        try:
            return dict(self.loader.load(self.path))
        except NotFound:
            return {}
        except InvalidFormat as exc:
            log_debug("layer_error", layer=self.layer, path=self.path, error=str(exc))
            raise LoadError(f"Failed to load {self.layer} file {self.path}: {exc}") from exc

    def connections(self, document: Mapping[str, object] | None = None) -> dict[str, object]:
        """Return the ``connections`` mapping of *document* (read from disk when omitted)."""

        if document is None:
            document = self.read()
        raw = document.get(_CONNECTIONS_KEY)
        if raw is None:
            return {}
        if not isinstance(raw, Mapping):
            raise LoadError(
                f'Failed to load {self.layer} file {self.path}: "connections" must be a mapping, '
                f"got {type(raw).__name__}"
            )
        return {str(name): fields for name, fields in raw.items()}

    def save(self, name: str, fields: Mapping[str, object]) -> None:
        """Insert or replace connection *name* and rewrite the file."""

        document = self.read()
        connections = self.connections(document)
        connections[name] = dict(fields)
        document[_CONNECTIONS_KEY] = connections
        self.loader.dump(self.path, document)
        log_info("connection_saved", layer=self.layer, path=self.path, name=name)

    def remove(self, name: str) -> bool:
        """Drop connection *name*; return ``False`` (and leave the file untouched) if absent."""

        document = self.read()
        connections = self.connections(document)
        if name not in connections:
            return False
        del connections[name]
        document[_CONNECTIONS_KEY] = connections
        self.loader.dump(self.path, document)
        log_info("connection_deleted", layer=self.layer, path=self.path, name=name)
        return True
