"""Structured configuration file loaders and writers.

Purpose
-------
Convert on-disk connection documents into Python mappings and back. Adapters
are small wrappers around ``yaml.safe_load``/``json`` so error handling,
observability, and atomic rewrites live in one place.

Contents
--------
* :class:`BaseFileLoader` – shared helpers for reading, validating, and
  atomically replacing files.
* :class:`YAMLFileLoader` – loader/writer for the canonical YAML format.
* :class:`JSONFileLoader` – loader/writer for JSON documents.
* :func:`loader_for` – suffix-based lookup used by the composition root.

System Role
-----------
Invoked by :func:`dbman.core.read_sources` to parse sources before merging and
by :mod:`dbman.adapters.persistence.registry_file` to rewrite them.
"""

from __future__ import annotations

import abc
import json
import os
import tempfile
from pathlib import Path
from typing import Mapping

import yaml

from ...domain.errors import InvalidFormat, NotFound
from ...observability import log_debug, log_error


class BaseFileLoader(abc.ABC):
    """Common utilities shared by the structured file loaders."""

    format_name = "file"

    @abc.abstractmethod
    def load(self, path: str) -> Mapping[str, object]:
        """Return the parsed mapping stored at *path*."""

    def _read(self, path: str) -> bytes:
        """Read *path* as bytes, raising :class:`NotFound` when the file is missing.

        Examples
        --------
        >>> from tempfile import NamedTemporaryFile
        >>> tmp = NamedTemporaryFile(delete=False)
        >>> _ = tmp.write(b"connections: {}")
        >>> tmp.close()
        >>> YAMLFileLoader()._read(tmp.name)[:11]
        b'connections'
        >>> Path(tmp.name).unlink()
        """

        file_path = Path(path)
        if not file_path.is_file():
            raise NotFound(f"Configuration file not found: {path}")
        payload = file_path.read_bytes()
        log_debug("config_file_read", path=path, layer="file", size=len(payload))
        return payload

    @staticmethod
    def _ensure_mapping(data: object, *, path: str) -> Mapping[str, object]:
        """Ensure *data* behaves like a mapping, otherwise raise ``InvalidFormat``.

        Examples
        --------
        >>> BaseFileLoader._ensure_mapping({"connections": {}}, path="demo")
        {'connections': {}}
        >>> BaseFileLoader._ensure_mapping(42, path="demo")
        Traceback (most recent call last):
        ...
        dbman.domain.errors.InvalidFormat: File demo did not produce a mapping
        """

        if not isinstance(data, Mapping):
            raise InvalidFormat(f"File {path} did not produce a mapping")
        return data  # type: ignore[return-value]

    @abc.abstractmethod
    def _serialise(self, data: Mapping[str, object]) -> str:
        """Render *data* in this loader's format."""

    def dump(self, path: str, data: Mapping[str, object]) -> None:
        """Replace *path* with the serialised *data* in a single rename.

        Why
        ----
        Registry rewrites must never leave a half-written document behind, so
        the payload goes to a sibling temporary file which then replaces the
        target.

        Side Effects
        ------------
        Creates missing parent directories and emits ``config_file_written``.
        """

        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        text = self._serialise(data)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=str(target.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(text)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        log_debug("config_file_written", layer="file", path=path, format=self.format_name)


class YAMLFileLoader(BaseFileLoader):
    """Load and write YAML documents."""

    format_name = "yaml"

    def load(self, path: str) -> Mapping[str, object]:
        """Return mapping extracted from the YAML file at *path*.

        An empty file yields an empty mapping.

        Examples
        --------
        >>> from tempfile import NamedTemporaryFile
        >>> tmp = NamedTemporaryFile('w', suffix='.yaml', delete=False, encoding='utf-8')
        >>> _ = tmp.write('connections:\\n  dev:\\n    type: postgres\\n')
        >>> tmp.close()
        >>> YAMLFileLoader().load(tmp.name)["connections"]["dev"]["type"]
        'postgres'
        >>> Path(tmp.name).unlink()
        """

        try:
            data = yaml.safe_load(self._read(path))
        except yaml.YAMLError as exc:
            log_error("config_file_invalid", layer="file", path=path, format="yaml", error=str(exc))
            raise InvalidFormat(f"Invalid YAML in {path}: {exc}") from exc
        if data is None:
            data = {}
        result = self._ensure_mapping(data, path=path)
        log_debug("config_file_loaded", layer="file", path=path, format="yaml")
        return result

    def _serialise(self, data: Mapping[str, object]) -> str:
        return yaml.safe_dump(dict(data), sort_keys=False, default_flow_style=False, allow_unicode=True)


class JSONFileLoader(BaseFileLoader):
    """Load and write JSON documents."""

    format_name = "json"

    def load(self, path: str) -> Mapping[str, object]:
        """Return mapping extracted from the JSON file at *path*."""

        raw = self._read(path)
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            log_error("config_file_invalid", layer="file", path=path, format="json", error=str(exc))
            raise InvalidFormat(f"Invalid JSON in {path}: {exc}") from exc
        result = self._ensure_mapping(data, path=path)
        log_debug("config_file_loaded", layer="file", path=path, format="json")
        return result

    def _serialise(self, data: Mapping[str, object]) -> str:
        return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


# Loaders keyed by suffix. ``.yaml`` is the format written for new files.
_FILE_LOADERS: dict[str, BaseFileLoader] = {
    ".yaml": YAMLFileLoader(),
    ".yml": YAMLFileLoader(),
    ".json": JSONFileLoader(),
}


def loader_for(path: str) -> BaseFileLoader | None:
    """Return the loader responsible for *path* based on its suffix.

    Examples
    --------
    >>> type(loader_for("/home/demo/.dbman.yml")).__name__
    'YAMLFileLoader'
    >>> loader_for("/home/demo/.dbman.ini") is None
    True
    """

    return _FILE_LOADERS.get(Path(path).suffix.lower())
