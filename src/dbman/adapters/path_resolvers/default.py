"""Filesystem locations of connection sources.

Purpose
-------
Implement the :class:`dbman.application.ports.SourceLocator` protocol. The
adapter is the only component that knows where ``.dbman`` files live.

Contents
--------
* :data:`CONFIG_OVERRIDE_ENV` – environment variable naming an explicit
  user-level file.
* :class:`DefaultSourceLocator` – resolves the project and user layers.

System Role
-----------
Feeds ordered path lists into :func:`dbman.core.read_sources` and names the
file that :func:`dbman.core.save_connection` rewrites.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable, Mapping

from ...observability import log_debug

CONFIG_OVERRIDE_ENV = "DBMAN_CONFIG"

#: File names probed in each directory, in merge order.
_FILE_NAMES = (".dbman.yaml", ".dbman.yml", ".dbman.json")


class DefaultSourceLocator:
    """Resolve candidate connection files for each layer.

    Parameters
    ----------
    cwd:
        Project directory searched for the ``project`` layer. Defaults to the
        current working directory.
    home:
        Home directory searched for the ``user`` layer. Defaults to
        :meth:`Path.home`.
    env:
        Environment mapping consulted for :data:`CONFIG_OVERRIDE_ENV`.
        Defaults to :data:`os.environ`.

    Examples
    --------
    >>> from tempfile import TemporaryDirectory
    >>> tmp = TemporaryDirectory()
    >>> root = Path(tmp.name)
    >>> _ = (root / ".dbman.yaml").write_text("connections: {}", encoding="utf-8")
    >>> locator = DefaultSourceLocator(cwd=root, home=root / "home", env={})
    >>> [Path(p).name for p in locator.project()]
    ['.dbman.yaml']
    >>> list(locator.user())
    []
    >>> tmp.cleanup()
    """

    def __init__(
        self,
        *,
        cwd: Path | None = None,
        home: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.cwd = cwd or Path.cwd()
        self.home = home or Path.home()
        self.env = os.environ if env is None else env

    def project(self) -> Iterable[str]:
        """Return existing project-local files (current working directory)."""

        return self._existing("project", [self.cwd / name for name in _FILE_NAMES])

    def user(self) -> Iterable[str]:
        """Return existing user-level files, honouring :data:`CONFIG_OVERRIDE_ENV`."""

        override = self.env.get(CONFIG_OVERRIDE_ENV)
        if override:
            return self._existing("user", [Path(override).expanduser()])
        return self._existing("user", [self.home / name for name in _FILE_NAMES])

    def layers(self) -> list[tuple[str, list[str]]]:
        """Return ``(layer, paths)`` pairs in merge order without duplicate files.

        A file reachable from both layers (working inside the home directory)
        is only read once, under the first layer that lists it.
        """

        seen: set[Path] = set()
        ordered: list[tuple[str, list[str]]] = []
        for layer, paths in (("project", self.project()), ("user", self.user())):
            unique = []
            for path in paths:
                resolved = Path(path).resolve()
                if resolved in seen:
                    continue
                seen.add(resolved)
                unique.append(path)
            ordered.append((layer, unique))
        return ordered

    def user_target(self) -> str:
        """Return the user-level file that persistence writes to.

        The override wins; otherwise the first existing home file is reused so
        an operator's ``.dbman.yml`` is not shadowed by a new ``.dbman.yaml``.
        """

        override = self.env.get(CONFIG_OVERRIDE_ENV)
        if override:
            return str(Path(override).expanduser())
        existing = list(self.user())
        if existing:
            return existing[0]
        return str(self.home / _FILE_NAMES[0])

    def _existing(self, layer: str, candidates: Iterable[Path]) -> list[str]:
        paths = [str(candidate) for candidate in candidates if candidate.is_file()]
        if paths:
            log_debug("path_candidates", layer=layer, path=None, count=len(paths))
        return paths
