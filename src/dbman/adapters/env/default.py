"""Environment variable adapter.

Purpose
-------
Capture the process environment once, as an explicit read-only snapshot, and
extract the ``DBMAN_DEFAULT_*`` family used to synthesise the ``default``
connection.

Key behaviours
--------------
* :func:`capture_environment` layers ``os.environ`` over ``.env`` values (the
  shell always wins) and freezes the result.
* :class:`DefaultEnvLoader` returns prefixed variables with the prefix removed
  and names lower-cased (``DBMAN_DEFAULT_HOST`` → ``host``). Values stay
  strings; coercion belongs to the normaliser.
"""

from __future__ import annotations

import os
from types import MappingProxyType
from typing import Mapping

from ...observability import log_debug
from ..dotenv.default import DefaultDotEnvLoader

DEFAULT_ENV_PREFIX = "DBMAN_DEFAULT"


def default_env_prefix(name: str) -> str:
    """Return the environment prefix holding fallbacks for connection *name*.

    Examples
    --------
    >>> default_env_prefix('default')
    'DBMAN_DEFAULT'
    """

    return f"DBMAN_{name.replace('-', '_').upper()}"


def capture_environment(
    *,
    environ: Mapping[str, str] | None = None,
    start_dir: str | None = None,
    dotenv: DefaultDotEnvLoader | None = None,
) -> Mapping[str, str]:
    """Return a frozen snapshot of the environment used for resolution.

    Why
    ----
    Placeholder resolution must be deterministic and testable; passing a
    snapshot around avoids reading ``os.environ`` at arbitrary points.

    Parameters
    ----------
    environ:
        Mapping to read from. Defaults to :data:`os.environ`.
    start_dir:
        Directory where the upward ``.env`` search starts.
    dotenv:
        Loader used for ``.env`` discovery; ``None`` creates a default one.

    Examples
    --------
    >>> from tempfile import TemporaryDirectory
    >>> from pathlib import Path
    >>> tmp = TemporaryDirectory()
    >>> _ = (Path(tmp.name) / '.env').write_text('H=from-dotenv\\nP=1\\n', encoding='utf-8')
    >>> snapshot = capture_environment(environ={'H': 'from-shell'}, start_dir=tmp.name)
    >>> snapshot['H'], snapshot['P']
    ('from-shell', '1')
    >>> tmp.cleanup()
    """

    loader = dotenv or DefaultDotEnvLoader()
    merged: dict[str, str] = dict(loader.load(start_dir))
    merged.update(os.environ if environ is None else environ)
    return MappingProxyType(merged)


class DefaultEnvLoader:
    """Load environment variables that belong to a ``dbman`` namespace."""

    def __init__(self, *, environ: Mapping[str, str] | None = None) -> None:
        self._environ = os.environ if environ is None else environ

    def load(self, prefix: str = DEFAULT_ENV_PREFIX) -> dict[str, str]:
        """Return variables carrying *prefix* keyed by their lower-cased remainder.

        Empty values are ignored so ``DBMAN_DEFAULT_HOST=`` behaves like an
        unset variable.

        Examples
        --------
        >>> env = {'DBMAN_DEFAULT_TYPE': 'mysql', 'DBMAN_DEFAULT_PORT': '3307', 'OTHER': 'x'}
        >>> DefaultEnvLoader(environ=env).load()
        {'type': 'mysql', 'port': '3307'}
        """

        prefix = f"{prefix}_" if prefix and not prefix.endswith("_") else prefix
        collected: dict[str, str] = {}
        for key, value in self._environ.items():
            if not key.startswith(prefix) or not value:
                continue
            stripped = key[len(prefix) :]
            if stripped:
                collected[stripped.lower()] = value
        log_debug("env_variables_loaded", layer="env", path=None, keys=sorted(collected))
        return collected
