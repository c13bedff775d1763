"""Deferred value resolution.

Purpose
-------
Two separate steps turn configured values into usable ones:

* :func:`resolve` – pure ``${NAME}`` interpolation against an explicit
  environment snapshot. Runs on the raw tree, before kinds are discriminated,
  because the ``type`` tag itself may be a placeholder.
* :func:`prompt_for_missing_credentials` – interactive completion of empty
  relational credentials, invoked only for the connection actually used.

The two are never combined: loading stays free of operator interaction.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from ..domain.connection import ConnectionDefinition, MongoConnection
from ..observability import log_debug
from .ports import CredentialPrompter

PLACEHOLDER = re.compile(r"\$\{([A-Za-z0-9_]+)\}")

_CREDENTIAL_LABELS = {"user": "User", "password": "Password", "database": "Database name"}


def resolve(tree: Any, environ: Mapping[str, str]) -> Any:
    """Return a copy of *tree* with every ``${NAME}`` replaced from *environ*.

    Unset names become the empty string: a missing optional variable must not
    block loading. Mappings and lists are walked recursively; other scalars
    are returned untouched.

    Examples
    --------
    >>> resolve("postgres://${H}:${P}/db", {"H": "localhost", "P": "5432"})
    'postgres://localhost:5432/db'
    >>> resolve("postgres://${H}:${P}/db", {"H": "localhost"})
    'postgres://localhost:/db'
    >>> resolve({"prod": {"port": 5432, "hosts": ["${H}"]}}, {"H": "db"})
    {'prod': {'port': 5432, 'hosts': ['db']}}
    """

    if isinstance(tree, str):
        return PLACEHOLDER.sub(lambda match: environ.get(match.group(1), ""), tree)
    if isinstance(tree, Mapping):
        return {key: resolve(value, environ) for key, value in tree.items()}
    if isinstance(tree, (list, tuple)):
        return type(tree)(resolve(item, environ) for item in tree)
    return tree


def prompt_for_missing_credentials(
    definition: ConnectionDefinition,
    prompter: CredentialPrompter,
) -> ConnectionDefinition:
    """Return *definition* with empty ``user``/``password``/``database`` filled in.

    Why
    ----
    Registries often keep credentials out of files; asking at the point of
    use lets those connections work without exporting secrets.

    What
    ----
    Document (MongoDB) definitions and complete relational definitions are
    returned unchanged without prompting. Otherwise only the empty fields are
    asked for (the password with hidden input) and a new definition is
    returned; the input definition is never mutated.
    """

    if isinstance(definition, MongoConnection):
        return definition
    missing = definition.missing_credentials
    if not missing:
        return definition
    log_debug("credentials_prompted", layer="prompt", path=None, name=definition.name, fields=list(missing))
    answers = {
        field: prompter.ask(f"{_CREDENTIAL_LABELS[field]} for {definition.name}", secret=field == "password")
        for field in missing
    }
    return replace(definition, **answers)
