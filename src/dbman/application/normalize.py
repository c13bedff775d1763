"""Connection model normaliser.

Purpose
-------
Turn the merged, interpolated raw tree into a :class:`~dbman.domain.registry.Registry`
of typed definitions.

Policies
--------
* Kinds come from ``type`` (alias ``kind``): a canonical tag
  (``postgres``/``mysql``/``mongo``, case-insensitive) or a legacy numeric
  code ``0``/``1``/``2``.
* Failures are isolated per entry: an unknown kind or malformed shape drops
  that entry with a ``connection_dropped`` warning, never the whole load.
* The ``default`` connection always exists. It is synthesised from the
  ``DBMAN_DEFAULT_*`` variables for the effective kind and then overridden
  field by field by an explicit ``default`` entry.
* Completeness is not enforced; empty credentials are filled in lazily by
  :func:`dbman.application.resolve.prompt_for_missing_credentials`.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from ..domain.connection import (
    DEFAULT_CONNECTION,
    DEFAULT_PORTS,
    DEFINITION_TYPES,
    LEGACY_KIND_CODES,
    ConnectionDefinition,
    Kind,
    MongoConnection,
)
from ..domain.errors import MalformedConnectionError, UnsupportedKindError
from ..domain.registry import Registry, SourceInfo
from ..observability import log_debug, log_warning

_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0", ""}

# Fallbacks used when neither an explicit default nor DBMAN_DEFAULT_* supply a value.
_BUILTIN_DEFAULTS: dict[Kind, dict[str, Any]] = {
    Kind.POSTGRES: {"host": "localhost", "user": "postgres", "password": "postgres", "database": "appdb"},
    Kind.MYSQL: {"host": "localhost", "user": "root", "password": "root", "database": "appdb"},
    Kind.MONGO: {"uri": "mongodb://localhost:27017", "dbName": "appdb"},
}


def normalize(
    resolved: Mapping[str, object],
    provenance: Mapping[str, SourceInfo] | None = None,
    *,
    env_defaults: Mapping[str, str] | None = None,
) -> Registry:
    """Return the registry described by the *resolved* raw connections.

    Parameters
    ----------
    resolved:
        Connection name → field bag, already merged and interpolated.
    provenance:
        Source information per name as produced by
        :func:`dbman.application.merge.merge_sources`.
    env_defaults:
        ``DBMAN_DEFAULT_*`` values keyed by lower-cased suffix (``host``,
        ``port``, ``type``, ...).

    Examples
    --------
    >>> registry = normalize({"cache": {"type": "redis"}, "dev": {"type": 1, "host": "db"}})
    >>> sorted(registry)
    ['default', 'dev']
    >>> registry["dev"].kind.value, registry["dev"].port
    ('mysql', 3306)
    >>> registry["default"].kind.value
    'postgres'
    """

    provenance = provenance or {}
    env_defaults = env_defaults or {}

    entries: dict[str, ConnectionDefinition] = {}
    meta: dict[str, SourceInfo] = {}
    for name, fields in resolved.items():
        if name == DEFAULT_CONNECTION:
            continue
        origin = provenance.get(name)
        try:
            entries[name] = build_definition(name, fields)
        except (UnsupportedKindError, MalformedConnectionError) as exc:
            _drop(name, exc, origin)
            continue
        meta[name] = origin or SourceInfo(layer="unknown", path=None)

    default, used_explicit = synthesize_default(resolved.get(DEFAULT_CONNECTION), env_defaults)
    default_origin = provenance.get(DEFAULT_CONNECTION) if used_explicit else None
    ordered = {DEFAULT_CONNECTION: default, **entries}
    meta = {DEFAULT_CONNECTION: default_origin or SourceInfo(layer="env", path=None), **meta}
    log_debug("registry_normalized", layer="final", path=None, connections=len(ordered))
    return Registry(ordered, meta)


def parse_kind(name: str, value: object) -> Kind:
    """Return the :class:`Kind` named by *value* or raise ``UnsupportedKindError``.

    Examples
    --------
    >>> parse_kind("a", "MySQL"), parse_kind("b", 2), parse_kind("c", "0")
    (<Kind.MYSQL: 'mysql'>, <Kind.MONGO: 'mongo'>, <Kind.POSTGRES: 'postgres'>)
    >>> parse_kind("d", "redis")
    Traceback (most recent call last):
    ...
    dbman.domain.errors.UnsupportedKindError: Unsupported "type" for connection "d": 'redis'
    """

    if isinstance(value, bool):
        raise UnsupportedKindError(name, value)
    if isinstance(value, int):
        if value in LEGACY_KIND_CODES:
            return LEGACY_KIND_CODES[value]
        raise UnsupportedKindError(name, value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text.isascii() and text.isdigit() and int(text) in LEGACY_KIND_CODES:
            return LEGACY_KIND_CODES[int(text)]
        try:
            return Kind(text)
        except ValueError:
            pass
    raise UnsupportedKindError(name, value)


def build_definition(name: str, fields: object, *, kind: Kind | None = None) -> ConnectionDefinition:
    """Build the typed definition for one raw entry.

    Raises
    ------
    UnsupportedKindError
        When the ``type`` tag is missing or not in the closed set.
    MalformedConnectionError
        When the entry is not a mapping, the name is empty, or ``port``/``tls``
        cannot be coerced.
    """

    if not name:
        raise MalformedConnectionError("Connection names must not be empty")
    if not isinstance(fields, Mapping):
        raise MalformedConnectionError(f'Connection "{name}" must be a mapping, got {type(fields).__name__}')
    if kind is None:
        kind = parse_kind(name, _kind_tag(fields))

    if kind is Kind.MONGO:
        return MongoConnection(
            name=name,
            uri=_text(fields.get("uri")),
            db_name=_text(_first(fields, "dbName", "db_name", "database")),
        )
    definition_type = DEFINITION_TYPES[kind]
    return definition_type(
        name=name,
        host=_text(fields.get("host")),
        port=_port(name, fields.get("port"), kind),
        user=_text(fields.get("user")),
        password=_text(fields.get("password")),
        database=_text(fields.get("database")),
        tls=_flag(name, _first(fields, "tls", "ssl")),
    )


def synthesize_default(explicit: object, env_defaults: Mapping[str, str]) -> tuple[ConnectionDefinition, bool]:
    """Return the ``default`` definition and whether *explicit* contributed to it.

    The effective kind is the explicit entry's ``type`` when present, otherwise
    ``DBMAN_DEFAULT_TYPE``, otherwise PostgreSQL.

    Examples
    --------
    >>> definition, used = synthesize_default({"user": "alice"}, {"host": "db.local", "port": "6432"})
    >>> definition.host, definition.port, definition.user, definition.password, used
    ('db.local', 6432, 'alice', 'postgres', True)
    >>> definition, used = synthesize_default(None, {"type": "mongo"})
    >>> definition.uri, definition.db_name, used
    ('mongodb://localhost:27017', 'appdb', False)
    """

    kind, use_explicit = _default_kind(explicit, env_defaults)
    base = _environment_fields(kind, env_defaults)
    if use_explicit and isinstance(explicit, Mapping):
        overrides = {key: value for key, value in explicit.items() if value is not None}
        try:
            return build_definition(DEFAULT_CONNECTION, {**base, **overrides}, kind=kind), True
        except MalformedConnectionError as exc:
            _drop(DEFAULT_CONNECTION, exc, None)
    try:
        return build_definition(DEFAULT_CONNECTION, base, kind=kind), False
    except MalformedConnectionError as exc:
        _drop(DEFAULT_CONNECTION, exc, SourceInfo(layer="env", path=None))
        return build_definition(DEFAULT_CONNECTION, {**base, "port": None}, kind=kind), False


def _default_kind(explicit: object, env_defaults: Mapping[str, str]) -> tuple[Kind, bool]:
    use_explicit = False
    if isinstance(explicit, Mapping):
        use_explicit = True
        tag = _kind_tag(explicit)
        if tag not in (None, ""):
            try:
                return parse_kind(DEFAULT_CONNECTION, tag), True
            except UnsupportedKindError as exc:
                _drop(DEFAULT_CONNECTION, exc, None)
                use_explicit = False
    elif explicit is not None:
        _drop(DEFAULT_CONNECTION, MalformedConnectionError('Connection "default" must be a mapping'), None)

    env_tag = env_defaults.get("type")
    if env_tag:
        try:
            return parse_kind(DEFAULT_CONNECTION, env_tag), use_explicit
        except UnsupportedKindError as exc:
            _drop(DEFAULT_CONNECTION, exc, SourceInfo(layer="env", path=None))
    return Kind.POSTGRES, use_explicit


def _environment_fields(kind: Kind, env_defaults: Mapping[str, str]) -> dict[str, Any]:
    """Return the synthesised field bag for *kind* from ``DBMAN_DEFAULT_*`` values."""

    builtin = _BUILTIN_DEFAULTS[kind]
    if kind is Kind.MONGO:
        return {
            "uri": env_defaults.get("uri") or builtin["uri"],
            "dbName": env_defaults.get("name") or builtin["dbName"],
        }
    return {
        "host": env_defaults.get("host") or builtin["host"],
        "port": env_defaults.get("port") or DEFAULT_PORTS[kind],
        "user": env_defaults.get("user") or builtin["user"],
        "password": env_defaults.get("password") or builtin["password"],
        "database": env_defaults.get("name") or builtin["database"],
    }


def _drop(name: str, exc: Exception, origin: SourceInfo | None) -> None:
    log_warning(
        "connection_dropped",
        name=name,
        reason=str(exc),
        layer=origin["layer"] if origin else None,
        path=origin["path"] if origin else None,
    )


def _kind_tag(fields: Mapping[str, object]) -> object:
    return fields["type"] if "type" in fields else fields.get("kind")


def _first(fields: Mapping[str, object], *keys: str) -> object:
    for key in keys:
        if key in fields and fields[key] is not None:
            return fields[key]
    return None


def _text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _port(name: str, value: object, kind: Kind) -> int:
    """Coerce *value* to a TCP port, falling back to the kind's default when empty.

    Examples
    --------
    >>> _port("a", "6543", Kind.POSTGRES), _port("b", None, Kind.MYSQL)
    (6543, 3306)
    """

    if value is None or value == "":
        return DEFAULT_PORTS[kind]
    if isinstance(value, bool):
        raise MalformedConnectionError(f'Connection "{name}" has an invalid port: {value!r}')
    if isinstance(value, str) and value.strip().isascii() and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or not 1 <= value <= 65535:
        raise MalformedConnectionError(f'Connection "{name}" has an invalid port: {value!r}')
    return value


def _flag(name: str, value: object) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
    raise MalformedConnectionError(f'Connection "{name}" has an invalid tls flag: {value!r}')
