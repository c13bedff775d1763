"""Domain-level exception hierarchy.

Purpose
-------
Expose the stable error taxonomy shared by adapters, the composition root, and
the CLI. The hierarchy lives in the domain layer so outer layers may depend on
it without creating import cycles.

Contents
--------
* :class:`DbmanError` – umbrella base class for all library errors.
* :class:`InvalidFormat` – parsing problems while reading a source file.
* :class:`NotFound` – an optional resource (usually a file) is missing.
* :class:`LoadError` – a present source could not be turned into connections.
* :class:`UnknownConnectionError` – a requested name is not in the registry.
* :class:`UnsupportedKindError` – a raw entry declares an unknown backend kind.
* :class:`MalformedConnectionError` – a raw entry has an unusable shape.
* :class:`BackendConnectionError` – the driver could not open a connection.
* :class:`CapabilityMismatchError` – an adapter lacks the requested capability.

System Role
-----------
Loaders raise :class:`InvalidFormat`/:class:`NotFound`; the composition root
wraps the former into :class:`LoadError`. The normalizer catches the per-entry
errors so one broken connection never aborts a load. Callers catch
:class:`DbmanError` to handle all library failures uniformly.
"""

from __future__ import annotations

from typing import Iterable


class DbmanError(Exception):
    """Base type for all exceptions emitted by ``dbman``."""


class InvalidFormat(DbmanError):
    """Raised when a source artifact cannot be parsed into structured data.

    Typical Sources
    ---------------
    The YAML and JSON loaders in :mod:`dbman.adapters.file_loaders.structured`.
    """


class NotFound(DbmanError):
    """Represents missing-but-optional resources (files, directories, etc.).

    The composition root treats this as a non-fatal condition and simply skips
    the source.
    """


class LoadError(DbmanError):
    """Raised when a present configuration source fails to load.

    Why
    ----
    A half-read registry would silently hide connections, so an unparseable
    file aborts the command before any backend is contacted.
    """


class UnknownConnectionError(DbmanError, KeyError):
    """Raised when a connection name is absent from the registry.

    Examples
    --------
    >>> str(UnknownConnectionError("prod", ["default", "dev"]))
    'Unknown connection "prod". Available: default, dev. Use "dbman list" to inspect connections.'
    """

    def __init__(self, name: str, available: Iterable[str] = ()) -> None:
        self.name = name
        self.available = tuple(available)
        super().__init__(name)

    def __str__(self) -> str:
        listing = ", ".join(self.available) if self.available else "none"
        return f'Unknown connection "{self.name}". Available: {listing}. Use "dbman list" to inspect connections.'


class UnsupportedKindError(DbmanError, ValueError):
    """Raised when a raw entry declares a backend kind outside the closed set."""

    def __init__(self, name: str, value: object) -> None:
        self.name = name
        self.value = value
        super().__init__(f'Unsupported "type" for connection "{name}": {value!r}')


class MalformedConnectionError(DbmanError, ValueError):
    """Raised when a raw entry cannot be normalised (bad port, not a mapping, ...)."""


class BackendConnectionError(DbmanError):
    """Raised when a backend connection or authentication attempt fails.

    The driver's message is preserved verbatim; ``dbman`` never retries.
    """

    def __init__(self, kind: str, target: str, message: str) -> None:
        self.kind = kind
        self.target = target
        self.message = message
        super().__init__(f"Cannot connect to {kind} at {target}: {message}")


class CapabilityMismatchError(DbmanError, TypeError):
    """Raised when an operation is requested from an adapter that cannot perform it."""

    def __init__(self, kind: str, capability: str) -> None:
        self.kind = kind
        self.capability = capability
        super().__init__(f"{kind} connections do not support {capability} operations")
