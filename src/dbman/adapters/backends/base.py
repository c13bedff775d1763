"""Lifecycle plumbing shared by the backend adapters.

Every adapter owns exactly one driver handle. :class:`BaseAdapter` keeps the
bookkeeping that makes ``close`` idempotent and failure-safe, so the concrete
adapters only describe how to open, use, and release their driver.
"""

from __future__ import annotations

import abc
from typing import Any, Generic, TypeVar

from ...domain.connection import ConnectionDefinition, Kind
from ...domain.errors import BackendConnectionError
from ...observability import log_debug, log_error, log_info, make_event

D = TypeVar("D", bound=ConnectionDefinition)


class BaseAdapter(abc.ABC, Generic[D]):
    """Hold a definition and a lazily opened driver handle.

    Parameters
    ----------
    definition:
        Normalised connection definition; never mutated.
    connect_timeout:
        Seconds to wait while establishing the connection. ``None`` keeps the
        driver default; reachability probes pass a short value.
    """

    kind: Kind

    def __init__(self, definition: D, *, connect_timeout: float | None = None) -> None:
        self.definition = definition
        self.connect_timeout = connect_timeout
        self._handle: Any = None

    def identify_kind(self) -> Kind:
        return self.kind

    @property
    def connected(self) -> bool:
        return self._handle is not None

    async def connect(self) -> None:
        """Open the driver handle and verify it with a round trip.

        Raises
        ------
        BackendConnectionError
            With the driver's message when the backend is unreachable or
            rejects the credentials. Nothing is retried.
        """

        if self._handle is not None:
            return
        target = self.definition.target
        log_debug("backend_connecting", **self._event(target=target))
        try:
            self._handle = await self._open()
            await self._ping()
        except self._driver_errors() as exc:
            log_error("backend_connect_failed", **self._event(error=str(exc)))
            await self.close()
            raise BackendConnectionError(self.kind.value, target, str(exc) or type(exc).__name__) from exc
        log_info("backend_connected", **self._event())

    async def close(self) -> None:
        """Release the driver handle; safe to call repeatedly or after a failed connect."""

        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            await self._release(handle)
        except Exception as exc:  # noqa: BLE001
            log_error("backend_close_failed", **self._event(error=str(exc)))
        else:
            log_debug("backend_closed", **self._event())

    async def __aenter__(self) -> "BaseAdapter[D]":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _require_handle(self) -> Any:
        if self._handle is None:
            raise RuntimeError(f"{self.kind.value} adapter for {self.definition.name!r} is not connected")
        return self._handle

    @abc.abstractmethod
    async def _open(self) -> Any:
        """Open and return the driver handle."""

    @abc.abstractmethod
    async def _ping(self) -> None:
        """Round-trip once so credentials and reachability are checked."""

    @abc.abstractmethod
    async def _release(self, handle: Any) -> None:
        """Release *handle*; errors are logged by :meth:`close`."""

    @abc.abstractmethod
    def _driver_errors(self) -> tuple[type[BaseException], ...]:
        """Exception types that :meth:`connect` reports as ``BackendConnectionError``."""

    def _event(self, **payload: Any) -> dict[str, Any]:
        return make_event(self.kind.value, None, {"name": self.definition.name, **payload})
