"""Checked access to backend capabilities.

Callers never cast an adapter. They ask for a capability and either receive it
(``as_sql``/``as_document`` return ``None`` otherwise) or get a
:class:`~dbman.domain.errors.CapabilityMismatchError` before any I/O
(``require_sql``/``require_document``).
"""

from __future__ import annotations

from ..domain.errors import CapabilityMismatchError
from .ports import BackendAdapter, DocumentCapable, SqlCapable


def as_sql(adapter: BackendAdapter) -> SqlCapable | None:
    """Return *adapter* as a SQL-capable adapter, or ``None`` when it is not one."""

    return adapter if isinstance(adapter, SqlCapable) else None


def as_document(adapter: BackendAdapter) -> DocumentCapable | None:
    """Return *adapter* as a document-capable adapter, or ``None`` when it is not one."""

    return adapter if isinstance(adapter, DocumentCapable) else None


def require_sql(adapter: BackendAdapter) -> SqlCapable:
    sql = as_sql(adapter)
    if sql is None:
        raise CapabilityMismatchError(adapter.identify_kind().value, "SQL")
    return sql


def require_document(adapter: BackendAdapter) -> DocumentCapable:
    document = as_document(adapter)
    if document is None:
        raise CapabilityMismatchError(adapter.identify_kind().value, "document")
    return document
