"""Correlation id propagation for requests and background runs."""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

CORRELATION_HEADER = "x-correlation-id"
_MAX_CORRELATION_ID_LENGTH = 128

_correlation_id: ContextVar[str | None] = ContextVar("leadpool_correlation_id", default=None)


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def normalize_correlation_id(raw: str | None) -> str:
    """Accept a caller supplied id if it is usable, otherwise mint a new one."""
    value = (raw or "").strip()
    if not value or len(value) > _MAX_CORRELATION_ID_LENGTH or not value.isprintable():
        return str(uuid.uuid4())
    return value


@contextmanager
def correlation_scope(correlation_id: str) -> Iterator[str]:
    token = _correlation_id.set(correlation_id)
    try:
        yield correlation_id
    finally:
        _correlation_id.reset(token)
